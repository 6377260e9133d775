from helpscout_mcp_server.constraints import (
    COMPREHENSIVE_SEARCH,
    CONVERSATION_SUMMARY,
    SEARCH_CONVERSATIONS,
    SEARCH_INBOXES,
    CallContext,
    generate_tool_guidance,
    mentions_inbox,
    validate_tool_call,
)


def test_inbox_mention_without_id_requires_lookup():
    context = CallContext(user_query="Find billing issues in the support inbox")

    result = validate_tool_call(COMPREHENSIVE_SEARCH, {"searchTerms": ["billing"]}, context)

    assert not result.is_valid
    assert result.required_prerequisites == [SEARCH_INBOXES]
    assert "User mentioned an inbox by name but no inboxId provided" in result.errors
    assert result.suggestions[0].startswith(f"REQUIRED: Call {SEARCH_INBOXES} first")


def test_inbox_mention_passes_after_lookup():
    context = CallContext(user_query="Show the sales mailbox", call_history=[SEARCH_INBOXES])

    result = validate_tool_call(SEARCH_CONVERSATIONS, {}, context)

    assert result.is_valid


def test_inbox_mention_passes_with_inbox_id():
    context = CallContext(user_query="urgent tickets in the support queue")

    result = validate_tool_call(COMPREHENSIVE_SEARCH, {"searchTerms": ["urgent"], "inboxId": "123"}, context)

    assert result.is_valid
    assert result.errors == []


def test_no_user_query_means_no_prerequisite():
    result = validate_tool_call(COMPREHENSIVE_SEARCH, {"searchTerms": ["billing"]}, CallContext())
    assert result.is_valid


def test_empty_search_terms_rejected():
    for arguments in ({}, {"searchTerms": []}, {"searchTerms": ["", "  "]}):
        result = validate_tool_call(COMPREHENSIVE_SEARCH, arguments, CallContext())
        assert not result.is_valid
        assert "searchTerms is required and must be a non-empty array" in result.errors


def test_non_numeric_inbox_id_rejected():
    result = validate_tool_call(SEARCH_CONVERSATIONS, {"inboxId": "support"}, CallContext())
    assert not result.is_valid
    assert "Invalid inbox ID format - should be numeric" in result.errors


def test_numeric_inbox_id_accepted_as_number():
    result = validate_tool_call(SEARCH_CONVERSATIONS, {"inboxId": 259}, CallContext())
    assert result.is_valid


def test_conversation_id_format_checked():
    assert not validate_tool_call(CONVERSATION_SUMMARY, {"conversationId": "abc"}, CallContext()).is_valid
    assert validate_tool_call(CONVERSATION_SUMMARY, {"conversationId": "12345"}, CallContext()).is_valid


def test_keyword_query_without_status_gets_advice_only():
    result = validate_tool_call(SEARCH_CONVERSATIONS, {"query": '(body:"x")'}, CallContext())
    assert result.is_valid
    assert any(COMPREHENSIVE_SEARCH in s for s in result.suggestions)


def test_validation_does_not_touch_history():
    context = CallContext(user_query="check the support inbox")
    validate_tool_call(COMPREHENSIVE_SEARCH, {"searchTerms": ["x"]}, context)
    assert context.call_history == []


def test_inbox_terms_matched_on_word_boundaries():
    assert mentions_inbox("anything in the Help Desk?")
    assert mentions_inbox("Customer Service backlog")
    assert not mentions_inbox("supported browsers")
    assert not mentions_inbox(None)


def test_guidance_after_inbox_lookup_names_the_id():
    payload = {"results": [{"id": 77, "name": "Support"}]}

    guidance = generate_tool_guidance(SEARCH_INBOXES, payload, CallContext())

    assert guidance[0].startswith("✅ NEXT STEP")
    assert '"inboxId": "77"' in guidance[1]


def test_guidance_for_empty_search():
    guidance = generate_tool_guidance(COMPREHENSIVE_SEARCH, {"totalConversationsFound": 0}, CallContext())
    assert guidance[0] == "❌ No conversations found. Try:"
    assert "Different status (active, pending, closed, spam)" in guidance


def test_guidance_for_results():
    payload = {"results": [{"id": 1}, {"id": 2}]}
    guidance = generate_tool_guidance(SEARCH_CONVERSATIONS, payload, CallContext())
    assert guidance[0] == "✅ Found 2 conversations"
    assert CONVERSATION_SUMMARY in guidance[1]
