from helpscout_mcp_server.formatting import (
    ALL_INBOXES_NOTE,
    REDACTED_BODY,
    describe_inbox_scope,
    format_conversation_search,
    format_conversation_summary,
    format_keyword_search,
    format_threads,
    resolve_inbox_id,
    select_fields,
)
from helpscout_mcp_server.models import AggregatedResult, StatusResult


def test_inbox_scope_precedence():
    assert resolve_inbox_id("1", "2") == "1"
    assert resolve_inbox_id(None, "2") == "2"
    assert resolve_inbox_id(None, None) is None
    assert describe_inbox_scope("1", "2") == "Specific inbox: 1"
    assert describe_inbox_scope(None, "2") == "Default inbox: 2"
    assert describe_inbox_scope(None, None) == "ALL inboxes"


def test_conversation_search_metadata():
    payload = format_conversation_search(
        [{"id": 1}],
        query=None,
        statuses_searched=["active"],
        explicit_inbox=None,
        default_inbox=None,
        pagination={"number": 1},
        client_side_filtered=False,
    )

    info = payload["searchInfo"]
    assert info["statusesSearched"] == ["active"]
    assert info["inboxScope"] == "ALL inboxes"
    assert info["searchGuidance"] == [ALL_INBOXES_NOTE]
    assert "query" not in info
    assert "clientSideFiltering" not in info


def test_conversation_search_reports_failed_statuses():
    aggregated = AggregatedResult(
        statuses_searched=["active"],
        failed_statuses={"closed": "boom"},
        status_conflicts={5: ["active", "pending"]},
    )
    payload = format_conversation_search(
        [],
        query="x",
        statuses_searched=aggregated.statuses_searched,
        explicit_inbox="9",
        default_inbox=None,
        pagination=None,
        client_side_filtered=True,
        aggregated=aggregated,
    )

    info = payload["searchInfo"]
    assert info["failedStatuses"] == ["closed"]
    assert info["statusConflicts"] == [{"id": 5, "reportedStatuses": ["active", "pending"], "keptStatus": "active"}]
    assert "clientSideFiltering" in info
    assert info["searchGuidance"][0] == "If no results found, try:"


def test_keyword_search_counts_and_groups():
    aggregated = AggregatedResult(
        conversations=[{"id": 1}, {"id": 2}, {"id": 3}],
        by_status=[
            StatusResult("active", 10, [{"id": 1}]),
            StatusResult("closed", 20, [{"id": 2}, {"id": 3}]),
        ],
        statuses_searched=["active", "closed"],
        total_available=30,
    )

    payload = format_keyword_search(
        aggregated,
        search_terms=["billing"],
        search_query='(body:"billing" OR subject:"billing")',
        search_in=["both"],
        explicit_inbox=None,
        default_inbox="5",
        created_after="2024-01-01T00:00:00Z",
        created_before=None,
        timeframe_days=30,
    )

    assert payload["totalConversationsFound"] == 3
    assert payload["totalAvailableAcrossStatuses"] == 30
    assert [group["status"] for group in payload["resultsByStatus"]] == ["active", "closed"]
    assert payload["resultsByStatus"][1]["totalCount"] == 20
    assert payload["inboxScope"] == "Default inbox: 5"
    assert payload["timeframe"] == {"createdAfter": "2024-01-01T00:00:00Z", "days": 30}
    assert "searchTips" not in payload
    assert "failedStatuses" not in payload


def test_select_fields():
    conversations = [{"id": 1, "subject": "a", "status": "active"}]
    assert select_fields(conversations, ["id", "missing"]) == [{"id": 1}]
    assert select_fields(conversations, None) is conversations


def _threads():
    return [
        {"id": 11, "type": "customer", "body": "first", "createdAt": "2024-01-01T09:00:00Z"},
        {"id": 12, "type": "message", "body": "reply one", "createdAt": "2024-01-01T10:00:00Z",
         "createdBy": {"id": 3}},
        {"id": 13, "type": "customer", "body": "follow up", "createdAt": "2024-01-02T09:00:00Z"},
        {"id": 14, "type": "message", "body": "reply two", "createdAt": "2024-01-02T10:00:00Z",
         "createdBy": {"id": 3}},
        {"id": 15, "type": "note", "body": "internal", "createdAt": "2024-01-03T10:00:00Z"},
    ]


def test_summary_picks_first_customer_and_latest_staff_reply():
    summary = format_conversation_summary({"id": 1, "subject": "Help"}, list(reversed(_threads())), allow_pii=True)

    assert summary["firstCustomerMessage"]["id"] == 11
    assert summary["firstCustomerMessage"]["body"] == "first"
    assert summary["latestStaffReply"]["id"] == 14


def test_summary_redacts_bodies_by_default():
    summary = format_conversation_summary({"id": 1}, _threads(), allow_pii=False)

    assert summary["firstCustomerMessage"]["body"] == REDACTED_BODY
    assert summary["latestStaffReply"]["body"] == REDACTED_BODY


def test_summary_without_threads():
    summary = format_conversation_summary({"id": 1}, [], allow_pii=False)
    assert summary["firstCustomerMessage"] is None
    assert summary["latestStaffReply"] is None


def test_threads_redacted_unless_pii_allowed():
    hidden = format_threads("1", _threads(), None, None, allow_pii=False)
    shown = format_threads("1", _threads(), None, None, allow_pii=True)

    assert {t["body"] for t in hidden["threads"]} == {REDACTED_BODY}
    assert shown["threads"][0]["body"] == "first"
