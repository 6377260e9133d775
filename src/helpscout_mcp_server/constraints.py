"""Call-ordering checks and follow-up guidance for tool calls.

Help Scout searches filter inboxes by numeric id, but users name inboxes
("the support inbox"). The checks here catch calls that skip the id lookup,
reject malformed ids before they reach the API, and suggest the next call
once a call succeeds.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

SEARCH_INBOXES = "searchInboxes"
LIST_ALL_INBOXES = "listAllInboxes"
SEARCH_CONVERSATIONS = "searchConversations"
COMPREHENSIVE_SEARCH = "comprehensiveConversationSearch"
ADVANCED_SEARCH = "advancedConversationSearch"
STRUCTURED_FILTER = "structuredConversationFilter"
CONVERSATION_SUMMARY = "getConversationSummary"
GET_THREADS = "getThreads"
SERVER_TIME = "getServerTime"

INBOX_LOOKUP_TOOLS = frozenset({SEARCH_INBOXES, LIST_ALL_INBOXES})
INBOX_SCOPED_TOOLS = frozenset({SEARCH_CONVERSATIONS, COMPREHENSIVE_SEARCH, ADVANCED_SEARCH, STRUCTURED_FILTER})
CONVERSATION_SEARCH_TOOLS = INBOX_SCOPED_TOOLS
CONVERSATION_ID_TOOLS = frozenset({CONVERSATION_SUMMARY, GET_THREADS})

INBOX_TERMS = (
    "inbox", "inboxes", "mailbox", "mailboxes", "queue", "queues",
    "support", "help desk", "helpdesk", "customer service",
)
_INBOX_MENTION = re.compile(r"\b(" + "|".join(re.escape(t) for t in INBOX_TERMS) + r")\b", re.IGNORECASE)
_INBOX_ID = re.compile(r"^\d+$")
_CONVERSATION_ID = re.compile(r"^\d{1,20}$")


@dataclass
class CallContext:
    """Per-session record of successful calls and the latest user request."""

    call_history: list[str] = field(default_factory=list)
    user_query: str | None = None

    def record_call(self, tool_name: str) -> None:
        self.call_history.append(tool_name)

    def set_user_query(self, user_query: str | None) -> None:
        self.user_query = user_query or None

    def has_called(self, tool_names) -> bool:
        return any(name in tool_names for name in self.call_history)


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    required_prerequisites: list[str] = field(default_factory=list)

    def to_details(self) -> dict[str, Any]:
        return {
            "errors": self.errors,
            "suggestions": self.suggestions,
            "requiredPrerequisites": self.required_prerequisites,
        }


def mentions_inbox(text: str | None) -> bool:
    return bool(text and _INBOX_MENTION.search(text))


def _present(arguments: Mapping[str, Any], key: str) -> bool:
    value = arguments.get(key)
    return value is not None and value != ""


def validate_tool_call(tool_name: str, arguments: Mapping[str, Any] | None, context: CallContext) -> ValidationResult:
    """Check a proposed call against the session so far. Never mutates ``context``."""
    arguments = arguments or {}
    result = ValidationResult()

    if (
        tool_name in INBOX_SCOPED_TOOLS
        and mentions_inbox(context.user_query)
        and not _present(arguments, "inboxId")
        and not context.has_called(INBOX_LOOKUP_TOOLS)
    ):
        result.errors.append("User mentioned an inbox by name but no inboxId provided")
        result.required_prerequisites.append(SEARCH_INBOXES)
        result.suggestions.append(
            f"REQUIRED: Call {SEARCH_INBOXES} first to find the inbox ID, "
            f"then pass it as inboxId to {tool_name}"
        )

    if _present(arguments, "inboxId") and not _INBOX_ID.match(str(arguments["inboxId"]).strip()):
        result.errors.append("Invalid inbox ID format - should be numeric")
        result.suggestions.append(f"Use the numeric id returned by {SEARCH_INBOXES} or {LIST_ALL_INBOXES}")

    if tool_name in CONVERSATION_ID_TOOLS and "conversationId" in arguments:
        if not _CONVERSATION_ID.match(str(arguments["conversationId"]).strip()):
            result.errors.append("Invalid conversation ID format")
            result.suggestions.append(
                "Use the numeric conversation id from search results (the 'id' field, not the ticket number)"
            )

    if tool_name == COMPREHENSIVE_SEARCH:
        terms = arguments.get("searchTerms")
        if not isinstance(terms, list) or not any(isinstance(t, str) and t.strip() for t in terms):
            result.errors.append("searchTerms is required and must be a non-empty array")
            result.suggestions.append(
                f'Provide keywords, e.g. searchTerms: ["billing"]; to list without keywords use {SEARCH_CONVERSATIONS}'
            )

    if tool_name == SEARCH_CONVERSATIONS and _present(arguments, "query") and not _present(arguments, "status"):
        result.suggestions.append(
            f"Consider using {COMPREHENSIVE_SEARCH} for better results across all statuses "
            "when searching by keywords"
        )

    result.is_valid = not result.errors
    return result


def _example_call(tool_name: str, arguments: Mapping[str, Any]) -> str:
    return f"{tool_name}({json.dumps(arguments)})"


def _count_conversations(payload: Mapping[str, Any]) -> int:
    if "totalConversationsFound" in payload:
        return int(payload.get("totalConversationsFound") or 0)
    return len(payload.get("results") or [])


def generate_tool_guidance(tool_name: str, payload: Mapping[str, Any], context: CallContext) -> list[str]:
    """Follow-up advice for a successful call, attached to its response."""
    guidance: list[str] = []

    if tool_name in INBOX_LOOKUP_TOOLS:
        inboxes = payload.get("results") or payload.get("inboxes") or []
        if inboxes:
            first_id = str(inboxes[0].get("id"))
            guidance.append(
                f'✅ NEXT STEP: Use inbox ID "{first_id}" (or another id above) as inboxId in '
                f"{COMPREHENSIVE_SEARCH} or {SEARCH_CONVERSATIONS}"
            )
            guidance.append(
                "Example: " + _example_call(COMPREHENSIVE_SEARCH, {"searchTerms": ["your search"], "inboxId": first_id})
            )
        else:
            guidance.append(f'No inboxes matched. Call {SEARCH_INBOXES} with query "" to list every inbox.')
        return guidance

    if tool_name in CONVERSATION_SEARCH_TOOLS:
        count = _count_conversations(payload)
        if count == 0:
            guidance.append("❌ No conversations found. Try:")
            guidance.append("Broader search terms or a longer timeframe")
            guidance.append("Different status (active, pending, closed, spam)")
            if mentions_inbox(context.user_query) and not context.has_called(INBOX_LOOKUP_TOOLS):
                guidance.append(f"Verify the inbox with {SEARCH_INBOXES} before searching again")
            else:
                guidance.append("Check that the inbox ID is correct, or search without inboxId")
        else:
            guidance.append(f"✅ Found {count} conversations")
            guidance.append(
                f"NEXT STEP: Use {CONVERSATION_SUMMARY} or {GET_THREADS} with a conversation id "
                "from these results to read the messages"
            )
    return guidance
