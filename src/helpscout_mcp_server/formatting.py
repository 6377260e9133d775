"""Shape search results into tool response payloads."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Tuple

from helpscout_mcp_server.client.search import CLIENT_FILTER_NOTE, sort_newest_first
from helpscout_mcp_server.query import parse_timestamp
from helpscout_mcp_server.constraints import COMPREHENSIVE_SEARCH, SEARCH_CONVERSATIONS
from helpscout_mcp_server.models import AggregatedResult

REDACTED_BODY = "[Content hidden - set REDACT_MESSAGE_CONTENT=false to view]"
DEFAULT_INBOX_HINT = "Set HELPSCOUT_DEFAULT_INBOX_ID to scope searches to your primary inbox"
ALL_INBOXES_NOTE = (
    "Note: Searching ALL inboxes. For better LLM context, set HELPSCOUT_DEFAULT_INBOX_ID environment variable."
)
POST_FETCH_NOTE = "createdBefore applied post-fetch - pagination may be incomplete"


def server_time() -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "isoTime": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "unixTime": int(now.timestamp()),
    }


def resolve_inbox_id(explicit: str | None, default: str | None) -> str | None:
    """Explicit per-call inbox beats the configured default; None means all inboxes."""
    return explicit or default or None


def describe_inbox_scope(explicit: str | None, default: str | None) -> str:
    if explicit:
        return f"Specific inbox: {explicit}"
    if default:
        return f"Default inbox: {default}"
    return "ALL inboxes"


def prune_none(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None so optional diagnostics only appear when set."""
    return {key: value for key, value in data.items() if value is not None}


def select_fields(conversations: List[Dict[str, Any]], fields: List[str] | None) -> List[Dict[str, Any]]:
    if not fields:
        return conversations
    return [{name: conv[name] for name in fields if name in conv} for conv in conversations]


def redact_body(body: Any, allow_pii: bool) -> Any:
    return body if allow_pii else REDACTED_BODY


def _oldest_first_key(thread: Dict[str, Any]) -> Tuple[bool, datetime]:
    created = parse_timestamp(thread.get("createdAt"))
    return (created is None, created or datetime.max.replace(tzinfo=timezone.utc))


def _status_conflicts(aggregated: AggregatedResult) -> List[Dict[str, Any]] | None:
    if not aggregated.status_conflicts:
        return None
    return [
        {"id": conv_id, "reportedStatuses": statuses, "keptStatus": statuses[0]}
        for conv_id, statuses in aggregated.status_conflicts.items()
    ]


def _empty_search_guidance(inbox_id: str | None) -> List[str]:
    guidance = [
        "If no results found, try:",
        "1. Broaden search terms or extend time range",
        "2. Check if inbox ID is correct",
        "3. Try including spam status explicitly",
    ]
    if not inbox_id:
        guidance.append(f"4. {DEFAULT_INBOX_HINT}")
    return guidance


def format_conversation_search(
    conversations: List[Dict[str, Any]],
    *,
    query: str | None,
    statuses_searched: List[str],
    explicit_inbox: str | None,
    default_inbox: str | None,
    pagination: Any,
    client_side_filtered: bool,
    aggregated: AggregatedResult | None = None,
) -> Dict[str, Any]:
    """Payload for searchConversations, single status or merged."""
    inbox_id = resolve_inbox_id(explicit_inbox, default_inbox)
    if not conversations:
        guidance = _empty_search_guidance(inbox_id)
    elif not inbox_id:
        guidance = [ALL_INBOXES_NOTE]
    else:
        guidance = None

    search_info = prune_none({
        "query": query,
        "statusesSearched": statuses_searched,
        "inboxScope": describe_inbox_scope(explicit_inbox, default_inbox),
        "failedStatuses": (list(aggregated.failed_statuses) or None) if aggregated else None,
        "statusConflicts": _status_conflicts(aggregated) if aggregated else None,
        "clientSideFiltering": CLIENT_FILTER_NOTE if client_side_filtered else None,
        "searchGuidance": guidance,
    })
    return {
        "results": conversations,
        "pagination": pagination,
        "searchInfo": search_info,
    }


def merged_pagination(aggregated: AggregatedResult) -> Dict[str, Any]:
    return {
        "totalResults": len(aggregated.conversations),
        "totalAvailableAcrossStatuses": aggregated.total_available,
        "note": aggregated.note,
    }


def format_keyword_search(
    aggregated: AggregatedResult,
    *,
    search_terms: List[str],
    search_query: str | None,
    search_in: List[str],
    explicit_inbox: str | None,
    default_inbox: str | None,
    created_after: str | None,
    created_before: str | None,
    timeframe_days: int,
) -> Dict[str, Any]:
    """Payload for comprehensiveConversationSearch, grouped by status."""
    inbox_id = resolve_inbox_id(explicit_inbox, default_inbox)
    total_found = sum(len(group.conversations) for group in aggregated.by_status)

    if total_found == 0:
        tips = [
            "Try broader search terms or increase the timeframe",
            "Check if the inbox ID is correct",
            "Consider searching without status restrictions first",
            "Verify that conversations exist for the specified criteria",
        ]
        if not inbox_id:
            tips.append(DEFAULT_INBOX_HINT)
    elif not inbox_id:
        tips = [ALL_INBOXES_NOTE]
    else:
        tips = None

    return prune_none({
        "searchTerms": search_terms,
        "searchQuery": search_query,
        "searchIn": search_in,
        "inboxScope": describe_inbox_scope(explicit_inbox, default_inbox),
        "timeframe": prune_none({
            "createdAfter": created_after,
            "createdBefore": created_before,
            "days": timeframe_days,
        }),
        "statusesSearched": aggregated.statuses_searched,
        "failedStatuses": dict(aggregated.failed_statuses) or None,
        "totalConversationsFound": total_found,
        "totalAvailableAcrossStatuses": aggregated.total_available,
        "resultsByStatus": [group.to_dict() for group in aggregated.by_status],
        "statusConflicts": _status_conflicts(aggregated),
        "clientSideFiltering": CLIENT_FILTER_NOTE if aggregated.client_side_filtered else None,
        "note": aggregated.note,
        "searchTips": tips,
    })


def format_advanced_search(
    conversations: List[Dict[str, Any]],
    *,
    search_query: str | None,
    search_criteria: Dict[str, Any],
    explicit_inbox: str | None,
    default_inbox: str | None,
    pagination: Any,
    next_cursor: str | None,
    client_side_filtered: bool,
) -> Dict[str, Any]:
    inbox_id = resolve_inbox_id(explicit_inbox, default_inbox)
    return prune_none({
        "results": conversations,
        "searchQuery": search_query,
        "inboxScope": describe_inbox_scope(explicit_inbox, default_inbox),
        "searchCriteria": prune_none(search_criteria),
        "pagination": pagination,
        "nextCursor": next_cursor,
        "clientSideFiltering": POST_FETCH_NOTE if client_side_filtered else None,
        "note": None if inbox_id else "Searching ALL inboxes. Set HELPSCOUT_DEFAULT_INBOX_ID for better LLM context.",
    })


def format_structured_filter(
    conversations: List[Dict[str, Any]],
    *,
    filter_applied: Dict[str, Any],
    explicit_inbox: str | None,
    default_inbox: str | None,
    pagination: Any,
    next_cursor: str | None,
    client_side_filtered: bool,
) -> Dict[str, Any]:
    return prune_none({
        "results": conversations,
        "filterApplied": prune_none(filter_applied),
        "inboxScope": describe_inbox_scope(explicit_inbox, default_inbox),
        "pagination": pagination,
        "nextCursor": next_cursor,
        "clientSideFiltering": POST_FETCH_NOTE if client_side_filtered else None,
        "note": f"Structural filtering applied. For content-based search use {COMPREHENSIVE_SEARCH}.",
    })


def format_inbox_lookup(query: str, matches: List[Dict[str, Any]], total_available: int) -> Dict[str, Any]:
    if matches:
        usage = (
            'NEXT STEP: Use the "id" field from these results in your conversation search tools '
            f"({COMPREHENSIVE_SEARCH} or {SEARCH_CONVERSATIONS})"
        )
        example = f'{COMPREHENSIVE_SEARCH}({{ searchTerms: ["your search"], inboxId: "{matches[0]["id"]}" }})'
    else:
        usage = 'No inboxes matched your query. Try a different search term or use empty string "" to list all inboxes.'
        example = None
    return {
        "results": matches,
        "query": query,
        "totalFound": len(matches),
        "totalAvailable": total_available,
        "usage": usage,
        "example": example,
    }


def format_inbox_list(inboxes: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "inboxes": inboxes,
        "totalInboxes": len(inboxes),
        "usage": 'Use the "id" field from these results in your conversation searches',
        "nextSteps": [
            f"To search in a specific inbox, use the inbox ID with {COMPREHENSIVE_SEARCH} or {SEARCH_CONVERSATIONS}",
            "To search across all inboxes, omit the inboxId parameter",
        ],
    }


def format_conversation_summary(
    conversation: Dict[str, Any],
    threads: List[Dict[str, Any]],
    allow_pii: bool,
) -> Dict[str, Any]:
    """First customer message and latest staff reply for one conversation."""
    customer_threads = [t for t in threads if t.get("type") == "customer"]
    staff_threads = [t for t in threads if t.get("type") == "message" and t.get("createdBy")]
    first_customer = min(customer_threads, key=_oldest_first_key, default=None)
    latest_staff = next(iter(sort_newest_first(staff_threads)), None)

    return {
        "conversation": {
            "id": conversation.get("id"),
            "number": conversation.get("number"),
            "subject": conversation.get("subject"),
            "status": conversation.get("status"),
            "createdAt": conversation.get("createdAt"),
            "updatedAt": conversation.get("updatedAt"),
            "customer": conversation.get("primaryCustomer") or conversation.get("customer"),
            "assignee": conversation.get("assignee"),
            "tags": conversation.get("tags"),
        },
        "firstCustomerMessage": {
            "id": first_customer.get("id"),
            "body": redact_body(first_customer.get("body"), allow_pii),
            "createdAt": first_customer.get("createdAt"),
            "customer": first_customer.get("customer"),
        } if first_customer else None,
        "latestStaffReply": {
            "id": latest_staff.get("id"),
            "body": redact_body(latest_staff.get("body"), allow_pii),
            "createdAt": latest_staff.get("createdAt"),
            "createdBy": latest_staff.get("createdBy"),
        } if latest_staff else None,
    }


def format_threads(
    conversation_id: str,
    threads: List[Dict[str, Any]],
    pagination: Any,
    next_cursor: str | None,
    allow_pii: bool,
) -> Dict[str, Any]:
    return {
        "conversationId": conversation_id,
        "threads": [{**thread, "body": redact_body(thread.get("body"), allow_pii)} for thread in threads],
        "pagination": pagination,
        "nextCursor": next_cursor,
    }
