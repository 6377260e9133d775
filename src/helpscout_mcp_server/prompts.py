"""Workflow prompts that teach agents the inbox-lookup-then-search pattern."""
import json
import math
from typing import Dict

BEST_PRACTICES = "helpscout-best-practices"
SEARCH_LAST_7_DAYS = "search-last-7-days"
FIND_URGENT_TAGS = "find-urgent-tags"
LIST_INBOX_ACTIVITY = "list-inbox-activity"

PROMPTS = [
    {
        "name": BEST_PRACTICES,
        "description": "Essential workflow guide for using Help Scout MCP effectively - START HERE for correct search patterns",
        "arguments": [],
    },
    {
        "name": SEARCH_LAST_7_DAYS,
        "description": "Search recent conversations across all inboxes from the last 7 days",
        "arguments": [
            ("inboxId", "Optional: Specific inbox ID to search within", False),
            ("status", "Optional: Filter by conversation status (active, pending, closed, spam)", False),
            ("tag", "Optional: Filter by specific tag", False),
        ],
    },
    {
        "name": FIND_URGENT_TAGS,
        "description": "Find conversations with urgent or priority tags",
        "arguments": [
            ("inboxId", "Optional: Specific inbox ID to search within", False),
            ("timeframe", 'Optional: Time period to search (e.g., "24h", "7d", "30d")', False),
        ],
    },
    {
        "name": LIST_INBOX_ACTIVITY,
        "description": "Show activity in a given inbox over the last N hours",
        "arguments": [
            ("inboxId", "Required: The inbox ID to monitor", True),
            ("hours", "Required: Number of hours to look back", True),
            ("includeThreads", "Optional: Whether to include thread details (default: false)", False),
        ],
    },
]

BEST_PRACTICES_TEMPLATE = """
# Help Scout MCP Best Practices Guide

## The Golden Rule: Inbox Name -> Inbox ID -> Search

When a user mentions ANY inbox by name (e.g., "support inbox", "sales mailbox", "customer service"):

1. FIRST call `searchInboxes` to find the inbox ID.
   - Even if the name seems obvious, always look it up
   - Use an empty query "" to list all inboxes if unsure
2. THEN pass that id as `inboxId` to the conversation search.

Example for "Show me urgent conversations in the support inbox":

    1. searchInboxes({"query": "support"})
       -> [{"id": "12345", "name": "Support Inbox"}]
    2. comprehensiveConversationSearch({"searchTerms": ["urgent"], "inboxId": "12345"})

Calling comprehensiveConversationSearch without the inboxId searches ALL inboxes.

## When nothing is found

1. Verify the inbox ID (re-run searchInboxes if needed)
2. Try broader search terms
3. Extend the timeframe (default is 60 days)
4. Check other statuses (active, pending, closed, spam)

## Tool selection

- `comprehensiveConversationSearch`: keyword search across several statuses (recommended default)
- `searchConversations`: listing with a specific status, tag, sort order or field selection
- `advancedConversationSearch`: combined criteria such as email domain plus subject terms
- `structuredConversationFilter`: lookups by assignee, folder, customer id or ticket number
- `getConversationSummary` / `getThreads`: read a conversation found by a search

## Pitfalls

1. Never skip the inbox lookup when an inbox is named
2. Inbox IDs are not guessable; look them up
3. Help Scout searches one status per request; searching several statuses is done for you by comprehensiveConversationSearch
4. Use getServerTime before computing relative dates
"""


def _search_last_7_days(arguments: Dict[str, str]) -> tuple[str, str]:
    params = {"createdAfter": "<calculated_date_7_days_ago>", "limit": 50, "sort": "createdAt", "order": "desc"}
    for key in ("inboxId", "status", "tag"):
        if arguments.get(key):
            params[key] = arguments[key]

    steps = [
        'Get the current server time with the "getServerTime" tool.',
        "Calculate the date 7 days ago from the current time.",
    ]
    if not arguments.get("inboxId"):
        steps.append(
            'IMPORTANT: If the user mentioned a specific inbox by name, you MUST first use '
            '"searchInboxes" to get the inbox ID.'
        )
    steps.append(
        'Search for conversations using the "searchConversations" tool with these parameters:\n'
        + json.dumps(params, indent=2)
    )
    steps.append(
        'For each conversation found, optionally use "getConversationSummary" for a quick overview '
        'or "getThreads" for the full message history.'
    )
    text = "To search for conversations from the last 7 days, follow these steps:\n\n" + _numbered(steps)
    return "Instructions for searching conversations from the last 7 days", text


def _find_urgent_tags(arguments: Dict[str, str]) -> tuple[str, str]:
    inbox_id = arguments.get("inboxId")
    timeframe = arguments.get("timeframe")

    steps = ['Get the current server time using the "getServerTime" tool.']
    if not inbox_id:
        steps.append(
            'CRITICAL: If the user mentioned a specific inbox by name (e.g., "support inbox"), '
            'you MUST first use "searchInboxes" to get the inbox ID.'
        )
    if timeframe:
        steps.append(
            f'Calculate the time filter for "{timeframe}" by subtracting it from the current time '
            '("24h" is 24 hours, "7d" is 7 days, "30d" is 30 days).'
        )

    searches = []
    for tag in ("urgent", "priority", "high-priority"):
        params = {"tag": tag, "limit": 50, "sort": "createdAt", "order": "desc"}
        if timeframe:
            params["createdAfter"] = "<calculated_time>"
        if inbox_id:
            params["inboxId"] = inbox_id
        searches.append(json.dumps(params, indent=2))
    steps.append(
        'Run "searchConversations" once per urgent tag variation:\n' + "\n".join(searches)
    )
    steps.append("Combine and deduplicate results from all searches.")
    steps.append('For urgent conversations, use "getConversationSummary" to quickly assess the situation.')

    text = (
        "To find conversations with urgent or priority tags, follow these steps:\n\n"
        + _numbered(steps)
        + '\n\nTag names vary by organization. Common variations include "urgent", "priority", '
        '"high-priority", "escalated", "critical" and "emergency".'
    )
    return "Instructions for finding conversations with urgent or priority tags", text


def _parse_hours(value: str | None) -> float:
    try:
        hours = float(value) if value is not None and str(value).strip() else None
    except ValueError:
        hours = None
    if hours is None or not math.isfinite(hours) or hours <= 0:
        raise ValueError("hours argument is required and must be a number for list-inbox-activity prompt")
    return hours


def _list_inbox_activity(arguments: Dict[str, str]) -> tuple[str, str]:
    inbox_id = arguments.get("inboxId")
    if not inbox_id:
        raise ValueError("inboxId argument is required for list-inbox-activity prompt")
    hours = _parse_hours(arguments.get("hours"))
    hours_text = f"{hours:g}"
    include_threads = str(arguments.get("includeThreads", "")).lower() in ("true", "1", "yes")

    params = {
        "inboxId": inbox_id,
        "createdAfter": f"<calculated_time_{hours_text}_hours_ago>",
        "limit": 100,
        "sort": "createdAt",
        "order": "desc",
    }
    if include_threads:
        detail = (
            'Since includeThreads is enabled, use "getConversationSummary" on each conversation found, '
            'and "getThreads" for the full history of important ones.'
        )
    else:
        detail = 'For a quick overview, use "getConversationSummary" on the most recent or important conversations.'

    steps = [
        'Get the current server time using the "getServerTime" tool.',
        f"Calculate the timestamp {hours_text} hours before the current time.",
        'Search the inbox with the "searchConversations" tool:\n' + json.dumps(params, indent=2),
        "Summarize the total number of new conversations, the breakdown by status "
        "and the most recent conversations.",
        detail,
    ]
    text = (
        f'To show activity in inbox "{inbox_id}" over the last {hours_text} hours, follow these steps:\n\n'
        + _numbered(steps)
    )
    return f"Instructions for monitoring activity in inbox {inbox_id} over the last {hours_text} hours", text


def _numbered(steps: list[str]) -> str:
    return "\n\n".join(f"{index}. {step}" for index, step in enumerate(steps, start=1))


def render_prompt(name: str, arguments: Dict[str, str] | None) -> tuple[str, str]:
    """Return ``(description, text)`` for a prompt; ValueError for unknown names or bad arguments."""
    arguments = arguments or {}
    if name == BEST_PRACTICES:
        return "Essential workflow guide for using Help Scout MCP effectively", BEST_PRACTICES_TEMPLATE.strip()
    if name == SEARCH_LAST_7_DAYS:
        return _search_last_7_days(arguments)
    if name == FIND_URGENT_TAGS:
        return _find_urgent_tags(arguments)
    if name == LIST_INBOX_ACTIVITY:
        return _list_inbox_activity(arguments)
    raise ValueError(f"Unknown prompt: {name}")
