"""Individual tool handler functions."""
import asyncio
import urllib.parse
from typing import Any, Callable, Dict, TypeVar

from helpscout_mcp_server.client.search import apply_created_before
from helpscout_mcp_server.config import Settings
from helpscout_mcp_server.exceptions import HelpScoutValidationError
from helpscout_mcp_server.formatting import (
    format_advanced_search,
    format_conversation_search,
    format_conversation_summary,
    format_inbox_list,
    format_inbox_lookup,
    format_keyword_search,
    format_structured_filter,
    format_threads,
    merged_pagination,
    resolve_inbox_id,
    select_fields,
    server_time,
)
from helpscout_mcp_server.models import (
    DEFAULT_STATUSES,
    AdvancedSearchInput,
    ComprehensiveSearchInput,
    ConversationInput,
    GetThreadsInput,
    ListAllInboxesInput,
    SearchConversationsInput,
    SearchInboxesInput,
    StatusSearchRequest,
    StructuredFilterInput,
)
from helpscout_mcp_server.query import (
    build_advanced_query,
    build_customer_ids_query,
    build_keyword_query,
    format_timestamp,
    resolve_created_after,
)

T = TypeVar("T")

SUMMARY_THREAD_PAGE = 50
UNIQUE_SORT_FIELDS = ("waitingSince", "customerName", "customerEmail")


async def run_client_call(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run blocking Help Scout client calls without stalling the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


def _optional_timestamp(value: str | None) -> str | None:
    return format_timestamp(value) if value else None


def page_from_cursor(cursor: str | None) -> int:
    """Page number from a cursor: a bare page number or a Help Scout `next` link."""
    if not cursor:
        return 1
    cursor = cursor.strip()
    if cursor.isdigit():
        return max(int(cursor), 1)
    query = dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(cursor).query))
    page = query.get("page", "")
    if page.isdigit():
        return max(int(page), 1)
    raise HelpScoutValidationError(f"Unrecognised pagination cursor: {cursor!r}")


async def handle_search_inboxes(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle searchInboxes tool."""
    args = SearchInboxesInput.model_validate(arguments or {})
    found = await run_client_call(client.search_inboxes, args.query, args.limit)
    return format_inbox_lookup(args.query, found['results'], found['totalAvailable'])


async def handle_list_all_inboxes(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle listAllInboxes tool."""
    args = ListAllInboxesInput.model_validate(arguments or {})
    listing = await run_client_call(client.list_inboxes, args.limit)
    return format_inbox_list(listing['inboxes'])


async def handle_search_conversations(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle searchConversations tool; without a status it fans out across active, pending and closed."""
    args = SearchConversationsInput.model_validate(arguments or {})
    inbox_id = resolve_inbox_id(args.inbox_id, settings.default_inbox_id)

    request = StatusSearchRequest(
        statuses=(args.status,) if args.status else DEFAULT_STATUSES,
        query=args.query,
        created_after=_optional_timestamp(args.created_after),
        created_before=args.created_before,
        inbox_id=inbox_id,
        tag=args.tag,
        limit_per_status=args.limit,
        global_limit=args.limit,
        sort_field=args.sort,
        sort_order=args.order,
        page=page_from_cursor(args.cursor),
    )
    aggregated = await client.search_across_statuses(request)

    if args.status:
        pagination = aggregated.by_status[0].page if aggregated.by_status else None
    else:
        pagination = merged_pagination(aggregated)

    return format_conversation_search(
        select_fields(aggregated.conversations, args.fields),
        query=args.query,
        statuses_searched=aggregated.statuses_searched,
        explicit_inbox=args.inbox_id,
        default_inbox=settings.default_inbox_id,
        pagination=pagination,
        client_side_filtered=aggregated.client_side_filtered,
        aggregated=aggregated,
    )


async def handle_comprehensive_search(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle comprehensiveConversationSearch tool."""
    args = ComprehensiveSearchInput.model_validate(arguments or {})
    created_after = resolve_created_after(args.created_after, args.timeframe_days)
    search_query = build_keyword_query(args.search_terms, args.search_in)

    request = StatusSearchRequest(
        statuses=tuple(args.statuses),
        query=search_query,
        created_after=created_after,
        created_before=args.created_before,
        inbox_id=resolve_inbox_id(args.inbox_id, settings.default_inbox_id),
        limit_per_status=args.limit_per_status,
    )
    aggregated = await client.search_across_statuses(request)

    return format_keyword_search(
        aggregated,
        search_terms=args.search_terms,
        search_query=search_query,
        search_in=list(args.search_in),
        explicit_inbox=args.inbox_id,
        default_inbox=settings.default_inbox_id,
        created_after=created_after,
        created_before=args.created_before,
        timeframe_days=args.timeframe_days,
    )


async def handle_advanced_search(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle advancedConversationSearch tool."""
    args = AdvancedSearchInput.model_validate(arguments or {})
    search_query = build_advanced_query(
        content_terms=args.content_terms,
        subject_terms=args.subject_terms,
        customer_email=args.customer_email,
        email_domain=args.email_domain,
        tags=args.tags,
    )
    inbox_id = resolve_inbox_id(args.inbox_id, settings.default_inbox_id)

    params: Dict[str, Any] = {
        'page': 1,
        'size': args.limit,
        'sortField': 'createdAt',
        'sortOrder': 'desc',
        'query': search_query,
        'mailbox': inbox_id,
        'status': args.status,
        'modifiedSince': _optional_timestamp(args.created_after),
    }
    page = await run_client_call(client.list_conversations, params)
    conversations = apply_created_before(page['conversations'], args.created_before)

    return format_advanced_search(
        conversations,
        search_query=search_query,
        search_criteria={
            'contentTerms': args.content_terms,
            'subjectTerms': args.subject_terms,
            'customerEmail': args.customer_email,
            'emailDomain': args.email_domain,
            'tags': args.tags,
        },
        explicit_inbox=args.inbox_id,
        default_inbox=settings.default_inbox_id,
        pagination=page['page'],
        next_cursor=page['next'],
        client_side_filtered=len(conversations) != len(page['conversations']),
    )


async def handle_structured_filter(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle structuredConversationFilter tool."""
    args = StructuredFilterInput.model_validate(arguments or {})
    inbox_id = resolve_inbox_id(args.inbox_id, settings.default_inbox_id)

    params: Dict[str, Any] = {
        'page': page_from_cursor(args.cursor),
        'size': args.limit,
        'sortField': args.sort_by,
        'sortOrder': args.sort_order,
        'assigned_to': args.assigned_to,
        'folder': args.folder_id,
        'number': args.conversation_number,
        'query': build_customer_ids_query(args.customer_ids),
        'mailbox': inbox_id,
        'status': args.status,
        'tag': args.tag,
        # modifiedSince wins over createdAfter; both map to the same API bound
        'modifiedSince': _optional_timestamp(args.modified_since or args.created_after),
    }
    page = await run_client_call(client.list_conversations, params)
    conversations = apply_created_before(page['conversations'], args.created_before)

    return format_structured_filter(
        conversations,
        filter_applied={
            'filterType': 'structural',
            'assignedTo': args.assigned_to,
            'folderId': args.folder_id,
            'customerIds': args.customer_ids,
            'conversationNumber': args.conversation_number,
            'status': args.status,
            'uniqueSorting': args.sort_by if args.sort_by in UNIQUE_SORT_FIELDS else None,
        },
        explicit_inbox=args.inbox_id,
        default_inbox=settings.default_inbox_id,
        pagination=page['page'],
        next_cursor=page['next'],
        client_side_filtered=len(conversations) != len(page['conversations']),
    )


async def handle_get_conversation_summary(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle getConversationSummary tool."""
    args = ConversationInput.model_validate(arguments or {})
    conversation, threads = await asyncio.gather(
        run_client_call(client.get_conversation, args.conversation_id),
        run_client_call(client.get_threads, args.conversation_id, SUMMARY_THREAD_PAGE),
    )
    return format_conversation_summary(conversation, threads['threads'], settings.allow_pii)


async def handle_get_threads(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle getThreads tool."""
    args = GetThreadsInput.model_validate(arguments or {})
    page = await run_client_call(client.get_threads, args.conversation_id, args.limit, page_from_cursor(args.cursor))
    return format_threads(args.conversation_id, page['threads'], page['page'], page['next'], settings.allow_pii)


async def handle_get_server_time(client: Any, settings: Settings, arguments: dict[str, Any] | None) -> Dict[str, Any]:
    """Handle getServerTime tool; answered locally."""
    return server_time()
