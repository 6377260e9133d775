import asyncio
import logging
import re
import sys
import weakref
from typing import Any, Dict

import mcp.types as types
from mcp.server import InitializationOptions, NotificationOptions, Server
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl

from helpscout_mcp_server import constraints
from helpscout_mcp_server.client import HelpScoutClient
from helpscout_mcp_server.config import LOGGER_NAME, Settings, get_settings, _reset_settings_cache_for_tests
from helpscout_mcp_server.constraints import CallContext
from helpscout_mcp_server.handlers.dispatch import ToolDispatcher
from helpscout_mcp_server.handlers.tools import run_client_call
from helpscout_mcp_server.models import (
    DEFAULT_LIMIT_PER_STATUS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TIMEFRAME_DAYS,
    MAX_PAGE_SIZE,
    MAX_SEARCH_TERMS,
    MAX_THREAD_SIZE,
)
from helpscout_mcp_server.prompts import PROMPTS, render_prompt
from helpscout_mcp_server.resources import RESOURCES, read_resource

SERVER_NAME = "helpscout-search"
SERVER_VERSION = "1.6.0"

logger = logging.getLogger(LOGGER_NAME)

_helpscout_client: HelpScoutClient | None = None


def get_helpscout_client() -> HelpScoutClient:
    """Instantiate the Help Scout client lazily so imports succeed in test environments."""
    global _helpscout_client
    if _helpscout_client is None:
        _helpscout_client = HelpScoutClient(get_settings())
    return _helpscout_client


def _reset_client_cache_for_tests() -> None:
    """Clear cached settings/client; intended for use in unit tests."""
    global _helpscout_client
    _reset_settings_cache_for_tests()
    _helpscout_client = None


# Call history lives with the client session, not the process
_session_contexts: "weakref.WeakKeyDictionary[Any, CallContext]" = weakref.WeakKeyDictionary()

dispatcher = ToolDispatcher(get_client=get_helpscout_client, get_settings=get_settings)

server = Server(SERVER_NAME)


def current_call_context() -> CallContext:
    """Return the CallContext for the session of the request being handled.

    The latest user utterance, when the client forwards one as
    ``_meta.userQuery``, is stored on the context before validation.
    """
    try:
        request_context = server.request_context
    except LookupError:
        return CallContext()

    context = _session_contexts.get(request_context.session)
    if context is None:
        context = CallContext()
        _session_contexts[request_context.session] = context

    user_query = getattr(request_context.meta, "userQuery", None) if request_context.meta else None
    if isinstance(user_query, str) and user_query.strip():
        context.set_user_query(user_query)
    return context


_SECRET_LIKE = re.compile(r"[A-Za-z0-9_-]{20,}")
_PATH_LIKE = re.compile(r"/[^\s]+")


def sanitize_error(message: str) -> str:
    """Strip token-like strings and filesystem paths from text shown to clients."""
    return _PATH_LIKE.sub("[PATH]", _SECRET_LIKE.sub("[REDACTED]", message))


FALLBACK_INSTRUCTIONS = (
    "Help Scout MCP server. Inbox discovery failed at startup"
    "{reason}. Call searchInboxes with an empty query to list inboxes, "
    "then pass the numeric id as inboxId to the search tools."
)


def build_instructions(inboxes: list[dict], default_inbox_id: str | None = None) -> str:
    """Server instructions listing every discovered inbox with its id."""
    lines = [
        "Help Scout MCP server for searching customer support conversations.",
        "",
        "Available inboxes (use the id as inboxId in search tools):",
    ]
    for inbox in inboxes:
        marker = " (default)" if default_inbox_id and str(inbox.get("id")) == str(default_inbox_id) else ""
        lines.append(f"- {inbox.get('name')}: {inbox.get('id')}{marker}")
    if not inboxes:
        lines.append("- none visible to these credentials")
    lines += [
        "",
        "When the user names an inbox, use the matching id above. If unsure which inbox, ask the user.",
        f"Use {constraints.COMPREHENSIVE_SEARCH} for keyword searches and "
        f"{constraints.SEARCH_CONVERSATIONS} for listing by status or time range.",
    ]
    return "\n".join(lines)


async def discover_instructions(client: HelpScoutClient, settings: Settings) -> str:
    try:
        listing = await run_client_call(client.list_inboxes, MAX_PAGE_SIZE)
    except Exception as e:
        reason = sanitize_error(str(e))
        logger.warning("Inbox discovery failed: %s", reason)
        return FALLBACK_INSTRUCTIONS.format(reason=f" ({reason})" if reason else "")
    logger.info("Discovered %d inboxes", len(listing["inboxes"]))
    return build_instructions(listing["inboxes"], settings.default_inbox_id)


@server.list_prompts()
async def handle_list_prompts() -> list[types.Prompt]:
    """List available prompts"""
    return [
        types.Prompt(
            name=prompt["name"],
            description=prompt["description"],
            arguments=[
                types.PromptArgument(name=name, description=description, required=required)
                for name, description, required in prompt["arguments"]
            ],
        )
        for prompt in PROMPTS
    ]


@server.get_prompt()
async def handle_get_prompt(name: str, arguments: Dict[str, str] | None) -> types.GetPromptResult:
    """Handle prompt requests"""
    try:
        description, prompt = render_prompt(name, arguments)
    except Exception as e:
        logger.error(f"Error generating prompt: {e}")
        raise

    return types.GetPromptResult(
        description=description,
        messages=[
            types.PromptMessage(
                role="user",
                content=types.TextContent(type="text", text=prompt),
            )
        ],
    )


INBOX_ID_PROPERTY = {
    "type": "string",
    "description": "Filter by inbox ID. Use an inbox ID from the server instructions or searchInboxes.",
}
CREATED_AFTER_PROPERTY = {
    "type": "string",
    "format": "date-time",
    "description": "Filter conversations created after this timestamp (ISO8601)",
}
CREATED_BEFORE_PROPERTY = {
    "type": "string",
    "format": "date-time",
    "description": "Filter conversations created before this timestamp (ISO8601); applied after fetching",
}
STATUS_PROPERTY = {
    "type": "string",
    "enum": ["active", "pending", "closed", "spam"],
}


def _limit_property(maximum: int, default: int) -> dict:
    return {
        "type": "number",
        "minimum": 1,
        "maximum": maximum,
        "default": default,
        "description": f"Maximum number of results (1-{maximum})",
    }


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available Help Scout tools"""
    return [
        types.Tool(
            name=constraints.SEARCH_INBOXES,
            description=(
                "Find inboxes by name. Inbox IDs are also listed in the server instructions; "
                "use this tool to resolve an inbox the user names or to refresh the list."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": 'Case-insensitive substring of the inbox name. Use "" to list ALL inboxes.',
                    },
                    "limit": _limit_property(MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE),
                    "cursor": {"type": "string", "description": "Pagination cursor for next page"},
                },
                "required": ["query"],
            },
        ),
        types.Tool(
            name=constraints.LIST_ALL_INBOXES,
            description="List ALL available inboxes with their IDs.",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": _limit_property(MAX_PAGE_SIZE, MAX_PAGE_SIZE),
                },
            },
        ),
        types.Tool(
            name=constraints.SEARCH_CONVERSATIONS,
            description=(
                'List or filter conversations by status and time range. USE FOR: "show recent tickets", '
                '"list closed conversations". Without a status it searches active, pending and closed '
                "and merges the results newest first."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": (
                            'Optional Help Scout query syntax, e.g. (body:"keyword"), (subject:"text"), '
                            '(email:"user@domain.com"). Omit to list all conversations.'
                        ),
                    },
                    "inboxId": INBOX_ID_PROPERTY,
                    "tag": {"type": "string", "description": "Filter by tag name"},
                    "status": {
                        **STATUS_PROPERTY,
                        "description": "Filter by one status. Omit to search active, pending and closed.",
                    },
                    "createdAfter": CREATED_AFTER_PROPERTY,
                    "createdBefore": CREATED_BEFORE_PROPERTY,
                    "limit": _limit_property(MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE),
                    "cursor": {"type": "string", "description": "Pagination cursor for next page"},
                    "sort": {
                        "type": "string",
                        "enum": ["createdAt", "updatedAt", "number"],
                        "default": "createdAt",
                        "description": "Sort field",
                    },
                    "order": {"type": "string", "enum": ["asc", "desc"], "default": "desc", "description": "Sort order"},
                    "fields": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Specific fields to return (for partial responses)",
                    },
                },
            },
        ),
        types.Tool(
            name=constraints.COMPREHENSIVE_SEARCH,
            description=(
                'Search by KEYWORDS in conversation content (subject + body). USE FOR: "find billing issues", '
                '"conversations about refunds". Searches active, pending and closed automatically and groups '
                "results by status. REQUIRES search terms."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "searchTerms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                        "maxItems": MAX_SEARCH_TERMS,
                        "description": 'REQUIRED: keywords, combined with OR. Examples: ["billing", "refund"].',
                    },
                    "inboxId": INBOX_ID_PROPERTY,
                    "statuses": {
                        "type": "array",
                        "items": STATUS_PROPERTY,
                        "default": ["active", "pending", "closed"],
                        "description": "Conversation statuses to search",
                    },
                    "searchIn": {
                        "type": "array",
                        "items": {"type": "string", "enum": ["body", "subject", "both"]},
                        "default": ["both"],
                        "description": "Where to search for terms",
                    },
                    "timeframeDays": {
                        "type": "number",
                        "minimum": 1,
                        "maximum": 365,
                        "default": DEFAULT_TIMEFRAME_DAYS,
                        "description": f"Number of days back to search (defaults to {DEFAULT_TIMEFRAME_DAYS})",
                    },
                    "createdAfter": {
                        **CREATED_AFTER_PROPERTY,
                        "description": "Override timeframeDays with a specific start date (ISO8601)",
                    },
                    "createdBefore": CREATED_BEFORE_PROPERTY,
                    "limitPerStatus": {
                        **_limit_property(MAX_PAGE_SIZE, DEFAULT_LIMIT_PER_STATUS),
                        "description": f"Maximum results per status (defaults to {DEFAULT_LIMIT_PER_STATUS})",
                    },
                },
                "required": ["searchTerms"],
            },
        ),
        types.Tool(
            name=constraints.ADVANCED_SEARCH,
            description=(
                'Search with combined criteria. USE FOR: "conversations from @company.com", '
                '"urgent or billing tags", "a specific customer email". Criteria groups are combined with AND.'
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "contentTerms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Terms to find in the conversation body (OR combined)",
                    },
                    "subjectTerms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Terms to find in the subject (OR combined)",
                    },
                    "customerEmail": {"type": "string", "description": "Exact customer email"},
                    "emailDomain": {
                        "type": "string",
                        "description": 'Email domain, e.g. "company.com" for all @company.com senders',
                    },
                    "tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Tag names (OR combined)",
                    },
                    "inboxId": INBOX_ID_PROPERTY,
                    "status": {**STATUS_PROPERTY, "description": "Filter by conversation status"},
                    "createdAfter": CREATED_AFTER_PROPERTY,
                    "createdBefore": CREATED_BEFORE_PROPERTY,
                    "limit": _limit_property(MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE),
                },
            },
        ),
        types.Tool(
            name=constraints.STRUCTURED_FILTER,
            description=(
                'Filter by discovered IDs (assignee, customer, folder) or look up by ticket number. USE FOR: '
                '"show ticket #42839", "rep John\'s assigned queue" after finding John\'s id.'
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "assignedTo": {"type": "number", "description": "User ID of the assignee. Use -1 for unassigned."},
                    "folderId": {"type": "number", "description": "Folder ID from the Help Scout UI"},
                    "customerIds": {
                        "type": "array",
                        "items": {"type": "number"},
                        "description": "Customer IDs from previous results",
                    },
                    "conversationNumber": {"type": "number", "description": "Ticket number shown to users"},
                    "status": {
                        "type": "string",
                        "enum": ["active", "pending", "closed", "spam", "all"],
                        "default": "all",
                    },
                    "inboxId": {"type": "string", "description": "Inbox ID to combine with filters"},
                    "tag": {"type": "string", "description": "Tag name to combine with filters"},
                    "createdAfter": CREATED_AFTER_PROPERTY,
                    "createdBefore": CREATED_BEFORE_PROPERTY,
                    "modifiedSince": {
                        "type": "string",
                        "format": "date-time",
                        "description": "Filter by last modified (different from created)",
                    },
                    "sortBy": {
                        "type": "string",
                        "enum": [
                            "createdAt", "modifiedAt", "number", "waitingSince", "customerName",
                            "customerEmail", "mailboxId", "status", "subject",
                        ],
                        "default": "createdAt",
                    },
                    "sortOrder": {"type": "string", "enum": ["asc", "desc"], "default": "desc"},
                    "limit": _limit_property(MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE),
                    "cursor": {"type": "string", "description": "Pagination cursor for next page"},
                },
            },
        ),
        types.Tool(
            name=constraints.CONVERSATION_SUMMARY,
            description="Get conversation summary with first customer message and latest staff reply",
            inputSchema={
                "type": "object",
                "properties": {
                    "conversationId": {"type": "string", "description": "The conversation ID to get summary for"},
                },
                "required": ["conversationId"],
            },
        ),
        types.Tool(
            name=constraints.GET_THREADS,
            description="Get all thread messages for a conversation",
            inputSchema={
                "type": "object",
                "properties": {
                    "conversationId": {"type": "string", "description": "The conversation ID to get threads for"},
                    "limit": _limit_property(MAX_THREAD_SIZE, MAX_THREAD_SIZE),
                    "cursor": {"type": "string", "description": "Pagination cursor for next page"},
                },
                "required": ["conversationId"],
            },
        ),
        types.Tool(
            name=constraints.SERVER_TIME,
            description="Get current server time for time-relative searches",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@server.call_tool(validate_input=False)
async def handle_call_tool(name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
    """Handle Help Scout tool execution requests"""
    return await dispatcher.call_tool(name, arguments, current_call_context())


@server.list_resources()
async def handle_list_resources() -> list[types.Resource]:
    logger.debug("Handling list_resources request")
    return [
        types.Resource(
            uri=AnyUrl(resource["uri"]),
            name=resource["name"],
            description=resource["description"],
            mimeType="application/json",
        )
        for resource in RESOURCES
    ]


@server.read_resource()
async def handle_read_resource(uri: AnyUrl) -> str:
    logger.debug(f"Handling read_resource request for URI: {uri}")
    uri_text = str(uri)
    client = None if uri_text.startswith("helpscout://clock") else get_helpscout_client()
    try:
        return await run_client_call(read_resource, client, get_settings(), uri_text)
    except Exception as e:
        logger.error(f"Error reading resource {uri_text}: {e}")
        raise


def configure_logging(level: str = "INFO") -> None:
    """Configure package logging without overriding host configuration.

    Logs go to stderr; stdout carries the MCP protocol.
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
    logger.propagate = False


async def main():
    configure_logging()
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Configuration validated")

    client = get_helpscout_client()
    if not await run_client_call(client.test_connection):
        logger.error("Failed to connect to Help Scout API")
        raise SystemExit(1)
    logger.info("Help Scout API connection established")

    instructions = await discover_instructions(client, settings)
    logger.info("helpscout mcp server started")
    # Run the server using stdin/stdout streams
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream=read_stream,
            write_stream=write_stream,
            initialization_options=InitializationOptions(
                server_name=SERVER_NAME,
                server_version=SERVER_VERSION,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
                instructions=instructions,
            ),
        )


if __name__ == "__main__":
    asyncio.run(main())
