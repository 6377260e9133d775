"""Read-only MCP resources backed by the Help Scout API."""
import json
import logging
import urllib.parse
from typing import Any, Dict

from helpscout_mcp_server.config import LOGGER_NAME, Settings
from helpscout_mcp_server.formatting import redact_body, server_time
from helpscout_mcp_server.models import DEFAULT_PAGE_SIZE

logger = logging.getLogger(f"{LOGGER_NAME}.resources")

SCHEME = "helpscout"

RESOURCES = [
    {
        "uri": "helpscout://inboxes",
        "name": "Help Scout Inboxes",
        "description": "All inboxes the configured credentials can access",
    },
    {
        "uri": "helpscout://conversations",
        "name": "Help Scout Conversations",
        "description": "Conversations matching the specified filters",
    },
    {
        "uri": "helpscout://threads",
        "name": "Help Scout Thread Messages",
        "description": "All messages in a conversation (requires ?conversationId=)",
    },
    {
        "uri": "helpscout://clock",
        "name": "Server Time",
        "description": "Current server time for building relative time filters",
    },
]

CONVERSATION_FILTERS = ("status", "mailbox", "tag", "modifiedSince")


def _int_param(params: Dict[str, str], key: str, default: int) -> int:
    value = params.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def _read_inboxes(client: Any, params: Dict[str, str]) -> Dict[str, Any]:
    listing = client.list_inboxes(
        limit=_int_param(params, "size", 100),
        page=_int_param(params, "page", 1),
    )
    return {"inboxes": listing["inboxes"], "pagination": listing["pagination"]}


def _read_conversations(client: Any, params: Dict[str, str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {
        "page": _int_param(params, "page", 1),
        "size": _int_param(params, "size", DEFAULT_PAGE_SIZE),
    }
    for key in CONVERSATION_FILTERS:
        if params.get(key):
            query[key] = params[key]
    page = client.list_conversations(query)
    return {
        "conversations": page["conversations"],
        "pagination": page["page"],
        "links": {"next": page["next"]} if page["next"] else {},
    }


def _read_threads(client: Any, settings: Settings, params: Dict[str, str]) -> Dict[str, Any]:
    conversation_id = params.get("conversationId")
    if not conversation_id:
        raise ValueError("conversationId parameter is required for threads resource")
    page = client.get_threads(
        conversation_id,
        limit=_int_param(params, "size", DEFAULT_PAGE_SIZE),
        page=_int_param(params, "page", 1),
    )
    threads = [{**t, "body": redact_body(t.get("body"), settings.allow_pii)} for t in page["threads"]]
    return {
        "conversationId": conversation_id,
        "threads": threads,
        "pagination": page["page"],
        "links": {"next": page["next"]} if page["next"] else {},
    }


def read_resource(client: Any, settings: Settings, uri: str) -> str:
    """Resolve a ``helpscout://`` URI to a JSON document. Blocking."""
    parts = urllib.parse.urlsplit(uri)
    if parts.scheme != SCHEME:
        logger.error("Unsupported URI scheme: %s", parts.scheme)
        raise ValueError(f"Unsupported protocol: {parts.scheme}")

    path = parts.netloc or parts.path.strip("/")
    params = dict(urllib.parse.parse_qsl(parts.query))
    logger.debug("Reading resource %s with params %s", path, params)

    if path == "clock":
        data = server_time()
    elif client is None:
        raise RuntimeError("Help Scout client is not configured")
    elif path == "inboxes":
        data = _read_inboxes(client, params)
    elif path == "conversations":
        data = _read_conversations(client, params)
    elif path == "threads":
        data = _read_threads(client, settings, params)
    else:
        logger.error("Unknown resource path: %s", path)
        raise ValueError(f"Unknown resource path: {path}")

    return json.dumps(data, indent=2, default=str)
