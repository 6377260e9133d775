"""Tool dispatch boundary: validation gate, handler call, error envelopes."""
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, Mapping

import mcp.types as types
from pydantic import ValidationError

from helpscout_mcp_server.config import LOGGER_NAME, Settings
from helpscout_mcp_server.constraints import CallContext, generate_tool_guidance, validate_tool_call
from helpscout_mcp_server.exceptions import (
    HelpScoutAPIError,
    HelpScoutNetworkError,
    HelpScoutValidationError,
    error_suggestion,
)
from helpscout_mcp_server.handlers import LOCAL_TOOLS, TOOL_HANDLERS

logger = logging.getLogger(f"{LOGGER_NAME}.dispatch")

VALIDATION_FAILED = "API Constraint Validation Failed"


def _text_result(payload: Mapping[str, Any], is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(payload, indent=2, default=str))],
        isError=is_error,
    )


def _error_payload(code: str, message: str, error_type: str, request_id: str, **extra: Any) -> Dict[str, Any]:
    error = {"code": code, "message": message, "type": error_type}
    error.update({key: value for key, value in extra.items() if value is not None})
    error["requestId"] = request_id
    return {"error": error}


def validation_issues(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in issue["loc"]),
            "message": issue["msg"],
            "code": issue["type"],
        }
        for issue in error.errors()
    ]


class ToolDispatcher:
    """Runs tool calls for one server.

    Client and settings are resolved through callables so that a missing
    configuration surfaces as a tool error instead of an import failure.
    """

    def __init__(
        self,
        get_client: Callable[[], Any],
        get_settings: Callable[[], Settings],
        handlers: Mapping[str, Callable] | None = None,
    ):
        self._get_client = get_client
        self._get_settings = get_settings
        self._handlers = dict(handlers) if handlers is not None else TOOL_HANDLERS

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def call_tool(
        self,
        name: str,
        arguments: Dict[str, Any] | None,
        context: CallContext,
    ) -> types.CallToolResult:
        request_id = uuid.uuid4().hex[:12]
        arguments = arguments or {}
        started = time.monotonic()
        logger.info("Tool call started: %s (request %s)", name, request_id)

        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Unknown tool requested: %s", name)
            return _text_result(
                _error_payload("TOOL_ERROR", f"Unknown tool: {name}", "generic_error", request_id),
                is_error=True,
            )

        validation = validate_tool_call(name, arguments, context)
        if not validation.is_valid:
            logger.warning("Tool call validation failed for %s (request %s): %s", name, request_id, validation.errors)
            return _text_result(
                {
                    "error": VALIDATION_FAILED,
                    "details": validation.to_details(),
                    "helpScoutAPIRequirements": {
                        "message": "This call violates Help Scout API constraints",
                        "requiredActions": validation.required_prerequisites,
                        "suggestions": validation.suggestions,
                    },
                },
                is_error=True,
            )

        try:
            settings = self._get_settings()
            client = None if name in LOCAL_TOOLS else self._get_client()
            payload = await handler(client, settings, arguments)
        except ValidationError as e:
            logger.warning("Invalid arguments for %s (request %s): %s", name, request_id, e)
            return _text_result(
                _error_payload(
                    "INVALID_INPUT",
                    "Invalid input parameters provided",
                    "validation_error",
                    request_id,
                    validationIssues=validation_issues(e),
                ),
                is_error=True,
            )
        except HelpScoutAPIError as e:
            logger.error("Help Scout API error in %s (request %s): %s", name, request_id, e)
            return _text_result(
                _error_payload(
                    e.code,
                    str(e),
                    "api_error",
                    request_id,
                    details={"statusCode": e.status_code, "retryAfter": e.retry_after} if e.status_code else None,
                    suggestion=error_suggestion(e),
                ),
                is_error=True,
            )
        except HelpScoutValidationError as e:
            logger.warning("Rejected request for %s (request %s): %s", name, request_id, e)
            return _text_result(
                _error_payload("INVALID_INPUT", str(e), "validation_error", request_id),
                is_error=True,
            )
        except HelpScoutNetworkError as e:
            logger.error("Network error in %s (request %s): %s", name, request_id, e)
            return _text_result(
                _error_payload(
                    "UPSTREAM_ERROR",
                    str(e),
                    "api_error",
                    request_id,
                    suggestion="Help Scout could not be reached. Check connectivity and retry.",
                ),
                is_error=True,
            )
        except Exception as e:
            logger.exception("Tool %s failed (request %s)", name, request_id)
            return _text_result(
                _error_payload("TOOL_ERROR", f"Tool execution failed: {e}", "generic_error", request_id),
                is_error=True,
            )

        context.record_call(name)
        guidance = generate_tool_guidance(name, payload, context)
        if guidance:
            payload = {**payload, "apiGuidance": guidance}

        logger.info(
            "Tool call completed: %s (request %s) in %.0f ms",
            name, request_id, (time.monotonic() - started) * 1000,
        )
        return _text_result(payload)
