"""Custom exception hierarchy for Help Scout operations."""


class HelpScoutError(Exception):
    """Base exception for Help Scout operations."""
    pass


class HelpScoutAPIError(HelpScoutError):
    """Errors from the Help Scout API."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        code: str | None = None,
        retry_after: int | None = None,
    ):
        """
        Initialize Help Scout API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_body: Response body if available
            code: Error classification (UNAUTHORIZED, NOT_FOUND, RATE_LIMIT,
                INVALID_INPUT, UPSTREAM_ERROR); defaults to the class code
            retry_after: Seconds to wait before retrying, for rate limits
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        if code:
            self.code = code
        self.retry_after = retry_after


class HelpScoutAuthError(HelpScoutAPIError):
    """Authentication failed (401)."""
    code = "UNAUTHORIZED"


class HelpScoutNotFoundError(HelpScoutAPIError):
    """Resource not found (404)."""
    code = "NOT_FOUND"


class HelpScoutRateLimitError(HelpScoutAPIError):
    """Rate limit exceeded (429)."""
    code = "RATE_LIMIT"


class HelpScoutValidationError(HelpScoutError):
    """Validation/input errors."""
    pass


class HelpScoutNetworkError(HelpScoutError):
    """Network/connection errors."""
    pass


ERROR_SUGGESTIONS = {
    "UNAUTHORIZED": "Please check your Help Scout API credentials and ensure they have the necessary permissions.",
    "NOT_FOUND": "Verify that the resource ID is correct and the resource exists in Help Scout.",
    "INVALID_INPUT": "Check the input parameters against the Help Scout API documentation and ensure all required fields are provided.",
    "UPSTREAM_ERROR": "Help Scout service may be temporarily unavailable. Retry the request shortly.",
}


def error_suggestion(error: HelpScoutAPIError) -> str:
    """Return actionable remediation text for an API error."""
    if error.code == "RATE_LIMIT":
        return (
            f"Rate limit exceeded. Wait {error.retry_after or 60} seconds before retrying, "
            "or reduce request frequency."
        )
    return ERROR_SUGGESTIONS.get(
        error.code,
        "Please check the error details and consult the Help Scout API documentation.",
    )
