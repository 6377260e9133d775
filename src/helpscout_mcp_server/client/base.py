"""Base HelpScoutClient class and core utilities."""
from typing import Any, Dict
import json
import logging
import random
import threading
import time
import urllib.error
import urllib.parse
import urllib.request

from cachetools import TLRUCache

from helpscout_mcp_server.config import LOGGER_NAME, Settings
from helpscout_mcp_server.exceptions import (
    HelpScoutError,
    HelpScoutAPIError,
    HelpScoutAuthError,
    HelpScoutNetworkError,
    HelpScoutNotFoundError,
    HelpScoutRateLimitError,
)

logger = logging.getLogger(f"{LOGGER_NAME}.client")

REQUEST_TIMEOUT = 30
TOKEN_EXPIRY_BUFFER = 60
PERSONAL_TOKEN_LIFETIME = 24 * 60 * 60

# Seconds; endpoints not listed use the configured default.
ENDPOINT_CACHE_TTL = {
    "mailboxes": 1440,
    "threads": 300,
    "conversations": 300,
}


def _retry_after_seconds(headers: Any) -> int | None:
    if not headers:
        return None
    retry_after = headers.get("Retry-After") or headers.get("retry-after")
    if retry_after and str(retry_after).strip().isdigit():
        return int(str(retry_after).strip())
    return None


def _translate_http_error(e: urllib.error.HTTPError) -> HelpScoutAPIError:
    """Map an HTTP error onto the Help Scout exception hierarchy."""
    error_body = e.read().decode() if getattr(e, "fp", None) else "No response body"
    status = e.code
    message = f"HTTP Error: {status} - {e.reason}"
    if status == 401:
        return HelpScoutAuthError("Authentication failed", status_code=status, response_body=error_body)
    if status == 404:
        return HelpScoutNotFoundError("Resource not found", status_code=status, response_body=error_body)
    if status == 429:
        retry_after = _retry_after_seconds(getattr(e, "headers", None)) or 60
        return HelpScoutRateLimitError(
            "Rate limit exceeded", status_code=status, response_body=error_body, retry_after=retry_after
        )
    if 400 <= status < 500:
        try:
            upstream_message = json.loads(error_body).get("message")
        except (ValueError, AttributeError):
            upstream_message = None
        return HelpScoutAPIError(
            upstream_message or "Invalid request",
            status_code=status,
            response_body=error_body,
            code="INVALID_INPUT",
        )
    return HelpScoutAPIError(message, status_code=status, response_body=error_body)


# Helper: urllib request with 429/5xx retry and backoff
# Exponential backoff with jitter, honoring Retry-After when present
def _urlopen_with_retry(req, max_attempts: int = 3):
    last_err = None
    for attempt in range(max_attempts):
        try:
            return urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT)
        except urllib.error.HTTPError as e:
            code = getattr(e, "code", None)
            if code == 429 or (isinstance(code, int) and 500 <= code < 600):
                if attempt < max_attempts - 1:
                    delay = _retry_after_seconds(getattr(e, "headers", None))
                    if delay is None:
                        delay = min(2 ** attempt + random.random(), 30)
                    time.sleep(delay)
                    last_err = e
                    continue
            raise _translate_http_error(e)
        except urllib.error.URLError as e:
            # Treat network errors as retryable
            if attempt < max_attempts - 1:
                delay = min(2 ** attempt + random.random(), 30)
                time.sleep(delay)
                last_err = e
                continue
            raise HelpScoutNetworkError(f"Network Error: {str(e)}")
    if last_err:
        raise HelpScoutError(f"Max retries exceeded: {str(last_err)}")
    raise HelpScoutError("Unknown error during URL open.")


class HelpScoutClientBase:
    """Base class for HelpScoutClient with authentication, caching and raw GET helpers."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.base_url = settings.base_url
        self.token_url = urllib.parse.urljoin(settings.base_url, "oauth2/token")
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()
        self._default_ttl = settings.cache_ttl_seconds
        self._cache: TLRUCache = TLRUCache(maxsize=settings.max_cache_size, ttu=self._cache_expiry)
        self._cache_lock = threading.Lock()

    def _cache_expiry(self, key: tuple, value: Any, now: float) -> float:
        path = key[0]
        for fragment, ttl in ENDPOINT_CACHE_TTL.items():
            if fragment in path:
                return now + ttl
        return now + self._default_ttl

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
        logger.info("Response cache cleared")

    def _ensure_token(self) -> str:
        with self._token_lock:
            if self._access_token and time.time() < self._token_expires_at:
                return self._access_token
            self._authenticate()
            return self._access_token

    def _authenticate(self) -> None:
        api_key = self.settings.api_key
        if self.settings.uses_personal_token:
            self._access_token = api_key[len("Bearer "):].strip()
            self._token_expires_at = time.time() + PERSONAL_TOKEN_LIFETIME
            logger.info("Using personal access token for Help Scout API")
            return

        payload = urllib.parse.urlencode({
            "grant_type": "client_credentials",
            "client_id": api_key,
            "client_secret": self.settings.app_secret or "",
        }).encode("utf-8")
        req = urllib.request.Request(self.token_url, data=payload, method="POST")
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
        try:
            with _urlopen_with_retry(req) as response:
                data = json.loads(response.read().decode("utf-8"))
        except HelpScoutError as e:
            logger.error("Authentication failed: %s", e)
            raise HelpScoutAuthError("Failed to authenticate with Help Scout API")

        token = data.get("access_token")
        if not token:
            raise HelpScoutAuthError("Failed to authenticate with Help Scout API: no access token returned")
        expires_in = int(data.get("expires_in") or 0)
        self._access_token = token
        self._token_expires_at = time.time() + max(expires_in - TOKEN_EXPIRY_BUFFER, 0)
        logger.info("Authenticated with Help Scout API using OAuth2")

    def _build_url(self, path: str, params: Dict[str, Any] | None) -> str:
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        query = urllib.parse.urlencode(clean)
        return f"{self.base_url}{path.lstrip('/')}{('?' + query) if query else ''}"

    def _request_json(self, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        url = self._build_url(path, params)
        req = urllib.request.Request(url)
        req.add_header("Authorization", f"Bearer {self._ensure_token()}")
        req.add_header("Accept", "application/json")
        started = time.monotonic()
        try:
            with _urlopen_with_retry(req) as response:
                body = response.read().decode("utf-8")
        except HelpScoutAuthError:
            # Force re-authentication on the next request
            self._access_token = None
            raise
        logger.debug("GET %s completed in %.0f ms", path, (time.monotonic() - started) * 1000)
        return json.loads(body) if body else {}

    # Internal helper to GET a path and return parsed JSON, served from cache when fresh
    def _get_json(self, path: str, params: Dict[str, Any] | None = None, use_cache: bool = True) -> Dict[str, Any]:
        key = (path, json.dumps(params or {}, sort_keys=True, default=str))
        if use_cache:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", path)
                return cached

        data = self._request_json(path, params)
        if use_cache:
            with self._cache_lock:
                self._cache[key] = data
        return data

    def test_connection(self) -> bool:
        """Check that the credentials work by fetching a single mailbox."""
        try:
            self._get_json("/mailboxes", {"page": 1, "size": 1}, use_cache=False)
            return True
        except HelpScoutError as e:
            logger.error("Connection test failed: %s", e)
            return False


def embedded_items(data: Dict[str, Any] | None, key: str) -> list[dict]:
    """Extract the HAL `_embedded` list for `key`, tolerating missing sections."""
    embedded = (data or {}).get("_embedded") or {}
    return list(embedded.get(key) or [])
