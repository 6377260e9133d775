"""Environment-driven settings for the Help Scout MCP server."""
import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

LOGGER_NAME = "helpscout-mcp-server"
DEFAULT_BASE_URL = "https://api.helpscout.net/v2/"

REQUIRED_ENV_VARS: dict[str, str] = {
    "HELPSCOUT_API_KEY": "OAuth2 application id, or 'Bearer <token>' for a personal access token",
}

logger = logging.getLogger(f"{LOGGER_NAME}.config")


class Settings(BaseModel):
    """Resolved server configuration."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    app_secret: str | None = None
    base_url: str = DEFAULT_BASE_URL
    default_inbox_id: str | None = None
    allow_pii: bool = False
    cache_ttl_seconds: int = 300
    max_cache_size: int = 10000
    log_level: str = "INFO"

    @property
    def uses_personal_token(self) -> bool:
        return self.api_key.startswith("Bearer ")


def _env_flag(key: str) -> bool | None:
    value = os.getenv(key)
    if value is None or not value.strip():
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer, got {value!r}")


def _allow_pii() -> bool:
    # ALLOW_PII wins; REDACT_MESSAGE_CONTENT=false is the older spelling.
    allow = _env_flag("ALLOW_PII")
    if allow is not None:
        return allow
    redact = _env_flag("REDACT_MESSAGE_CONTENT")
    if redact is not None:
        return not redact
    return False


def load_settings() -> Settings:
    """Validate required environment variables and return the settings."""
    missing: list[str] = []
    for key, description in REQUIRED_ENV_VARS.items():
        if not os.getenv(key):
            missing.append(f"{key} ({description})")

    api_key = os.getenv("HELPSCOUT_API_KEY", "")
    app_secret = os.getenv("HELPSCOUT_APP_SECRET") or None
    if api_key and not api_key.startswith("Bearer ") and not app_secret:
        missing.append("HELPSCOUT_APP_SECRET (OAuth2 application secret, required unless using a personal access token)")

    if missing:
        detail = ", ".join(missing)
        raise RuntimeError(
            f"Missing required environment variables: {detail}. "
            "Populate .env or export them before launching the server."
        )

    default_inbox = (os.getenv("HELPSCOUT_DEFAULT_INBOX_ID") or "").strip() or None
    base_url = os.getenv("HELPSCOUT_BASE_URL") or DEFAULT_BASE_URL
    if not base_url.endswith("/"):
        base_url += "/"

    return Settings(
        api_key=api_key,
        app_secret=app_secret,
        base_url=base_url,
        default_inbox_id=default_inbox,
        allow_pii=_allow_pii(),
        cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", 300),
        max_cache_size=_env_int("MAX_CACHE_SIZE", 10000),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


load_dotenv()
_settings_cache: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings, loading them on first use."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = load_settings()
        logger.debug("Settings loaded (default inbox: %s)", _settings_cache.default_inbox_id)
    return _settings_cache


def _reset_settings_cache_for_tests() -> None:
    global _settings_cache
    _settings_cache = None
