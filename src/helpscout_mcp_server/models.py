"""Typed tool inputs and search result containers."""
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from helpscout_mcp_server.exceptions import HelpScoutValidationError
from helpscout_mcp_server.query import parse_timestamp

Status = Literal["active", "pending", "closed", "spam"]
SearchLocation = Literal["body", "subject", "both"]
SortOrder = Literal["asc", "desc"]

ALL_STATUSES: tuple[str, ...] = ("active", "pending", "closed", "spam")
DEFAULT_STATUSES: tuple[str, ...] = ("active", "pending", "closed")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
MAX_THREAD_SIZE = 200
MAX_SEARCH_TERMS = 10
DEFAULT_TIMEFRAME_DAYS = 60
DEFAULT_LIMIT_PER_STATUS = 25


class ToolInput(BaseModel):
    """Base for tool argument models: camelCase on the wire, immutable once parsed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def _coerce_id(value: Any) -> Any:
    # Agents often send numeric ids as numbers
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


def _check_timestamp(value: str | None) -> str | None:
    if value is None:
        return None
    if parse_timestamp(value) is None:
        raise ValueError("must be an ISO8601 timestamp, e.g. 2024-01-31T00:00:00Z")
    return value


class InboxScopedInput(ToolInput):
    inbox_id: str | None = None
    created_after: str | None = None
    created_before: str | None = None

    @field_validator("inbox_id", mode="before")
    @classmethod
    def _inbox_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("created_after", "created_before")
    @classmethod
    def _timestamps(cls, value: str | None) -> str | None:
        return _check_timestamp(value)


class SearchInboxesInput(ToolInput):
    query: str
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    cursor: str | None = None


class ListAllInboxesInput(ToolInput):
    limit: int = Field(MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class SearchConversationsInput(InboxScopedInput):
    query: str | None = None
    tag: str | None = None
    status: Status | None = None
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    cursor: str | None = None
    sort: Literal["createdAt", "updatedAt", "number"] = "createdAt"
    order: SortOrder = "desc"
    fields: list[str] | None = None


class ComprehensiveSearchInput(InboxScopedInput):
    search_terms: list[str] = Field(..., min_length=1, max_length=MAX_SEARCH_TERMS)
    statuses: list[Status] = Field(default_factory=lambda: list(DEFAULT_STATUSES), min_length=1)
    search_in: list[SearchLocation] = Field(default_factory=lambda: ["both"], min_length=1)
    timeframe_days: int = Field(DEFAULT_TIMEFRAME_DAYS, ge=1, le=365)
    limit_per_status: int = Field(DEFAULT_LIMIT_PER_STATUS, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("search_terms")
    @classmethod
    def _non_blank_terms(cls, value: list[str]) -> list[str]:
        terms = [term.strip() for term in value if term and term.strip()]
        if not terms:
            raise ValueError("at least one non-empty search term is required")
        return terms

    @field_validator("statuses")
    @classmethod
    def _unique_statuses(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class AdvancedSearchInput(InboxScopedInput):
    content_terms: list[str] | None = None
    subject_terms: list[str] | None = None
    customer_email: str | None = None
    email_domain: str | None = None
    tags: list[str] | None = None
    status: Status | None = None
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class StructuredFilterInput(InboxScopedInput):
    assigned_to: int | None = None
    folder_id: int | None = None
    customer_ids: list[int] | None = None
    conversation_number: int | None = None
    status: Literal["active", "pending", "closed", "spam", "all"] = "all"
    tag: str | None = None
    modified_since: str | None = None
    sort_by: Literal[
        "createdAt", "modifiedAt", "number", "waitingSince", "customerName",
        "customerEmail", "mailboxId", "status", "subject",
    ] = "createdAt"
    sort_order: SortOrder = "desc"
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    cursor: str | None = None

    @field_validator("modified_since")
    @classmethod
    def _modified_since(cls, value: str | None) -> str | None:
        return _check_timestamp(value)


class ConversationInput(ToolInput):
    conversation_id: str

    @field_validator("conversation_id", mode="before")
    @classmethod
    def _conversation_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class GetThreadsInput(ConversationInput):
    limit: int = Field(MAX_THREAD_SIZE, ge=1, le=MAX_THREAD_SIZE)
    cursor: str | None = None


@dataclass(frozen=True)
class StatusSearchRequest:
    """Parameters for one status-partitioned conversation search."""

    statuses: tuple[str, ...]
    query: str | None = None
    created_after: str | None = None
    created_before: str | None = None
    inbox_id: str | None = None
    tag: str | None = None
    limit_per_status: int = DEFAULT_LIMIT_PER_STATUS
    global_limit: int | None = None
    sort_field: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1

    def __post_init__(self):
        if not self.statuses:
            raise HelpScoutValidationError("At least one status is required for a status search")
        unknown = [s for s in self.statuses if s not in ALL_STATUSES]
        if unknown:
            raise HelpScoutValidationError(f"Unknown conversation status: {', '.join(unknown)}")


@dataclass
class StatusResult:
    """Outcome of fetching a single status."""

    status: str
    total_count: int
    conversations: list[dict]
    filtered_out: int = 0
    page: dict | None = None
    next_cursor: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "totalCount": self.total_count,
            "conversations": self.conversations,
        }


@dataclass
class AggregatedResult:
    """Merged outcome of a multi-status search."""

    conversations: list[dict] = field(default_factory=list)
    by_status: list[StatusResult] = field(default_factory=list)
    statuses_searched: list[str] = field(default_factory=list)
    failed_statuses: dict[str, str] = field(default_factory=dict)
    total_available: int = 0
    client_side_filtered: bool = False
    status_conflicts: dict[int, list[str]] = field(default_factory=dict)
    note: str | None = None

    @property
    def all_failed(self) -> bool:
        return not self.statuses_searched and bool(self.failed_statuses)
