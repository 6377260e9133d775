"""Help Scout query-expression construction and time-window resolution.

Help Scout's conversation search accepts a small expression language
(``body:"refund" OR subject:"refund"``). Everything here produces one opaque
string for the ``query`` parameter; user-supplied terms are always quoted and
escaped so they are read as a single literal.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable

SEARCH_IN_BODY = "body"
SEARCH_IN_SUBJECT = "subject"
SEARCH_IN_BOTH = "both"

_FRACTIONAL_SECONDS = re.compile(r"\.\d+(?=Z$)")


def escape_query_term(term: str) -> str:
    """Escape a term for use inside a double-quoted query literal."""
    # Backslashes first so the quote escapes are not doubled
    return term.replace("\\", "\\\\").replace('"', '\\"')


def _field_clause(field: str, value: str) -> str:
    return f'{field}:"{escape_query_term(value)}"'


def _or_group(field: str, values: Iterable[str] | None, strip_at: bool = False) -> str | None:
    clauses = []
    for value in values or []:
        value = value.strip()
        if strip_at and value.startswith("@"):
            value = value[1:]
        if value:
            clauses.append(_field_clause(field, value))
    if not clauses:
        return None
    return f"({' OR '.join(clauses)})"


def build_keyword_query(terms: Iterable[str], search_in: Iterable[str] = (SEARCH_IN_BOTH,)) -> str | None:
    """OR together per-term field clauses for a keyword search.

    Each term yields ``(body:"t" OR subject:"t")`` (or just one side when
    ``search_in`` names only body or subject). Returns None when no usable
    term remains, meaning "no content filter".
    """
    locations = set(search_in or ())
    in_body = SEARCH_IN_BODY in locations or SEARCH_IN_BOTH in locations
    in_subject = SEARCH_IN_SUBJECT in locations or SEARCH_IN_BOTH in locations

    groups: list[str] = []
    for term in terms:
        term = term.strip()
        if not term:
            continue
        clauses = []
        if in_body:
            clauses.append(_field_clause("body", term))
        if in_subject:
            clauses.append(_field_clause("subject", term))
        if clauses:
            groups.append(f"({' OR '.join(clauses)})")

    return " OR ".join(groups) if groups else None


def build_advanced_query(
    content_terms: Iterable[str] | None = None,
    subject_terms: Iterable[str] | None = None,
    customer_email: str | None = None,
    email_domain: str | None = None,
    tags: Iterable[str] | None = None,
) -> str | None:
    """AND together the criteria groups of an advanced search."""
    parts: list[str] = []

    content = _or_group("body", content_terms)
    if content:
        parts.append(content)

    subject = _or_group("subject", subject_terms)
    if subject:
        parts.append(subject)

    if customer_email and customer_email.strip():
        parts.append(_field_clause("email", customer_email.strip()))

    if email_domain and email_domain.strip():
        domain = email_domain.strip()
        if domain.startswith("@"):
            domain = domain[1:]
        if domain:
            parts.append(_field_clause("email", domain))

    tag_group = _or_group("tag", tags, strip_at=True)
    if tag_group:
        parts.append(tag_group)

    return " AND ".join(parts) if parts else None


def build_customer_ids_query(customer_ids: Iterable[int] | None) -> str | None:
    ids = [int(cid) for cid in customer_ids or []]
    if not ids:
        return None
    return f"({' OR '.join(f'customerIds:{cid}' for cid in ids)})"


def format_timestamp(value: datetime | str) -> str:
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SSZ``.

    Help Scout rejects timestamps with fractional seconds, so these are
    dropped. Strings are parsed and rendered in UTC the same way; naive
    and date-only values are taken as UTC.
    """
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed is None:
            return _FRACTIONAL_SECONDS.sub("", value.strip())
        value = parsed
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def resolve_created_after(
    created_after: str | None,
    timeframe_days: int | None,
    now: datetime | None = None,
) -> str | None:
    """Return the lower time bound for a search; an explicit value wins over a day count."""
    if created_after:
        return format_timestamp(created_after)
    if timeframe_days is None:
        return None
    now = now or datetime.now(timezone.utc)
    return format_timestamp(now - timedelta(days=timeframe_days))


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO8601 timestamp from the API; None when missing or malformed."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
