import re
from datetime import datetime, timezone

from helpscout_mcp_server.query import (
    build_advanced_query,
    build_customer_ids_query,
    build_keyword_query,
    escape_query_term,
    format_timestamp,
    parse_timestamp,
    resolve_created_after,
)

TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


def test_single_term_searches_body_and_subject():
    assert build_keyword_query(["billing"]) == '(body:"billing" OR subject:"billing")'


def test_terms_are_or_combined():
    assert build_keyword_query(["billing", "refund"]) == (
        '(body:"billing" OR subject:"billing") OR (body:"refund" OR subject:"refund")'
    )


def test_search_in_limits_fields():
    assert build_keyword_query(["billing"], ["body"]) == '(body:"billing")'
    assert build_keyword_query(["billing"], ["subject"]) == '(subject:"billing")'


def test_blank_terms_are_skipped():
    assert build_keyword_query(["  ", "refund "]) == '(body:"refund" OR subject:"refund")'
    assert build_keyword_query(["", "   "]) is None


def test_quotes_and_backslashes_are_escaped():
    assert escape_query_term('say "hi"') == 'say \\"hi\\"'
    assert escape_query_term("C:\\temp") == "C:\\\\temp"
    # Backslash escaped before the quote so the quote escape is not doubled
    assert escape_query_term('\\"') == '\\\\\\"'


def test_escaped_term_stays_a_single_literal():
    query = build_keyword_query(['a" OR subject:"x'], ["body"])
    assert query == '(body:"a\\" OR subject:\\"x")'
    # Every quote inside the literal is preceded by a backslash
    inner = query[len('(body:"'):-len('")')]
    assert re.search(r'(?<!\\)"', inner) is None


def test_advanced_query_and_combines_groups():
    query = build_advanced_query(
        content_terms=["refund"],
        subject_terms=["invoice", "receipt"],
        email_domain="@acme.com",
        tags=["urgent", "@vip"],
    )
    assert query == (
        '(body:"refund") AND (subject:"invoice" OR subject:"receipt") AND email:"acme.com" '
        'AND (tag:"urgent" OR tag:"vip")'
    )


def test_advanced_query_with_customer_email_only():
    assert build_advanced_query(customer_email=" jane@bigcorp.com ") == 'email:"jane@bigcorp.com"'


def test_advanced_query_without_criteria_is_none():
    assert build_advanced_query() is None
    assert build_advanced_query(content_terms=[" "], tags=["@"]) is None


def test_customer_ids_query():
    assert build_customer_ids_query([12, 34]) == "(customerIds:12 OR customerIds:34)"
    assert build_customer_ids_query([]) is None


def test_format_timestamp_drops_fractional_seconds():
    value = datetime(2024, 1, 31, 12, 0, 5, 123456, tzinfo=timezone.utc)
    assert format_timestamp(value) == "2024-01-31T12:00:05Z"
    assert format_timestamp("2024-01-31T12:00:05.123Z") == "2024-01-31T12:00:05Z"


def test_naive_datetime_treated_as_utc():
    assert format_timestamp(datetime(2024, 5, 1, 8, 30)) == "2024-05-01T08:30:00Z"


def test_timeframe_days_against_fixed_now():
    now = datetime(2024, 3, 31, 15, 4, 0, 987000, tzinfo=timezone.utc)
    resolved = resolve_created_after(None, 30, now=now)
    assert resolved == "2024-03-01T15:04:00Z"
    assert TIMESTAMP.match(resolved)


def test_explicit_created_after_wins_over_timeframe():
    now = datetime(2024, 3, 31, tzinfo=timezone.utc)
    assert resolve_created_after("2024-01-01T00:00:00.500Z", 30, now=now) == "2024-01-01T00:00:00Z"


def test_explicit_created_after_normalised_to_utc_seconds():
    now = datetime(2024, 3, 31, tzinfo=timezone.utc)
    cases = {
        "2024-01-01T10:00:00.123+02:00": "2024-01-01T08:00:00Z",
        "2024-01-01": "2024-01-01T00:00:00Z",
        "2024-01-01T10:00:00": "2024-01-01T10:00:00Z",
    }
    for value, expected in cases.items():
        resolved = resolve_created_after(value, 30, now=now)
        assert resolved == expected
        assert TIMESTAMP.match(resolved)


def test_no_bound_without_timeframe():
    assert resolve_created_after(None, None) is None


def test_parse_timestamp_tolerates_garbage():
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
