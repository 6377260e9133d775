import asyncio

import pytest

from conftest import FakeSearchClient, conversation
from helpscout_mcp_server.client.search import CLIENT_FILTER_NOTE, MERGED_PAGINATION_NOTE
from helpscout_mcp_server.exceptions import HelpScoutAPIError, HelpScoutValidationError
from helpscout_mcp_server.models import StatusSearchRequest


def _day(n):
    return f"2024-01-{n:02d}T10:00:00Z"


def test_single_status_issues_exactly_one_fetch():
    client = FakeSearchClient({"closed": [conversation(1, _day(3), "closed")]})
    request = StatusSearchRequest(statuses=("closed",), query="(body:\"x\")", limit_per_status=10)

    result = asyncio.run(client.search_across_statuses(request))

    assert len(client.calls) == 1
    assert client.calls[0]["status"] == "closed"
    assert client.calls[0]["query"] == "(body:\"x\")"
    assert result.statuses_searched == ["closed"]
    assert [c["id"] for c in result.conversations] == [1]


def test_single_status_failure_propagates():
    client = FakeSearchClient(failing={"active"})
    request = StatusSearchRequest(statuses=("active",))

    with pytest.raises(HelpScoutAPIError):
        asyncio.run(client.search_across_statuses(request))


def test_duplicate_ids_across_statuses_are_merged_once():
    client = FakeSearchClient({
        "active": [conversation(1, _day(5)), conversation(2, _day(4))],
        "pending": [conversation(1, _day(5), "pending")],
        "closed": [conversation(3, _day(6), "closed")],
    })
    request = StatusSearchRequest(statuses=("active", "pending", "closed"))

    result = asyncio.run(client.search_across_statuses(request))

    ids = [c["id"] for c in result.conversations]
    assert sorted(ids) == [1, 2, 3]
    assert len(ids) == len(set(ids))
    # First-seen status keeps the conversation; the conflict is reported
    assert result.status_conflicts == {1: ["active", "pending"]}
    pending = next(group for group in result.by_status if group.status == "pending")
    assert pending.conversations == []


def test_conversations_without_id_are_kept_not_deduplicated():
    client = FakeSearchClient({
        "active": [{"subject": "a", "createdAt": _day(3)}, {"subject": "b", "createdAt": _day(2)}],
        "pending": [{"subject": "c", "createdAt": _day(1)}],
    })
    request = StatusSearchRequest(statuses=("active", "pending"))

    result = asyncio.run(client.search_across_statuses(request))

    assert [c["subject"] for c in result.conversations] == ["a", "b", "c"]
    assert result.status_conflicts == {}


def test_merged_results_sorted_newest_first():
    client = FakeSearchClient({
        "active": [conversation(1, _day(2)), conversation(2, _day(9))],
        "pending": [conversation(3, _day(5))],
        "closed": [conversation(4, _day(7)), conversation(5, _day(1))],
    })
    request = StatusSearchRequest(statuses=("active", "pending", "closed"))

    result = asyncio.run(client.search_across_statuses(request))

    created = [c["createdAt"] for c in result.conversations]
    assert created == sorted(created, reverse=True)
    assert [c["id"] for c in result.conversations] == [2, 4, 3, 1, 5]


def test_global_limit_applied_after_merge():
    pages = {
        status: [conversation(offset + i, f"2024-02-{(i % 28) + 1:02d}T{offset // 100:02d}:00:00Z", status)
                 for i in range(30)]
        for offset, status in ((100, "active"), (200, "pending"), (300, "closed"))
    }
    client = FakeSearchClient(pages)
    request = StatusSearchRequest(
        statuses=("active", "pending", "closed"), limit_per_status=30, global_limit=50
    )

    result = asyncio.run(client.search_across_statuses(request))

    assert len(result.conversations) == 50
    assert result.total_available == 90
    assert all(call["size"] == 30 for call in client.calls)
    assert result.note == MERGED_PAGINATION_NOTE


def test_one_failed_status_keeps_the_others():
    client = FakeSearchClient(
        {
            "active": [conversation(1, _day(3))],
            "closed": [conversation(2, _day(4), "closed"), conversation(1, _day(3), "closed")],
        },
        failing={"pending"},
    )
    request = StatusSearchRequest(statuses=("active", "pending", "closed"))

    result = asyncio.run(client.search_across_statuses(request))

    assert len(client.calls) == 3
    assert result.statuses_searched == ["active", "closed"]
    assert list(result.failed_statuses) == ["pending"]
    assert [c["id"] for c in result.conversations] == [2, 1]
    assert "failed to search: pending" in result.note


def test_all_statuses_failing_returns_empty_result():
    client = FakeSearchClient(failing={"active", "pending", "closed"})
    request = StatusSearchRequest(statuses=("active", "pending", "closed"))

    result = asyncio.run(client.search_across_statuses(request))

    assert result.conversations == []
    assert result.statuses_searched == []
    assert result.all_failed
    assert set(result.failed_statuses) == {"active", "pending", "closed"}


def test_created_before_filtered_client_side():
    client = FakeSearchClient({
        "active": [conversation(1, _day(10)), conversation(2, _day(2)), conversation(3, None)],
    })
    request = StatusSearchRequest(statuses=("active",), created_before=_day(5))

    result = asyncio.run(client.search_across_statuses(request))

    assert [c["id"] for c in result.conversations] == [2]
    assert result.client_side_filtered
    assert result.by_status[0].filtered_out == 2
    assert CLIENT_FILTER_NOTE in result.note


def test_request_parameters_forwarded_per_status():
    client = FakeSearchClient()
    request = StatusSearchRequest(
        statuses=("active", "spam"),
        query='(body:"x")',
        created_after="2024-01-01T00:00:00Z",
        inbox_id="42",
        tag="vip",
        limit_per_status=7,
    )

    asyncio.run(client.search_across_statuses(request))

    assert sorted(call["status"] for call in client.calls) == ["active", "spam"]
    for call in client.calls:
        assert call["modifiedSince"] == "2024-01-01T00:00:00Z"
        assert call["mailbox"] == "42"
        assert call["tag"] == "vip"
        assert call["size"] == 7


def test_status_request_rejects_empty_and_unknown_statuses():
    with pytest.raises(HelpScoutValidationError):
        StatusSearchRequest(statuses=())
    with pytest.raises(HelpScoutValidationError):
        StatusSearchRequest(statuses=("open",))
