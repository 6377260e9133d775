"""Status-partitioned conversation search for HelpScoutClient.

Help Scout's /conversations endpoint filters by one status per request, so a
search across several statuses is a fan-out: one request per status, run
concurrently, then merged into a single newest-first list.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from helpscout_mcp_server.config import LOGGER_NAME
from helpscout_mcp_server.models import AggregatedResult, StatusResult, StatusSearchRequest
from helpscout_mcp_server.query import parse_timestamp

logger = logging.getLogger(f"{LOGGER_NAME}.search")

MERGED_PAGINATION_NOTE = (
    "Merged results from multiple status searches; totals are approximate "
    "and no cursor spans the merged list"
)
CLIENT_FILTER_NOTE = (
    "createdBefore filter applied after API fetch - pagination totals may not reflect filtered count"
)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def apply_created_before(conversations: List[Dict[str, Any]], created_before: str | None) -> List[Dict[str, Any]]:
    """Keep conversations created strictly before the bound; the API has no such filter."""
    bound = parse_timestamp(created_before)
    if bound is None:
        return conversations
    kept = []
    for conv in conversations:
        created = parse_timestamp(conv.get('createdAt'))
        if created is not None and created < bound:
            kept.append(conv)
    return kept


def _created_at_key(conv: Dict[str, Any]) -> Tuple[bool, datetime]:
    created = parse_timestamp(conv.get('createdAt'))
    # Missing or malformed timestamps sort after everything else
    return (created is not None, created or _OLDEST)


def sort_newest_first(conversations: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Stable sort by createdAt descending; ties keep their merge order."""
    return sorted(conversations, key=_created_at_key, reverse=True)


def merge_status_results(
    request: StatusSearchRequest,
    outcomes: Sequence[Tuple[str, StatusResult | BaseException]],
) -> AggregatedResult:
    """Merge settled per-status outcomes into one deduplicated, sorted result.

    ``outcomes`` is in request order. Failed statuses are dropped from
    ``statuses_searched``; the first status to return an id keeps it.
    """
    result = AggregatedResult()
    seen: Dict[int, str] = {}
    merged: List[Dict[str, Any]] = []

    for status, outcome in outcomes:
        if isinstance(outcome, BaseException):
            result.failed_statuses[status] = str(outcome) or outcome.__class__.__name__
            logger.warning("Failed to search status %s: %s", status, outcome)
            continue

        result.statuses_searched.append(status)
        result.total_available += outcome.total_count
        if outcome.filtered_out:
            result.client_side_filtered = True

        unique = []
        for conv in outcome.conversations:
            conv_id = conv.get('id')
            if conv_id is None:
                unique.append(conv)
                continue
            if conv_id in seen:
                first_status = seen[conv_id]
                if first_status != status:
                    statuses = result.status_conflicts.setdefault(conv_id, [first_status])
                    if status not in statuses:
                        statuses.append(status)
                continue
            seen[conv_id] = status
            unique.append(conv)
        merged.extend(unique)
        result.by_status.append(
            StatusResult(
                status=status,
                total_count=outcome.total_count,
                conversations=unique,
                filtered_out=outcome.filtered_out,
                page=outcome.page,
                next_cursor=outcome.next_cursor,
            )
        )

    if result.status_conflicts:
        logger.warning(
            "Conversations reported under more than one status (first seen kept): %s",
            result.status_conflicts,
        )

    if len(request.statuses) > 1:
        merged = sort_newest_first(merged)
    if request.global_limit is not None:
        merged = merged[:request.global_limit]
    result.conversations = merged

    notes = []
    if len(request.statuses) > 1:
        if result.failed_statuses:
            notes.append(f"Merged results (failed to search: {', '.join(result.failed_statuses)})")
        else:
            notes.append(MERGED_PAGINATION_NOTE)
    elif result.failed_statuses:
        notes.append(f"Search failed for status: {', '.join(result.failed_statuses)}")
    if result.client_side_filtered:
        notes.append(CLIENT_FILTER_NOTE)
    result.note = "; ".join(notes) if notes else None
    return result


class SearchMixin:
    """Mixin providing status-partitioned conversation search."""

    def _status_params(self, request: StatusSearchRequest, status: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'page': request.page,
            'size': request.limit_per_status,
            'sortField': request.sort_field,
            'sortOrder': request.sort_order,
            'status': status,
        }
        if request.query:
            params['query'] = request.query
        if request.created_after:
            # modifiedSince is the only lower time bound the API accepts
            params['modifiedSince'] = request.created_after
        if request.inbox_id:
            params['mailbox'] = request.inbox_id
        if request.tag:
            params['tag'] = request.tag
        return params

    def search_single_status(self, request: StatusSearchRequest, status: str) -> StatusResult:
        """Fetch one page of conversations for a single status.

        Errors propagate to the caller; the aggregator decides how to treat them.
        """
        page = self.list_conversations(self._status_params(request, status))
        fetched = page['conversations']
        conversations = apply_created_before(fetched, request.created_before)
        filtered_out = len(fetched) - len(conversations)
        if filtered_out:
            logger.warning(
                "Client-side createdBefore filtering removed %d of %d conversations for status %s",
                filtered_out, len(fetched), status,
            )

        total = (page.get('page') or {}).get('totalElements')
        return StatusResult(
            status=status,
            total_count=total if isinstance(total, int) else len(fetched),
            conversations=conversations,
            filtered_out=filtered_out,
            page=page.get('page'),
            next_cursor=page.get('next'),
        )

    async def search_across_statuses(self, request: StatusSearchRequest) -> AggregatedResult:
        """Search every requested status and merge the results.

        A single status is one request. Several statuses are fetched
        concurrently and all branches are awaited; a failing status is
        reported, not raised. An error from a single-status search does
        propagate.
        """
        statuses = list(request.statuses)
        if len(statuses) == 1:
            outcome = await asyncio.to_thread(self.search_single_status, request, statuses[0])
            return merge_status_results(request, [(statuses[0], outcome)])

        settled = await asyncio.gather(
            *(asyncio.to_thread(self.search_single_status, request, status) for status in statuses),
            return_exceptions=True,
        )
        result = merge_status_results(request, list(zip(statuses, settled)))
        logger.info(
            "Multi-status search completed: searched=%s failed=%s results=%d",
            result.statuses_searched, list(result.failed_statuses), len(result.conversations),
        )
        return result
