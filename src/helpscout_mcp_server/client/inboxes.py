"""Inbox (mailbox) methods for HelpScoutClient."""
from typing import Any, Dict, List

from helpscout_mcp_server.client.base import embedded_items
from helpscout_mcp_server.exceptions import HelpScoutError, HelpScoutAPIError


def _inbox_summary(inbox: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': inbox.get('id'),
        'name': inbox.get('name'),
        'email': inbox.get('email'),
        'createdAt': inbox.get('createdAt'),
        'updatedAt': inbox.get('updatedAt'),
    }


class InboxMixin:
    """Mixin providing inbox lookups. Help Scout calls inboxes "mailboxes"."""

    def list_inboxes(self, limit: int = 100, page: int = 1) -> Dict[str, Any]:
        """Return one page of inboxes with the upstream pagination block."""
        try:
            data = self._get_json('/mailboxes', {'page': page, 'size': limit})
            inboxes = [_inbox_summary(inbox) for inbox in embedded_items(data, 'mailboxes')]
            return {
                'inboxes': inboxes,
                'pagination': data.get('page'),
            }
        except Exception as e:
            if isinstance(e, HelpScoutError):
                raise
            raise HelpScoutAPIError(f"Failed to list inboxes: {str(e)}")

    def search_inboxes(self, query: str, limit: int = 50) -> Dict[str, Any]:
        """Case-insensitive substring match on inbox names; an empty query matches all."""
        listing = self.list_inboxes(limit=limit)
        inboxes: List[Dict[str, Any]] = listing['inboxes']
        needle = (query or '').strip().lower()
        matches = [inbox for inbox in inboxes if needle in (inbox.get('name') or '').lower()]
        return {
            'results': matches,
            'totalAvailable': len(inboxes),
        }
