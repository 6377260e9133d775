"""Conversation and thread methods for HelpScoutClient."""
from typing import Any, Dict

from helpscout_mcp_server.client.base import embedded_items
from helpscout_mcp_server.exceptions import HelpScoutError, HelpScoutAPIError


class ConversationMixin:
    """Mixin providing conversation and thread reads."""

    def list_conversations(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run one GET /conversations and return items, page info and the next link."""
        try:
            data = self._get_json('/conversations', params)
            return {
                'conversations': embedded_items(data, 'conversations'),
                'page': data.get('page'),
                'next': ((data.get('_links') or {}).get('next') or {}).get('href'),
            }
        except Exception as e:
            if isinstance(e, HelpScoutError):
                raise
            raise HelpScoutAPIError(f"Failed to list conversations: {str(e)}")

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        try:
            return self._get_json(f'/conversations/{conversation_id}')
        except Exception as e:
            if isinstance(e, HelpScoutError):
                raise
            raise HelpScoutAPIError(f"Failed to get conversation {conversation_id}: {str(e)}")

    def get_threads(self, conversation_id: str, limit: int = 200, page: int = 1) -> Dict[str, Any]:
        """Fetch one page of threads for a conversation."""
        try:
            data = self._get_json(
                f'/conversations/{conversation_id}/threads',
                {'page': page, 'size': limit},
            )
            return {
                'threads': embedded_items(data, 'threads'),
                'page': data.get('page'),
                'next': ((data.get('_links') or {}).get('next') or {}).get('href'),
            }
        except Exception as e:
            if isinstance(e, HelpScoutError):
                raise
            raise HelpScoutAPIError(f"Failed to get threads for conversation {conversation_id}: {str(e)}")
