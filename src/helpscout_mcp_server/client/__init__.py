"""HelpScoutClient - composed from base and specialized mixins."""
from helpscout_mcp_server.client.base import HelpScoutClientBase
from helpscout_mcp_server.client.inboxes import InboxMixin
from helpscout_mcp_server.client.conversations import ConversationMixin
from helpscout_mcp_server.client.search import SearchMixin


class HelpScoutClient(
    HelpScoutClientBase,
    InboxMixin,
    ConversationMixin,
    SearchMixin,
):
    """
    Main HelpScoutClient class composed from base and specialized mixins.

    All methods are available through multiple inheritance from the mixins.
    """
    pass


__all__ = ['HelpScoutClient']
