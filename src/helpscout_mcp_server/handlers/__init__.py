"""Tool handler registry."""
from helpscout_mcp_server import constraints
from helpscout_mcp_server.handlers import tools

# Registry mapping tool names to handler functions
TOOL_HANDLERS = {
    constraints.SEARCH_INBOXES: tools.handle_search_inboxes,
    constraints.LIST_ALL_INBOXES: tools.handle_list_all_inboxes,
    constraints.SEARCH_CONVERSATIONS: tools.handle_search_conversations,
    constraints.COMPREHENSIVE_SEARCH: tools.handle_comprehensive_search,
    constraints.ADVANCED_SEARCH: tools.handle_advanced_search,
    constraints.STRUCTURED_FILTER: tools.handle_structured_filter,
    constraints.CONVERSATION_SUMMARY: tools.handle_get_conversation_summary,
    constraints.GET_THREADS: tools.handle_get_threads,
    constraints.SERVER_TIME: tools.handle_get_server_time,
}

# Tools answered without touching the Help Scout API
LOCAL_TOOLS = frozenset({constraints.SERVER_TIME})

__all__ = ['TOOL_HANDLERS', 'LOCAL_TOOLS']
