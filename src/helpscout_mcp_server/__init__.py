"""Help Scout MCP server."""
import asyncio


def main():
    """Console entry point: run the stdio MCP server."""
    from helpscout_mcp_server import server

    asyncio.run(server.main())


__all__ = ['main']
