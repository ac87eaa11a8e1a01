"""MCP server exposing the incremental graph layout engine."""

import asyncio
import json
import logging

from mcp import Tool
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.types import TextContent

from . import __version__
from .core.coordinator import create_coordinator
from .core.graph_session import GraphSession
from .config.settings import load_settings
from .tools.layout_tools import LayoutTools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class GraphLayoutMCPServer:
    """MCP Server for interactive, cached graph layout."""

    def __init__(self):
        """Initialize the server from environment settings."""
        self.settings = load_settings()
        self.coordinator = create_coordinator(self.settings)
        self.session = GraphSession(self.coordinator)
        self.layout_tools = LayoutTools(self.session)

        # Create MCP server instance
        self.server = Server("graph-layout")

        # Register handlers
        self._register_handlers()

    def _register_handlers(self):
        """Register all MCP handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> list[Tool]:
            """List all available tools."""
            return self.layout_tools.get_tools()

        @self.server.call_tool()
        async def handle_call_tool(name: str, arguments: dict) -> list[TextContent]:
            """Route tool calls to the layout tools."""
            try:
                if name.startswith("layout_"):
                    result = await self.layout_tools.handle_tool(name, arguments)
                else:
                    raise ValueError(f"Unknown tool: {name}")

                return [TextContent(type="text", text=json.dumps(result, indent=2))]

            except Exception as e:
                logger.error(f"Error executing tool {name}: {e}")
                error_result = {
                    "error": str(e),
                    "tool": name,
                    "arguments": arguments
                }
                return [TextContent(type="text", text=json.dumps(error_result, indent=2, default=str))]

    async def run(self):
        """Run the MCP server."""
        from mcp.server.stdio import stdio_server

        logger.info(
            f"Starting graph layout server ({self.coordinator.worker.name} worker, "
            f"{self.settings.worker_count} unit(s), cache {self.settings.memory_cache_size} entries)"
        )
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    InitializationOptions(
                        server_name="graph-layout",
                        server_version=__version__,
                        capabilities=self.server.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={}
                        )
                    )
                )
        finally:
            await self.coordinator.aclose()


def main():
    """Main entry point for the MCP server."""
    server = GraphLayoutMCPServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
