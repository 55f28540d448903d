"""Application factory, the composition root.

Creates and wires settings, logging, container, and the MCP server.
"""

from pathlib import Path

from mcp.server.fastmcp import FastMCP

from semantic_code_index.config import get_settings
from semantic_code_index.container import configure as configure_container
from semantic_code_index.logging import configure_logging


def create_app(project_paths: list[Path] | None = None) -> FastMCP:
    """Create the fully-configured MCP application."""
    settings = get_settings()
    configure_logging(debug=settings.debug)
    configure_container(settings, project_paths)

    # Import tools after bootstrap so they can use get_container()
    from semantic_code_index.server import mcp  # noqa: PLC0415

    return mcp
