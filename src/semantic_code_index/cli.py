"""Command-line interface for semantic-code-index."""

import argparse
import signal
import sys
from pathlib import Path

import structlog

from semantic_code_index.app import create_app

log = structlog.get_logger()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the MCP server."""
    parser = argparse.ArgumentParser(prog="semantic-code-index", description="Semantic code index MCP server.")
    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        help="Project roots to index (default: SEMANTIC_CODE_INDEX_WORKSPACE_PATHS or the current directory)",
    )
    args = parser.parse_args(argv)

    signal.signal(signal.SIGINT, lambda *_: sys.exit(0))
    app = create_app(args.paths or None)
    log.info("starting_mcp_server", name=app.name, projects=[str(p) for p in args.paths])
    app.run()
