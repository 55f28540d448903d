"""Logging configuration for semantic-code-index."""

import logging
import sys

import structlog

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Configure structlog for the application.

    Logs always go to stderr: stdout belongs to the MCP stdio transport.

    Args:
        debug: If True, enable debug level and console output.
               If False, use info level and JSON output with structured tracebacks.
    """
    global _configured
    if _configured:
        return

    if debug:
        renderer: structlog.typing.Processor = structlog.dev.ConsoleRenderer()
        exc_processor: structlog.typing.Processor = structlog.processors.StackInfoRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()
        exc_processor = structlog.processors.dict_tracebacks

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            exc_processor,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    _configured = True
