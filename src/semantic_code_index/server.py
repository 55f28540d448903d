"""FastMCP server and tool definitions."""

import asyncio

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from semantic_code_index.container import get_container
from semantic_code_index.errors import IndexerBusyError
from semantic_code_index.models import (
    ErrorResponse,
    FormattedChunk,
    IndexStatusResponse,
    IndexWorkspaceResponse,
    SearchResponse,
    WatchResponse,
)

mcp = FastMCP("semantic-code-index")

UNAVAILABLE = "Indexing unavailable: embedding provider or vector store could not be initialized"


def _watch_response() -> dict:
    incremental = get_container().incremental_indexer
    if incremental is None:
        return WatchResponse(watching=False, pending_updates=0, pending_deletes=0).model_dump()
    return WatchResponse(
        watching=incremental.is_active,
        pending_updates=incremental.pending_update_count,
        pending_deletes=incremental.pending_delete_count,
    ).model_dump()


@mcp.tool()
async def index_workspace(ctx: Context[ServerSession, None]) -> dict:
    """Index every file of the workspace projects for semantic search.

    Scans the projects, splits files into functions, classes, methods and
    document sections, embeds them and stores them in the index. Existing
    chunks of each file are replaced.

    Returns:
        Counts of files found, indexed, skipped and failed, and chunks stored.
    """
    indexer = get_container().create_batch_indexer()
    if indexer is None:
        return ErrorResponse(error=UNAVAILABLE).model_dump()

    await ctx.info("Indexing workspace")
    try:
        result = await indexer.run(on_progress=ctx.report_progress)
    except IndexerBusyError as e:
        return ErrorResponse(error=str(e)).model_dump()

    await ctx.info(
        f"Indexed {result.files_indexed} files, {result.chunks_indexed} chunks "
        f"in {result.duration_seconds:.2f}s"
    )
    return IndexWorkspaceResponse.from_result(result).model_dump()


@mcp.tool()
async def index_status() -> dict:
    """Get the index status for the workspace.

    Returns:
        Chunk, file and project counts, last commit time, and watcher state.
    """
    container = get_container()
    indexer = container.create_batch_indexer()
    if indexer is None:
        return ErrorResponse(error=UNAVAILABLE).model_dump()

    stats = await asyncio.to_thread(container.store.stats)
    incremental = container.incremental_indexer
    return IndexStatusResponse.from_stats(
        stats,
        indexing_in_progress=indexer.is_running,
        watching=incremental is not None and incremental.is_active,
        pending_updates=incremental.pending_update_count if incremental else 0,
        pending_deletes=incremental.pending_delete_count if incremental else 0,
    ).model_dump()


@mcp.tool()
async def search_code(query: str, ctx: Context[ServerSession, None], limit: int = 10) -> dict:
    """Search for code semantically similar to the query.

    Finds code by meaning, not just text matching. Results are the nearest
    chunks in the index, nearest first. Run index_workspace first.

    Args:
        query: Natural language description of what you're looking for.
        limit: Maximum number of results to return (default 10).

    Returns:
        Matching chunks with file path, line numbers and content.
    """
    container = get_container()
    if container.create_batch_indexer() is None:
        return ErrorResponse(error=UNAVAILABLE).model_dump()

    await ctx.info(f"Searching for: {query}")
    query_embedding = await asyncio.to_thread(container.embedder.embed_text, query)
    chunks = await asyncio.to_thread(container.store.search, query_embedding, limit)
    return SearchResponse(results=[FormattedChunk.from_domain(c) for c in chunks]).model_dump()


@mcp.tool()
async def start_watching() -> dict:
    """Keep the index in sync with file edits in the workspace.

    Changed files are re-indexed after a short quiet period; deleted files
    are removed from the index.
    """
    incremental = get_container().create_incremental_indexer(watch=True)
    if incremental is None:
        return ErrorResponse(error=UNAVAILABLE).model_dump()
    await incremental.start()
    return _watch_response()


@mcp.tool()
async def stop_watching() -> dict:
    """Stop watching the workspace. Pending changes are dropped."""
    incremental = get_container().incremental_indexer
    if incremental is not None:
        await incremental.stop()
    return _watch_response()


@mcp.tool()
async def flush_pending(include_updates: bool = False) -> dict:
    """Apply pending deletions now instead of after the quiet period.

    Args:
        include_updates: Also re-index files with pending edits now.
    """
    incremental = get_container().incremental_indexer
    if incremental is not None:
        await incremental.flush(include_updates=include_updates)
    return _watch_response()
