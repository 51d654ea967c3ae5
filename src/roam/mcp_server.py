"""FastMCP server exposing autonomous web exploration.

One tool, ``explore``: opens a session at the given URL, steps it until it
finishes or the step budget is spent, reports progress after every step and
returns the run summary.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from fastmcp import Context, FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config.settings import settings
from .core.explore.runner import Explorer

logger = logging.getLogger(__name__)

mcp = FastMCP(name="roam-explorer")

_explorer: Explorer | None = None


def get_explorer() -> Explorer:
    global _explorer
    if _explorer is None:
        from .adapters.playwright import PlaywrightDriver
        from .core.explore.policy import ExplorationPolicy

        _explorer = Explorer(PlaywrightDriver(settings), policy=ExplorationPolicy.from_env())
    return _explorer


def set_explorer(explorer: Explorer | None) -> None:
    global _explorer
    _explorer = explorer


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001
    """Health check endpoint for Kubernetes probes."""
    return JSONResponse({"status": "healthy", "service": "roam-mcp"})


async def run_exploration(url: str, max_steps: int, ctx: Context | None = None) -> dict[str, Any]:
    explorer = get_explorer()
    session_id = await asyncio.to_thread(explorer.start, url)
    records: list[dict[str, Any]] = []
    try:
        for _ in range(max_steps):
            record = await asyncio.to_thread(explorer.step, session_id)
            records.append(record.to_dict())
            if ctx is not None:
                await ctx.report_progress(
                    progress=record.step_number,
                    total=max_steps,
                    message=f"{record.action} -> {record.resulting_url}",
                )
            if explorer.stats(session_id).status in ("completed", "stopped", "error"):
                break
    finally:
        final = await asyncio.to_thread(explorer.end, session_id)

    return {
        "session_id": session_id,
        "records": records,
        "steps_completed": len(records),
        "successful_steps": sum(1 for r in records if r["success"]),
        # end() marks an unfinished session stopped/"ended"
        "status": final.status,
        "finish_reason": final.finish_reason,
        "visited_pages": final.visited_pages,
    }


@mcp.tool
async def explore(url: str, ctx: Context, max_steps: int = 20) -> dict[str, Any]:
    """Autonomously explore a website by clicking, typing and scrolling.

    Interactive elements are prioritized by a fixed heuristic; every element
    is acted on at most once per page. Exploration ends when the budget is
    spent or the site offers nothing new.

    Args:
        url: The absolute http(s) URL to start from
        ctx: FastMCP context for progress reporting (automatically provided)
        max_steps: Maximum number of steps (default 20)

    Returns:
        dict with the session id, per-step records, counts and final status
    """
    logger.info(f"MCP exploration of {url} (max_steps={max_steps})")
    return await run_exploration(url, max_steps, ctx)


def main() -> None:
    """Run the MCP server with streamable-http transport."""
    from .telemetry import init_telemetry

    logging.basicConfig(level=settings.log_level)
    init_telemetry()
    port = int(os.getenv("MCP_PORT", "8085"))
    host = os.getenv("MCP_HOST", "0.0.0.0")  # nosec B104 - Docker container binding

    logger.info(f"Starting MCP server on {host}:{port}/mcp")
    mcp.run(transport="streamable-http", host=host, port=port, path="/mcp")


if __name__ == "__main__":
    main()
