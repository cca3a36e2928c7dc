"""MCP Server entry point for the Upwork Auto Applier.

Exposes 6 tools via the Model Context Protocol:
- create_session, session_status, session_results
- start_processing, reuse_session, keep_alive

The Session Manager HTTP service (aiohttp on localhost:8024) is auto-started
as part of the MCP server lifecycle, so no separate process is needed.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from aiohttp.web import AppRunner, TCPSite
from mcp.server.fastmcp import FastMCP

from .config import SESSION_MANAGER_HOST, SESSION_MANAGER_PORT
from .tools.session_tools import (
    create_session,
    keep_alive,
    reuse_session,
    session_results,
    session_status,
    start_processing,
)

# Configure logging to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("upwork-applier")


# ── Lifespan: auto-start Session Manager ─────────────────────────────────────


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Start the Session Manager HTTP service alongside the MCP server."""
    from .session_manager.manager import create_app

    app = create_app()
    runner = AppRunner(app)
    await runner.setup()
    site = TCPSite(runner, SESSION_MANAGER_HOST, SESSION_MANAGER_PORT)
    managed = False
    try:
        await site.start()
        logger.info(
            "Session Manager auto-started on %s:%s", SESSION_MANAGER_HOST, SESSION_MANAGER_PORT
        )
        managed = True
    except OSError:
        # Port already in use: Session Manager was started manually
        logger.info(
            "Session Manager already running on %s:%s", SESSION_MANAGER_HOST, SESSION_MANAGER_PORT
        )
        await runner.cleanup()

    try:
        yield {}
    finally:
        if managed:
            await runner.cleanup()
            logger.info("Session Manager stopped.")


# ── MCP Server ───────────────────────────────────────────────────────────────

mcp = FastMCP(
    "upwork-applier",
    lifespan=lifespan,
    instructions=(
        "Upwork Auto Applier - Tools to apply to Upwork jobs in batches. "
        "The Session Manager starts automatically with this server. "
        "Call create_session with the job URLs; the user then logs in to Upwork "
        "(in the launched browser, or their own browser with the extension connected). "
        "Applications start automatically after login. Use session_status and "
        "session_results to follow progress, reuse_session to run another batch "
        "on a keep-alive session, and keep_alive to stop it from being cleaned up."
    ),
)


@mcp.tool()
async def tool_create_session(
    job_urls: list[str],
    keep_alive: bool = False,
    close_after_run: bool = True,
    driver_mode: str = "",
) -> str:
    """Create a job-application session.

    Args:
        job_urls: Upwork job URLs to apply to, in order.
        keep_alive: Keep the session for another batch afterwards.
        close_after_run: Release the browser when the batch has settled.
        driver_mode: "embedded" (server-side browser) or "extension"; empty=default.
    """
    return await create_session(job_urls, keep_alive, close_after_run, driver_mode)


@mcp.tool()
async def tool_session_status(session_id: str) -> str:
    """Check a session's state, login and extension connectivity."""
    return await session_status(session_id)


@mcp.tool()
async def tool_session_results(session_id: str) -> str:
    """List per-job results with summary counts."""
    return await session_results(session_id)


@mcp.tool()
async def tool_start_processing(session_id: str) -> str:
    """Start (or confirm) job processing for a logged-in or reused session."""
    return await start_processing(session_id)


@mcp.tool()
async def tool_reuse_session(session_id: str, job_urls: list[str]) -> str:
    """Replace a keep-alive session's jobs with a new batch.

    Args:
        session_id: Session created with keep_alive=True.
        job_urls: New Upwork job URLs.
    """
    return await reuse_session(session_id, job_urls)


@mcp.tool()
async def tool_keep_alive(session_id: str) -> str:
    """Refresh a session so the inactivity cleanup does not evict it."""
    return await keep_alive(session_id)


# ── Entry Point ──────────────────────────────────────────────────────────────


def main():
    """Run the MCP server on STDIO transport."""
    logger.info("Starting Upwork Auto Applier MCP server...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
