"""MCP Server — activity validation and turn-by-turn playback tools.

Registers two tool groups on a FastMCP server:
- list_activities / validate_activity / save_activity  (activity authoring)
- open_play_session ... close_play_session             (playback)
"""

from __future__ import annotations

import argparse
import logging

from mcp.server.fastmcp import FastMCP

from qzvert_play.grading import default_grader
from qzvert_play.sessions import SessionRegistry
from qzvert_play.storage import ActivityStore, ResultsLog
from qzvert_play.tools import activities, play

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_server(
    store: ActivityStore | None = None,
    results: ResultsLog | None = None,
) -> FastMCP:
    """Create a server with every tool registered."""
    mcp = FastMCP("qzvert-play")
    store = store or ActivityStore()
    results = results or ResultsLog()
    registry = SessionRegistry(store, results)
    activities.register(mcp, store)
    play.register(mcp, registry, default_grader())
    return mcp


def main():
    """Run the MCP server."""
    parser = argparse.ArgumentParser(
        description="QzVert Play MCP Server",
    )
    parser.add_argument(
        "--sse",
        type=int,
        metavar="PORT",
        help="Run with SSE transport on specified port",
    )
    parser.add_argument(
        "--http",
        type=int,
        metavar="PORT",
        help="Run with Streamable HTTP transport on specified port",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Determine transport
    if args.sse:
        transport = "sse"
        port = args.sse
    elif args.http:
        transport = "http"
        port = args.http
    else:
        transport = "stdio"
        port = None

    logger.info("Starting QzVert Play MCP server (transport: %s)...", transport)
    server = build_server()

    if transport == "stdio":
        server.run(transport="stdio")
    elif transport == "sse":
        server.settings.host = "0.0.0.0"
        server.settings.port = port
        server.run(transport="sse")
    elif transport == "http":
        server.settings.host = "0.0.0.0"
        server.settings.port = port
        server.run(transport="streamable-http")


if __name__ == "__main__":
    main()
