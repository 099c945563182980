"""Entrypoint: python -m src.gmail_mcp"""

import asyncio
import logging
import sys

from contracts import GmailMCPError
from src.gmail_mcp.config import load_config
from src.gmail_mcp.server import create_server

logger = logging.getLogger("gmail-mcp")


def main() -> None:
    try:
        config = load_config()
    except GmailMCPError as e:
        # Startup errors are fatal; the agent restarts the process to retry.
        logger.error("Startup failed: %s: %s", e.__class__.__name__, e)
        sys.exit(1)

    server = create_server(config.rate_limit)
    server.connect(config.credentials)
    logger.info(
        "Gmail MCP server starting (limits: %d/hour, %d/day)",
        config.rate_limit.max_per_hour,
        config.rate_limit.max_per_day,
    )
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
