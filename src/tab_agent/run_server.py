"""Entry point for running the orchestrator server as a module."""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .core.config import load_config
from .utils.rich_logging import setup_logging
from .web.server import run_server


def main():
    """Main entry point.

    Usage: python -m tab_agent.run_server [port]
    """
    # .env values must be visible before ${VAR} expansion in the config file
    load_dotenv()
    config = load_config(Path(os.environ.get("TAB_AGENT_CONFIG", "tab-agent.yaml")))
    setup_logging(config.server.log_level, config.server.log_file)
    logger = logging.getLogger(__name__)

    try:
        port = int(sys.argv[1]) if len(sys.argv) > 1 else config.server.port
    except ValueError:
        logger.error(f"Invalid port: {sys.argv[1]}")
        sys.exit(1)

    logger.info(f"Starting orchestrator on port {port}")

    try:
        run_server(config, port=port)
    except KeyboardInterrupt:
        logger.info("Orchestrator interrupted, shutting down")
    except Exception as e:
        logger.exception(f"Orchestrator crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
