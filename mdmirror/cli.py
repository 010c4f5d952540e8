"""Command line entry point.

Modes:
- default: watch the content directory, full build, then serve the output
- ``--no-watch``: full build, then serve without watching
- ``--build-only``: full build, then exit

Usage:
  mdmirror --content ./content --debug
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from mdmirror.builder import BuildOrchestrator
from mdmirror.config import DEFAULT_CONTENT_DIR, SiteConfig
from mdmirror.errors import FatalSetupError
from mdmirror.serve import SiteServer
from mdmirror.watcher import WatchDispatcher

logger = logging.getLogger("mdmirror")

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mdmirror",
        description="Render a markdown content folder to HTML, serve it and rebuild on change.",
    )
    parser.add_argument(
        "--content",
        type=str,
        default=DEFAULT_CONTENT_DIR,
        help=f"Path to the content directory (default: {DEFAULT_CONTENT_DIR})",
    )
    parser.add_argument("--debug", action="store_true", help="Sets log level to debug")
    parser.add_argument("--no-watch", action="store_true", help="Disable the content watcher")
    parser.add_argument("--build-only", action="store_true", help="Build the content and exit")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.debug("Debug logging has been enabled")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)
    config = SiteConfig.from_args(args)
    logger.info("Starting...")

    if not config.source_root.is_dir():
        logger.warning("Content directory %s does not exist", config.source_root)

    orchestrator = BuildOrchestrator(config)
    server: Optional[SiteServer] = None
    dispatcher: Optional[WatchDispatcher] = None
    try:
        if config.watch:
            # subscribe first so saves made during the full build are queued
            dispatcher = WatchDispatcher(config, orchestrator)
            dispatcher.start()

        # the server only starts once the full build has finished
        orchestrator.full_build()
        if not config.serve:
            logger.info("Build only flag is set. Exiting...")
            return 0

        server = SiteServer(config.output_root, config.port)
        if dispatcher is None:
            server.serve_forever()
            return 0

        server.start()
        dispatcher.run()
    except FatalSetupError as exc:
        logger.critical("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped.")
    finally:
        if dispatcher is not None:
            dispatcher.close()
        if server is not None:
            server.shutdown()
    return 0
