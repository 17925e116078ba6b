"""Main entry point for the CloudTrack notification agent."""

import argparse
import json
import logging
import os
import sys

from .config import load_config
from .db import get_meta, init_db
from .expiry import date_key, today_in
from .scheduler import should_run_now
from .sweep import LAST_SWEEP_KEY, run_sweep

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def run_once(args=None) -> None:
    """Run one notification sweep."""
    try:
        logger.info("Loading configuration...")
        config = load_config()

        logger.info(f"Initializing database at {config.db_path}...")
        conn = init_db(config.db_path)

        today = today_in(config.sweep.timezone)

        # Scheduled invocations (cron every N minutes) run at most once per day.
        if args and args.if_due:
            last_sweep = get_meta(conn, LAST_SWEEP_KEY)
            if not should_run_now(last_sweep, today):
                logger.info(f"Sweep already ran for {date_key(today)} (last_sweep={last_sweep}); exiting.")
                conn.close()
                return

        report = run_sweep(conn, config, today=today)
        conn.close()

        print(json.dumps({"success": True, **report.to_dict()}, indent=2, ensure_ascii=False))
        logger.info("Run completed successfully.")

    except Exception as e:
        logger.error(f"Fatal error in run_once: {e}", exc_info=True)
        sys.exit(1)


def serve(args) -> None:
    """Start the HTTP API."""
    import uvicorn

    from .server import create_app

    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if not config.server.api_secret:
        logger.warning("API_SECRET is not set; the HTTP API accepts unauthenticated requests.")

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_level=log_level.lower())


def main():
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Asset expiry tracker that sends Telegram, email and webhook reminders"
    )
    subparsers = parser.add_subparsers(dest="command")

    sweep_parser = subparsers.add_parser("sweep", help="Run one notification sweep (default)")
    sweep_parser.add_argument(
        "--if-due",
        action="store_true",
        help="Skip the sweep if one already completed today (for frequent cron schedules)"
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address (default: HOST env var)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT env var)")

    args = parser.parse_args()

    if args.command == "serve":
        serve(args)
    else:
        if args.command is None:
            args.if_due = False
        run_once(args)


if __name__ == "__main__":
    main()
