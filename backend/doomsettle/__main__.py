"""Doomsettle CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from doomsettle import __version__
from doomsettle.config import get_settings
from doomsettle.observability import configure_logging

logger = logging.getLogger(__name__)


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create all tables in the configured database."""
    from doomsettle.database.session import Database

    settings = get_settings()

    async def _create():
        database = Database(settings.database)
        try:
            await database.create_all()
        finally:
            await database.dispose()

    asyncio.run(_create())
    logger.info("Database tables created")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "doomsettle.main:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    """Run one dispute window scan and enqueue ready resolutions."""
    from doomsettle.runtime import build_runtime

    runtime = build_runtime(get_settings(), pooled=False)

    async def _scan():
        try:
            async with runtime.database.session() as db:
                return await runtime.settlement.scan_ready_events(db)
        finally:
            await runtime.close()

    job_ids = asyncio.run(_scan())
    logger.info(f"Enqueued {len(job_ids)} resolution jobs")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="doomsettle",
        description="DOOM/LIFE prediction settlement engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=cmd_serve)

    scan_parser = subparsers.add_parser("scan", help="Enqueue resolution for finished dispute windows")
    scan_parser.set_defaults(func=cmd_scan)

    args = parser.parse_args()

    try:
        configure_logging(get_settings().log_level)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
