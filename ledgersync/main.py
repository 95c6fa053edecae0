"""Main entry point for ledgersync."""

import argparse
import asyncio
import sys

import structlog

from .config import get_settings
from .storage import PostgresRecordStore
from .utils.logging import configure_logging, log_operation

logger = structlog.get_logger()


async def init_db(database_url: str) -> None:
    """Create the sync_records table and indexes."""
    store = PostgresRecordStore(database_url)
    try:
        with log_operation("init_db", logger=logger):
            await store.ensure_schema()
    finally:
        await store.close()


def serve(host: str, port: int, reload: bool = False) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run("ledgersync.api.server:app", host=host, port=port, reload=reload)


def cli(argv: list[str] | None = None):
    """Command-line interface."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Offline sync service with optimistic concurrency"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument(
        "--host",
        default=settings.server_host,
        help=f"Bind address (default: {settings.server_host})"
    )
    serve_parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.server_port,
        help=f"Port (default: {settings.server_port})"
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development)"
    )

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="PostgreSQL URL (default: DATABASE_URL)"
    )

    args = parser.parse_args(argv)
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    if args.command == "serve":
        serve(args.host, args.port, reload=args.reload)
    elif args.command == "init-db":
        if not args.database_url:
            logger.error("No database URL given; set DATABASE_URL or pass --database-url")
            sys.exit(1)
        asyncio.run(init_db(args.database_url))
        logger.info("Database schema ready")


if __name__ == "__main__":
    cli()
