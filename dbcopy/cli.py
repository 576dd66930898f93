#!/usr/bin/env python3
"""
Database Copy Utility
Copies whole collections from a source MongoDB database to a target database
"""
import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .config.manager import ConfigManager, CopyConfig, DatabaseSettings
from .core.database import DatabaseConfig, MongoDatabaseClient, connect_with_retry
from .exceptions import ConnectionFailure, NothingToTransfer, TransferError
from .migrations.engine import create_transfer_engine
from .monitoring.console import ConsoleProgressRenderer
from .monitoring.progress import logging_sink

logger = logging.getLogger(__name__)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='dbcopy', description='Database Copy Utility')
    parser.add_argument('--source', '-s', help='Source database connection string')
    parser.add_argument('--target', '-t', help='Target database connection string')
    parser.add_argument('--source-db', help='Source database name (default: from the connection string)')
    parser.add_argument('--target-db', help='Target database name (default: from the connection string)')
    parser.add_argument('--collections', '-c',
                        help='Comma-separated collections to copy (default: all collections)')
    parser.add_argument('--config', help='Configuration file (.env, .json, .yaml)')
    parser.add_argument('--max-page-size', type=int, help='Upper bound on documents per page')
    parser.add_argument('--memory-limit-mb', type=int, help='Memory budget for this process in MB')
    parser.add_argument('--no-progress', action='store_true', help='Log progress instead of drawing bars')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    return parser

def overrides_from_args(args: argparse.Namespace) -> dict:
    """Command line values that take precedence over files and environment"""
    return {
        "log_level": args.log_level,
        "collections": args.collections,
        "source_database": {
            "connection_string": args.source,
            "database_name": args.source_db,
        },
        "target_database": {
            "connection_string": args.target,
            "database_name": args.target_db,
        },
        "transfer": {
            "max_page_size": args.max_page_size,
            "memory_limit_mb": args.memory_limit_mb,
        },
        "monitoring": {
            "progress_bars": False if args.no_progress else None,
        },
    }

def configure_logging(config: CopyConfig):
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.monitoring.log_file:
        handlers.append(logging.FileHandler(config.monitoring.log_file))
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

def database_config(settings: DatabaseSettings) -> DatabaseConfig:
    return DatabaseConfig(
        connection_string=settings.connection_string,
        database_name=settings.database_name,
        max_pool_size=settings.max_pool_size,
        min_pool_size=settings.min_pool_size,
        max_idle_time_ms=settings.max_idle_time_ms,
        socket_timeout_ms=settings.socket_timeout_ms,
        connect_timeout_ms=settings.connect_timeout_ms,
        server_selection_timeout_ms=settings.server_selection_timeout_ms
    )

def select_collections(available: List[str], requested: List[str]) -> List[str]:
    """Requested collections in the order given, or every available one

    Raises ValueError naming any requested collection the source lacks.
    """
    if not requested:
        return list(available)
    missing = [name for name in requested if name not in available]
    if missing:
        raise ValueError(f"Collections not found in source: {', '.join(missing)}")
    return list(dict.fromkeys(requested))

def confirm(collections: List[str]) -> bool:
    answer = input(f"Copy these collections (target contents will be replaced): {', '.join(collections)}? [y/N] ")
    return answer.strip().lower() in ("y", "yes")

async def main(argv: Optional[List[str]] = None) -> int:
    """Main function for a copy run"""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager("DBCOPY").load_config(args.config, overrides_from_args(args))
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    configure_logging(config)

    source = MongoDatabaseClient(database_config(config.source_database), label="source database")
    target = MongoDatabaseClient(database_config(config.target_database), label="target database")
    renderer = ConsoleProgressRenderer()

    try:
        retries = config.transfer.connect_retries
        backoff = config.transfer.backoff_base_seconds
        await connect_with_retry(source, retries, backoff)
        await connect_with_retry(target, retries, backoff)

        collections = select_collections(await source.list_collection_names(), config.collections)
        if not collections:
            raise NothingToTransfer("Source database has no collections")

        logger.info(f"Collections to copy: {', '.join(collections)}")
        if not args.yes and not confirm(collections):
            logger.info("Aborted. Not copying data.")
            return 1

        sinks = [renderer] if config.monitoring.progress_bars else [logging_sink]
        engine = create_transfer_engine(config, sinks)

        def handle_interrupt(signum, frame):
            engine.cancel("Interrupted by user")

        signal.signal(signal.SIGINT, handle_interrupt)
        signal.signal(signal.SIGTERM, handle_interrupt)

        jobs = await engine.build_jobs(
            (source.collection(name), target.collection(name)) for name in collections
        )
        summary = await engine.run(jobs)

        renderer.print_summary_report(summary)
        if engine.is_cancelled:
            return 130
        return 0 if summary.all_succeeded else 1

    except ConnectionFailure as e:
        logger.error(f"❌ Database connection failed: {e}")
        return 1
    except NothingToTransfer as e:
        logger.error(f"❌ Nothing copied: {e}")
        return 1
    except (TransferError, ValueError) as e:
        logger.error(f"❌ Copy failed before any collection started: {e}")
        return 1
    finally:
        renderer.close_all()
        signal.signal(signal.SIGINT, signal.default_int_handler)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)
        await source.disconnect()
        await target.disconnect()

def run():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)

if __name__ == "__main__":
    run()
