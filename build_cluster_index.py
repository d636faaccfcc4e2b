"""
Build the quadkey cluster index.

Reads every non-hidden point from the source, records (zoom, quadkey)
memberships in the backing store and writes one aggregate per cluster into
the per-zoom geo index.

Any fatal failure is reported as exactly one log line naming the phase and
the offending key, and the process exits with status 1. Rerun the whole
batch to recover: membership inserts are idempotent and aggregates are
overwritten.

Usage:
    python build_cluster_index.py --deploy-schema
    python build_cluster_index.py --source sqlite --sqlite-path points.db
    python build_cluster_index.py --aggregate-only --strategy bottom_up
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from config import AppConfig, ClusterConfig, get_config
from core.errors import create_error_response
from exceptions import (
    BusinessLogicError,
    ClusterIndexBuildError,
    ConfigurationError,
    StoreIOError,
    error_code_for,
)
from infrastructure.cluster_repository import PostgreSQLClusterStore
from infrastructure.cluster_schema import ClusterSchemaDeployer
from infrastructure.interface_repository import IClusterStore, IPointSource
from infrastructure.memory_store import InMemoryClusterStore
from infrastructure.point_source import PostgresPointSource, SqlitePointSource
from services.cluster_index_builder import ClusterIndexBuilder
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.CLI, "build_cluster_index")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build the multi-resolution quadkey cluster index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Deploy tables + aggregation function, then build from PostgreSQL
  python build_cluster_index.py --deploy-schema

  # Build from a SQLite file into PostgreSQL
  python build_cluster_index.py --source sqlite --sqlite-path facilities.db

  # Dry run entirely in memory
  python build_cluster_index.py --source sqlite --sqlite-path facilities.db --store memory

  # Recompute aggregates over an already populated store
  python build_cluster_index.py --aggregate-only
        """,
    )
    parser.add_argument(
        "--source", choices=("postgres", "sqlite"), default="postgres",
        help="Point source (default: postgres)",
    )
    parser.add_argument(
        "--sqlite-path", type=str, default=None,
        help="SQLite database file (required with --source sqlite)",
    )
    parser.add_argument(
        "--source-schema", type=str, default=None,
        help="PostgreSQL schema of the point table (default: CLUSTER_SOURCE_SCHEMA or 'public')",
    )
    parser.add_argument(
        "--source-table", type=str, default=None,
        help="Point table name (default: CLUSTER_SOURCE_TABLE or 'points')",
    )
    parser.add_argument(
        "--store", choices=("postgres", "memory"), default="postgres",
        help="Backing store (default: postgres)",
    )
    parser.add_argument(
        "--deploy-schema", action="store_true",
        help="Create schema, tables and aggregation function before building",
    )
    parser.add_argument(
        "--aggregate-only", action="store_true",
        help="Skip assignment; aggregate the keys already recorded in the store",
    )
    parser.add_argument("--min-zoom", type=int, default=None, help="Override CLUSTER_MIN_ZOOM")
    parser.add_argument("--max-zoom", type=int, default=None, help="Override CLUSTER_MAX_ZOOM (exclusive)")
    parser.add_argument("--workers", type=int, default=None, help="Override CLUSTER_WORKER_COUNT")
    parser.add_argument(
        "--strategy", choices=("full", "bottom_up"), default=None,
        help="Override CLUSTER_AGGREGATION_STRATEGY",
    )
    parser.add_argument(
        "--aggregate-workers", type=int, default=None,
        help="Override CLUSTER_AGGREGATE_WORKERS",
    )
    return parser


def resolve_cluster_config(base: ClusterConfig, args: argparse.Namespace) -> ClusterConfig:
    """Apply command line overrides and re-validate."""
    overrides = {
        "min_zoom": args.min_zoom,
        "max_zoom": args.max_zoom,
        "worker_count": args.workers,
        "aggregation_strategy": args.strategy,
        "aggregate_workers": args.aggregate_workers,
        "source_table": args.source_table,
        "source_schema": args.source_schema,
    }
    values = base.model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ClusterConfig(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid cluster options: {e}") from e


def create_store(kind: str, config: AppConfig) -> IClusterStore:
    if kind == "memory":
        return InMemoryClusterStore()
    return PostgreSQLClusterStore(config=config)


def create_source(args: argparse.Namespace, config: AppConfig) -> IPointSource:
    if args.source == "sqlite":
        if not args.sqlite_path:
            raise ConfigurationError("--sqlite-path is required with --source sqlite")
        return SqlitePointSource(args.sqlite_path, table=config.cluster.source_table)
    return PostgresPointSource(config=config)


def report_fatal(message: str, error: Exception, **context) -> int:
    """Log the single fatal line with a structured error response; return exit status 1."""
    response = create_error_response(
        error_code_for(error),
        message,
        error_type=type(error).__name__,
        **context,
    )
    logger.critical(message, extra={"custom_dimensions": response})
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    store = None
    source = None
    try:
        app_config = get_config()
        config = app_config.model_copy(update={
            "cluster": resolve_cluster_config(app_config.cluster, args)
        })

        if args.aggregate_only and args.store == "memory":
            raise ConfigurationError("--aggregate-only needs a persistent store")

        if args.deploy_schema and args.store == "postgres":
            result = ClusterSchemaDeployer(config=config).deploy_all()
            if not result["success"]:
                raise ConfigurationError(f"schema deployment failed: {result['errors']}")

        store = create_store(args.store, config)
        builder = ClusterIndexBuilder(store, config.cluster)

        if args.aggregate_only:
            summary = builder.aggregate()
        else:
            source = create_source(args, config)
            summary = builder.build(source)

        print(summary.model_dump_json(indent=2))
        if args.store == "postgres":
            try:
                counts = ClusterSchemaDeployer(config=config).get_table_counts()
                logger.info(f"📊 Table counts: {counts}")
            except StoreIOError as e:
                logger.warning(f"⚠️ Could not read table counts: {e}")
        return 0

    except ClusterIndexBuildError as e:
        return report_fatal(f"FATAL: {e}", e, phase=e.phase, key=e.key)
    except ConfigurationError as e:
        return report_fatal(f"FATAL: configuration: {e}", e)
    except BusinessLogicError as e:
        return report_fatal(f"FATAL: setup: {type(e).__name__}: {e}", e)
    finally:
        if source is not None:
            source.close()
        if store is not None:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
