# ============================================================================
# POINT SOURCES
# ============================================================================
# STATUS: Infrastructure - upstream point readers
# PURPOSE: Stream every non-hidden (id, longitude, latitude) row exactly once
# EXPORTS: PostgresPointSource, SqlitePointSource, IterablePointSource
# INTERFACES: IPointSource
# DEPENDENCIES: psycopg, sqlite3
# ============================================================================
"""
Point Sources.

All sources read rows shaped (id, longitude, latitude) and skip rows whose
`hidden` flag is set.

- PostgresPointSource: server-side cursor over a PostgreSQL table
- SqlitePointSource: a SQLite file. The connection allows a single sequential
  access path, so every access goes through one exclusive lock.
- IterablePointSource: in-memory points (tests, programmatic use)
"""

import sqlite3
import threading
from typing import Iterable, Iterator, List, Optional

from psycopg import sql

from config import AppConfig, get_config
from core.models import GeoPoint
from exceptions import PointSourceError
from util_logger import LoggerFactory, ComponentType
from .interface_repository import IPointSource
from .postgresql import PostgreSQLRepository


class IterablePointSource(IPointSource):
    """Points held in memory."""

    def __init__(self, points: Iterable[GeoPoint]):
        self._points: List[GeoPoint] = list(points)

    def count(self) -> int:
        return len(self._points)

    def iter_points(self) -> Iterator[GeoPoint]:
        return iter(self._points)


class SqlitePointSource(IPointSource):
    """
    Reads `SELECT id, longitude, latitude FROM <table> WHERE hidden = 0`.

    Parameters:
    ----------
    path: SQLite database file
    table: Source table name
    fetch_size: Rows fetched per lock acquisition
    """

    def __init__(self, path: str, table: str = "points", fetch_size: int = 1000):
        self.path = path
        self.table = table
        self.fetch_size = fetch_size
        self.logger = LoggerFactory.create_logger(ComponentType.SOURCE, "SqlitePointSource")
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
        except sqlite3.Error as e:
            raise PointSourceError(f"cannot open SQLite source {path}: {e}") from e
        self.logger.info(f"📂 Opened SQLite point source {path} (table={table})")

    def _quoted_table(self) -> str:
        return '"' + self.table.replace('"', '""') + '"'

    def count(self) -> int:
        query = f"SELECT COUNT(*) FROM {self._quoted_table()} WHERE hidden = 0"
        with self._lock:
            try:
                return self._conn.execute(query).fetchone()[0]
            except sqlite3.Error as e:
                raise PointSourceError(f"count failed on {self.table}: {e}") from e

    def iter_points(self) -> Iterator[GeoPoint]:
        query = f"SELECT id, longitude, latitude FROM {self._quoted_table()} WHERE hidden = 0 ORDER BY id"
        with self._lock:
            try:
                cursor = self._conn.execute(query)
            except sqlite3.Error as e:
                raise PointSourceError(f"query failed on {self.table}: {e}") from e
        try:
            while True:
                with self._lock:
                    try:
                        rows = cursor.fetchmany(self.fetch_size)
                    except sqlite3.Error as e:
                        raise PointSourceError(f"read failed on {self.table}: {e}") from e
                if not rows:
                    break
                for point_id, longitude, latitude in rows:
                    yield GeoPoint(id=int(point_id), longitude=float(longitude), latitude=float(latitude))
        finally:
            with self._lock:
                cursor.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class PostgresPointSource(PostgreSQLRepository, IPointSource):
    """
    Reads non-hidden points from a PostgreSQL table with a named
    (server-side) cursor, so large tables are streamed, not loaded.

    The table is addressed by cluster.source_schema / cluster.source_table,
    not by the cluster schema the store writes to.

    Parameters:
    ----------
    schema_name: Source schema (default: CLUSTER_SOURCE_SCHEMA)
    table: Source table (default: CLUSTER_SOURCE_TABLE)
    fetch_size: Rows per server-side cursor round trip
    """

    def __init__(self, config: Optional[AppConfig] = None,
                 schema_name: Optional[str] = None,
                 table: Optional[str] = None,
                 fetch_size: int = 5000,
                 pool=None):
        config = config or get_config()
        super().__init__(config=config,
                         schema_name=schema_name or config.cluster.source_schema,
                         pool=pool, verify_schema=False)
        self.table = table or self.config.cluster.source_table
        self.fetch_size = fetch_size
        self.logger = LoggerFactory.create_logger(ComponentType.SOURCE, "PostgresPointSource")

    def _source(self) -> sql.Identifier:
        return sql.Identifier(self.schema_name, self.table)

    def count(self) -> int:
        row = self._execute_query(
            sql.SQL("SELECT COUNT(*) AS count FROM {} WHERE NOT hidden").format(self._source()),
            fetch='one',
        )
        return row['count']

    def iter_points(self) -> Iterator[GeoPoint]:
        query = sql.SQL(
            "SELECT id, longitude, latitude FROM {} WHERE NOT hidden ORDER BY id"
        ).format(self._source())
        with self._get_connection() as conn:
            with conn.cursor(name="cluster_point_source") as cursor:
                cursor.itersize = self.fetch_size
                cursor.execute(query)
                for row in cursor:
                    yield GeoPoint(
                        id=int(row['id']),
                        longitude=float(row['longitude']),
                        latitude=float(row['latitude']),
                    )


__all__ = [
    'PointSourceError',
    'IterablePointSource',
    'SqlitePointSource',
    'PostgresPointSource',
]
