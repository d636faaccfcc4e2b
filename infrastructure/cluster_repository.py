# ============================================================================
# CLAUDE CONTEXT - POSTGRESQL CLUSTER STORE
# ============================================================================
# STATUS: Infrastructure - PostgreSQL/PostGIS backing store
# PURPOSE: Membership buckets, staged coordinates and the per-zoom geo index
# EXPORTS: PostgreSQLClusterStore
# INTERFACES: IClusterStore
# DEPENDENCIES: psycopg, psycopg.sql, PostGIS
# ============================================================================
"""
PostgreSQL Cluster Store.

Tables are created by ClusterSchemaDeployer (cluster_schema.py):

    cluster_points   (id, longitude, latitude)
    cluster_members  (zoom, quadkey, point_id)      PK on all three
    cluster_index    (zoom, quadkey, longitude, latitude, size, geom)

Writes:
    - Membership inserts use ON CONFLICT DO NOTHING (idempotent set-add)
    - Staged points and aggregates are upserts (reruns overwrite)

Aggregation:
    reduce_cluster() calls <schema>.<aggregate_function>(zoom, quadkey),
    which reads and reduces a bucket in one statement. The function name is
    a constructor argument, not a global registry entry.

Usage:
    store = PostgreSQLClusterStore(config=config)
    store.add_members(events)
    aggregate = store.reduce_cluster(10, "3203102211")
"""

from typing import Any, Dict, List, Optional, Sequence, Set

from psycopg import sql
from psycopg_pool import ConnectionPool

from config import AppConfig
from core.models import GeoPoint, GeoRect, MembershipEvent, ClusterAggregate
from exceptions import InvariantViolationError, StoreIOError
from util_logger import LoggerFactory, ComponentType
from .connection_pool import ConnectionPoolManager
from .cluster_schema import POINTS_TABLE, MEMBERS_TABLE, INDEX_TABLE
from .interface_repository import IClusterStore
from .postgresql import PostgreSQLRepository


class PostgreSQLClusterStore(PostgreSQLRepository, IClusterStore):
    """
    IClusterStore backed by PostgreSQL/PostGIS.

    Safe to share between threads: every call borrows its own pooled
    connection.
    """

    def __init__(self, config: Optional[AppConfig] = None,
                 schema_name: Optional[str] = None,
                 pool: Optional[ConnectionPool] = None,
                 aggregate_function: Optional[str] = None,
                 verify_schema: bool = True):
        super().__init__(config=config, schema_name=schema_name, pool=pool,
                         verify_schema=verify_schema)
        self.aggregate_function = aggregate_function or self.config.cluster.aggregate_function
        self.logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "PostgreSQLClusterStore")

    def _table(self, name: str) -> sql.Identifier:
        return sql.Identifier(self.schema_name, name)

    @staticmethod
    def _row_to_aggregate(row: Dict[str, Any]) -> ClusterAggregate:
        return ClusterAggregate(
            zoom=row['zoom'],
            quadkey=row['quadkey'],
            longitude=row['longitude'],
            latitude=row['latitude'],
            size=row['size'],
        )

    # ========================================================================
    # STAGING + MEMBERSHIP
    # ========================================================================

    def stage_points(self, points: Sequence[GeoPoint]) -> int:
        query = sql.SQL("""
            INSERT INTO {table} (id, longitude, latitude)
            VALUES (%s, %s, %s)
            ON CONFLICT (id) DO UPDATE
            SET longitude = EXCLUDED.longitude, latitude = EXCLUDED.latitude
        """).format(table=self._table(POINTS_TABLE))
        rows = [(p.id, p.longitude, p.latitude) for p in points]
        try:
            return self._execute_many(query, rows)
        except StoreIOError as e:
            first = rows[0][0] if rows else None
            raise StoreIOError(str(e), operation="stage_points", key=str(first)) from e

    def add_member(self, zoom: int, quadkey: str, point_id: int) -> None:
        self.add_members([MembershipEvent(zoom=zoom, quadkey=quadkey, point_id=point_id)])

    def add_members(self, events: Sequence[MembershipEvent]) -> int:
        query = sql.SQL("""
            INSERT INTO {table} (zoom, quadkey, point_id)
            VALUES (%s, %s, %s)
            ON CONFLICT DO NOTHING
        """).format(table=self._table(MEMBERS_TABLE))
        rows = [(e.zoom, e.quadkey, e.point_id) for e in events]
        try:
            return self._execute_many(query, rows)
        except StoreIOError as e:
            first = rows[0][1] if rows else None
            raise StoreIOError(str(e), operation="add_members", key=first) from e

    def observed_keys(self) -> Set[str]:
        rows = self._execute_query(
            sql.SQL("SELECT DISTINCT quadkey FROM {table}").format(
                table=self._table(MEMBERS_TABLE)
            ),
            fetch='all',
        )
        return {row['quadkey'] for row in rows}

    def get_members(self, zoom: int, quadkey: str) -> Set[int]:
        rows = self._execute_query(
            sql.SQL("""
                SELECT point_id FROM {table}
                WHERE zoom = %s AND quadkey = %s
            """).format(table=self._table(MEMBERS_TABLE)),
            (zoom, quadkey),
            fetch='all',
        )
        return {row['point_id'] for row in rows}

    # ========================================================================
    # AGGREGATION
    # ========================================================================

    def reduce_cluster(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        """
        Atomic read-reduce via the server-side function.

        Raises:
            InvariantViolationError: a member has no staged coordinates
            StoreIOError: database failure
        """
        try:
            row = self._execute_query(
                sql.SQL("SELECT longitude, latitude, size, staged FROM {function}(%s, %s)").format(
                    function=self._table(self.aggregate_function)
                ),
                (zoom, quadkey),
                fetch='one',
            )
        except StoreIOError as e:
            raise StoreIOError(str(e), operation="reduce_cluster", key=quadkey) from e

        if not row or not row['size']:
            return None
        if row['staged'] != row['size']:
            raise InvariantViolationError(
                f"{row['size'] - row['staged']} member(s) of {quadkey} have no staged coordinates",
                zoom=zoom,
                quadkey=quadkey,
            )
        return ClusterAggregate(
            zoom=zoom,
            quadkey=quadkey,
            longitude=row['longitude'],
            latitude=row['latitude'],
            size=row['size'],
        )

    def write_aggregate(self, aggregate: ClusterAggregate) -> None:
        query = sql.SQL("""
            INSERT INTO {table} (zoom, quadkey, longitude, latitude, size, geom, updated_at)
            VALUES (%s, %s, %s, %s, %s, ST_SetSRID(ST_MakePoint(%s, %s), 4326), NOW())
            ON CONFLICT (zoom, quadkey) DO UPDATE SET
                longitude = EXCLUDED.longitude,
                latitude = EXCLUDED.latitude,
                size = EXCLUDED.size,
                geom = EXCLUDED.geom,
                updated_at = EXCLUDED.updated_at
        """).format(table=self._table(INDEX_TABLE))
        try:
            self._execute_query(query, (
                aggregate.zoom, aggregate.quadkey,
                aggregate.longitude, aggregate.latitude, aggregate.size,
                aggregate.longitude, aggregate.latitude,
            ))
        except StoreIOError as e:
            raise StoreIOError(str(e), operation="write_aggregate", key=aggregate.quadkey) from e

    # ========================================================================
    # GEO INDEX QUERIES
    # ========================================================================

    def get_aggregate(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        row = self._execute_query(
            sql.SQL("""
                SELECT zoom, quadkey, longitude, latitude, size FROM {table}
                WHERE zoom = %s AND quadkey = %s
            """).format(table=self._table(INDEX_TABLE)),
            (zoom, quadkey),
            fetch='one',
        )
        return self._row_to_aggregate(row) if row else None

    def find_descendants(self, quadkey: str) -> List[ClusterAggregate]:
        # quadkey is validated to [0-3]+ upstream, so it needs no LIKE escaping
        rows = self._execute_query(
            sql.SQL("""
                SELECT zoom, quadkey, longitude, latitude, size FROM {table}
                WHERE quadkey LIKE %s AND zoom > %s
                ORDER BY zoom, quadkey
            """).format(table=self._table(INDEX_TABLE)),
            (quadkey + "%", len(quadkey)),
            fetch='all',
        )
        return [self._row_to_aggregate(row) for row in rows]

    def find_in_bounds(self, zoom: int, bounds: GeoRect) -> List[ClusterAggregate]:
        rows = self._execute_query(
            sql.SQL("""
                SELECT zoom, quadkey, longitude, latitude, size FROM {table}
                WHERE zoom = %s
                  AND ST_Intersects(geom, ST_MakeEnvelope(%s, %s, %s, %s, 4326))
                ORDER BY quadkey
            """).format(table=self._table(INDEX_TABLE)),
            (zoom, *bounds.as_bbox()),
            fetch='all',
        )
        return [self._row_to_aggregate(row) for row in rows]

    def find_within_radius(self, zoom: int, longitude: float, latitude: float,
                           radius_m: float) -> List[ClusterAggregate]:
        rows = self._execute_query(
            sql.SQL("""
                WITH center AS (
                    SELECT ST_SetSRID(ST_MakePoint(%s, %s), 4326)::geography AS g
                )
                SELECT zoom, quadkey, longitude, latitude, size FROM {table}, center
                WHERE zoom = %s AND ST_DWithin(geom::geography, center.g, %s)
                ORDER BY ST_Distance(geom::geography, center.g), quadkey
            """).format(table=self._table(INDEX_TABLE)),
            (longitude, latitude, zoom, radius_m),
            fetch='all',
        )
        return [self._row_to_aggregate(row) for row in rows]

    def close(self) -> None:
        # An explicitly passed pool belongs to the caller
        if self._pool is None:
            ConnectionPoolManager.shutdown()


__all__ = ['PostgreSQLClusterStore']
