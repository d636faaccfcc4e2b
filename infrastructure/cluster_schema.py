# ============================================================================
# CLAUDE CONTEXT - CLUSTER INDEX SCHEMA DEPLOYER
# ============================================================================
# STATUS: Infrastructure - cluster index DDL
# PURPOSE: Deploy cluster_points / cluster_members / cluster_index tables and the
#          server-side aggregation function
# EXPORTS: ClusterSchemaDeployer, POINTS_TABLE, MEMBERS_TABLE, INDEX_TABLE
# DEPENDENCIES: psycopg, PostGIS
# ============================================================================
"""
Cluster Index Schema Deployment.

Tables (schema from CLUSTER_SCHEMA, default "cluster"):
- cluster_points: staged point coordinates (id -> longitude, latitude). Kept
  apart from the point source table, which lives in CLUSTER_SOURCE_SCHEMA.
- cluster_members: membership buckets, one row per (zoom, quadkey, point_id)
- cluster_index: per-zoom geo index of aggregates with a PostGIS point

Function:
- <schema>.<aggregate_function>(zoom, quadkey): reads one bucket and reduces
  it to (longitude, latitude, size, staged) in a single statement, so the
  read and the reduction see one consistent snapshot.

Usage:
    from infrastructure.cluster_schema import ClusterSchemaDeployer

    deployer = ClusterSchemaDeployer()
    result = deployer.deploy_all()
"""

from typing import Dict, Any, Optional
from datetime import datetime, timezone
from psycopg import sql

from config import AppConfig, get_config
from infrastructure.postgresql import PostgreSQLRepository
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.SCHEMA, "cluster_schema")

POINTS_TABLE = "cluster_points"
MEMBERS_TABLE = "cluster_members"
INDEX_TABLE = "cluster_index"


class ClusterSchemaDeployer:
    """
    Deploy the cluster index schema using psycopg SQL composition.

    Every DDL statement is idempotent (IF NOT EXISTS / OR REPLACE), so
    deploy_all() can be rerun before every build.
    """

    def __init__(self, config: Optional[AppConfig] = None,
                 repo: Optional[PostgreSQLRepository] = None):
        self.config = config or get_config()
        self.schema_name = self.config.database.cluster_schema
        self.aggregate_function = self.config.cluster.aggregate_function
        self.repo = repo or PostgreSQLRepository(config=self.config, verify_schema=False)
        logger.info(f"ClusterSchemaDeployer initialized for schema: {self.schema_name}")

    def _ident(self, name: str) -> sql.Identifier:
        return sql.Identifier(self.schema_name, name)

    def deploy_all(self) -> Dict[str, Any]:
        """
        Deploy complete cluster index schema.

        Executes in order:
        1. Enable PostGIS
        2. Create schema
        3. Create cluster_points staging table
        4. Create cluster_members table
        5. Create cluster_index table + GiST / prefix indexes
        6. Create aggregation function

        Returns:
            Dict with deployment results and any errors
        """
        results = {
            "schema": self.schema_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "steps": [],
            "success": False,
            "errors": []
        }

        steps = [
            ("enable_postgis", self._enable_postgis),
            ("create_schema", self._deploy_schema),
            ("create_cluster_points", self._deploy_points_table),
            ("create_cluster_members", self._deploy_members_table),
            ("create_cluster_index", self._deploy_index_table),
            ("create_aggregate_function", self._deploy_aggregate_function),
        ]

        # Each step runs in its own transaction; a failed step does not undo earlier ones
        for step_name, step_func in steps:
            step = {"name": step_name, "status": "pending"}
            try:
                with self.repo._get_connection() as conn:
                    with conn.cursor() as cur:
                        step_func(cur)
                step["status"] = "success"
                logger.info(f"✅ Step '{step_name}' committed successfully")
            except Exception as e:
                step["status"] = "failed"
                step["error"] = str(e)
                results["errors"].append(f"{step_name}: {e}")
                logger.error(f"❌ Step '{step_name}' failed: {e}")
            finally:
                results["steps"].append(step)

        results["success"] = len(results["errors"]) == 0
        logger.info(f"Cluster schema deployment complete (errors: {len(results['errors'])})")
        return results

    # ========================================================================
    # STEPS
    # ========================================================================

    def _enable_postgis(self, cur) -> None:
        cur.execute(sql.SQL("CREATE EXTENSION IF NOT EXISTS postgis"))

    def _deploy_schema(self, cur) -> None:
        cur.execute(sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(
            sql.Identifier(self.schema_name)
        ))
        cur.execute(sql.SQL("""
            COMMENT ON SCHEMA {} IS
            'Quadkey cluster index: staged points, membership buckets, per-zoom aggregates'
        """).format(sql.Identifier(self.schema_name)))

    def _deploy_points_table(self, cur) -> None:
        """
        Columns:
            id BIGINT PRIMARY KEY - source point id
            longitude, latitude DOUBLE PRECISION
        """
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGINT PRIMARY KEY,
                longitude DOUBLE PRECISION NOT NULL,
                latitude DOUBLE PRECISION NOT NULL
            )
        """).format(table=self._ident(POINTS_TABLE)))

    def _deploy_members_table(self, cur) -> None:
        """
        One row per (zoom, quadkey, point_id). The primary key makes
        INSERT ... ON CONFLICT DO NOTHING an idempotent set-add.
        """
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                zoom SMALLINT NOT NULL,
                quadkey TEXT NOT NULL,
                point_id BIGINT NOT NULL,
                PRIMARY KEY (zoom, quadkey, point_id),
                CONSTRAINT cluster_members_quadkey_check
                    CHECK (char_length(quadkey) = zoom AND quadkey ~ '^[0-3]+$')
            )
        """).format(table=self._ident(MEMBERS_TABLE)))

    def _deploy_index_table(self, cur) -> None:
        """
        Per-zoom geo index. geom is the centroid as a PostGIS point.
        """
        table = self._ident(INDEX_TABLE)
        cur.execute(sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                zoom SMALLINT NOT NULL,
                quadkey TEXT NOT NULL,
                longitude DOUBLE PRECISION NOT NULL,
                latitude DOUBLE PRECISION NOT NULL,
                size INTEGER NOT NULL CHECK (size >= 1),
                geom GEOMETRY(Point, 4326) NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (zoom, quadkey)
            )
        """).format(table=table))

        # Spatial index (GiST) for bbox / radius lookups
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS {name} ON {table} USING GIST(geom)
        """).format(name=sql.Identifier(f"idx_{INDEX_TABLE}_geom"), table=table))

        # Prefix index for branch (descendant) lookups
        cur.execute(sql.SQL("""
            CREATE INDEX IF NOT EXISTS {name} ON {table} (quadkey text_pattern_ops)
        """).format(name=sql.Identifier(f"idx_{INDEX_TABLE}_quadkey_prefix"), table=table))

    def _deploy_aggregate_function(self, cur) -> None:
        """
        Returns exactly one row: size = bucket member count, staged = members
        that have coordinates in cluster_points. size = 0 means an empty bucket.
        """
        cur.execute(sql.SQL("""
            CREATE OR REPLACE FUNCTION {function}(p_zoom INTEGER, p_quadkey TEXT)
            RETURNS TABLE (longitude DOUBLE PRECISION, latitude DOUBLE PRECISION,
                           size BIGINT, staged BIGINT)
            LANGUAGE sql STABLE
            AS $$
                SELECT avg(p.longitude), avg(p.latitude), count(*), count(p.id)
                FROM {members} m
                LEFT JOIN {points} p ON p.id = m.point_id
                WHERE m.zoom = p_zoom AND m.quadkey = p_quadkey
            $$
        """).format(
            function=self._ident(self.aggregate_function),
            members=self._ident(MEMBERS_TABLE),
            points=self._ident(POINTS_TABLE),
        ))

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def get_table_counts(self) -> Dict[str, int]:
        """Row counts per table (-1 when the table does not exist)."""
        counts = {}
        for table in (POINTS_TABLE, MEMBERS_TABLE, INDEX_TABLE):
            if not self.repo._table_exists(table):
                counts[table] = -1
                continue
            row = self.repo._execute_query(
                sql.SQL("SELECT COUNT(*) AS count FROM {}").format(self._ident(table)),
                fetch='one',
            )
            counts[table] = row['count']
        return counts


__all__ = [
    'ClusterSchemaDeployer',
    'POINTS_TABLE',
    'MEMBERS_TABLE',
    'INDEX_TABLE',
]
