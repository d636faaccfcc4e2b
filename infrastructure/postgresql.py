# ============================================================================
# CLAUDE CONTEXT - POSTGRESQL BASE REPOSITORY
# ============================================================================
# STATUS: Infrastructure - PostgreSQL connection handling + safe execution
# PURPOSE: Pooled connections, psycopg.sql-only execution, errors surfaced as
#          StoreIOError
# EXPORTS: PostgreSQLRepository
# DEPENDENCIES: psycopg, psycopg.sql, psycopg_pool, config
# PATTERNS: Repository pattern, Template Method, Connection pooling
# ============================================================================

"""
PostgreSQL Repository Base - Direct Database Access

Architecture:
    PostgreSQLRepository (this module - connection + execution)
        ↓
    PostgreSQLClusterStore (cluster_repository.py)

Key Features:
- psycopg3 with dict_row rows
- SQL composition (sql.Identifier) for every schema/table/function name
- Connections borrowed from a psycopg_pool ConnectionPool
- Every database failure re-raised as StoreIOError (fatal for a run)
"""

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool
from typing import Any, Optional, Sequence, Tuple
from contextlib import contextmanager
import logging

from config import AppConfig, get_config
from exceptions import StoreIOError
from .connection_pool import ConnectionPoolManager

logger = logging.getLogger(__name__)


class PostgreSQLRepository:
    """
    PostgreSQL-specific repository base class with connection management.

    Configuration priority:
        1. Explicit parameters (pool, schema_name)
        2. Provided AppConfig object
        3. Global configuration from get_config()

    Thread Safety:
    -------------
    Every operation borrows its own connection from the pool, so one
    instance can be shared by the driver, consumer and aggregation threads.
    """

    def __init__(self, config: Optional[AppConfig] = None,
                 schema_name: Optional[str] = None,
                 pool: Optional[ConnectionPool] = None,
                 verify_schema: bool = True):
        """
        Parameters:
        ----------
        config : Optional[AppConfig]
            Configuration object. If not provided, uses get_config().
        schema_name : Optional[str]
            Database schema name. Defaults to config.database.cluster_schema.
        pool : Optional[ConnectionPool]
            Explicit pool (tests, embedding). Defaults to the shared
            ConnectionPoolManager pool.
        verify_schema : bool
            Warn at construction time if the schema is missing.
        """
        self.config = config or get_config()
        self.schema_name = schema_name or self.config.database.cluster_schema
        self._pool = pool

        if verify_schema:
            self._ensure_schema_exists()

        logger.info(f"✅ {type(self).__name__} initialized with schema: {self.schema_name}")

    @contextmanager
    def _get_connection(self):
        """
        Borrow a pooled connection.

        The pool commits on clean exit and rolls back when the block raises.
        psycopg errors are re-raised as StoreIOError.
        """
        try:
            if self._pool is not None:
                with self._pool.connection() as conn:
                    yield conn
            else:
                with ConnectionPoolManager.get_connection(self.config.database) as conn:
                    yield conn
        except psycopg.Error as e:
            logger.error(f"❌ PostgreSQL error: {type(e).__name__}: {e}")
            raise StoreIOError(f"PostgreSQL error: {e}") from e

    def _ensure_schema_exists(self) -> bool:
        """
        Check that the target schema exists. Logs a warning when it does not;
        schema creation belongs to ClusterSchemaDeployer.
        """
        row = self._execute_query(
            sql.SQL("SELECT schema_name FROM information_schema.schemata WHERE schema_name = %s"),
            (self.schema_name,),
            fetch='one',
        )
        if not row:
            logger.warning(
                f"⚠️ Schema {self.schema_name} does not exist. "
                f"Deploy it with ClusterSchemaDeployer first."
            )
            return False
        logger.debug(f"✅ Schema {self.schema_name} exists")
        return True

    def _execute_query(self, query: sql.Composable, params: Optional[Tuple] = None,
                       fetch: Optional[str] = None) -> Optional[Any]:
        """
        Execute one statement and commit.

        Parameters:
        ----------
        query : sql.Composable
            Built with psycopg.sql composition (never a plain str).
        params : Optional[Tuple]
            Values for %s placeholders.
        fetch : Optional[str]
            None | 'one' | 'all'

        Returns:
        -------
        Row / rows for fetch operations, affected row count otherwise.

        Raises:
        ------
        TypeError
            If query is not a psycopg.sql object
        StoreIOError
            For any database failure
        """
        if not isinstance(query, sql.Composable):
            raise TypeError(f"❌ SECURITY: Query must be sql.Composable, got {type(query)}")
        if fetch not in (None, 'one', 'all'):
            raise ValueError(f"❌ INVALID FETCH MODE: {fetch}")

        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                if fetch == 'one':
                    return cursor.fetchone()
                if fetch == 'all':
                    return cursor.fetchall()
                return cursor.rowcount

    def _execute_many(self, query: sql.Composable, rows: Sequence[Tuple]) -> int:
        """Execute one statement for many parameter rows in a single transaction."""
        if not isinstance(query, sql.Composable):
            raise TypeError(f"❌ SECURITY: Query must be sql.Composable, got {type(query)}")
        if not rows:
            return 0
        with self._get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.executemany(query, rows)
        return len(rows)

    def _table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the schema."""
        row = self._execute_query(
            sql.SQL(
                "SELECT EXISTS (SELECT 1 FROM information_schema.tables "
                "WHERE table_schema = %s AND table_name = %s) AS present"
            ),
            (self.schema_name, table_name),
            fetch='one',
        )
        return bool(row and row['present'])


__all__ = ['PostgreSQLRepository']
