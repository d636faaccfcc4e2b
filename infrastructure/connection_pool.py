# ============================================================================
# CONNECTION POOL MANAGER
# ============================================================================
# STATUS: Infrastructure - shared psycopg connection pool
# PURPOSE: One process-wide pool for the consumer, driver and aggregation
#          threads of a cluster index run
# EXPORTS: ConnectionPoolManager
# DEPENDENCIES: psycopg_pool, config.database_config
# ============================================================================
"""
Connection Pool Manager.

A run talks to PostgreSQL from several threads at once (the driver stages
points, the consumer inserts membership batches, aggregation workers call the
server-side reduction), so connections come from one psycopg_pool pool sized
by DatabaseConfig.min_connections / max_connections.

Usage:
    from infrastructure.connection_pool import ConnectionPoolManager

    with ConnectionPoolManager.get_connection(db_config) as conn:
        conn.execute("SELECT 1")

    ConnectionPoolManager.shutdown()
"""

import threading
import logging
from typing import Optional, Dict, Any
from contextlib import contextmanager

from psycopg_pool import ConnectionPool
from psycopg.rows import dict_row

from config.database_config import DatabaseConfig

logger = logging.getLogger(__name__)


# Timeout for draining connections on pool close (seconds)
POOL_CLOSE_TIMEOUT = 30.0


class ConnectionPoolManager:
    """
    Process-wide connection pool shared by every repository instance.
    Creation and shutdown are guarded by _pool_lock.
    """

    _pool: Optional[ConnectionPool] = None
    _pool_lock = threading.Lock()
    _pool_config: Optional[Dict[str, Any]] = None

    @classmethod
    def _configure_connection(cls, conn) -> None:
        """Called by the pool for each new connection."""
        conn.row_factory = dict_row

    @classmethod
    def _create_pool(cls, db_config: DatabaseConfig) -> ConnectionPool:
        cls._pool_config = {
            'min_size': db_config.min_connections,
            'max_size': max(db_config.min_connections, db_config.max_connections),
            'timeout': float(db_config.connection_timeout_seconds),
        }
        logger.info(
            f"Creating connection pool: min={cls._pool_config['min_size']}, "
            f"max={cls._pool_config['max_size']}"
        )
        pool = ConnectionPool(
            conninfo=db_config.connection_string,
            min_size=cls._pool_config['min_size'],
            max_size=cls._pool_config['max_size'],
            timeout=cls._pool_config['timeout'],
            configure=cls._configure_connection,
            open=True,
        )
        logger.info("✅ Connection pool created successfully")
        return pool

    @classmethod
    def get_pool(cls, db_config: DatabaseConfig) -> ConnectionPool:
        """
        Get existing pool or create a new one.

        Thread-safe via double-check locking.
        """
        if cls._pool is None:
            with cls._pool_lock:
                if cls._pool is None:
                    cls._pool = cls._create_pool(db_config)
        return cls._pool

    @classmethod
    @contextmanager
    def get_connection(cls, db_config: DatabaseConfig):
        """
        Borrow a connection; it goes back to the pool when the context exits.
        """
        pool = cls.get_pool(db_config)
        with pool.connection() as conn:
            yield conn

    @classmethod
    def shutdown(cls) -> None:
        """Drain and close the pool."""
        with cls._pool_lock:
            if cls._pool:
                logger.info("Shutting down connection pool...")
                try:
                    cls._pool.close(timeout=POOL_CLOSE_TIMEOUT)
                    logger.info("Connection pool shutdown complete")
                finally:
                    cls._pool = None


__all__ = [
    'ConnectionPoolManager',
]
