"""
Infrastructure Package - Lazy Loading Implementation.

Backing stores, point sources and schema deployment, loaded lazily so that
importing the package never reads the environment or opens a connection
pool. The actual import happens only when a class is first accessed.

Exports:
    IClusterStore, IPointSource: Interfaces
    InMemoryClusterStore: Process-local store
    PostgreSQLClusterStore: PostgreSQL/PostGIS store
    PostgreSQLRepository: PostgreSQL base repository
    ConnectionPoolManager: Shared psycopg_pool pool
    ClusterSchemaDeployer: DDL deployment
    IterablePointSource, SqlitePointSource, PostgresPointSource: Point readers
"""

from typing import TYPE_CHECKING

# For type checking only - doesn't actually import at runtime
if TYPE_CHECKING:
    from .interface_repository import IClusterStore as _IClusterStore
    from .memory_store import InMemoryClusterStore as _InMemoryClusterStore
    from .cluster_repository import PostgreSQLClusterStore as _PostgreSQLClusterStore

_LAZY_IMPORTS = {
    'IClusterStore': '.interface_repository',
    'IPointSource': '.interface_repository',
    'InMemoryClusterStore': '.memory_store',
    'PostgreSQLClusterStore': '.cluster_repository',
    'PostgreSQLRepository': '.postgresql',
    'ConnectionPoolManager': '.connection_pool',
    'ClusterSchemaDeployer': '.cluster_schema',
    'IterablePointSource': '.point_source',
    'SqlitePointSource': '.point_source',
    'PostgresPointSource': '.point_source',
}


def __getattr__(name: str):
    """Lazy import infrastructure classes on first access."""
    if name in _LAZY_IMPORTS:
        from importlib import import_module
        module = import_module(_LAZY_IMPORTS[name], package='infrastructure')
        return getattr(module, name)
    raise AttributeError(f"module 'infrastructure' has no attribute '{name}'")


__all__ = list(_LAZY_IMPORTS)
