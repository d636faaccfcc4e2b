"""
Configuration Defaults - Single source of truth for all default values.

Organization:
    - DatabaseDefaults: PostgreSQL/PostGIS connection and pool defaults
    - ClusterDefaults: Cluster index builder defaults (zoom range, pool, queues)
    - AppDefaults: Process-level settings

Usage:
    from config.defaults import ClusterDefaults

    # In Pydantic Field definitions:
    worker_count: int = Field(default=ClusterDefaults.WORKER_COUNT, ...)
"""


def parse_bool(value: str) -> bool:
    """Parse boolean from environment variable."""
    return value.strip().lower() in ("true", "1", "yes")


# =============================================================================
# DATABASE DEFAULTS
# =============================================================================

class DatabaseDefaults:
    """
    Database configuration defaults.
    """

    PORT = 5432
    CLUSTER_SCHEMA = "cluster"
    CONNECTION_TIMEOUT_SECONDS = 30
    MIN_CONNECTIONS = 1
    MAX_CONNECTIONS = 8


# =============================================================================
# CLUSTER INDEX DEFAULTS
# =============================================================================

class ClusterDefaults:
    """
    Cluster index builder defaults.

    Zoom range is half-open: [MIN_ZOOM, MAX_ZOOM). A zoom-z quadkey has z digits.
    """

    MIN_ZOOM = 10
    MAX_ZOOM = 16

    # Partition worker pool
    WORKER_COUNT = 4
    QUEUE_CAPACITY = 512
    MERGE_CAPACITY = QUEUE_CAPACITY * 4

    # Consumer
    INSERT_BATCH_SIZE = 1000
    PROGRESS_INTERVAL = 500

    # Aggregation
    AGGREGATION_STRATEGY = "full"
    AGGREGATE_WORKERS = 1
    AGGREGATE_FUNCTION = "cluster_aggregate"

    # World rectangle used by the quadkey encoder
    MIN_LON = -180.0
    MAX_LON = 180.0
    MIN_LAT = -85.0
    MAX_LAT = 85.0

    # Point source (read-only; never the staging table)
    SOURCE_SCHEMA = "public"
    SOURCE_TABLE = "points"


# =============================================================================
# APPLICATION DEFAULTS
# =============================================================================

class AppDefaults:
    """
    Process-level defaults.
    """

    ENVIRONMENT = "dev"
    LOG_LEVEL = "INFO"
    DEBUG_MODE = False
