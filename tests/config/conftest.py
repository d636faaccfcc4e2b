"""
Config test fixtures: clean environment via monkeypatch.
"""

import pytest


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all env vars that config modules might read, for isolation."""
    env_vars_to_clear = [
        "POSTGIS_HOST", "POSTGIS_PORT", "POSTGIS_USER", "POSTGIS_PASSWORD",
        "POSTGIS_DATABASE", "POSTGRESQL_CONNECTION_STRING", "CLUSTER_SCHEMA",
        "ENVIRONMENT", "DEBUG_MODE", "LOG_LEVEL",
        "CLUSTER_MIN_ZOOM", "CLUSTER_MAX_ZOOM", "CLUSTER_WORKER_COUNT",
        "CLUSTER_QUEUE_CAPACITY", "CLUSTER_MERGE_CAPACITY", "CLUSTER_INSERT_BATCH_SIZE",
        "CLUSTER_PROGRESS_INTERVAL", "CLUSTER_AGGREGATION_STRATEGY",
        "CLUSTER_AGGREGATE_WORKERS", "CLUSTER_AGGREGATE_FUNCTION", "CLUSTER_SOURCE_SCHEMA", "CLUSTER_SOURCE_TABLE",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
