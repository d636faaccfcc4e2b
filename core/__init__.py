"""
Core Cluster Index Components.

Pure building blocks of the cluster index builder, independent of any
backing store.

Structure:
    models/: Pure data structures (no business logic)
    errors.py: Error codes and classification
    quadkey.py: QuadKey encoder, decoder and validation
    partition.py: Partition worker pool
    fan_in.py: Fan-in merger and countdown latch
    aggregation.py: Cluster aggregator

Exports:
    PartitionWorkerPool: Concurrent point -> membership event workers
    FanInMerger: Merges worker outputs into one stream
    ClusterAggregator: Computes per-zoom centroids
"""

# Make subpackages available first (no circular dependencies)
from . import models

# Lazy imports to avoid circular dependencies
# These are imported on first access via __getattr__
_LAZY_IMPORTS = {
    'PartitionWorkerPool': '.partition',
    'FanInMerger': '.fan_in',
    'CountdownLatch': '.fan_in',
    'ClusterAggregator': '.aggregation',
}


def __getattr__(name):
    """Lazy import core classes to avoid circular dependencies."""
    if name in _LAZY_IMPORTS:
        from importlib import import_module
        module = import_module(_LAZY_IMPORTS[name], package='core')
        return getattr(module, name)
    raise AttributeError(f"module 'core' has no attribute '{name}'")


__all__ = [
    'PartitionWorkerPool',
    'FanInMerger',
    'CountdownLatch',
    'ClusterAggregator',
    'models',
]
