"""
Service Layer.

Exports:
    ClusterIndexBuilder: Batch run driver (staging, assignment, aggregation)
    ClusterQueryService: Validated lookups over the built index
"""

from .cluster_index_builder import ClusterIndexBuilder
from .cluster_query import ClusterQueryService

__all__ = [
    'ClusterIndexBuilder',
    'ClusterQueryService',
]
