"""
Core Data Models Package.

Contains pure data structures without business logic.

Exports:
    GeoPoint, GeoRect, WORLD_BOUNDS: Geometry values
    MembershipEvent: Worker output triple
    ClusterAggregate: Derived centroid + size
    LookupStatus, LookupResult: Query outcomes
    AssignmentSummary, AggregationSummary, BuildSummary: Run results
"""

from .geo import (
    GeoPoint,
    GeoRect,
    WORLD_BOUNDS,
    MembershipEvent,
    ClusterAggregate,
    haversine_m
)

from .results import (
    LookupStatus,
    LookupResult,
    AssignmentSummary,
    AggregationSummary,
    BuildSummary
)

__all__ = [
    'GeoPoint',
    'GeoRect',
    'WORLD_BOUNDS',
    'MembershipEvent',
    'ClusterAggregate',
    'haversine_m',
    'LookupStatus',
    'LookupResult',
    'AssignmentSummary',
    'AggregationSummary',
    'BuildSummary',
]
