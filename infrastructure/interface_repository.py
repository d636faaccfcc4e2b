"""
Repository Abstract Base Classes - Single Point of Truth.

Enforces exact method signatures across all backing store and point source
implementations. All parameter names, return types, and method signatures
are defined here and nowhere else.

Philosophy: "Define once, enforce everywhere"

Exports:
    IClusterStore: Cluster membership store + per-zoom geo index
    IPointSource: Upstream point reader
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional, Sequence, Set

from core.models import GeoPoint, GeoRect, MembershipEvent, ClusterAggregate


# ============================================================================
# ABSTRACT BASE CLASSES - Enforce exact signatures
# ============================================================================

class IClusterStore(ABC):
    """
    Backing store for one cluster index.

    Two logical parts:
        - Membership buckets: (zoom, quadkey) -> set of point ids.
          Append-only during a run; inserts are idempotent set-adds.
        - Geo index: zoom -> quadkey -> ClusterAggregate.
          Written only by the aggregator; upserts overwrite.

    Implementations must be safe for concurrent calls from the consumer
    thread, the driver thread and aggregation worker threads.
    """

    @abstractmethod
    def stage_points(self, points: Sequence[GeoPoint]) -> int:
        """Upsert point coordinates used by reduce_cluster. Returns count written."""
        pass

    @abstractmethod
    def add_member(self, zoom: int, quadkey: str, point_id: int) -> None:
        """Idempotent insert of one point id into a bucket"""
        pass

    @abstractmethod
    def add_members(self, events: Sequence[MembershipEvent]) -> int:
        """Idempotent batch insert. Returns number of events handed over."""
        pass

    @abstractmethod
    def observed_keys(self) -> Set[str]:
        """Every quadkey with at least one recorded member (zoom == len(key))"""
        pass

    @abstractmethod
    def get_members(self, zoom: int, quadkey: str) -> Set[int]:
        """Member point ids of a bucket (empty set when unknown)"""
        pass

    @abstractmethod
    def reduce_cluster(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        """
        Atomically read a bucket and reduce it to centroid + size.

        Returns None when the bucket is empty or unknown.
        """
        pass

    @abstractmethod
    def write_aggregate(self, aggregate: ClusterAggregate) -> None:
        """Upsert an aggregate into the geo index of its zoom"""
        pass

    @abstractmethod
    def get_aggregate(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        """Exact geo index lookup"""
        pass

    @abstractmethod
    def find_descendants(self, quadkey: str) -> List[ClusterAggregate]:
        """Aggregates whose key has quadkey as a strict prefix, across zooms"""
        pass

    @abstractmethod
    def find_in_bounds(self, zoom: int, bounds: GeoRect) -> List[ClusterAggregate]:
        """Aggregates of one zoom whose centroid lies inside bounds (edges included)"""
        pass

    @abstractmethod
    def find_within_radius(self, zoom: int, longitude: float, latitude: float,
                           radius_m: float) -> List[ClusterAggregate]:
        """Aggregates of one zoom within radius_m meters, nearest first"""
        pass

    def close(self) -> None:
        """Release resources. Default: nothing to release."""
        pass


class IPointSource(ABC):
    """
    Upstream collaborator yielding every non-hidden point exactly once.
    """

    @abstractmethod
    def count(self) -> int:
        """Number of points iter_points() will yield (used for progress)"""
        pass

    @abstractmethod
    def iter_points(self) -> Iterator[GeoPoint]:
        """Stream points in source order"""
        pass

    def close(self) -> None:
        pass


def iter_batches(items: Iterable, size: int) -> Iterator[list]:
    """Chunk an iterable into lists of at most `size` items."""
    batch = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


__all__ = [
    'IClusterStore',
    'IPointSource',
    'iter_batches',
]
