# ============================================================================
# IN-MEMORY CLUSTER STORE
# ============================================================================
# STATUS: Infrastructure - process-local backing store
# PURPOSE: IClusterStore without a database (tests, small datasets, dry runs)
# EXPORTS: InMemoryClusterStore
# DEPENDENCIES: core.models
# ============================================================================
"""
In-Memory Cluster Store.

All maps are guarded by one lock. reduce_cluster() reads the bucket and the
staged coordinates under that lock, which makes it the in-memory counterpart
of the server-side aggregation function: no insert can interleave with a
reduction.
"""

import threading
from typing import Dict, List, Optional, Sequence, Set, Tuple

from core.models import (
    GeoPoint, GeoRect, MembershipEvent, ClusterAggregate, haversine_m
)
from exceptions import InvariantViolationError
from util_logger import LoggerFactory, ComponentType
from .interface_repository import IClusterStore


class InMemoryClusterStore(IClusterStore):
    """Thread-safe dict-backed IClusterStore."""

    def __init__(self):
        self.logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "InMemoryClusterStore")
        self._lock = threading.Lock()
        self._points: Dict[int, Tuple[float, float]] = {}
        self._members: Dict[Tuple[int, str], Set[int]] = {}
        self._index: Dict[int, Dict[str, ClusterAggregate]] = {}

    # ------------------------------------------------------------------
    # Staging + membership
    # ------------------------------------------------------------------

    def stage_points(self, points: Sequence[GeoPoint]) -> int:
        with self._lock:
            for point in points:
                self._points[point.id] = (point.longitude, point.latitude)
        return len(points)

    def add_member(self, zoom: int, quadkey: str, point_id: int) -> None:
        with self._lock:
            self._members.setdefault((zoom, quadkey), set()).add(point_id)

    def add_members(self, events: Sequence[MembershipEvent]) -> int:
        with self._lock:
            for event in events:
                self._members.setdefault((event.zoom, event.quadkey), set()).add(event.point_id)
        return len(events)

    def observed_keys(self) -> Set[str]:
        with self._lock:
            return {quadkey for (_, quadkey), members in self._members.items() if members}

    def get_members(self, zoom: int, quadkey: str) -> Set[int]:
        with self._lock:
            return set(self._members.get((zoom, quadkey), ()))

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def reduce_cluster(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        with self._lock:
            members = self._members.get((zoom, quadkey))
            if not members:
                return None
            sum_lon = 0.0
            sum_lat = 0.0
            for point_id in members:
                coords = self._points.get(point_id)
                if coords is None:
                    raise InvariantViolationError(
                        f"member {point_id} of {quadkey} has no staged coordinates",
                        zoom=zoom,
                        quadkey=quadkey,
                    )
                sum_lon += coords[0]
                sum_lat += coords[1]
            size = len(members)
        return ClusterAggregate(
            zoom=zoom,
            quadkey=quadkey,
            longitude=sum_lon / size,
            latitude=sum_lat / size,
            size=size,
        )

    def write_aggregate(self, aggregate: ClusterAggregate) -> None:
        with self._lock:
            self._index.setdefault(aggregate.zoom, {})[aggregate.quadkey] = aggregate

    # ------------------------------------------------------------------
    # Geo index queries
    # ------------------------------------------------------------------

    def get_aggregate(self, zoom: int, quadkey: str) -> Optional[ClusterAggregate]:
        with self._lock:
            return self._index.get(zoom, {}).get(quadkey)

    def find_descendants(self, quadkey: str) -> List[ClusterAggregate]:
        with self._lock:
            found = [
                aggregate
                for zoom, cells in self._index.items() if zoom > len(quadkey)
                for key, aggregate in cells.items() if key.startswith(quadkey)
            ]
        return sorted(found, key=lambda a: (a.zoom, a.quadkey))

    def find_in_bounds(self, zoom: int, bounds: GeoRect) -> List[ClusterAggregate]:
        with self._lock:
            cells = list(self._index.get(zoom, {}).values())
        found = [a for a in cells if bounds.contains(a.longitude, a.latitude)]
        return sorted(found, key=lambda a: a.quadkey)

    def find_within_radius(self, zoom: int, longitude: float, latitude: float,
                           radius_m: float) -> List[ClusterAggregate]:
        with self._lock:
            cells = list(self._index.get(zoom, {}).values())
        scored = []
        for aggregate in cells:
            distance = haversine_m(longitude, latitude, aggregate.longitude, aggregate.latitude)
            if distance <= radius_m:
                scored.append((distance, aggregate.quadkey, aggregate))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [aggregate for _, _, aggregate in scored]

    # ------------------------------------------------------------------
    # Introspection (tests / diagnostics)
    # ------------------------------------------------------------------

    def snapshot_members(self) -> Dict[Tuple[int, str], Set[int]]:
        """Deep copy of all buckets."""
        with self._lock:
            return {key: set(members) for key, members in self._members.items()}

    def snapshot_index(self) -> Dict[int, Dict[str, ClusterAggregate]]:
        with self._lock:
            return {zoom: dict(cells) for zoom, cells in self._index.items()}


__all__ = ['InMemoryClusterStore']
