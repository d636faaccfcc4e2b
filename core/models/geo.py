# ============================================================================
# GEO MODELS - POINTS, RECTANGLES, CLUSTER AGGREGATES
# ============================================================================
# STATUS: Core - data structures shared by encoder, pipeline and stores
# PURPOSE: Immutable geometry values and the derived cluster aggregate
# EXPORTS: GeoPoint, GeoRect, WORLD_BOUNDS, MembershipEvent, ClusterAggregate,
#          haversine_m
# DEPENDENCIES: pydantic, shapely
# ============================================================================
"""
Geo Models.

GeoPoint, GeoRect and MembershipEvent sit on the hot path of the assignment
pipeline (one MembershipEvent per point per zoom) and are plain frozen
dataclasses. ClusterAggregate crosses the store boundary and is validated by
pydantic.

Usage:
    from core.models.geo import GeoPoint, WORLD_BOUNDS

    point = GeoPoint(id=1, longitude=37.61776, latitude=55.75577)
    WORLD_BOUNDS.contains(point.longitude, point.latitude)  # True
"""

import math
from dataclasses import dataclass
from typing import Tuple

from pydantic import BaseModel, Field, ConfigDict
from shapely.geometry import Polygon, box


@dataclass(frozen=True)
class GeoPoint:
    """A geolocated source point. Shared between threads without locking."""

    id: int
    longitude: float
    latitude: float


@dataclass(frozen=True)
class GeoRect:
    """
    Axis-aligned lon/lat rectangle.

    Immutable: subdivision derives new rectangles via quadrant().
    """

    min_lon: float
    max_lon: float
    min_lat: float
    max_lat: float

    @property
    def mid_lon(self) -> float:
        return (self.min_lon + self.max_lon) / 2.0

    @property
    def mid_lat(self) -> float:
        return (self.min_lat + self.max_lat) / 2.0

    def quadrant(self, digit: int) -> "GeoRect":
        """
        Sub-rectangle for a quadkey digit.

        0 = south-west, 1 = south-east, 2 = north-west, 3 = north-east.
        """
        mid_lon = self.mid_lon
        mid_lat = self.mid_lat
        if digit & 1:
            min_lon, max_lon = mid_lon, self.max_lon
        else:
            min_lon, max_lon = self.min_lon, mid_lon
        if digit & 2:
            min_lat, max_lat = mid_lat, self.max_lat
        else:
            min_lat, max_lat = self.min_lat, mid_lat
        return GeoRect(min_lon=min_lon, max_lon=max_lon, min_lat=min_lat, max_lat=max_lat)

    def contains(self, longitude: float, latitude: float) -> bool:
        """Closed containment (edges included)."""
        return (self.min_lon <= longitude <= self.max_lon
                and self.min_lat <= latitude <= self.max_lat)

    def to_polygon(self) -> Polygon:
        """Cell polygon (shapely box)."""
        return box(self.min_lon, self.min_lat, self.max_lon, self.max_lat)

    def as_bbox(self) -> Tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat)"""
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)


# Mean earth radius (meters)
EARTH_RADIUS_M = 6371008.8


def haversine_m(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


# Process-wide constant, never mutated
WORLD_BOUNDS = GeoRect(min_lon=-180.0, max_lon=180.0, min_lat=-85.0, max_lat=85.0)


@dataclass(frozen=True)
class MembershipEvent:
    """One (zoom, quadkey, point_id) triple emitted by a partition worker."""

    zoom: int
    quadkey: str
    point_id: int


class ClusterAggregate(BaseModel):
    """
    Centroid and size of one (zoom, quadkey) bucket.

    Derived data: written only by the aggregator, size is never zero.
    """

    model_config = ConfigDict(frozen=True)

    zoom: int = Field(..., ge=1, description="Zoom level (equals len(quadkey))")
    quadkey: str = Field(..., min_length=1, pattern=r"^[0-3]+$", description="Cluster quadkey")
    longitude: float = Field(..., description="Centroid longitude (mean of members)")
    latitude: float = Field(..., description="Centroid latitude (mean of members)")
    size: int = Field(..., ge=1, description="Member count")

    @property
    def centroid(self) -> Tuple[float, float]:
        return (self.longitude, self.latitude)
