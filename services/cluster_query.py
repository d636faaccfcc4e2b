"""
Cluster Query Service.

Serving boundary of the cluster index. Every operation validates caller input
and returns a LookupResult; validation failures are reported with a status,
never raised:

    empty / missing quadkey            -> NOT_FOUND (404)
    quadkey longer than max_zoom       -> BAD_REQUEST (400)
    characters outside {0,1,2,3}       -> BAD_REQUEST (400)
    missing longitude / latitude       -> BAD_REQUEST (400)
    zoom outside [1, max_zoom]         -> BAD_REQUEST (400)
    valid key without data             -> NOT_FOUND (404)

Store failures are not validation failures: they are logged and propagate.

Exports:
    ClusterQueryService: Lookup operations over an IClusterStore
"""

import math
from typing import Any, Optional

from core.errors import ErrorCode
from core.models import GeoRect, LookupResult, WORLD_BOUNDS
from core.quadkey import encode_coordinate, quadkey_bounds, validate_quadkey
from exceptions import QuadKeyValidationError
from infrastructure.interface_repository import IClusterStore
from util_logger import LoggerFactory, ComponentType, log_exceptions

_COMPONENT = "ClusterQueryService"


def _rejection(error: QuadKeyValidationError) -> LookupResult:
    return LookupResult.rejected(str(error), error.error_code)


def _to_float(value: Any, name: str) -> float:
    """Coerce a caller-supplied coordinate; raises QuadKeyValidationError."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise QuadKeyValidationError(f"{name} is required", ErrorCode.MISSING_PARAMETER)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise QuadKeyValidationError(f"{name} is not a number: {value!r}", ErrorCode.INVALID_PARAMETER)
    if not math.isfinite(number):
        raise QuadKeyValidationError(f"{name} must be finite", ErrorCode.INVALID_PARAMETER)
    return number


class ClusterQueryService:
    """
    Parameters:
    ----------
    store: Backing store holding the geo index and membership buckets
    max_zoom: Longest accepted quadkey / highest accepted zoom
    bounds: World rectangle used for coordinate encoding
    """

    def __init__(self, store: IClusterStore, max_zoom: int, bounds: GeoRect = WORLD_BOUNDS):
        self.store = store
        self.max_zoom = max_zoom
        self.bounds = bounds
        self.logger = LoggerFactory.create_logger(ComponentType.SERVICE, _COMPONENT)

    def _validate_zoom(self, zoom: Any) -> int:
        if zoom is None:
            raise QuadKeyValidationError("zoom is required", ErrorCode.MISSING_PARAMETER)
        if isinstance(zoom, bool):
            raise QuadKeyValidationError(f"zoom is not an integer: {zoom!r}", ErrorCode.INVALID_PARAMETER)
        try:
            value = int(zoom)
        except (TypeError, ValueError):
            raise QuadKeyValidationError(f"zoom is not an integer: {zoom!r}", ErrorCode.INVALID_PARAMETER)
        if value != zoom and not isinstance(zoom, str):
            raise QuadKeyValidationError(f"zoom is not an integer: {zoom!r}", ErrorCode.INVALID_PARAMETER)
        if not 1 <= value <= self.max_zoom:
            raise QuadKeyValidationError(
                f"zoom {value} outside [1, {self.max_zoom}]", ErrorCode.INVALID_PARAMETER
            )
        return value

    # ========================================================================
    # QUADKEY LOOKUPS
    # ========================================================================

    @log_exceptions(ComponentType.SERVICE, _COMPONENT)
    def get_cluster(self, quadkey: Optional[str]) -> LookupResult:
        """Exact lookup of one aggregate."""
        try:
            key = validate_quadkey(quadkey, self.max_zoom)
        except QuadKeyValidationError as e:
            return _rejection(e)
        aggregate = self.store.get_aggregate(len(key), key)
        if aggregate is None:
            return LookupResult.not_found(f"no cluster for quadkey {key}")
        return LookupResult.found(aggregate)

    @log_exceptions(ComponentType.SERVICE, _COMPONENT)
    def get_branch(self, quadkey: Optional[str]) -> LookupResult:
        """All descendant aggregates (strict prefix matches, every zoom)."""
        try:
            key = validate_quadkey(quadkey, self.max_zoom)
        except QuadKeyValidationError as e:
            return _rejection(e)
        descendants = self.store.find_descendants(key)
        if not descendants:
            return LookupResult.not_found(f"no clusters below quadkey {key}")
        return LookupResult.found(descendants)

    @log_exceptions(ComponentType.SERVICE, _COMPONENT)
    def get_members(self, quadkey: Optional[str]) -> LookupResult:
        """Member point ids of one bucket, ascending."""
        try:
            key = validate_quadkey(quadkey, self.max_zoom)
        except QuadKeyValidationError as e:
            return _rejection(e)
        members = self.store.get_members(len(key), key)
        if not members:
            return LookupResult.not_found(f"no members for quadkey {key}")
        return LookupResult.found(sorted(members))

    # ========================================================================
    # COORDINATE + SPATIAL LOOKUPS
    # ========================================================================

    def quadkey_for_coordinate(self, longitude: Any, latitude: Any,
                               zoom: Any = None) -> LookupResult:
        """
        Quadkey of a coordinate. zoom defaults to max_zoom.

        Data: {"quadkey", "zoom", "bbox": [min_lon, min_lat, max_lon, max_lat]}
        """
        try:
            lon = _to_float(longitude, "longitude")
            lat = _to_float(latitude, "latitude")
            level = self.max_zoom if zoom is None else self._validate_zoom(zoom)
        except QuadKeyValidationError as e:
            return _rejection(e)
        key = encode_coordinate(lon, lat, level, self.bounds)
        return LookupResult.found({
            "quadkey": key,
            "zoom": level,
            "bbox": list(quadkey_bounds(key, self.bounds).as_bbox()),
        })

    @log_exceptions(ComponentType.SERVICE, _COMPONENT)
    def clusters_in_bounds(self, zoom: Any, min_lon: Any, min_lat: Any,
                           max_lon: Any, max_lat: Any) -> LookupResult:
        """Aggregates of one zoom whose centroid lies in the box. Empty list is FOUND."""
        try:
            level = self._validate_zoom(zoom)
            rect = GeoRect(
                min_lon=_to_float(min_lon, "min_lon"),
                max_lon=_to_float(max_lon, "max_lon"),
                min_lat=_to_float(min_lat, "min_lat"),
                max_lat=_to_float(max_lat, "max_lat"),
            )
        except QuadKeyValidationError as e:
            return _rejection(e)
        if rect.min_lon > rect.max_lon or rect.min_lat > rect.max_lat:
            return LookupResult.bad_request("bounding box min must not exceed max")
        return LookupResult.found(self.store.find_in_bounds(level, rect))

    @log_exceptions(ComponentType.SERVICE, _COMPONENT)
    def clusters_near(self, zoom: Any, longitude: Any, latitude: Any,
                      radius_m: Any) -> LookupResult:
        """Aggregates of one zoom within radius_m meters, nearest first. Empty list is FOUND."""
        try:
            level = self._validate_zoom(zoom)
            lon = _to_float(longitude, "longitude")
            lat = _to_float(latitude, "latitude")
            radius = _to_float(radius_m, "radius_m")
        except QuadKeyValidationError as e:
            return _rejection(e)
        if radius <= 0:
            return LookupResult.bad_request("radius_m must be positive")
        return LookupResult.found(self.store.find_within_radius(level, lon, lat, radius))


__all__ = ['ClusterQueryService']
