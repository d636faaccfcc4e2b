# ============================================================================
# QUADKEY ENCODER
# ============================================================================
# STATUS: Core - pure functions, no I/O
# PURPOSE: Point -> quadkey encoding, quadkey -> rectangle decoding,
#          hierarchy helpers and validation of externally supplied keys
# EXPORTS: encode, encode_coordinate, iter_quadkeys, quadkey_bounds,
#          cell_polygon, parent_quadkey, child_quadkeys, zoom_of,
#          is_descendant, sort_deepest_first, validate_quadkey
# DEPENDENCIES: shapely (cell polygons via GeoRect.to_polygon)
# ============================================================================
"""
QuadKey Encoder.

The world rectangle is split into four quadrants per level:

    +-----+-----+
    |  2  |  3  |      north
    +-----+-----+
    |  0  |  1  |      south
    +-----+-----+
     west   east

Tie-break (both axes): a coordinate strictly below the midpoint goes to the
lower/left half, a coordinate at or above it goes to the upper/right half.

Nesting: encode(p, z) is always a prefix of encode(p, z + 1), so the
keys of a point form one path in the quadtree and a cell's descendants are
exactly the keys that start with it.

Input coordinates are not validated. NaN or out-of-bounds coordinates
produce nested but meaningless keys.

Usage:
    from core.quadkey import encode, iter_quadkeys
    from core.models import GeoPoint

    point = GeoPoint(id=1, longitude=37.61776, latitude=55.75577)
    encode(point, 4)                 # "3203"
    list(iter_quadkeys(point, 2, 4)) # [(2, "32"), (3, "320")]
"""

from itertools import islice
from typing import Iterable, Iterator, List, Optional, Tuple

from shapely.geometry import Polygon

from core.errors import ErrorCode
from core.models.geo import GeoPoint, GeoRect, WORLD_BOUNDS
from exceptions import QuadKeyValidationError

QUADKEY_DIGITS = frozenset("0123")


def _descend(longitude: float, latitude: float, bounds: GeoRect) -> Iterator[str]:
    """
    Yield the coordinate's key at zoom 1, 2, 3, ... without end.

    The only place the quadrant step and its tie-break are applied.
    """
    min_lon, max_lon = bounds.min_lon, bounds.max_lon
    min_lat, max_lat = bounds.min_lat, bounds.max_lat
    key = ""
    while True:
        mid_lon = (min_lon + max_lon) / 2.0
        mid_lat = (min_lat + max_lat) / 2.0
        digit = 0
        if latitude < mid_lat:
            max_lat = mid_lat
        else:
            min_lat = mid_lat
            digit += 2
        if longitude < mid_lon:
            max_lon = mid_lon
        else:
            min_lon = mid_lon
            digit += 1
        key += "0123"[digit]
        yield key


def encode_coordinate(longitude: float, latitude: float, zoom: int,
                      bounds: GeoRect = WORLD_BOUNDS) -> str:
    """
    Encode a coordinate as a zoom-digit quadkey.

    Parameters:
    ----------
    longitude, latitude: Coordinate to locate
    zoom: Number of subdivisions (digit count of the result)
    bounds: Root rectangle (defaults to the world rectangle)
    """
    if zoom <= 0:
        return ""
    return next(islice(_descend(longitude, latitude, bounds), zoom - 1, None))


def encode(point: GeoPoint, zoom: int, bounds: GeoRect = WORLD_BOUNDS) -> str:
    """Quadkey of a point at a zoom level. Deterministic and pure."""
    return encode_coordinate(point.longitude, point.latitude, zoom, bounds)


def iter_quadkeys(point: GeoPoint, min_zoom: int, max_zoom: int,
                  bounds: GeoRect = WORLD_BOUNDS) -> Iterator[Tuple[int, str]]:
    """
    Yield (zoom, quadkey) for every zoom in [min_zoom, max_zoom).

    Walks the shrinking rectangle once: O(max_zoom) per point instead of
    re-encoding from the root for each zoom.
    """
    keys = _descend(point.longitude, point.latitude, bounds)
    for zoom, key in zip(range(1, max_zoom), keys):
        if zoom >= min_zoom:
            yield zoom, key


def quadkey_bounds(quadkey: str, bounds: GeoRect = WORLD_BOUNDS) -> GeoRect:
    """Rectangle of a quadkey cell, reconstructed by replaying its digits."""
    rect = bounds
    for char in quadkey:
        rect = rect.quadrant(int(char))
    return rect


def cell_polygon(quadkey: str, bounds: GeoRect = WORLD_BOUNDS) -> Polygon:
    """Shapely polygon of a quadkey cell."""
    return quadkey_bounds(quadkey, bounds).to_polygon()


def zoom_of(quadkey: str) -> int:
    return len(quadkey)


def parent_quadkey(quadkey: str) -> Optional[str]:
    """Parent cell key, or None for a zoom-1 key."""
    if len(quadkey) <= 1:
        return None
    return quadkey[:-1]


def child_quadkeys(quadkey: str) -> List[str]:
    return [quadkey + digit for digit in "0123"]


def is_descendant(quadkey: str, ancestor: str) -> bool:
    """True when quadkey lies strictly below ancestor in the tree."""
    return len(quadkey) > len(ancestor) and quadkey.startswith(ancestor)


def sort_deepest_first(keys: Iterable[str]) -> List[str]:
    """Order keys by length descending, then lexicographically ascending."""
    return sorted(keys, key=lambda k: (-len(k), k))


def validate_quadkey(quadkey: Optional[str], max_zoom: int) -> str:
    """
    Validate an externally supplied quadkey.

    Raises:
        QuadKeyValidationError: RESOURCE_NOT_FOUND for an empty/missing key,
            INVALID_PARAMETER for a non-string key, a key longer than
            max_zoom or one containing characters outside {0,1,2,3}
    """
    if quadkey is not None and not isinstance(quadkey, str):
        raise QuadKeyValidationError(
            f"quadkey must be a string, got {type(quadkey).__name__}",
            ErrorCode.INVALID_PARAMETER,
        )
    if not quadkey:
        raise QuadKeyValidationError(
            "quadkey is empty", ErrorCode.RESOURCE_NOT_FOUND, quadkey=quadkey
        )
    if len(quadkey) > max_zoom:
        raise QuadKeyValidationError(
            f"quadkey length {len(quadkey)} exceeds max zoom {max_zoom}",
            ErrorCode.INVALID_PARAMETER,
            quadkey=quadkey,
        )
    bad = set(quadkey) - QUADKEY_DIGITS
    if bad:
        raise QuadKeyValidationError(
            f"quadkey contains invalid characters: {''.join(sorted(bad))}",
            ErrorCode.INVALID_PARAMETER,
            quadkey=quadkey,
        )
    return quadkey


__all__ = [
    'QUADKEY_DIGITS',
    'encode',
    'encode_coordinate',
    'iter_quadkeys',
    'quadkey_bounds',
    'cell_polygon',
    'zoom_of',
    'parent_quadkey',
    'child_quadkeys',
    'is_descendant',
    'sort_deepest_first',
    'validate_quadkey',
]
