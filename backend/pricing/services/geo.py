"""
Zone resolution.

Given a coordinate and an organization's zone set, find which zones contain the
point (polygon, radius or point zones) and pick the effective one when several
overlap.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from ..dataclasses import GeoPoint, HierarchicalPricingConfig, ZoneData
from .config import InvalidInputError, default_central_zone_codes, estimation_default
from .utils import ONE, d

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

CONFLICT_STRATEGIES = ("PRIORITY", "MOST_EXPENSIVE", "CLOSEST", "COMBINED")

_RING_CODE_RE = re.compile(r"^([A-Z]+)_(\d+)$")


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def point_in_polygon(point: GeoPoint, ring: Sequence[Sequence[float]]) -> bool:
    """Ray casting over a GeoJSON ring of ``[lng, lat]`` pairs."""
    if not ring or len(ring) < 3:
        return False
    x, y = point.lng, point.lat
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def zone_center(zone: ZoneData) -> Optional[GeoPoint]:
    """Explicit center, else the centroid of the polygon vertices (closing point excluded)."""
    if zone.has_center:
        return GeoPoint(lat=zone.center_latitude, lng=zone.center_longitude)
    ring = zone.geometry or []
    if len(ring) >= 2 and list(ring[0]) == list(ring[-1]):
        ring = ring[:-1]
    if not ring:
        return None
    lng = sum(p[0] for p in ring) / len(ring)
    lat = sum(p[1] for p in ring) / len(ring)
    return GeoPoint(lat=lat, lng=lng)


def is_point_in_zone(point: GeoPoint, zone: ZoneData) -> bool:
    if not zone.is_active:
        return False
    if zone.zone_type == "POLYGON":
        return point_in_polygon(point, zone.geometry or [])
    if zone.zone_type == "RADIUS":
        if not zone.has_center or zone.radius_km is None:
            return False
        center = GeoPoint(lat=zone.center_latitude, lng=zone.center_longitude)
        return haversine_km(point, center) <= float(zone.radius_km)
    if zone.zone_type == "POINT":
        if not zone.has_center:
            return False
        center = GeoPoint(lat=zone.center_latitude, lng=zone.center_longitude)
        return haversine_km(point, center) <= float(estimation_default("point_zone_tolerance_km"))
    logger.warning(f"Unknown zone type {zone.zone_type!r} for zone {zone.code}")
    return False


def _specificity_key(zone: ZoneData) -> Tuple[int, float]:
    if zone.zone_type == "POINT":
        return (0, 0.0)
    if zone.zone_type == "RADIUS":
        return (1, float(zone.radius_km or 0))
    return (2, 0.0)


def find_zones_for_point(point: GeoPoint, zones: Sequence[ZoneData]) -> List[ZoneData]:
    """All active zones containing ``point``, most specific first."""
    matches = [z for z in zones if is_point_in_zone(point, z)]
    return sorted(matches, key=_specificity_key)


def resolve_zone_conflict(
    point: GeoPoint,
    zones: Sequence[ZoneData],
    strategy: Optional[str] = None,
) -> Optional[ZoneData]:
    """
    Pick the effective zone among overlapping matches.

    Args:
        point: The coordinate being resolved
        zones: Matching zones, most specific first
        strategy: PRIORITY, MOST_EXPENSIVE, CLOSEST, COMBINED, or None for specificity

    Returns:
        Optional[ZoneData]: The selected zone, or None when nothing matched
    """
    if not zones:
        return None
    if len(zones) == 1 or not strategy:
        return zones[0]
    if strategy not in CONFLICT_STRATEGIES:
        raise InvalidInputError(f"Unknown zone conflict strategy: {strategy}")

    # sorted() is stable, so ties keep specificity order
    if strategy == "PRIORITY":
        return sorted(zones, key=lambda z: -(z.priority or 0))[0]
    if strategy == "MOST_EXPENSIVE":
        return sorted(zones, key=lambda z: -d(z.price_multiplier or ONE))[0]
    if strategy == "CLOSEST":
        def distance(zone: ZoneData) -> float:
            center = zone_center(zone)
            return haversine_km(point, center) if center is not None else math.inf

        return sorted(zones, key=distance)[0]

    top_priority = max(z.priority or 0 for z in zones)
    candidates = [z for z in zones if (z.priority or 0) == top_priority]
    return sorted(candidates, key=lambda z: -d(z.price_multiplier or ONE))[0]


@dataclass(frozen=True)
class ZoneResolution:
    zone: Optional[ZoneData]
    candidates: Tuple[ZoneData, ...]
    strategy: Optional[str]


def resolve(point: GeoPoint, zones: Sequence[ZoneData], strategy: Optional[str] = None) -> ZoneResolution:
    """Find every zone containing ``point`` and select the effective one."""
    candidates = find_zones_for_point(point, zones)
    selected = resolve_zone_conflict(point, candidates, strategy)
    if len(candidates) > 1:
        logger.debug(
            f"{len(candidates)} zones match ({', '.join(z.code for z in candidates)}); "
            f"strategy {strategy or 'SPECIFICITY'} selected {selected.code}"
        )
    return ZoneResolution(zone=selected, candidates=tuple(candidates), strategy=strategy)


def is_central_zone(zone: Optional[ZoneData], config: Optional[HierarchicalPricingConfig] = None) -> bool:
    if zone is None:
        return False
    if zone.is_central_zone:
        return True
    codes = config.central_zone_codes if config and config.central_zone_codes is not None else None
    if codes is None:
        codes = default_central_zone_codes()
    return zone.code in codes


def ring_code(zone: Optional[ZoneData]) -> Optional[str]:
    """``PARIS_20`` -> ``PARIS_20``; codes outside the PREFIX_NUMBER pattern have no ring."""
    if zone is None or not zone.code:
        return None
    return zone.code if _RING_CODE_RE.match(zone.code) else None


def check_same_ring(pickup: Optional[ZoneData], dropoff: Optional[ZoneData]) -> Tuple[bool, Optional[str], Optional[Decimal]]:
    """Both zones share a ring code -> (True, code, ring multiplier)."""
    pickup_ring, dropoff_ring = ring_code(pickup), ring_code(dropoff)
    if pickup_ring is None or pickup_ring != dropoff_ring:
        return False, None, None
    return True, pickup_ring, d(pickup.price_multiplier or ONE)
