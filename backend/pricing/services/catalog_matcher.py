"""
Partner catalog matching (Engagement Rule).

A partner's contract lists zone routes, excursion packages and disposal packages
with fixed prices. When one of them matches the trip, its price is final and no
dynamic modifier may touch it. When none matches, the search trace explains why
each entry was rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dataclasses import (
    CatalogCheck,
    ContactData,
    DispoPackage,
    ExcursionPackage,
    GeoPoint,
    GridSearchDetails,
    MatchedGrid,
    PricingRequest,
    ZoneData,
    ZoneRef,
    ZoneRoute,
)
from ..rules import (
    AppliedRule,
    CatalogPriceRule,
    GridSearchAttemptedRule,
    NoGridMatchRule,
    PartnerOverridePriceRule,
    ZoneMappingRule,
)
from .config import estimation_default
from .geo import haversine_km
from .utils import ZERO, d, round2

logger = logging.getLogger(__name__)


class FallbackReason:
    PRIVATE_CLIENT = "PRIVATE_CLIENT"
    NO_CONTRACT = "NO_CONTRACT"
    NO_ZONE_MATCH = "NO_ZONE_MATCH"
    NO_ROUTE_MATCH = "NO_ROUTE_MATCH"
    NO_EXCURSION_MATCH = "NO_EXCURSION_MATCH"
    NO_DISPO_MATCH = "NO_DISPO_MATCH"


class RejectionReason:
    CATEGORY_MISMATCH = "CATEGORY_MISMATCH"
    DIRECTION_MISMATCH = "DIRECTION_MISMATCH"
    INACTIVE = "INACTIVE"
    ZONE_MISMATCH = "ZONE_MISMATCH"


@dataclass
class CatalogMatch:
    matched_grid: Optional[MatchedGrid] = None
    price: Optional[Decimal] = None
    fallback_reason: Optional[str] = None
    grid_search_details: Optional[GridSearchDetails] = None
    rules: List[AppliedRule] = field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.matched_grid is not None


def _zone_ref(zone: Optional[ZoneData]) -> Optional[ZoneRef]:
    if zone is None:
        return None
    return ZoneRef(id=zone.id, name=zone.name, code=zone.code)


def effective_price(catalog_price, override_price) -> Tuple[Decimal, bool]:
    """Partner override wins when strictly positive."""
    if override_price is not None and d(override_price) > ZERO:
        return round2(override_price), True
    return round2(catalog_price), False


# -- zone routes ---------------------------------------------------------------

def route_priority(route: ZoneRoute) -> int:
    """Lower is checked first: address routes beat zone routes, multi-zone beats legacy."""
    if route.has_origin_address and route.has_destination_address:
        return 1
    if route.has_origin_address:
        return 2
    if route.has_destination_address:
        return 3
    if route.is_multi_zone:
        return 4
    return 5


def _near(point: GeoPoint, lat: float, lng: float) -> bool:
    radius_m = float(estimation_default("address_match_radius_m"))
    return haversine_km(point, GeoPoint(lat=lat, lng=lng)) * 1000 <= radius_m


def _origin_matches(route: ZoneRoute, point: GeoPoint, zone: Optional[ZoneData]) -> bool:
    if route.has_origin_address:
        return _near(point, route.origin_lat, route.origin_lng)
    if zone is None:
        return False
    if route.origin_zone_ids:
        return zone.id in route.origin_zone_ids
    return route.from_zone_id is not None and zone.id == route.from_zone_id


def _destination_matches(route: ZoneRoute, point: GeoPoint, zone: Optional[ZoneData]) -> bool:
    if route.has_destination_address:
        return _near(point, route.destination_lat, route.destination_lng)
    if zone is None:
        return False
    if route.destination_zone_ids:
        return zone.id in route.destination_zone_ids
    return route.to_zone_id is not None and zone.id == route.to_zone_id


def route_orientation(
    route: ZoneRoute,
    pickup: GeoPoint,
    dropoff: GeoPoint,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> Tuple[bool, bool]:
    """(forward, reverse): does the route cover pickup->dropoff and/or dropoff->pickup."""
    forward = _origin_matches(route, pickup, pickup_zone) and _destination_matches(route, dropoff, dropoff_zone)
    reverse = _origin_matches(route, dropoff, dropoff_zone) and _destination_matches(route, pickup, pickup_zone)
    return forward, reverse


def check_zone_route(
    route: ZoneRoute,
    vehicle_category_id: str,
    pickup: GeoPoint,
    dropoff: GeoPoint,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> Optional[str]:
    """Return the rejection reason for ``route``, or None when it matches."""
    if route.vehicle_category_id != vehicle_category_id:
        return RejectionReason.CATEGORY_MISMATCH

    forward, reverse = route_orientation(route, pickup, dropoff, pickup_zone, dropoff_zone)
    if route.direction == "A_TO_B":
        allowed, disallowed = forward, reverse
    elif route.direction == "B_TO_A":
        allowed, disallowed = reverse, forward
    else:
        allowed, disallowed = forward or reverse, False
    if disallowed and not allowed:
        return RejectionReason.DIRECTION_MISMATCH

    if not route.is_active:
        return RejectionReason.INACTIVE
    if not allowed:
        return RejectionReason.ZONE_MISMATCH
    return None


def match_zone_route(
    routes: List[ZoneRoute],
    request: PricingRequest,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
    checked: List[CatalogCheck],
) -> Optional[ZoneRoute]:
    for route in sorted(routes, key=route_priority):
        reason = check_zone_route(
            route, request.vehicle_category_id, request.pickup, request.dropoff, pickup_zone, dropoff_zone
        )
        checked.append(
            CatalogCheck(
                entry_id=route.id,
                entry_name=route.name,
                from_zone=route.origin_label(),
                to_zone=route.destination_label(),
                vehicle_category_id=route.vehicle_category_id,
                rejection_reason=reason,
            )
        )
        if reason is None:
            return route
        logger.debug(f"Zone route {route.id} rejected: {reason}")
    return None


# -- packages ------------------------------------------------------------------

def check_excursion_package(
    package: ExcursionPackage,
    vehicle_category_id: str,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> Optional[str]:
    if package.vehicle_category_id != vehicle_category_id:
        return RejectionReason.CATEGORY_MISMATCH
    if not package.is_active:
        return RejectionReason.INACTIVE
    if package.origin_zone_id and (pickup_zone is None or pickup_zone.id != package.origin_zone_id):
        return RejectionReason.ZONE_MISMATCH
    if package.destination_zone_id and (dropoff_zone is None or dropoff_zone.id != package.destination_zone_id):
        return RejectionReason.ZONE_MISMATCH
    return None


def check_dispo_package(package: DispoPackage, vehicle_category_id: str) -> Optional[str]:
    if package.vehicle_category_id != vehicle_category_id:
        return RejectionReason.CATEGORY_MISMATCH
    if not package.is_active:
        return RejectionReason.INACTIVE
    return None


def match_excursion_package(packages, request, pickup_zone, dropoff_zone, checked) -> Optional[ExcursionPackage]:
    for package in packages:
        reason = check_excursion_package(package, request.vehicle_category_id, pickup_zone, dropoff_zone)
        checked.append(
            CatalogCheck(
                entry_id=package.id,
                entry_name=package.name,
                from_zone=package.origin_zone_id or "",
                to_zone=package.destination_zone_id or "",
                vehicle_category_id=package.vehicle_category_id,
                rejection_reason=reason,
            )
        )
        if reason is None:
            return package
    return None


def match_dispo_package(packages, request, checked) -> Optional[DispoPackage]:
    for package in packages:
        reason = check_dispo_package(package, request.vehicle_category_id)
        checked.append(
            CatalogCheck(
                entry_id=package.id,
                entry_name=package.name,
                from_zone="",
                to_zone="",
                vehicle_category_id=package.vehicle_category_id,
                rejection_reason=reason,
            )
        )
        if reason is None:
            return package
    return None


# -- waterfall -----------------------------------------------------------------

def _matched(grid_type: str, entry, catalog_price, details: GridSearchDetails, from_zone="", to_zone="") -> CatalogMatch:
    price, overridden = effective_price(catalog_price, entry.override_price)
    grid = MatchedGrid(
        type=grid_type,
        id=entry.id,
        name=entry.name,
        catalog_price=round2(catalog_price),
        effective_price=price,
        from_zone=from_zone,
        to_zone=to_zone,
    )
    rule_cls = PartnerOverridePriceRule if overridden else CatalogPriceRule
    label = "Partner override price" if overridden else "Contract catalog price"
    rule = rule_cls(
        description=f"{label} from {grid_type} {entry.name or entry.id}: {price}",
        grid_type=grid_type,
        grid_id=entry.id,
        grid_name=entry.name,
        catalog_price=grid.catalog_price,
        effective_price=price,
    )
    logger.info(f"Engagement rule matched {grid_type} {entry.id} at {price}")
    return CatalogMatch(matched_grid=grid, price=price, grid_search_details=details, rules=[rule])


def _fallback(reason: str, details: Optional[GridSearchDetails]) -> CatalogMatch:
    rules: List[AppliedRule] = []
    if details is not None:
        rules.append(
            ZoneMappingRule(
                description="Zones resolved for catalog search",
                pickup_zone=details.pickup_zone.code if details.pickup_zone else None,
                dropoff_zone=details.dropoff_zone.code if details.dropoff_zone else None,
            )
        )
        rules.append(
            GridSearchAttemptedRule(
                description="Partner catalog searched",
                routes_checked=len(details.routes_checked),
                excursions_checked=len(details.excursions_checked),
                dispos_checked=len(details.dispos_checked),
            )
        )
        rules.append(NoGridMatchRule(description=f"No catalog price applies: {reason}", fallback_reason=reason))
    logger.debug(f"Catalog fallback: {reason}")
    return CatalogMatch(fallback_reason=reason, grid_search_details=details, rules=rules)


def match_catalog(
    request: PricingRequest,
    contact: ContactData,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> CatalogMatch:
    """
    Run the Engagement Rule waterfall for a request.

    Args:
        request: The trip being priced
        contact: The client, with its partner contract when it has one
        pickup_zone: Effective pickup zone (or None)
        dropoff_zone: Effective dropoff zone (or None)

    Returns:
        CatalogMatch: either a matched grid with its fixed price, or a fallback
        reason with the search trace
    """
    if not contact.is_partner:
        return _fallback(FallbackReason.PRIVATE_CLIENT, None)
    contract = contact.partner_contract
    if contract is None:
        return _fallback(FallbackReason.NO_CONTRACT, None)

    details = GridSearchDetails(
        pickup_zone=_zone_ref(pickup_zone),
        dropoff_zone=_zone_ref(dropoff_zone),
        vehicle_category_id=request.vehicle_category_id,
        trip_type=request.trip_type,
    )
    # Address routes and zone-less packages still match unzoned endpoints
    unzoned = pickup_zone is None or dropoff_zone is None

    if request.trip_type == "excursion":
        package = match_excursion_package(
            contract.excursion_packages, request, pickup_zone, dropoff_zone, details.excursions_checked
        )
        if package is not None:
            return _matched(
                "ExcursionPackage",
                package,
                package.price,
                details,
                from_zone=package.origin_zone_id or "",
                to_zone=package.destination_zone_id or "",
            )
        return _fallback(FallbackReason.NO_ZONE_MATCH if unzoned else FallbackReason.NO_EXCURSION_MATCH, details)

    if request.trip_type == "dispo":
        package = match_dispo_package(contract.dispo_packages, request, details.dispos_checked)
        if package is not None:
            return _matched("DispoPackage", package, package.base_price, details)
        return _fallback(FallbackReason.NO_ZONE_MATCH if unzoned else FallbackReason.NO_DISPO_MATCH, details)

    route = match_zone_route(contract.zone_routes, request, pickup_zone, dropoff_zone, details.routes_checked)
    if route is not None:
        return _matched(
            "ZoneRoute",
            route,
            route.fixed_price,
            details,
            from_zone=route.origin_label(),
            to_zone=route.destination_label(),
        )
    return _fallback(FallbackReason.NO_ZONE_MATCH if unzoned else FallbackReason.NO_ROUTE_MATCH, details)
