"""
Trip-type specific pricing: disposal (MAD), time buckets and excursions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from ..dataclasses import (
    ExcursionLeg,
    GeoPoint,
    OrganizationPricingSettings,
    PricingRequest,
    TimeBucket,
    TripAnalysis,
)
from ..rules import AppliedRule, ExcursionLegsRule, ExcursionReturnTripRule, TimeBucketRule, TripTypeRule
from .config import InvalidInputError, default_setting, estimation_default
from .cost_calculator import cost_breakdown, driver_cost, fuel_cost
from .geo import haversine_km
from .utils import HUNDRED, SIXTY, ZERO, d, minutes_to_hours, round2

logger = logging.getLogger(__name__)

INTERPOLATION_STRATEGIES = ("ROUND_UP", "ROUND_DOWN", "PROPORTIONAL")
BUCKET_MATCH_TOLERANCE = Decimal("0.01")


@dataclass
class TripTypePrice:
    price: Decimal
    rules: List[AppliedRule] = field(default_factory=list)


def _setting(settings: Optional[OrganizationPricingSettings], name: str) -> Decimal:
    value = getattr(settings, name, None) if settings is not None else None
    return d(value) if value is not None else default_setting(name)


# -- disposal ------------------------------------------------------------------

@dataclass(frozen=True)
class DispoOverage:
    included_km: Decimal
    actual_km: Decimal
    overage_km: Decimal
    overage_rate_per_km: Decimal
    overage_amount: Decimal


def dispo_overage(hours, distance_km, settings: Optional[OrganizationPricingSettings] = None) -> DispoOverage:
    included = round2(d(hours) * _setting(settings, "dispo_included_km_per_hour"))
    overage_km = max(ZERO, round2(d(distance_km) - included))
    rate = _setting(settings, "dispo_overage_rate_per_km")
    return DispoOverage(
        included_km=included,
        actual_km=d(distance_km),
        overage_km=overage_km,
        overage_rate_per_km=rate,
        overage_amount=round2(overage_km * rate),
    )


def calculate_dispo_price(
    hours,
    distance_km,
    rate_per_hour,
    settings: Optional[OrganizationPricingSettings] = None,
    standard_base_price=ZERO,
) -> TripTypePrice:
    """Hourly disposal price plus overage beyond the included kilometres."""
    base = round2(d(hours) * d(rate_per_hour))
    overage = dispo_overage(hours, distance_km, settings)
    price = round2(base + overage.overage_amount)
    rule = TripTypeRule(
        description=f"Disposal: {d(hours)}h x {d(rate_per_hour)} + {overage.overage_km} km overage",
        trip_type="dispo",
        details={
            "duration_hours": d(hours),
            "rate_per_hour": d(rate_per_hour),
            "base_price": base,
            "included_km": overage.included_km,
            "actual_km": overage.actual_km,
            "overage_km": overage.overage_km,
            "overage_rate_per_km": overage.overage_rate_per_km,
            "overage_amount": overage.overage_amount,
        },
        standard_base_price=d(standard_base_price),
        trip_type_price=price,
    )
    return TripTypePrice(price=price, rules=[rule])


def buckets_for_category(buckets: Sequence[TimeBucket], vehicle_category_id: str) -> List[TimeBucket]:
    eligible = [b for b in buckets if b.is_active and b.vehicle_category_id == vehicle_category_id]
    return sorted(eligible, key=lambda b: d(b.duration_hours))


def _bucket_summary(bucket: Optional[TimeBucket]):
    if bucket is None:
        return None
    return {"duration_hours": d(bucket.duration_hours), "price": round2(bucket.price)}


def calculate_time_bucket_price(
    hours,
    distance_km,
    buckets: Sequence[TimeBucket],
    strategy: str,
    rate_per_hour,
    settings: Optional[OrganizationPricingSettings] = None,
) -> TripTypePrice:
    """
    Price a disposal from a table of duration buckets.

    Args:
        hours: Requested disposal duration
        distance_km: Expected distance, used for the overage
        buckets: Active buckets for the vehicle category, sorted by duration
        strategy: ROUND_UP, ROUND_DOWN or PROPORTIONAL between two buckets
        rate_per_hour: Hourly rate for durations outside the table
        settings: Organization settings for included km and overage rate

    Returns:
        TripTypePrice: bucket price plus overage, with a TIME_BUCKET rule
    """
    if strategy not in INTERPOLATION_STRATEGIES:
        raise InvalidInputError(f"Unknown time bucket interpolation strategy: {strategy}")
    hours = d(hours)
    rate_per_hour = d(rate_per_hour)
    lower: Optional[TimeBucket] = None
    upper: Optional[TimeBucket] = None
    used: Optional[Decimal] = None
    extra_hours = ZERO

    smallest, largest = buckets[0], buckets[-1]
    if hours < d(smallest.duration_hours):
        bucket_price = round2(hours * rate_per_hour)
        upper = smallest
    elif hours > d(largest.duration_hours):
        extra_hours = round2(hours - d(largest.duration_hours))
        bucket_price = round2(d(largest.price) + extra_hours * rate_per_hour)
        lower, used = largest, d(largest.duration_hours)
    else:
        exact = next((b for b in buckets if abs(d(b.duration_hours) - hours) <= BUCKET_MATCH_TOLERANCE), None)
        if exact is not None:
            bucket_price = round2(exact.price)
            lower = upper = exact
            used = d(exact.duration_hours)
        else:
            lower = max((b for b in buckets if d(b.duration_hours) < hours), key=lambda b: d(b.duration_hours))
            upper = min((b for b in buckets if d(b.duration_hours) > hours), key=lambda b: d(b.duration_hours))
            if strategy == "ROUND_UP":
                bucket_price, used = round2(upper.price), d(upper.duration_hours)
            elif strategy == "ROUND_DOWN":
                bucket_price, used = round2(lower.price), d(lower.duration_hours)
            else:
                span = d(upper.duration_hours) - d(lower.duration_hours)
                ratio = (hours - d(lower.duration_hours)) / span
                bucket_price = round2(d(lower.price) + ratio * (d(upper.price) - d(lower.price)))
                used = hours

    overage = dispo_overage(hours, distance_km, settings)
    price = round2(bucket_price + overage.overage_amount)
    rule = TimeBucketRule(
        description=f"Time bucket pricing ({strategy}) for {hours}h",
        duration_hours=hours,
        interpolation_strategy=strategy,
        time_bucket_used=used,
        lower_bucket=_bucket_summary(lower),
        upper_bucket=_bucket_summary(upper),
        bucket_price=bucket_price,
        extra_hours=extra_hours,
        included_km=overage.included_km,
        actual_km=overage.actual_km,
        overage_km=overage.overage_km,
        overage_rate_per_km=overage.overage_rate_per_km,
        overage_amount=overage.overage_amount,
        price_after=price,
    )
    return TripTypePrice(price=price, rules=[rule])


def calculate_smart_dispo_price(
    hours,
    distance_km,
    rate_per_hour,
    vehicle_category_id: str,
    buckets: Sequence[TimeBucket],
    settings: Optional[OrganizationPricingSettings] = None,
    standard_base_price=ZERO,
) -> TripTypePrice:
    """Use the bucket table when the category has one and a strategy is set, else the hourly formula."""
    strategy = getattr(settings, "time_bucket_interpolation_strategy", None) if settings is not None else None
    eligible = buckets_for_category(buckets, vehicle_category_id)
    if strategy and eligible:
        return calculate_time_bucket_price(hours, distance_km, eligible, strategy, rate_per_hour, settings)
    return calculate_dispo_price(hours, distance_km, rate_per_hour, settings, standard_base_price)


# -- excursion -----------------------------------------------------------------

def calculate_excursion_price(
    duration_minutes,
    rate_per_hour,
    settings: Optional[OrganizationPricingSettings] = None,
    standard_base_price=ZERO,
) -> TripTypePrice:
    """Hourly price with a minimum duration and an excursion surcharge."""
    hours = minutes_to_hours(duration_minutes)
    minimum = _setting(settings, "excursion_minimum_hours")
    effective_hours = max(hours, minimum)
    base = round2(effective_hours * d(rate_per_hour))
    surcharge_percent = _setting(settings, "excursion_surcharge_percent")
    surcharge = round2(base * surcharge_percent / HUNDRED)
    price = round2(base + surcharge)
    rule = TripTypeRule(
        description=f"Excursion: {round2(effective_hours)}h x {d(rate_per_hour)} + {surcharge_percent}% surcharge",
        trip_type="excursion",
        details={
            "actual_hours": round2(hours),
            "minimum_hours": minimum,
            "effective_hours": round2(effective_hours),
            "rate_per_hour": d(rate_per_hour),
            "base_price": base,
            "surcharge_percent": surcharge_percent,
            "surcharge": surcharge,
        },
        standard_base_price=d(standard_base_price),
        trip_type_price=price,
    )
    return TripTypePrice(price=price, rules=[rule])


def apply_trip_type_pricing(
    trip_type: str,
    distance_km,
    duration_minutes,
    rate_per_hour,
    standard_base_price,
    settings: Optional[OrganizationPricingSettings] = None,
    vehicle_category_id: str = "",
    buckets: Sequence[TimeBucket] = (),
    duration_hours=None,
) -> TripTypePrice:
    """Dispatch to the trip-type calculator; transfers keep the standard price."""
    if trip_type == "transfer":
        return TripTypePrice(price=d(standard_base_price))
    if trip_type == "excursion":
        return calculate_excursion_price(duration_minutes, rate_per_hour, settings, standard_base_price)
    if trip_type == "dispo":
        hours = d(duration_hours) if duration_hours is not None else minutes_to_hours(duration_minutes)
        return calculate_smart_dispo_price(
            hours, distance_km, rate_per_hour, vehicle_category_id, buckets, settings, standard_base_price
        )
    raise InvalidInputError(f"Unknown trip type: {trip_type}")


# -- excursion legs ------------------------------------------------------------

@dataclass(frozen=True)
class ExcursionLegsSummary:
    legs: Tuple[ExcursionLeg, ...]
    total_distance_km: Decimal
    total_duration_minutes: Decimal
    total_stops: int
    is_multi_day: bool

    def to_rule(self) -> ExcursionLegsRule:
        return ExcursionLegsRule(
            description=f"Excursion with {len(self.legs)} legs and {self.total_stops} stops",
            total_legs=len(self.legs),
            total_stops=self.total_stops,
            total_distance_km=self.total_distance_km,
            total_duration_minutes=self.total_duration_minutes,
            estimated_legs=sum(1 for leg in self.legs if leg.is_estimated),
            is_multi_day=self.is_multi_day,
        )


def _estimated_leg(a: GeoPoint, b: GeoPoint) -> Tuple[Decimal, Decimal]:
    distance = round2(haversine_km(a, b))
    speed = estimation_default("average_speed_kmh")
    return distance, round2(distance / speed * SIXTY)


def build_excursion_legs(
    request: PricingRequest,
    settings: Optional[OrganizationPricingSettings] = None,
) -> ExcursionLegsSummary:
    """
    Cost one segment per consecutive waypoint pair: pickup, stops by ``order``, dropoff.

    Legs without a routed distance are estimated from the straight-line distance.
    """
    stops = sorted(request.stops, key=lambda s: s.order)
    waypoints = [(request.pickup, "pickup", None, None)]
    waypoints += [(s.point, s.address, s.distance_km, s.duration_minutes) for s in stops]
    final_distance, final_duration = request.final_leg_distance_km, request.final_leg_duration_minutes
    if not stops and final_distance is None:
        # A single leg is the whole service trip
        final_distance, final_duration = request.estimated_distance_km, request.estimated_duration_minutes
    waypoints.append((request.dropoff, "dropoff", final_distance, final_duration))

    legs: List[ExcursionLeg] = []
    for index in range(1, len(waypoints)):
        from_point, from_address, _, _ = waypoints[index - 1]
        to_point, to_address, distance, duration = waypoints[index]
        estimated = distance is None or duration is None
        if estimated:
            est_distance, est_duration = _estimated_leg(from_point, to_point)
            distance = d(distance) if distance is not None else est_distance
            duration = d(duration) if duration is not None else est_duration
        legs.append(
            ExcursionLeg(
                order=index,
                from_point=from_point,
                to_point=to_point,
                from_address=from_address or "",
                to_address=to_address or "",
                distance_km=d(distance),
                duration_minutes=d(duration),
                cost=cost_breakdown(distance, duration, settings),
                is_estimated=estimated,
            )
        )

    is_multi_day = False
    if request.pickup_at is not None and request.return_date is not None:
        is_multi_day = request.return_date.date() != request.pickup_at.date()

    return ExcursionLegsSummary(
        legs=tuple(legs),
        total_distance_km=round2(sum((leg.distance_km for leg in legs), ZERO)),
        total_duration_minutes=round2(sum((leg.duration_minutes for leg in legs), ZERO)),
        total_stops=len(legs) - 1,
        is_multi_day=is_multi_day,
    )


def calculate_excursion_return_cost(
    trip_analysis: TripAnalysis,
    service_distance_km,
    service_duration_minutes,
    settings: Optional[OrganizationPricingSettings] = None,
) -> Tuple[Decimal, ExcursionReturnTripRule]:
    """
    Cost of bringing the vehicle back after an excursion.

    Uses the routed return segment when one exists, otherwise assumes the
    return mirrors the outbound service leg.
    """
    returning = trip_analysis.segment("return")
    if returning is not None and returning.distance_km > ZERO:
        source = "SHADOW_CALCULATION"
        distance, duration = returning.distance_km, returning.duration_minutes
    else:
        source = "SYMMETRIC_ESTIMATE"
        distance = d(service_distance_km)
        duration = d(service_duration_minutes)

    consumption = getattr(settings, "fuel_consumption_l_per_100km", None)
    fuel = fuel_cost(
        distance,
        consumption if consumption is not None else default_setting("fuel_consumption_l_per_100km"),
        fuel_type=getattr(settings, "fuel_type", None),
        custom_prices=getattr(settings, "fuel_prices", None),
        price_per_liter=None if getattr(settings, "fuel_type", None) else _setting(settings, "fuel_price_per_liter"),
    )
    driver = driver_cost(duration, _setting(settings, "driver_hourly_cost"))
    cost = round2(fuel.amount + driver.amount)
    rule = ExcursionReturnTripRule(
        description=f"Excursion return trip ({source}): {round2(distance)} km",
        return_source=source,
        return_distance_km=round2(distance),
        return_duration_minutes=round2(duration),
        return_cost=cost,
        added_to_price=cost,
    )
    return cost, rule
