"""
Shadow calculation: the operational segments behind a priced trip.

A trip is modelled as up to three segments (approach from base, service,
return to base). Round trips rebuild the picture from six segments A..F so the
price keeps the one-way margin ratio instead of a flat doubling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..dataclasses import (
    OrganizationPricingSettings,
    SegmentAnalysis,
    TripAnalysis,
    VehiclePositioning,
)
from ..rules import RoundTripRule, RoundTripSegmentsRule
from .config import default_setting, minimum_wait_on_site_threshold
from .cost_calculator import combine_breakdowns, cost_breakdown
from .utils import ZERO, d, round2

logger = logging.getLogger(__name__)

WAIT_ON_SITE = "WAIT_ON_SITE"
RETURN_BETWEEN_LEGS = "RETURN_BETWEEN_LEGS"

ROUTING_PROVIDED = "PROVIDED"
ROUTING_VEHICLE_SELECTION = "VEHICLE_SELECTION"
ROUTING_HAVERSINE_ESTIMATE = "HAVERSINE_ESTIMATE"


def _segment(name: str, description: str, distance_km, duration_minutes, settings) -> SegmentAnalysis:
    return SegmentAnalysis(
        name=name,
        description=description,
        distance_km=round2(distance_km),
        duration_minutes=round2(duration_minutes),
        cost=cost_breakdown(distance_km, duration_minutes, settings),
    )


def summarize_segments(
    segments: Tuple[SegmentAnalysis, ...],
    routing_source: str,
    estimated_end_at: Optional[datetime] = None,
) -> TripAnalysis:
    included = [s for s in segments if s.is_applicable]
    breakdown = combine_breakdowns(s.cost for s in included)
    return TripAnalysis(
        segments=tuple(segments),
        total_distance_km=round2(sum((s.distance_km for s in included), ZERO)),
        total_duration_minutes=round2(sum((s.duration_minutes for s in included), ZERO)),
        total_internal_cost=round2(sum((s.cost.total for s in included), ZERO)),
        cost_breakdown=breakdown,
        routing_source=routing_source,
        estimated_end_at=estimated_end_at,
    )


def calculate_shadow_segments(
    distance_km,
    duration_minutes,
    settings: Optional[OrganizationPricingSettings] = None,
    positioning: Optional[VehiclePositioning] = None,
    routing_source: str = ROUTING_PROVIDED,
    estimated_end_at: Optional[datetime] = None,
) -> TripAnalysis:
    """
    Build the trip analysis for a one-way trip.

    Args:
        distance_km: Service distance
        duration_minutes: Service duration
        settings: Organization settings used for segment costs
        positioning: Approach/return legs from the operating base, when known
        routing_source: Where the service distance came from
        estimated_end_at: End of service, when known

    Returns:
        TripAnalysis: service segment, plus approach and return when positioning is known
    """
    service = _segment("service", "Client service", distance_km, duration_minutes, settings)
    if positioning is None:
        return summarize_segments((service,), routing_source, estimated_end_at)

    base = f" ({positioning.base_name})" if positioning.base_name else ""
    approach = _segment(
        "approach",
        f"Approach from base{base}",
        positioning.approach_distance_km,
        positioning.approach_duration_minutes,
        settings,
    )
    returning = _segment(
        "return",
        f"Return to base{base}",
        positioning.return_distance_km,
        positioning.return_duration_minutes,
        settings,
    )
    return summarize_segments((approach, service, returning), ROUTING_VEHICLE_SELECTION, estimated_end_at)


def service_end(pickup_at: Optional[datetime], duration_minutes) -> Optional[datetime]:
    if pickup_at is None:
        return None
    return pickup_at + timedelta(minutes=float(d(duration_minutes)))


# -- round trip ----------------------------------------------------------------

@dataclass(frozen=True)
class RoundTripDecision:
    mode: str
    threshold_minutes: Decimal
    waiting_time_minutes: Optional[Decimal]


def wait_on_site_threshold(outbound_duration_minutes, settings: Optional[OrganizationPricingSettings] = None) -> Decimal:
    """Explicit organization threshold, else max(minimum, 2 x outbound + buffer)."""
    explicit = getattr(settings, "wait_on_site_threshold_minutes", None) if settings is not None else None
    if explicit is not None:
        return d(explicit)
    buffer = getattr(settings, "round_trip_buffer_minutes", None) if settings is not None else None
    buffer = d(buffer) if buffer is not None else default_setting("round_trip_buffer_minutes")
    return max(minimum_wait_on_site_threshold(), round2(2 * d(outbound_duration_minutes) + buffer))


def decide_round_trip_mode(
    waiting_time_minutes,
    outbound_duration_minutes,
    settings: Optional[OrganizationPricingSettings] = None,
) -> RoundTripDecision:
    """Short waits keep the driver on site; long or unknown waits send them back to base."""
    threshold = wait_on_site_threshold(outbound_duration_minutes, settings)
    waiting = d(waiting_time_minutes) if waiting_time_minutes is not None else None
    if waiting is not None and waiting < threshold:
        mode = WAIT_ON_SITE
    else:
        mode = RETURN_BETWEEN_LEGS
    return RoundTripDecision(mode=mode, threshold_minutes=threshold, waiting_time_minutes=waiting)


@dataclass(frozen=True)
class RoundTripResult:
    mode: str
    segments: Dict[str, Optional[SegmentAnalysis]]
    adjusted_price: Decimal
    adjusted_internal_cost: Decimal
    rule: RoundTripSegmentsRule


def _cost(segment: Optional[SegmentAnalysis]) -> Optional[Decimal]:
    return segment.cost.total if segment is not None else None


def apply_round_trip_multiplier(price, internal_cost) -> Tuple[Decimal, Decimal, RoundTripRule]:
    """Two identical legs at a fixed price: price and cost both double."""
    price, internal_cost = d(price), d(internal_cost)
    doubled_price, doubled_cost = round2(price * 2), round2(internal_cost * 2)
    rule = RoundTripRule(
        description=f"Round trip at fixed price (x2): {price} -> {doubled_price}",
        price_before=price,
        price_after=doubled_price,
        internal_cost_before=internal_cost,
        internal_cost_after=doubled_cost,
    )
    return doubled_price, doubled_cost, rule


def calculate_round_trip_segments(
    price,
    internal_cost,
    trip_analysis: TripAnalysis,
    settings: Optional[OrganizationPricingSettings] = None,
    waiting_time_minutes=None,
) -> RoundTripResult:
    """
    Rebuild a round trip from segments A..F.

    A/D approach, B/E service, C/F return. Waiting on site removes C and D.
    The adjusted price keeps the one-way price/cost ratio.
    """
    price, internal_cost = d(price), d(internal_cost)
    approach = trip_analysis.segment("approach")
    service = trip_analysis.segment("service")
    returning = trip_analysis.segment("return")

    decision = decide_round_trip_mode(waiting_time_minutes, service.duration_minutes, settings)
    wait_on_site = decision.mode == WAIT_ON_SITE
    segments = {
        "segment_a": approach,
        "segment_b": service,
        "segment_c": None if wait_on_site else returning,
        "segment_d": None if wait_on_site else approach,
        "segment_e": service,
        "segment_f": returning,
    }
    adjusted_cost = round2(sum((_cost(s) for s in segments.values() if s is not None), ZERO))
    if internal_cost > ZERO:
        adjusted_price = round2(adjusted_cost * price / internal_cost)
    else:
        adjusted_price = round2(price * 2)

    breakdown = {key: _cost(seg) for key, seg in segments.items()}
    breakdown["total"] = adjusted_cost
    rule = RoundTripSegmentsRule(
        description=f"Round trip ({decision.mode}): {price} -> {adjusted_price}",
        round_trip_mode=decision.mode,
        segment_breakdown=breakdown,
        total_before_round_trip=price,
        total_after_round_trip=adjusted_price,
        internal_cost_before=internal_cost,
        internal_cost_after=adjusted_cost,
        waiting_time_minutes=decision.waiting_time_minutes,
        wait_on_site_threshold_minutes=decision.threshold_minutes,
    )
    logger.debug(f"Round trip mode {decision.mode}: cost {internal_cost} -> {adjusted_cost}")
    return RoundTripResult(
        mode=decision.mode,
        segments=segments,
        adjusted_price=adjusted_price,
        adjusted_internal_cost=adjusted_cost,
        rule=rule,
    )


_SEGMENT_NAMES = {
    "segment_a": ("approach", "Approach from base"),
    "segment_b": ("service", "Outbound service"),
    "segment_c": ("return", "Return to base between legs"),
    "segment_d": ("second_approach", "Second approach from base"),
    "segment_e": ("second_service", "Return service"),
    "segment_f": ("final_return", "Final return to base"),
}


def extend_trip_analysis_for_round_trip(trip_analysis: TripAnalysis, result: RoundTripResult) -> TripAnalysis:
    """Return a new analysis listing the round-trip segments; the input is left untouched."""
    segments: List[SegmentAnalysis] = []
    for key, (name, description) in _SEGMENT_NAMES.items():
        seg = result.segments[key]
        if seg is None:
            continue
        segments.append(replace(seg, name=name, description=description))
    summary = summarize_segments(tuple(segments), trip_analysis.routing_source, trip_analysis.estimated_end_at)
    return replace(
        trip_analysis,
        segments=summary.segments,
        total_distance_km=summary.total_distance_km,
        total_duration_minutes=summary.total_duration_minutes,
        total_internal_cost=summary.total_internal_cost,
        cost_breakdown=summary.cost_breakdown,
        is_round_trip=True,
        round_trip_mode=result.mode,
    )
