"""
Pricing orchestrator.

``calculate_price`` composes zone resolution, the Engagement Rule, dynamic
pricing with its modifier pipeline, trip-type specializations, shadow costs
and compliance staffing into one ``PricingResult``. It performs no I/O and
never mutates its inputs: every configuration object is supplied by value.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dataclasses import (
    TRIP_TYPES,
    MatchedGrid,
    PricingContext,
    PricingRequest,
    PricingResult,
    TripAnalysis,
    ZoneData,
)
from ..rules import AppliedRule, ZoneSurchargeRule
from .catalog_matcher import match_catalog
from .compliance import integrate_compliance
from .config import InvalidInputError, default_currency, effective_settings, estimation_default
from .cost_calculator import with_extra_parking
from .dense_zone import check_driver_blocked, detect_dense_zone, suggest_dense_zone_mad, suggest_round_trip_mad
from .dynamic_base import calculate_dynamic_base_price, resolve_rates
from .geo import haversine_km, resolve
from .hierarchical import (
    HierarchicalInputs,
    HierarchicalResult,
    evaluate_hierarchical_pricing,
    find_flat_rate,
    find_forfait,
)
from .modifiers import (
    apply_advanced_rates,
    apply_seasonal_multipliers,
    apply_vehicle_category_multiplier,
    apply_zone_multiplier,
)
from .profitability import profitability_data, thresholds_from_settings
from .shadow import (
    ROUTING_HAVERSINE_ESTIMATE,
    ROUTING_PROVIDED,
    apply_round_trip_multiplier,
    calculate_round_trip_segments,
    calculate_shadow_segments,
    extend_trip_analysis_for_round_trip,
    service_end,
)
from .trip_types import apply_trip_type_pricing, build_excursion_legs, calculate_excursion_return_cost
from .utils import SIXTY, ZERO, d, margin_percent, round2

logger = logging.getLogger(__name__)

FIXED_GRID = "FIXED_GRID"
DYNAMIC = "DYNAMIC"


def resolve_trip_metrics(request: PricingRequest) -> Tuple[Decimal, Decimal, str]:
    """Distance, duration and their source; missing values are estimated."""
    if request.estimated_distance_km is not None:
        distance, source = d(request.estimated_distance_km), ROUTING_PROVIDED
    else:
        distance, source = round2(haversine_km(request.pickup, request.dropoff)), ROUTING_HAVERSINE_ESTIMATE

    if request.estimated_duration_minutes is not None:
        duration = d(request.estimated_duration_minutes)
    elif request.trip_type == "dispo" and request.duration_hours is not None:
        duration = round2(d(request.duration_hours) * SIXTY)
    else:
        duration = round2(distance / estimation_default("average_speed_kmh") * SIXTY)
    return distance, duration, source


def zone_surcharges(
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> Tuple[Decimal, Optional[ZoneSurchargeRule]]:
    """Parking and access fees of the pickup and dropoff zones (dropoff once when it is the same zone)."""

    def fees(zone: Optional[ZoneData]):
        if zone is None:
            return None
        parking = round2(zone.fixed_parking_surcharge or ZERO)
        access = round2(zone.fixed_access_fee or ZERO)
        if parking == ZERO and access == ZERO:
            return None
        return {"code": zone.code, "parking": parking, "access_fee": access, "total": round2(parking + access)}

    pickup = fees(pickup_zone)
    dropoff = None
    if dropoff_zone is not None and (pickup_zone is None or dropoff_zone.id != pickup_zone.id):
        dropoff = fees(dropoff_zone)
    total = round2(sum((f["total"] for f in (pickup, dropoff) if f), ZERO))
    if total == ZERO:
        return ZERO, None
    rule = ZoneSurchargeRule(
        description=f"Zone surcharges: {total}",
        pickup_zone=pickup,
        dropoff_zone=dropoff,
        total=total,
    )
    return total, rule


def _hierarchical_grid(hier: HierarchicalResult, context: PricingContext, vehicle_category_id: str) -> MatchedGrid:
    if hier.level == 1:
        rate = find_flat_rate(context.intra_central_flat_rates, vehicle_category_id)
        return MatchedGrid(
            type="IntraCentralFlatRate",
            id=rate.id,
            name=rate.description,
            catalog_price=round2(rate.flat_price),
            effective_price=hier.price,
        )
    forfait_id = hier.details["forfait_id"]
    forfait = next(f for f in context.inter_zone_forfaits if f.id == forfait_id)
    return MatchedGrid(
        type="InterZoneForfait",
        id=forfait.id,
        name=forfait.name,
        catalog_price=round2(forfait.fixed_price),
        effective_price=hier.price,
        from_zone=forfait.origin_label(),
        to_zone=forfait.destination_label(),
    )


def calculate_price(request: PricingRequest, context: PricingContext) -> PricingResult:
    """
    Price one trip.

    Args:
        request: The trip to price
        context: Organization configuration, client and catalogs for this call

    Returns:
        PricingResult: price, cost, margin, profitability and the ordered
        list of rules explaining every step

    Raises:
        InvalidInputError: If the trip type or a configured strategy is unknown
    """
    if request.trip_type not in TRIP_TYPES:
        raise InvalidInputError(f"Unknown trip type: {request.trip_type}")

    settings = effective_settings(context.settings)
    category = context.vehicle_category
    distance, duration, routing_source = resolve_trip_metrics(request)

    pickup_zone = resolve(request.pickup, context.zones, settings.zone_conflict_strategy).zone
    dropoff_zone = resolve(request.dropoff, context.zones, settings.zone_conflict_strategy).zone

    legs = None
    if request.trip_type == "excursion":
        legs = build_excursion_legs(request, settings)
        distance, duration = legs.total_distance_km, legs.total_duration_minutes

    end_at = request.estimated_end_at or service_end(request.pickup_at, duration)
    trip_analysis: TripAnalysis = calculate_shadow_segments(
        distance, duration, settings, request.vehicle_positioning, routing_source, end_at
    )
    if legs is not None:
        trip_analysis = replace(
            trip_analysis,
            excursion_legs=legs.legs,
            total_stops=legs.total_stops,
            is_multi_day=legs.is_multi_day,
        )

    rules: List[AppliedRule] = []
    catalog = match_catalog(request, context.contact, pickup_zone, dropoff_zone)
    rules.extend(catalog.rules)
    matched_grid = catalog.matched_grid
    is_contract_price = catalog.is_match
    pricing_mode = FIXED_GRID if catalog.is_match else DYNAMIC
    price = catalog.price if catalog.is_match else ZERO
    internal_cost = trip_analysis.total_internal_cost

    if pricing_mode == DYNAMIC:
        rates = resolve_rates(category, settings)
        dynamic = calculate_dynamic_base_price(distance, duration, rates, settings.target_margin_percent)
        price = dynamic.price_with_margin

        trip_type_price = apply_trip_type_pricing(
            request.trip_type,
            distance,
            duration,
            rates.rate_per_hour,
            dynamic.base_price,
            settings,
            request.vehicle_category_id,
            context.time_buckets,
            request.duration_hours,
        )
        if request.trip_type != "transfer":
            price = trip_type_price.price

        category_step = apply_vehicle_category_multiplier(price, category, rates.used_category_rates)

        hier = None
        if request.trip_type == "transfer" and settings.hierarchical_pricing is not None:
            forfait = find_forfait(context.inter_zone_forfaits, request, pickup_zone, dropoff_zone)
            hier = evaluate_hierarchical_pricing(
                HierarchicalInputs(
                    pickup_zone=pickup_zone,
                    dropoff_zone=dropoff_zone,
                    vehicle_category_id=request.vehicle_category_id,
                    dynamic_price=category_step.price,
                    flat_rates=context.intra_central_flat_rates,
                    forfait=forfait,
                    config=settings.hierarchical_pricing,
                )
            )

        if hier is not None and hier.is_fixed_price:
            pricing_mode = FIXED_GRID
            price = hier.price
            matched_grid = _hierarchical_grid(hier, context, request.vehicle_category_id)
            rules.append(hier.to_rule())
        else:
            rules.append(dynamic.to_rule())
            rules.extend(trip_type_price.rules)
            rules.extend(category_step.rules)
            price = category_step.price

            if hier is not None:
                rules.append(hier.to_rule())
            if hier is not None and hier.level == 3:
                # The ring multiplier stands in for the zone multiplier
                price = hier.price
            else:
                zone_step = apply_zone_multiplier(
                    price, pickup_zone, dropoff_zone, settings.zone_multiplier_aggregation_strategy
                )
                rules.extend(zone_step.rules)
                price = zone_step.price

            advanced = apply_advanced_rates(
                price, context.advanced_rates, request.pickup_at, end_at, request.vehicle_category_id
            )
            rules.extend(advanced.rules)
            price = advanced.price

            seasonal = apply_seasonal_multipliers(
                price, context.seasonal_multipliers, request.pickup_at, request.vehicle_category_id
            )
            rules.extend(seasonal.rules)
            price = seasonal.price

            if request.trip_type == "transfer" and request.is_round_trip:
                round_trip = calculate_round_trip_segments(
                    price, internal_cost, trip_analysis, settings, request.waiting_time_minutes
                )
                rules.append(round_trip.rule)
                price, internal_cost = round_trip.adjusted_price, round_trip.adjusted_internal_cost
                trip_analysis = extend_trip_analysis_for_round_trip(trip_analysis, round_trip)

                blocked = check_driver_blocked(request.waiting_time_minutes, duration, distance, settings)
                suggestion = suggest_round_trip_mad(blocked, price, duration, rates.rate_per_hour, settings)
                if suggestion is not None:
                    rules.append(suggestion.rule)
                    price = suggestion.final_price
            elif request.trip_type == "transfer":
                detection = detect_dense_zone(pickup_zone, dropoff_zone, distance, duration, settings)
                suggestion = suggest_dense_zone_mad(detection, price, duration, rates.rate_per_hour, settings)
                if suggestion is not None:
                    rules.append(suggestion.rule)
                    price = suggestion.final_price

            if legs is not None:
                rules.append(legs.to_rule())
                return_cost, return_rule = calculate_excursion_return_cost(trip_analysis, distance, duration, settings)
                rules.append(return_rule)
                price = round2(price + return_cost)
                if return_rule.return_source == "SYMMETRIC_ESTIMATE":
                    internal_cost = round2(internal_cost + return_cost)

    if pricing_mode == FIXED_GRID and request.trip_type == "transfer" and request.is_round_trip:
        price, internal_cost, round_trip_rule = apply_round_trip_multiplier(price, internal_cost)
        rules.append(round_trip_rule)
        trip_analysis = replace(trip_analysis, is_round_trip=True)

    surcharge_total, surcharge_rule = zone_surcharges(pickup_zone, dropoff_zone)
    if surcharge_rule is not None:
        rules.append(surcharge_rule)
        internal_cost = round2(internal_cost + surcharge_total)
        trip_analysis = replace(
            trip_analysis,
            cost_breakdown=with_extra_parking(trip_analysis.cost_breakdown, surcharge_total, "Zone surcharges"),
            total_internal_cost=round2(trip_analysis.total_internal_cost + surcharge_total),
        )

    is_fixed = pricing_mode == FIXED_GRID
    compliance = integrate_compliance(
        trip_analysis,
        category.regulatory_category if category is not None else None,
        context.rse_rules,
        settings.staffing_cost_parameters,
        settings.staffing_selection_policy,
        added_to_price=not is_fixed,
    )
    trip_analysis = compliance.trip_analysis
    if compliance.rule is not None:
        rules.append(compliance.rule)
    if compliance.additional_staffing_cost > ZERO:
        internal_cost = round2(internal_cost + compliance.additional_staffing_cost)
        if not is_fixed:
            # A contract price is final; staffing only erodes its margin
            price = round2(price + compliance.additional_staffing_cost)

    price = round2(price)
    internal_cost = round2(internal_cost)
    margin = round2(price - internal_cost)
    pct = margin_percent(margin, price)
    data = profitability_data(pct, thresholds_from_settings(settings))

    logger.info(
        f"Priced {request.trip_type} for contact {request.contact_id}: {pricing_mode} {price} "
        f"(cost {internal_cost}, margin {pct}%)"
    )
    return PricingResult(
        pricing_mode=pricing_mode,
        price=price,
        internal_cost=internal_cost,
        margin=margin,
        margin_percent=pct,
        profitability_indicator=data.indicator,
        profitability_data=data,
        applied_rules=rules,
        trip_analysis=trip_analysis,
        currency=default_currency(),
        matched_grid=matched_grid,
        is_contract_price=is_contract_price,
        fallback_reason=catalog.fallback_reason,
        grid_search_details=catalog.grid_search_details,
    )
