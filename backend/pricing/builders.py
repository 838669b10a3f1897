"""
Build engine inputs from validated serializer data.

Serializers only check shapes; every value is coerced to the engine's types
here so the services never see request dictionaries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from .dataclasses import (
    AdvancedRate,
    ContactData,
    DispoPackage,
    ExcursionPackage,
    GeoPoint,
    HierarchicalPricingConfig,
    IntraCentralFlatRate,
    OrganizationPricingSettings,
    PartnerContract,
    PricingContext,
    PricingRequest,
    RSERules,
    SeasonalMultiplier,
    StaffingCostParameters,
    TimeBucket,
    TripStop,
    VehicleCategory,
    VehiclePositioning,
    ZoneData,
    ZoneRoute,
)
from .services.utils import d


def _opt_decimal(value):
    return d(value) if value is not None else None


def build_point(data: Dict[str, Any]) -> GeoPoint:
    return GeoPoint(lat=float(data["lat"]), lng=float(data["lng"]))


def build_request(data: Dict[str, Any]) -> PricingRequest:
    positioning = data.get("vehicle_positioning")
    stops = tuple(
        TripStop(
            point=build_point(s["point"]),
            order=int(s["order"]),
            address=s.get("address", ""),
            distance_km=_opt_decimal(s.get("distance_km")),
            duration_minutes=_opt_decimal(s.get("duration_minutes")),
        )
        for s in data.get("stops") or []
    )
    return PricingRequest(
        contact_id=str(data["contact_id"]),
        pickup=build_point(data["pickup"]),
        dropoff=build_point(data["dropoff"]),
        vehicle_category_id=str(data["vehicle_category_id"]),
        trip_type=data.get("trip_type", "transfer"),
        estimated_distance_km=_opt_decimal(data.get("estimated_distance_km")),
        estimated_duration_minutes=_opt_decimal(data.get("estimated_duration_minutes")),
        pickup_at=data.get("pickup_at"),
        estimated_end_at=data.get("estimated_end_at"),
        is_round_trip=bool(data.get("is_round_trip", False)),
        waiting_time_minutes=_opt_decimal(data.get("waiting_time_minutes")),
        stops=stops,
        duration_hours=_opt_decimal(data.get("duration_hours")),
        return_date=data.get("return_date"),
        final_leg_distance_km=_opt_decimal(data.get("final_leg_distance_km")),
        final_leg_duration_minutes=_opt_decimal(data.get("final_leg_duration_minutes")),
        vehicle_positioning=VehiclePositioning(
            approach_distance_km=d(positioning["approach_distance_km"]),
            approach_duration_minutes=d(positioning["approach_duration_minutes"]),
            return_distance_km=d(positioning["return_distance_km"]),
            return_duration_minutes=d(positioning["return_duration_minutes"]),
            base_name=positioning.get("base_name", ""),
        )
        if positioning
        else None,
    )


def build_zone_route(data: Dict[str, Any]) -> ZoneRoute:
    return ZoneRoute(
        id=str(data["id"]),
        vehicle_category_id=str(data["vehicle_category_id"]),
        fixed_price=d(data["fixed_price"]),
        name=data.get("name", ""),
        direction=data.get("direction", "BIDIRECTIONAL"),
        is_active=data.get("is_active", True),
        from_zone_id=data.get("from_zone_id"),
        to_zone_id=data.get("to_zone_id"),
        origin_type=data.get("origin_type", "ZONES"),
        origin_zone_ids=list(data.get("origin_zone_ids") or []),
        origin_lat=data.get("origin_lat"),
        origin_lng=data.get("origin_lng"),
        origin_address=data.get("origin_address", ""),
        destination_type=data.get("destination_type", "ZONES"),
        destination_zone_ids=list(data.get("destination_zone_ids") or []),
        destination_lat=data.get("destination_lat"),
        destination_lng=data.get("destination_lng"),
        destination_address=data.get("destination_address", ""),
        override_price=_opt_decimal(data.get("override_price")),
    )


def _build_contract(data: Optional[Dict[str, Any]]) -> Optional[PartnerContract]:
    if not data:
        return None
    return PartnerContract(
        id=str(data["id"]),
        zone_routes=[build_zone_route(r) for r in data.get("zone_routes") or []],
        excursion_packages=[
            ExcursionPackage(
                id=str(p["id"]),
                vehicle_category_id=str(p["vehicle_category_id"]),
                price=d(p["price"]),
                name=p.get("name", ""),
                is_active=p.get("is_active", True),
                origin_zone_id=p.get("origin_zone_id"),
                destination_zone_id=p.get("destination_zone_id"),
                override_price=_opt_decimal(p.get("override_price")),
            )
            for p in data.get("excursion_packages") or []
        ],
        dispo_packages=[
            DispoPackage(
                id=str(p["id"]),
                vehicle_category_id=str(p["vehicle_category_id"]),
                base_price=d(p["base_price"]),
                name=p.get("name", ""),
                is_active=p.get("is_active", True),
                included_hours=_opt_decimal(p.get("included_hours")),
                override_price=_opt_decimal(p.get("override_price")),
            )
            for p in data.get("dispo_packages") or []
        ],
    )


def build_contact(data: Dict[str, Any]) -> ContactData:
    return ContactData(
        id=str(data["id"]),
        is_partner=bool(data.get("is_partner", False)),
        partner_contract=_build_contract(data.get("partner_contract")),
    )


def build_zone(data: Dict[str, Any]) -> ZoneData:
    return ZoneData(
        id=str(data["id"]),
        code=data["code"],
        name=data.get("name", ""),
        zone_type=data.get("zone_type", "POLYGON"),
        geometry=[list(p) for p in data["geometry"]] if data.get("geometry") else None,
        center_latitude=data.get("center_latitude"),
        center_longitude=data.get("center_longitude"),
        radius_km=data.get("radius_km"),
        price_multiplier=d(data.get("price_multiplier", 1)),
        priority=int(data.get("priority", 0)),
        is_active=data.get("is_active", True),
        is_central_zone=data.get("is_central_zone", False),
        fixed_parking_surcharge=_opt_decimal(data.get("fixed_parking_surcharge")),
        fixed_access_fee=_opt_decimal(data.get("fixed_access_fee")),
    )


def build_vehicle_category(data: Optional[Dict[str, Any]]) -> Optional[VehicleCategory]:
    if not data:
        return None
    return VehicleCategory(
        id=str(data["id"]),
        name=data.get("name", ""),
        code=data.get("code", ""),
        regulatory_category=data.get("regulatory_category", "LIGHT"),
        price_multiplier=d(data.get("price_multiplier", 1)),
        default_rate_per_km=_opt_decimal(data.get("default_rate_per_km")),
        default_rate_per_hour=_opt_decimal(data.get("default_rate_per_hour")),
    )


def _build_staffing(data: Optional[Dict[str, Any]]) -> Optional[StaffingCostParameters]:
    if not data:
        return None
    return StaffingCostParameters(
        driver_hourly_cost=d(data["driver_hourly_cost"]),
        hotel_cost_per_night=d(data["hotel_cost_per_night"]),
        meal_allowance_per_day=d(data["meal_allowance_per_day"]),
        double_crew_amplitude_hours=d(data.get("double_crew_amplitude_hours", 18)),
        max_multi_day_days=int(data.get("max_multi_day_days", 3)),
        standard_work_day_hours=d(data.get("standard_work_day_hours", 8)),
    )


def _build_hierarchical(data: Optional[Dict[str, Any]]) -> Optional[HierarchicalPricingConfig]:
    if data is None:
        return None
    codes = data.get("central_zone_codes")
    return HierarchicalPricingConfig(
        enabled=data.get("enabled", True),
        skip_level1=data.get("skip_level1", False),
        skip_level2=data.get("skip_level2", False),
        skip_level3=data.get("skip_level3", False),
        central_zone_codes=list(codes) if codes is not None else None,
    )


_NESTED_SETTINGS = {"fuel_prices", "dense_zone_codes", "staffing_cost_parameters", "hierarchical_pricing"}
_PLAIN_SETTINGS = {
    "fuel_type",
    "zone_multiplier_aggregation_strategy",
    "zone_conflict_strategy",
    "time_bucket_interpolation_strategy",
    "auto_switch_to_mad",
    "auto_switch_round_trip_to_mad",
    "staffing_selection_policy",
}


def build_settings(data: Optional[Dict[str, Any]]) -> OrganizationPricingSettings:
    data = data or {}
    values = {}
    for key, value in data.items():
        if key in _NESTED_SETTINGS or value is None:
            continue
        values[key] = value if key in _PLAIN_SETTINGS else d(value)
    if data.get("fuel_prices") is not None:
        values["fuel_prices"] = {k.upper(): d(v) for k, v in data["fuel_prices"].items()}
    if data.get("dense_zone_codes") is not None:
        values["dense_zone_codes"] = list(data["dense_zone_codes"])
    values["staffing_cost_parameters"] = _build_staffing(data.get("staffing_cost_parameters"))
    values["hierarchical_pricing"] = _build_hierarchical(data.get("hierarchical_pricing"))
    return OrganizationPricingSettings(**values)


def _build_rse(data: Optional[Dict[str, Any]]) -> Optional[RSERules]:
    if not data:
        return None
    return RSERules(
        max_daily_driving_hours=d(data["max_daily_driving_hours"]),
        max_daily_amplitude_hours=d(data["max_daily_amplitude_hours"]),
        break_minutes_per_driving_block=d(data["break_minutes_per_driving_block"]),
        driving_block_hours_for_break=d(data["driving_block_hours_for_break"]),
        capped_average_speed_kmh=_opt_decimal(data.get("capped_average_speed_kmh")),
        warning_ratio=d(data.get("warning_ratio", "0.9")),
    )


def build_context(data: Dict[str, Any]) -> PricingContext:
    return PricingContext(
        contact=build_contact(data["contact"]),
        settings=build_settings(data.get("settings")),
        vehicle_category=build_vehicle_category(data.get("vehicle_category")),
        zones=[build_zone(z) for z in data.get("zones") or []],
        advanced_rates=[
            AdvancedRate(
                id=str(r["id"]),
                name=r["name"],
                applies_to=r["applies_to"],
                adjustment_type=r["adjustment_type"],
                value=d(r["value"]),
                priority=int(r.get("priority", 0)),
                is_active=r.get("is_active", True),
                start_time=r.get("start_time"),
                end_time=r.get("end_time"),
                days_of_week=r.get("days_of_week"),
                vehicle_category_id=r.get("vehicle_category_id"),
                vehicle_category_ids=list(r.get("vehicle_category_ids") or []),
            )
            for r in data.get("advanced_rates") or []
        ],
        seasonal_multipliers=[
            SeasonalMultiplier(
                id=str(s["id"]),
                name=s["name"],
                start_date=s["start_date"],
                end_date=s["end_date"],
                multiplier=d(s["multiplier"]),
                priority=int(s.get("priority", 0)),
                is_active=s.get("is_active", True),
                vehicle_category_id=s.get("vehicle_category_id"),
                vehicle_category_ids=list(s.get("vehicle_category_ids") or []),
            )
            for s in data.get("seasonal_multipliers") or []
        ],
        time_buckets=[
            TimeBucket(
                duration_hours=d(b["duration_hours"]),
                price=d(b["price"]),
                vehicle_category_id=str(b["vehicle_category_id"]),
                is_active=b.get("is_active", True),
                id=b.get("id"),
            )
            for b in data.get("time_buckets") or []
        ],
        intra_central_flat_rates=[
            IntraCentralFlatRate(
                id=str(r["id"]),
                vehicle_category_id=str(r["vehicle_category_id"]),
                flat_price=d(r["flat_price"]),
                description=r.get("description", ""),
                is_active=r.get("is_active", True),
            )
            for r in data.get("intra_central_flat_rates") or []
        ],
        inter_zone_forfaits=[build_zone_route(f) for f in data.get("inter_zone_forfaits") or []],
        rse_rules=_build_rse(data.get("rse_rules")),
    )


def build_pricing_inputs(data: Dict[str, Any]) -> Tuple[PricingRequest, PricingContext]:
    """Turn a validated ``{"request": ..., "context": ...}`` payload into engine inputs."""
    return build_request(data["request"]), build_context(data["context"])
