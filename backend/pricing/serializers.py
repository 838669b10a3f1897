from __future__ import annotations

import re

from rest_framework import serializers

from .dataclasses import TRIP_TYPES
from .services.compliance import STAFFING_POLICIES
from .services.geo import CONFLICT_STRATEGIES
from .services.modifiers import ADJUSTMENT_FIXED, ADJUSTMENT_PERCENTAGE, NIGHT, WEEKEND, ZONE_STRATEGIES
from .services.trip_types import INTERPOLATION_STRATEGIES

_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DAYS_OF_WEEK_RE = re.compile(r"^[0-6](,[0-6])*$")


def _money(**kwargs):
    return serializers.DecimalField(max_digits=14, decimal_places=2, **kwargs)


def _quantity(**kwargs):
    return serializers.DecimalField(max_digits=14, decimal_places=4, **kwargs)


def _optional(field_factory):
    return field_factory(required=False, allow_null=True)


# ---------- REQUEST ----------
class GeoPointSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)


class TripStopSerializer(serializers.Serializer):
    point = GeoPointSerializer()
    order = serializers.IntegerField(min_value=0)
    address = serializers.CharField(required=False, allow_blank=True, default="")
    distance_km = _optional(_quantity)
    duration_minutes = _optional(_quantity)


class VehiclePositioningSerializer(serializers.Serializer):
    approach_distance_km = _quantity(min_value=0)
    approach_duration_minutes = _quantity(min_value=0)
    return_distance_km = _quantity(min_value=0)
    return_duration_minutes = _quantity(min_value=0)
    base_name = serializers.CharField(required=False, allow_blank=True, default="")


class PricingRequestSerializer(serializers.Serializer):
    contact_id = serializers.CharField()
    pickup = GeoPointSerializer()
    dropoff = GeoPointSerializer()
    vehicle_category_id = serializers.CharField()
    trip_type = serializers.ChoiceField(choices=TRIP_TYPES, required=False, default="transfer")
    estimated_distance_km = serializers.DecimalField(
        max_digits=14, decimal_places=4, min_value=0, required=False, allow_null=True
    )
    estimated_duration_minutes = serializers.DecimalField(
        max_digits=14, decimal_places=4, min_value=0, required=False, allow_null=True
    )
    pickup_at = serializers.DateTimeField(required=False, allow_null=True)
    estimated_end_at = serializers.DateTimeField(required=False, allow_null=True)
    is_round_trip = serializers.BooleanField(required=False, default=False)
    waiting_time_minutes = _optional(_quantity)
    stops = TripStopSerializer(many=True, required=False)
    duration_hours = _optional(_quantity)
    return_date = serializers.DateTimeField(required=False, allow_null=True)
    final_leg_distance_km = _optional(_quantity)
    final_leg_duration_minutes = _optional(_quantity)
    vehicle_positioning = VehiclePositioningSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        """Reject an end time that precedes the pickup."""
        pickup_at = attrs.get("pickup_at")
        end_at = attrs.get("estimated_end_at")
        if pickup_at is not None and end_at is not None and end_at < pickup_at:
            raise serializers.ValidationError({"estimated_end_at": "Must not be before pickup_at."})
        return attrs


# ---------- CATALOG / CONTRACT ----------
class ZoneRouteSerializer(serializers.Serializer):
    id = serializers.CharField()
    vehicle_category_id = serializers.CharField()
    fixed_price = _money(min_value=0)
    name = serializers.CharField(required=False, allow_blank=True, default="")
    direction = serializers.ChoiceField(
        choices=("BIDIRECTIONAL", "A_TO_B", "B_TO_A"), required=False, default="BIDIRECTIONAL"
    )
    is_active = serializers.BooleanField(required=False, default=True)
    from_zone_id = serializers.CharField(required=False, allow_null=True)
    to_zone_id = serializers.CharField(required=False, allow_null=True)
    origin_type = serializers.ChoiceField(choices=("ZONES", "ADDRESS"), required=False, default="ZONES")
    origin_zone_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    origin_lat = serializers.FloatField(required=False, allow_null=True)
    origin_lng = serializers.FloatField(required=False, allow_null=True)
    origin_address = serializers.CharField(required=False, allow_blank=True, default="")
    destination_type = serializers.ChoiceField(choices=("ZONES", "ADDRESS"), required=False, default="ZONES")
    destination_zone_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    destination_lat = serializers.FloatField(required=False, allow_null=True)
    destination_lng = serializers.FloatField(required=False, allow_null=True)
    destination_address = serializers.CharField(required=False, allow_blank=True, default="")
    override_price = _optional(_money)


class ExcursionPackageSerializer(serializers.Serializer):
    id = serializers.CharField()
    vehicle_category_id = serializers.CharField()
    price = _money(min_value=0)
    name = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)
    origin_zone_id = serializers.CharField(required=False, allow_null=True)
    destination_zone_id = serializers.CharField(required=False, allow_null=True)
    override_price = _optional(_money)


class DispoPackageSerializer(serializers.Serializer):
    id = serializers.CharField()
    vehicle_category_id = serializers.CharField()
    base_price = _money(min_value=0)
    name = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)
    included_hours = _optional(_quantity)
    override_price = _optional(_money)


class PartnerContractSerializer(serializers.Serializer):
    id = serializers.CharField()
    zone_routes = ZoneRouteSerializer(many=True, required=False)
    excursion_packages = ExcursionPackageSerializer(many=True, required=False)
    dispo_packages = DispoPackageSerializer(many=True, required=False)


class ContactSerializer(serializers.Serializer):
    id = serializers.CharField()
    is_partner = serializers.BooleanField(required=False, default=False)
    partner_contract = PartnerContractSerializer(required=False, allow_null=True)


# ---------- ORGANIZATION CONFIGURATION ----------
class ZoneSerializer(serializers.Serializer):
    id = serializers.CharField()
    code = serializers.CharField()
    name = serializers.CharField(required=False, allow_blank=True, default="")
    zone_type = serializers.ChoiceField(choices=("POLYGON", "RADIUS", "POINT"), required=False, default="POLYGON")
    geometry = serializers.ListField(
        child=serializers.ListField(child=serializers.FloatField(), min_length=2, max_length=2),
        required=False,
        allow_null=True,
    )
    center_latitude = serializers.FloatField(required=False, allow_null=True)
    center_longitude = serializers.FloatField(required=False, allow_null=True)
    radius_km = serializers.FloatField(required=False, allow_null=True, min_value=0)
    price_multiplier = _quantity(min_value=0, required=False, default=1)
    priority = serializers.IntegerField(required=False, default=0)
    is_active = serializers.BooleanField(required=False, default=True)
    is_central_zone = serializers.BooleanField(required=False, default=False)
    fixed_parking_surcharge = _optional(_money)
    fixed_access_fee = _optional(_money)

    def validate(self, attrs):
        """Each zone type needs its own shape: a ring, or a center (and radius)."""
        zone_type = attrs.get("zone_type", "POLYGON")
        has_center = attrs.get("center_latitude") is not None and attrs.get("center_longitude") is not None
        if zone_type == "POLYGON" and not attrs.get("geometry"):
            raise serializers.ValidationError({"geometry": "Polygon zones require a geometry ring."})
        if zone_type in ("RADIUS", "POINT") and not has_center:
            raise serializers.ValidationError({"center_latitude": f"{zone_type} zones require a center."})
        if zone_type == "RADIUS" and attrs.get("radius_km") is None:
            raise serializers.ValidationError({"radius_km": "Radius zones require radius_km."})
        return attrs


class VehicleCategorySerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField(required=False, allow_blank=True, default="")
    code = serializers.CharField(required=False, allow_blank=True, default="")
    regulatory_category = serializers.ChoiceField(choices=("LIGHT", "HEAVY"), required=False, default="LIGHT")
    price_multiplier = _quantity(min_value=0, required=False, default=1)
    default_rate_per_km = _optional(_quantity)
    default_rate_per_hour = _optional(_quantity)


class AdvancedRateSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    applies_to = serializers.ChoiceField(choices=(NIGHT, WEEKEND))
    adjustment_type = serializers.ChoiceField(choices=(ADJUSTMENT_PERCENTAGE, ADJUSTMENT_FIXED))
    value = _quantity()
    priority = serializers.IntegerField(required=False, default=0)
    is_active = serializers.BooleanField(required=False, default=True)
    start_time = serializers.CharField(required=False, allow_null=True)
    end_time = serializers.CharField(required=False, allow_null=True)
    days_of_week = serializers.CharField(required=False, allow_null=True)
    vehicle_category_id = serializers.CharField(required=False, allow_null=True)
    vehicle_category_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate_start_time(self, value):
        """Times of day are HH:MM on a 24h clock."""
        if value is not None and not _TIME_OF_DAY_RE.match(value):
            raise serializers.ValidationError("Expected HH:MM.")
        return value

    def validate_end_time(self, value):
        if value is not None and not _TIME_OF_DAY_RE.match(value):
            raise serializers.ValidationError("Expected HH:MM.")
        return value

    def validate_days_of_week(self, value):
        """Comma-separated day numbers, 0 = Sunday."""
        if value is not None and not _DAYS_OF_WEEK_RE.match(value.replace(" ", "")):
            raise serializers.ValidationError("Expected comma-separated day numbers 0-6.")
        return value.replace(" ", "") if value is not None else value


class SeasonalMultiplierSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    multiplier = _quantity(min_value=0)
    priority = serializers.IntegerField(required=False, default=0)
    is_active = serializers.BooleanField(required=False, default=True)
    vehicle_category_id = serializers.CharField(required=False, allow_null=True)
    vehicle_category_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate(self, attrs):
        if attrs["end_date"] < attrs["start_date"]:
            raise serializers.ValidationError({"end_date": "Must not be before start_date."})
        return attrs


class TimeBucketSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_null=True)
    duration_hours = _quantity(min_value=0)
    price = _money(min_value=0)
    vehicle_category_id = serializers.CharField()
    is_active = serializers.BooleanField(required=False, default=True)


class IntraCentralFlatRateSerializer(serializers.Serializer):
    id = serializers.CharField()
    vehicle_category_id = serializers.CharField()
    flat_price = _money(min_value=0)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)


class HierarchicalPricingConfigSerializer(serializers.Serializer):
    enabled = serializers.BooleanField(required=False, default=True)
    skip_level1 = serializers.BooleanField(required=False, default=False)
    skip_level2 = serializers.BooleanField(required=False, default=False)
    skip_level3 = serializers.BooleanField(required=False, default=False)
    central_zone_codes = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)


class RSERulesSerializer(serializers.Serializer):
    max_daily_driving_hours = _quantity(min_value=0)
    max_daily_amplitude_hours = _quantity(min_value=0)
    break_minutes_per_driving_block = _quantity(min_value=0)
    driving_block_hours_for_break = _quantity(min_value=0)
    capped_average_speed_kmh = _optional(_quantity)
    warning_ratio = _quantity(min_value=0, max_value=1, required=False, default="0.9")


class StaffingCostParametersSerializer(serializers.Serializer):
    driver_hourly_cost = _money(min_value=0)
    hotel_cost_per_night = _money(min_value=0)
    meal_allowance_per_day = _money(min_value=0)
    double_crew_amplitude_hours = _quantity(min_value=0, required=False, default=18)
    max_multi_day_days = serializers.IntegerField(min_value=1, required=False, default=3)
    standard_work_day_hours = _quantity(min_value=0, required=False, default=8)


class OrganizationPricingSettingsSerializer(serializers.Serializer):
    base_rate_per_km = _optional(_quantity)
    base_rate_per_hour = _optional(_quantity)
    target_margin_percent = _optional(_quantity)
    fuel_consumption_l_per_100km = _optional(_quantity)
    fuel_price_per_liter = _optional(_quantity)
    fuel_type = serializers.CharField(required=False, allow_null=True)
    fuel_prices = serializers.DictField(child=_quantity(min_value=0), required=False, allow_null=True)
    toll_cost_per_km = _optional(_quantity)
    wear_cost_per_km = _optional(_quantity)
    driver_hourly_cost = _optional(_quantity)
    green_margin_threshold = _optional(_quantity)
    orange_margin_threshold = _optional(_quantity)
    minimum_margin_percent = _optional(_quantity)
    zone_multiplier_aggregation_strategy = serializers.ChoiceField(
        choices=ZONE_STRATEGIES, required=False, allow_null=True
    )
    zone_conflict_strategy = serializers.ChoiceField(choices=CONFLICT_STRATEGIES, required=False, allow_null=True)
    excursion_minimum_hours = _optional(_quantity)
    excursion_surcharge_percent = _optional(_quantity)
    dispo_included_km_per_hour = _optional(_quantity)
    dispo_overage_rate_per_km = _optional(_quantity)
    time_bucket_interpolation_strategy = serializers.ChoiceField(
        choices=INTERPOLATION_STRATEGIES, required=False, allow_null=True
    )
    dense_zone_codes = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)
    dense_zone_speed_threshold = _optional(_quantity)
    auto_switch_to_mad = serializers.BooleanField(required=False, allow_null=True)
    min_waiting_time_for_separate_transfers = _optional(_quantity)
    max_return_distance_km = _optional(_quantity)
    round_trip_buffer_minutes = _optional(_quantity)
    auto_switch_round_trip_to_mad = serializers.BooleanField(required=False, allow_null=True)
    wait_on_site_threshold_minutes = _optional(_quantity)
    staffing_selection_policy = serializers.ChoiceField(choices=STAFFING_POLICIES, required=False, allow_null=True)
    staffing_cost_parameters = StaffingCostParametersSerializer(required=False, allow_null=True)
    hierarchical_pricing = HierarchicalPricingConfigSerializer(required=False, allow_null=True)

    def validate_fuel_type(self, value):
        """Fuel types are matched upper-case against the fuel price table."""
        return value.strip().upper() if value else value


class PricingContextSerializer(serializers.Serializer):
    contact = ContactSerializer()
    settings = OrganizationPricingSettingsSerializer(required=False)
    vehicle_category = VehicleCategorySerializer(required=False, allow_null=True)
    zones = ZoneSerializer(many=True, required=False)
    advanced_rates = AdvancedRateSerializer(many=True, required=False)
    seasonal_multipliers = SeasonalMultiplierSerializer(many=True, required=False)
    time_buckets = TimeBucketSerializer(many=True, required=False)
    intra_central_flat_rates = IntraCentralFlatRateSerializer(many=True, required=False)
    inter_zone_forfaits = ZoneRouteSerializer(many=True, required=False)
    rse_rules = RSERulesSerializer(required=False, allow_null=True)


# ---------- ENDPOINT PAYLOADS ----------
class CalculatePriceSerializer(serializers.Serializer):
    request = PricingRequestSerializer()
    context = PricingContextSerializer()


class OverridePriceSerializer(CalculatePriceSerializer):
    new_price = serializers.DecimalField(max_digits=14, decimal_places=2)
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    min_margin_percent = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, allow_null=True)
    overridden_at = serializers.DateTimeField(required=False, allow_null=True)
