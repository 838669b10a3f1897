from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .services.utils import ONE, ZERO


TRIP_TYPES = ("transfer", "dispo", "excursion")


def to_primitive(value: Any) -> Any:
    """Convert nested dataclasses into plain dicts/lists for JSON responses."""
    if hasattr(value, "to_dict") and not isinstance(value, type):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_primitive(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_primitive(v) for v in value]
    if isinstance(value, dict):
        return {k: to_primitive(v) for k, v in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class TripStop:
    point: GeoPoint
    order: int
    address: str = ""
    # Leg from the previous waypoint to this stop, when the caller routed it
    distance_km: Optional[Decimal] = None
    duration_minutes: Optional[Decimal] = None


@dataclass(frozen=True)
class VehiclePositioning:
    """Approach and return legs between the operating base and the trip."""
    approach_distance_km: Decimal
    approach_duration_minutes: Decimal
    return_distance_km: Decimal
    return_duration_minutes: Decimal
    base_name: str = ""


@dataclass(frozen=True)
class PricingRequest:
    contact_id: str
    pickup: GeoPoint
    dropoff: GeoPoint
    vehicle_category_id: str
    trip_type: str = "transfer"
    estimated_distance_km: Optional[Decimal] = None
    estimated_duration_minutes: Optional[Decimal] = None
    pickup_at: Optional[datetime] = None
    estimated_end_at: Optional[datetime] = None
    is_round_trip: bool = False
    waiting_time_minutes: Optional[Decimal] = None
    stops: Tuple[TripStop, ...] = ()
    duration_hours: Optional[Decimal] = None
    return_date: Optional[datetime] = None
    final_leg_distance_km: Optional[Decimal] = None
    final_leg_duration_minutes: Optional[Decimal] = None
    vehicle_positioning: Optional[VehiclePositioning] = None


@dataclass
class ZoneData:
    id: str
    code: str
    name: str = ""
    zone_type: str = "POLYGON"
    # GeoJSON ring: [[lng, lat], ...]
    geometry: Optional[List[List[float]]] = None
    center_latitude: Optional[float] = None
    center_longitude: Optional[float] = None
    radius_km: Optional[float] = None
    price_multiplier: Decimal = ONE
    priority: int = 0
    is_active: bool = True
    is_central_zone: bool = False
    fixed_parking_surcharge: Optional[Decimal] = None
    fixed_access_fee: Optional[Decimal] = None

    @property
    def has_center(self) -> bool:
        return self.center_latitude is not None and self.center_longitude is not None


@dataclass
class VehicleCategory:
    id: str
    name: str = ""
    code: str = ""
    regulatory_category: str = "LIGHT"
    price_multiplier: Decimal = ONE
    default_rate_per_km: Optional[Decimal] = None
    default_rate_per_hour: Optional[Decimal] = None

    @property
    def has_own_rates(self) -> bool:
        return self.default_rate_per_km is not None and self.default_rate_per_hour is not None


@dataclass
class ZoneRoute:
    id: str
    vehicle_category_id: str
    fixed_price: Decimal
    name: str = ""
    direction: str = "BIDIRECTIONAL"
    is_active: bool = True
    # Legacy single-zone endpoints
    from_zone_id: Optional[str] = None
    to_zone_id: Optional[str] = None
    origin_type: str = "ZONES"
    origin_zone_ids: List[str] = field(default_factory=list)
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    origin_address: str = ""
    destination_type: str = "ZONES"
    destination_zone_ids: List[str] = field(default_factory=list)
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    destination_address: str = ""
    override_price: Optional[Decimal] = None

    @property
    def has_origin_address(self) -> bool:
        return self.origin_type == "ADDRESS" and self.origin_lat is not None and self.origin_lng is not None

    @property
    def has_destination_address(self) -> bool:
        return (
            self.destination_type == "ADDRESS"
            and self.destination_lat is not None
            and self.destination_lng is not None
        )

    @property
    def is_multi_zone(self) -> bool:
        return bool(self.origin_zone_ids) or bool(self.destination_zone_ids)

    def origin_label(self) -> str:
        if self.has_origin_address:
            return self.origin_address or f"{self.origin_lat},{self.origin_lng}"
        if self.origin_zone_ids:
            return ",".join(self.origin_zone_ids)
        return self.from_zone_id or ""

    def destination_label(self) -> str:
        if self.has_destination_address:
            return self.destination_address or f"{self.destination_lat},{self.destination_lng}"
        if self.destination_zone_ids:
            return ",".join(self.destination_zone_ids)
        return self.to_zone_id or ""


@dataclass
class ExcursionPackage:
    id: str
    vehicle_category_id: str
    price: Decimal
    name: str = ""
    is_active: bool = True
    origin_zone_id: Optional[str] = None
    destination_zone_id: Optional[str] = None
    override_price: Optional[Decimal] = None


@dataclass
class DispoPackage:
    id: str
    vehicle_category_id: str
    base_price: Decimal
    name: str = ""
    is_active: bool = True
    included_hours: Optional[Decimal] = None
    override_price: Optional[Decimal] = None


@dataclass
class PartnerContract:
    id: str
    zone_routes: List[ZoneRoute] = field(default_factory=list)
    excursion_packages: List[ExcursionPackage] = field(default_factory=list)
    dispo_packages: List[DispoPackage] = field(default_factory=list)


@dataclass
class ContactData:
    id: str
    is_partner: bool = False
    partner_contract: Optional[PartnerContract] = None


@dataclass
class AdvancedRate:
    id: str
    name: str
    applies_to: str
    adjustment_type: str
    value: Decimal
    priority: int = 0
    is_active: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    days_of_week: Optional[str] = None
    vehicle_category_id: Optional[str] = None
    vehicle_category_ids: List[str] = field(default_factory=list)


@dataclass
class SeasonalMultiplier:
    id: str
    name: str
    start_date: date
    end_date: date
    multiplier: Decimal
    priority: int = 0
    is_active: bool = True
    vehicle_category_id: Optional[str] = None
    vehicle_category_ids: List[str] = field(default_factory=list)


@dataclass
class TimeBucket:
    duration_hours: Decimal
    price: Decimal
    vehicle_category_id: str
    is_active: bool = True
    id: Optional[str] = None


@dataclass
class IntraCentralFlatRate:
    id: str
    vehicle_category_id: str
    flat_price: Decimal
    description: str = ""
    is_active: bool = True


@dataclass
class HierarchicalPricingConfig:
    enabled: bool = True
    skip_level1: bool = False
    skip_level2: bool = False
    skip_level3: bool = False
    central_zone_codes: Optional[List[str]] = None


@dataclass
class RSERules:
    max_daily_driving_hours: Decimal
    max_daily_amplitude_hours: Decimal
    break_minutes_per_driving_block: Decimal
    driving_block_hours_for_break: Decimal
    capped_average_speed_kmh: Optional[Decimal] = None
    warning_ratio: Decimal = Decimal("0.9")


@dataclass
class StaffingCostParameters:
    driver_hourly_cost: Decimal
    hotel_cost_per_night: Decimal
    meal_allowance_per_day: Decimal
    double_crew_amplitude_hours: Decimal = Decimal("18")
    max_multi_day_days: int = 3
    standard_work_day_hours: Decimal = Decimal("8")


@dataclass
class OrganizationPricingSettings:
    """Per-organization pricing knobs; ``None`` means "use the shipped default"."""
    base_rate_per_km: Optional[Decimal] = None
    base_rate_per_hour: Optional[Decimal] = None
    target_margin_percent: Optional[Decimal] = None
    fuel_consumption_l_per_100km: Optional[Decimal] = None
    fuel_price_per_liter: Optional[Decimal] = None
    fuel_type: Optional[str] = None
    fuel_prices: Optional[Dict[str, Decimal]] = None
    toll_cost_per_km: Optional[Decimal] = None
    wear_cost_per_km: Optional[Decimal] = None
    driver_hourly_cost: Optional[Decimal] = None
    green_margin_threshold: Optional[Decimal] = None
    orange_margin_threshold: Optional[Decimal] = None
    minimum_margin_percent: Optional[Decimal] = None
    zone_multiplier_aggregation_strategy: Optional[str] = None
    zone_conflict_strategy: Optional[str] = None
    excursion_minimum_hours: Optional[Decimal] = None
    excursion_surcharge_percent: Optional[Decimal] = None
    dispo_included_km_per_hour: Optional[Decimal] = None
    dispo_overage_rate_per_km: Optional[Decimal] = None
    time_bucket_interpolation_strategy: Optional[str] = None
    dense_zone_codes: Optional[List[str]] = None
    dense_zone_speed_threshold: Optional[Decimal] = None
    auto_switch_to_mad: Optional[bool] = None
    min_waiting_time_for_separate_transfers: Optional[Decimal] = None
    max_return_distance_km: Optional[Decimal] = None
    round_trip_buffer_minutes: Optional[Decimal] = None
    auto_switch_round_trip_to_mad: Optional[bool] = None
    wait_on_site_threshold_minutes: Optional[Decimal] = None
    staffing_selection_policy: Optional[str] = None
    staffing_cost_parameters: Optional[StaffingCostParameters] = None
    hierarchical_pricing: Optional[HierarchicalPricingConfig] = None


@dataclass
class PricingContext:
    """Everything the engine needs besides the request, supplied by value."""
    contact: ContactData
    settings: OrganizationPricingSettings = field(default_factory=OrganizationPricingSettings)
    vehicle_category: Optional[VehicleCategory] = None
    zones: List[ZoneData] = field(default_factory=list)
    advanced_rates: List[AdvancedRate] = field(default_factory=list)
    seasonal_multipliers: List[SeasonalMultiplier] = field(default_factory=list)
    time_buckets: List[TimeBucket] = field(default_factory=list)
    intra_central_flat_rates: List[IntraCentralFlatRate] = field(default_factory=list)
    inter_zone_forfaits: List[ZoneRoute] = field(default_factory=list)
    rse_rules: Optional[RSERules] = None


# ---------------------------------------------------------------------------
# Cost breakdown and trip analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FuelCost:
    amount: Decimal
    distance_km: Decimal
    consumption_l_per_100km: Decimal
    price_per_liter: Decimal
    fuel_type: str


@dataclass(frozen=True)
class DistanceCost:
    amount: Decimal
    distance_km: Decimal
    rate_per_km: Decimal


@dataclass(frozen=True)
class DriverCost:
    amount: Decimal
    duration_minutes: Decimal
    hourly_rate: Decimal


@dataclass(frozen=True)
class ParkingCost:
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class CostBreakdown:
    fuel: FuelCost
    tolls: DistanceCost
    wear: DistanceCost
    driver: DriverCost
    parking: ParkingCost
    total: Decimal


@dataclass(frozen=True)
class SegmentAnalysis:
    name: str
    description: str
    distance_km: Decimal
    duration_minutes: Decimal
    cost: CostBreakdown
    is_applicable: bool = True


@dataclass(frozen=True)
class ExcursionLeg:
    order: int
    from_point: GeoPoint
    to_point: GeoPoint
    from_address: str
    to_address: str
    distance_km: Decimal
    duration_minutes: Decimal
    cost: CostBreakdown
    is_estimated: bool = False


@dataclass(frozen=True)
class ComplianceViolation:
    type: str
    message: str
    actual: Decimal
    limit: Decimal
    unit: str = "hours"


@dataclass(frozen=True)
class ComplianceWarning:
    type: str
    message: str
    actual: Decimal
    limit: Decimal
    percent_of_limit: Decimal


@dataclass(frozen=True)
class StaffingCostBreakdown:
    extra_driver_cost: Decimal = ZERO
    hotel_cost: Decimal = ZERO
    meal_allowance: Decimal = ZERO
    other_costs: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.extra_driver_cost + self.hotel_cost + self.meal_allowance + self.other_costs


@dataclass(frozen=True)
class AdjustedSchedule:
    days_required: int = 1
    drivers_required: int = 1
    hotel_nights_required: int = 0


@dataclass(frozen=True)
class CompliancePlan:
    plan_type: str
    is_required: bool
    additional_cost: Decimal
    cost_breakdown: StaffingCostBreakdown
    adjusted_schedule: AdjustedSchedule
    original_violations: Tuple[ComplianceViolation, ...] = ()
    warnings: Tuple[ComplianceWarning, ...] = ()
    selected_reason: str = ""


@dataclass(frozen=True)
class TripAnalysis:
    segments: Tuple[SegmentAnalysis, ...]
    total_distance_km: Decimal
    total_duration_minutes: Decimal
    total_internal_cost: Decimal
    cost_breakdown: CostBreakdown
    routing_source: str
    estimated_end_at: Optional[datetime] = None
    is_round_trip: bool = False
    round_trip_mode: Optional[str] = None
    compliance_plan: Optional[CompliancePlan] = None
    excursion_legs: Optional[Tuple[ExcursionLeg, ...]] = None
    total_stops: int = 0
    is_multi_day: bool = False

    def segment(self, name: str) -> Optional[SegmentAnalysis]:
        for seg in self.segments:
            if seg.name == name:
                return seg
        return None


# ---------------------------------------------------------------------------
# Catalog search trace
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ZoneRef:
    id: str
    name: str
    code: str


@dataclass(frozen=True)
class CatalogCheck:
    entry_id: str
    entry_name: str
    from_zone: str
    to_zone: str
    vehicle_category_id: str
    rejection_reason: Optional[str]


@dataclass
class GridSearchDetails:
    pickup_zone: Optional[ZoneRef]
    dropoff_zone: Optional[ZoneRef]
    vehicle_category_id: str
    trip_type: str
    routes_checked: List[CatalogCheck] = field(default_factory=list)
    excursions_checked: List[CatalogCheck] = field(default_factory=list)
    dispos_checked: List[CatalogCheck] = field(default_factory=list)


@dataclass(frozen=True)
class MatchedGrid:
    type: str
    id: str
    name: str
    catalog_price: Decimal
    effective_price: Decimal
    from_zone: str = ""
    to_zone: str = ""


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfitabilityData:
    indicator: str
    margin_percent: Decimal
    thresholds: Dict[str, Decimal]
    label: str
    description: str


@dataclass
class PricingResult:
    pricing_mode: str
    price: Decimal
    internal_cost: Decimal
    margin: Decimal
    margin_percent: Decimal
    profitability_indicator: str
    profitability_data: ProfitabilityData
    applied_rules: List[Any]
    trip_analysis: TripAnalysis
    currency: str = "EUR"
    matched_grid: Optional[MatchedGrid] = None
    is_contract_price: bool = False
    fallback_reason: Optional[str] = None
    grid_search_details: Optional[GridSearchDetails] = None
    override_applied: bool = False
    previous_price: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: to_primitive(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class OverrideError:
    error_code: str
    error_message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OverrideResult:
    success: bool
    result: Optional[PricingResult] = None
    error: Optional[OverrideError] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.result.to_dict()}
        return {"success": False, "error": to_primitive(self.error)}
