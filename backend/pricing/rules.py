"""
Applied pricing rules.

Every decision the engine takes is recorded as one ``AppliedRule`` entry in the
result, in evaluation order. Each rule kind is its own dataclass carrying the
numbers needed to reconstruct the decision; ``to_dict()`` tags the payload with
its ``type`` so API consumers can switch on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Optional

from .dataclasses import to_primitive


@dataclass(frozen=True)
class AppliedRule:
    description: str

    rule_type: ClassVar[str] = ""

    @property
    def type(self) -> str:
        return self.rule_type

    def to_dict(self) -> Dict[str, Any]:
        payload = {"type": self.rule_type}
        for name in self.__dataclass_fields__:
            payload[name] = to_primitive(getattr(self, name))
        return payload


# -- base price --------------------------------------------------------------

@dataclass(frozen=True)
class DynamicBaseRule(AppliedRule):
    inputs: Dict[str, Any] = field(default_factory=dict)
    distance_based_price: Decimal = Decimal("0")
    duration_based_price: Decimal = Decimal("0")
    selected_method: str = "distance"
    base_price: Decimal = Decimal("0")
    price_with_margin: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "DYNAMIC_BASE_CALCULATION"


@dataclass(frozen=True)
class CatalogPriceRule(AppliedRule):
    grid_type: str = ""
    grid_id: str = ""
    grid_name: str = ""
    catalog_price: Decimal = Decimal("0")
    effective_price: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "CATALOG_PRICE"


@dataclass(frozen=True)
class PartnerOverridePriceRule(CatalogPriceRule):
    rule_type: ClassVar[str] = "PARTNER_OVERRIDE_PRICE"


@dataclass(frozen=True)
class ZoneMappingRule(AppliedRule):
    pickup_zone: Optional[str] = None
    dropoff_zone: Optional[str] = None

    rule_type: ClassVar[str] = "ZONE_MAPPING"


@dataclass(frozen=True)
class GridSearchAttemptedRule(AppliedRule):
    routes_checked: int = 0
    excursions_checked: int = 0
    dispos_checked: int = 0

    rule_type: ClassVar[str] = "GRID_SEARCH_ATTEMPTED"


@dataclass(frozen=True)
class NoGridMatchRule(AppliedRule):
    fallback_reason: str = ""

    rule_type: ClassVar[str] = "NO_GRID_MATCH"


@dataclass(frozen=True)
class HierarchicalPricingRule(AppliedRule):
    level: int = 4
    level_name: str = ""
    reason: str = ""
    skipped_levels: List[Dict[str, Any]] = field(default_factory=list)
    applied_price: Decimal = Decimal("0")
    details: Dict[str, Any] = field(default_factory=dict)

    rule_type: ClassVar[str] = "HIERARCHICAL_PRICING"


# -- modifiers ---------------------------------------------------------------

@dataclass(frozen=True)
class VehicleCategoryMultiplierRule(AppliedRule):
    category_id: str = ""
    category_name: str = ""
    multiplier: Decimal = Decimal("1")
    price_before: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")
    skipped_reason: Optional[str] = None

    rule_type: ClassVar[str] = "VEHICLE_CATEGORY_MULTIPLIER"


@dataclass(frozen=True)
class ZoneMultiplierRule(AppliedRule):
    strategy: str = "MAX"
    pickup_zone: Optional[Dict[str, Any]] = None
    dropoff_zone: Optional[Dict[str, Any]] = None
    applied_multiplier: Decimal = Decimal("1")
    source: str = "pickup"
    price_before: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "ZONE_MULTIPLIER"


@dataclass(frozen=True)
class AdvancedRateRule(AppliedRule):
    rule_id: str = ""
    rule_name: str = ""
    applies_to: str = ""
    adjustment_type: str = ""
    adjustment_value: Decimal = Decimal("0")
    price_before: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")
    weighted_details: Optional[Dict[str, Any]] = None

    rule_type: ClassVar[str] = "ADVANCED_RATE"


@dataclass(frozen=True)
class SeasonalMultiplierRule(AppliedRule):
    rule_id: str = ""
    rule_name: str = ""
    adjustment_type: str = "MULTIPLIER"
    adjustment_value: Decimal = Decimal("1")
    price_before: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "SEASONAL_MULTIPLIER"


# -- trip types --------------------------------------------------------------

@dataclass(frozen=True)
class TripTypeRule(AppliedRule):
    trip_type: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    standard_base_price: Decimal = Decimal("0")
    trip_type_price: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "TRIP_TYPE"


@dataclass(frozen=True)
class TimeBucketRule(AppliedRule):
    duration_hours: Decimal = Decimal("0")
    interpolation_strategy: str = ""
    time_bucket_used: Optional[Decimal] = None
    lower_bucket: Optional[Dict[str, Any]] = None
    upper_bucket: Optional[Dict[str, Any]] = None
    bucket_price: Decimal = Decimal("0")
    extra_hours: Decimal = Decimal("0")
    included_km: Decimal = Decimal("0")
    actual_km: Decimal = Decimal("0")
    overage_km: Decimal = Decimal("0")
    overage_rate_per_km: Decimal = Decimal("0")
    overage_amount: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "TIME_BUCKET"


@dataclass(frozen=True)
class RoundTripSegmentsRule(AppliedRule):
    round_trip_mode: str = ""
    segment_breakdown: Dict[str, Any] = field(default_factory=dict)
    total_before_round_trip: Decimal = Decimal("0")
    total_after_round_trip: Decimal = Decimal("0")
    internal_cost_before: Decimal = Decimal("0")
    internal_cost_after: Decimal = Decimal("0")
    waiting_time_minutes: Optional[Decimal] = None
    wait_on_site_threshold_minutes: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "ROUND_TRIP_SEGMENTS"


@dataclass(frozen=True)
class RoundTripRule(AppliedRule):
    multiplier: Decimal = Decimal("2")
    price_before: Decimal = Decimal("0")
    price_after: Decimal = Decimal("0")
    internal_cost_before: Decimal = Decimal("0")
    internal_cost_after: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "ROUND_TRIP"


@dataclass(frozen=True)
class ExcursionReturnTripRule(AppliedRule):
    return_source: str = ""
    return_distance_km: Decimal = Decimal("0")
    return_duration_minutes: Decimal = Decimal("0")
    return_cost: Decimal = Decimal("0")
    added_to_price: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "EXCURSION_RETURN_TRIP"


@dataclass(frozen=True)
class ExcursionLegsRule(AppliedRule):
    total_legs: int = 0
    total_stops: int = 0
    total_distance_km: Decimal = Decimal("0")
    total_duration_minutes: Decimal = Decimal("0")
    estimated_legs: int = 0
    is_multi_day: bool = False

    rule_type: ClassVar[str] = "EXCURSION_LEGS"


@dataclass(frozen=True)
class AutoSwitchToMadRule(AppliedRule):
    reason: str = ""
    transfer_price: Decimal = Decimal("0")
    mad_price: Decimal = Decimal("0")
    price_difference: Decimal = Decimal("0")
    auto_switched: bool = False
    commercial_speed_kmh: Optional[Decimal] = None
    speed_threshold_kmh: Optional[Decimal] = None
    details: Dict[str, Any] = field(default_factory=dict)

    rule_type: ClassVar[str] = "AUTO_SWITCH_TO_MAD"


@dataclass(frozen=True)
class AutoSwitchRoundTripToMadRule(AppliedRule):
    reason: str = ""
    auto_switched: bool = False
    two_transfer_price: Decimal = Decimal("0")
    mad_price: Decimal = Decimal("0")
    price_difference: Decimal = Decimal("0")
    details: Dict[str, Any] = field(default_factory=dict)

    rule_type: ClassVar[str] = "AUTO_SWITCH_ROUND_TRIP_TO_MAD"


# -- costs -------------------------------------------------------------------

@dataclass(frozen=True)
class ZoneSurchargeRule(AppliedRule):
    pickup_zone: Optional[Dict[str, Any]] = None
    dropoff_zone: Optional[Dict[str, Any]] = None
    total: Decimal = Decimal("0")

    rule_type: ClassVar[str] = "ZONE_SURCHARGE"


@dataclass(frozen=True)
class ComplianceStaffingRule(AppliedRule):
    plan_type: str = ""
    is_required: bool = True
    additional_cost: Decimal = Decimal("0")
    cost_breakdown: Dict[str, Any] = field(default_factory=dict)
    adjusted_schedule: Dict[str, Any] = field(default_factory=dict)
    violations: List[Dict[str, Any]] = field(default_factory=list)
    selected_reason: str = ""
    added_to_price: bool = True

    rule_type: ClassVar[str] = "COMPLIANCE_STAFFING"


# -- override ----------------------------------------------------------------

@dataclass(frozen=True)
class ManualOverrideRule(AppliedRule):
    previous_price: Decimal = Decimal("0")
    new_price: Decimal = Decimal("0")
    price_change: Decimal = Decimal("0")
    price_change_percent: Decimal = Decimal("0")
    reason: Optional[str] = None
    overridden_at: Optional[datetime] = None
    is_contract_price_override: bool = False

    rule_type: ClassVar[str] = "MANUAL_OVERRIDE"
