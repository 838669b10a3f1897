"""
Driving-time regulation (RSE) compliance for heavy vehicles.

Heavy vehicles are subject to daily driving-time and amplitude limits. When a
trip breaks them, the trip can still be operated with extra staffing: a double
crew, a relay driver, or spreading the work over several days. The selected
plan's cost is folded into the trip's cost and price.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dataclasses import (
    AdjustedSchedule,
    CompliancePlan,
    ComplianceViolation,
    ComplianceWarning,
    RSERules,
    StaffingCostBreakdown,
    StaffingCostParameters,
    TripAnalysis,
)
from ..rules import ComplianceStaffingRule
from .config import InvalidInputError, default_rse_rules, default_staffing_parameters
from .utils import HUNDRED, SIXTY, ZERO, d, floor_int, round2

logger = logging.getLogger(__name__)

LIGHT = "LIGHT"
HEAVY = "HEAVY"

DRIVING_TIME_EXCEEDED = "DRIVING_TIME_EXCEEDED"
AMPLITUDE_EXCEEDED = "AMPLITUDE_EXCEEDED"

PLAN_NONE = "NONE"
DOUBLE_CREW = "DOUBLE_CREW"
RELAY_DRIVER = "RELAY_DRIVER"
MULTI_DAY = "MULTI_DAY"

STAFFING_POLICIES = ("CHEAPEST", "FASTEST", "PREFER_INTERNAL")


@dataclass(frozen=True)
class ComplianceAnalysis:
    driving_minutes: Decimal
    break_minutes: Decimal
    amplitude_minutes: Decimal
    violations: Tuple[ComplianceViolation, ...]
    warnings: Tuple[ComplianceWarning, ...]

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    @property
    def driving_hours(self) -> Decimal:
        return self.driving_minutes / SIXTY

    @property
    def amplitude_hours(self) -> Decimal:
        return self.amplitude_minutes / SIXTY

    def has(self, violation_type: str) -> bool:
        return any(v.type == violation_type for v in self.violations)


@dataclass(frozen=True)
class StaffingAlternative:
    plan_type: str
    is_feasible: bool
    cost_breakdown: StaffingCostBreakdown
    schedule: AdjustedSchedule
    remaining_violations: Tuple[str, ...] = ()

    @property
    def additional_cost(self) -> Decimal:
        return round2(self.cost_breakdown.total)

    @property
    def would_be_compliant(self) -> bool:
        return self.is_feasible and not self.remaining_violations


def capped_driving_minutes(trip_analysis: TripAnalysis, capped_speed_kmh: Optional[Decimal]) -> Decimal:
    """Sum segment durations, slowing any segment faster than the regulatory speed cap."""
    total = ZERO
    for segment in trip_analysis.segments:
        duration = d(segment.duration_minutes)
        if capped_speed_kmh and duration > ZERO and segment.distance_km > ZERO:
            speed = d(segment.distance_km) / (duration / SIXTY)
            if speed > d(capped_speed_kmh):
                duration = d(segment.distance_km) / d(capped_speed_kmh) * SIXTY
        total += duration
    return round2(total)


def analyze_compliance(trip_analysis: TripAnalysis, rules: Optional[RSERules] = None) -> ComplianceAnalysis:
    """
    Check a trip against daily driving-time and amplitude limits.

    Args:
        trip_analysis: Segments of the trip (approach, service, return...)
        rules: Regulatory limits; shipped defaults when None

    Returns:
        ComplianceAnalysis: driving, breaks, amplitude, violations and warnings
    """
    rules = rules or default_rse_rules()
    driving = capped_driving_minutes(trip_analysis, rules.capped_average_speed_kmh)

    block_minutes = d(rules.driving_block_hours_for_break) * SIXTY
    breaks = ZERO
    if block_minutes > ZERO and driving > block_minutes:
        breaks = d(floor_int(driving / block_minutes)) * d(rules.break_minutes_per_driving_block)
    amplitude = round2(driving + breaks)

    violations: List[ComplianceViolation] = []
    warnings: List[ComplianceWarning] = []
    checks = (
        (DRIVING_TIME_EXCEEDED, "Daily driving time", driving, d(rules.max_daily_driving_hours)),
        (AMPLITUDE_EXCEEDED, "Daily amplitude", amplitude, d(rules.max_daily_amplitude_hours)),
    )
    for violation_type, label, minutes, limit_hours in checks:
        hours = round2(minutes / SIXTY)
        if minutes > limit_hours * SIXTY:
            violations.append(
                ComplianceViolation(
                    type=violation_type,
                    message=f"{label} {hours}h exceeds the {limit_hours}h limit",
                    actual=hours,
                    limit=limit_hours,
                )
            )
        elif limit_hours > ZERO and minutes >= limit_hours * SIXTY * d(rules.warning_ratio):
            warnings.append(
                ComplianceWarning(
                    type=violation_type,
                    message=f"{label} {hours}h is close to the {limit_hours}h limit",
                    actual=hours,
                    limit=limit_hours,
                    percent_of_limit=round2(minutes / (limit_hours * SIXTY) * HUNDRED),
                )
            )

    return ComplianceAnalysis(
        driving_minutes=driving,
        break_minutes=breaks,
        amplitude_minutes=amplitude,
        violations=tuple(violations),
        warnings=tuple(warnings),
    )


def _double_crew(analysis: ComplianceAnalysis, rules: RSERules, params: StaffingCostParameters) -> StaffingAlternative:
    amplitude_h = analysis.amplitude_hours
    extra_hours = max(ZERO, amplitude_h - d(params.standard_work_day_hours))
    remaining = []
    if analysis.driving_hours / 2 > d(rules.max_daily_driving_hours):
        remaining.append(DRIVING_TIME_EXCEEDED)
    return StaffingAlternative(
        plan_type=DOUBLE_CREW,
        is_feasible=amplitude_h <= d(params.double_crew_amplitude_hours),
        cost_breakdown=StaffingCostBreakdown(extra_driver_cost=round2(extra_hours * d(params.driver_hourly_cost))),
        schedule=AdjustedSchedule(days_required=1, drivers_required=2, hotel_nights_required=0),
        remaining_violations=tuple(remaining),
    )


def _relay_driver(analysis: ComplianceAnalysis, rules: RSERules, params: StaffingCostParameters) -> StaffingAlternative:
    per_driver_h = analysis.driving_hours / 2
    remaining = []
    if analysis.amplitude_hours / 2 > d(rules.max_daily_amplitude_hours):
        remaining.append(AMPLITUDE_EXCEEDED)
    return StaffingAlternative(
        plan_type=RELAY_DRIVER,
        is_feasible=per_driver_h <= d(rules.max_daily_driving_hours),
        cost_breakdown=StaffingCostBreakdown(extra_driver_cost=round2(per_driver_h * d(params.driver_hourly_cost))),
        schedule=AdjustedSchedule(days_required=1, drivers_required=2, hotel_nights_required=0),
        remaining_violations=tuple(remaining),
    )


def _multi_day(analysis: ComplianceAnalysis, rules: RSERules, params: StaffingCostParameters) -> StaffingAlternative:
    days = max(1, int(math.ceil(float(analysis.amplitude_hours / d(rules.max_daily_amplitude_hours)))))
    nights = days - 1
    remaining = []
    if analysis.driving_hours / days > d(rules.max_daily_driving_hours):
        remaining.append(DRIVING_TIME_EXCEEDED)
    return StaffingAlternative(
        plan_type=MULTI_DAY,
        is_feasible=days <= params.max_multi_day_days,
        cost_breakdown=StaffingCostBreakdown(
            extra_driver_cost=round2(
                d(nights) * d(params.standard_work_day_hours) * d(params.driver_hourly_cost)
            ),
            hotel_cost=round2(d(nights) * d(params.hotel_cost_per_night)),
            meal_allowance=round2(d(days) * d(params.meal_allowance_per_day)),
        ),
        schedule=AdjustedSchedule(days_required=days, drivers_required=1, hotel_nights_required=nights),
        remaining_violations=tuple(remaining),
    )


def staffing_alternatives(
    analysis: ComplianceAnalysis,
    rules: Optional[RSERules] = None,
    params: Optional[StaffingCostParameters] = None,
) -> List[StaffingAlternative]:
    """Every staffing plan worth considering for the detected violations."""
    rules = rules or default_rse_rules()
    params = params or default_staffing_parameters()
    alternatives = []
    if analysis.has(AMPLITUDE_EXCEEDED):
        alternatives.append(_double_crew(analysis, rules, params))
    if analysis.has(DRIVING_TIME_EXCEEDED):
        alternatives.append(_relay_driver(analysis, rules, params))
    if analysis.violations:
        alternatives.append(_multi_day(analysis, rules, params))
    return alternatives


def select_staffing_plan(alternatives: List[StaffingAlternative], policy: str = "CHEAPEST") -> Optional[StaffingAlternative]:
    """Pick among plans that resolve every violation; ties keep evaluation order."""
    if policy not in STAFFING_POLICIES:
        raise InvalidInputError(f"Unknown staffing selection policy: {policy}")
    candidates = [a for a in alternatives if a.would_be_compliant]
    if not candidates:
        return None
    if policy == "FASTEST":
        return min(candidates, key=lambda a: (a.schedule.days_required, a.additional_cost))
    if policy == "PREFER_INTERNAL":
        return min(candidates, key=lambda a: (a.schedule.drivers_required, a.additional_cost))
    return min(candidates, key=lambda a: a.additional_cost)


@dataclass(frozen=True)
class ComplianceIntegration:
    trip_analysis: TripAnalysis
    additional_staffing_cost: Decimal
    rule: Optional[ComplianceStaffingRule] = None


def build_compliance_plan(
    trip_analysis: TripAnalysis,
    rules: Optional[RSERules] = None,
    params: Optional[StaffingCostParameters] = None,
    policy: str = "CHEAPEST",
) -> CompliancePlan:
    analysis = analyze_compliance(trip_analysis, rules)
    if analysis.is_compliant:
        return CompliancePlan(
            plan_type=PLAN_NONE,
            is_required=False,
            additional_cost=ZERO,
            cost_breakdown=StaffingCostBreakdown(),
            adjusted_schedule=AdjustedSchedule(),
            warnings=analysis.warnings,
            selected_reason="Trip is compliant",
        )

    selected = select_staffing_plan(staffing_alternatives(analysis, rules, params), policy)
    if selected is None:
        logger.warning(
            f"No feasible staffing plan for violations: {', '.join(v.type for v in analysis.violations)}"
        )
        return CompliancePlan(
            plan_type=PLAN_NONE,
            is_required=True,
            additional_cost=ZERO,
            cost_breakdown=StaffingCostBreakdown(),
            adjusted_schedule=AdjustedSchedule(),
            original_violations=analysis.violations,
            warnings=analysis.warnings,
            selected_reason="No feasible staffing plan",
        )
    return CompliancePlan(
        plan_type=selected.plan_type,
        is_required=True,
        additional_cost=selected.additional_cost,
        cost_breakdown=selected.cost_breakdown,
        adjusted_schedule=selected.schedule,
        original_violations=analysis.violations,
        warnings=analysis.warnings,
        selected_reason=f"Selected by {policy} policy",
    )


def integrate_compliance(
    trip_analysis: TripAnalysis,
    regulatory_category: Optional[str],
    rules: Optional[RSERules] = None,
    params: Optional[StaffingCostParameters] = None,
    policy: str = "CHEAPEST",
    added_to_price: bool = True,
) -> ComplianceIntegration:
    """
    Attach a compliance plan to the trip analysis.

    Args:
        trip_analysis: The trip's segments
        regulatory_category: LIGHT or HEAVY; LIGHT vehicles skip compliance
        rules: Regulatory limits; shipped defaults when None
        params: Staffing cost parameters; shipped defaults when None
        policy: CHEAPEST, FASTEST or PREFER_INTERNAL
        added_to_price: Whether the caller adds the staffing cost to the price

    Returns:
        ComplianceIntegration: new trip analysis, staffing cost and rule
    """
    if regulatory_category != HEAVY:
        return ComplianceIntegration(
            trip_analysis=replace(trip_analysis, compliance_plan=None),
            additional_staffing_cost=ZERO,
        )

    plan = build_compliance_plan(trip_analysis, rules, params, policy)
    extended = replace(trip_analysis, compliance_plan=plan)
    if not plan.is_required:
        return ComplianceIntegration(trip_analysis=extended, additional_staffing_cost=ZERO)

    rule = ComplianceStaffingRule(
        description=f"RSE staffing plan {plan.plan_type}: +{plan.additional_cost}",
        plan_type=plan.plan_type,
        is_required=True,
        additional_cost=plan.additional_cost,
        cost_breakdown={
            "extra_driver_cost": plan.cost_breakdown.extra_driver_cost,
            "hotel_cost": plan.cost_breakdown.hotel_cost,
            "meal_allowance": plan.cost_breakdown.meal_allowance,
            "other_costs": plan.cost_breakdown.other_costs,
        },
        adjusted_schedule={
            "days_required": plan.adjusted_schedule.days_required,
            "drivers_required": plan.adjusted_schedule.drivers_required,
            "hotel_nights_required": plan.adjusted_schedule.hotel_nights_required,
        },
        violations=[{"type": v.type, "actual": v.actual, "limit": v.limit} for v in plan.original_violations],
        selected_reason=plan.selected_reason,
        added_to_price=added_to_price,
    )
    return ComplianceIntegration(trip_analysis=extended, additional_staffing_cost=plan.additional_cost, rule=rule)
