"""
Tests for RSE driving-time compliance and staffing plans.
"""

from decimal import Decimal

import pytest

from ..dataclasses import RSERules
from ..services.compliance import (
    AMPLITUDE_EXCEEDED,
    DOUBLE_CREW,
    DRIVING_TIME_EXCEEDED,
    MULTI_DAY,
    PLAN_NONE,
    RELAY_DRIVER,
    analyze_compliance,
    build_compliance_plan,
    capped_driving_minutes,
    integrate_compliance,
    select_staffing_plan,
    staffing_alternatives,
)
from ..services.config import InvalidInputError
from ..services.shadow import calculate_shadow_segments


def trip(hours, speed_kmh=60):
    """One service segment of ``hours`` driving at ``speed_kmh``."""
    minutes = Decimal(hours) * 60
    return calculate_shadow_segments(Decimal(hours) * speed_kmh, minutes)


class TestAnalysis:
    """Test driving time, breaks and amplitude"""

    def test_short_trip_compliant(self):
        analysis = analyze_compliance(trip(2))
        assert analysis.is_compliant
        assert analysis.break_minutes == 0

    def test_breaks_added_to_amplitude(self):
        """Test one 45 min break per full 4.5h of driving"""
        analysis = analyze_compliance(trip(11))
        assert analysis.break_minutes == Decimal("90")
        assert analysis.amplitude_minutes == Decimal("750.00")
        assert [v.type for v in analysis.violations] == [DRIVING_TIME_EXCEEDED]

    def test_both_limits_exceeded(self):
        analysis = analyze_compliance(trip(13))
        assert {v.type for v in analysis.violations} == {DRIVING_TIME_EXCEEDED, AMPLITUDE_EXCEEDED}

    def test_warning_near_limit(self):
        """Test 9.5h of driving warns at 95% of the 10h limit"""
        analysis = analyze_compliance(trip("9.5"))
        assert analysis.is_compliant
        assert analysis.warnings[0].type == DRIVING_TIME_EXCEEDED
        assert analysis.warnings[0].percent_of_limit == Decimal("95.00")

    def test_speed_cap_lengthens_fast_segments(self):
        analysis = calculate_shadow_segments(Decimal("200"), Decimal("60"))
        assert capped_driving_minutes(analysis, Decimal("85")) == Decimal("141.18")

    def test_custom_rules(self):
        rules = RSERules(
            max_daily_driving_hours=Decimal("1"),
            max_daily_amplitude_hours=Decimal("14"),
            break_minutes_per_driving_block=Decimal("45"),
            driving_block_hours_for_break=Decimal("4.5"),
        )
        assert not analyze_compliance(trip(2), rules).is_compliant


class TestStaffingPlans:
    """Test plan generation and selection"""

    def test_relay_driver_for_driving_time(self):
        """Test a relay driver fixes excess driving when multi-day cannot"""
        plan = build_compliance_plan(trip(11))
        assert plan.is_required
        assert plan.plan_type == RELAY_DRIVER
        assert plan.additional_cost == Decimal("137.50")
        assert plan.adjusted_schedule.drivers_required == 2

    def test_alternatives_for_both_violations(self):
        alternatives = {a.plan_type: a for a in staffing_alternatives(analyze_compliance(trip(13)))}
        assert alternatives[DOUBLE_CREW].additional_cost == Decimal("162.50")
        assert alternatives[RELAY_DRIVER].additional_cost == Decimal("162.50")
        multi_day = alternatives[MULTI_DAY]
        assert multi_day.schedule.days_required == 2
        assert multi_day.schedule.hotel_nights_required == 1
        # one extra work day, one hotel night, two meal allowances
        assert multi_day.additional_cost == Decimal("360.00")

    def test_cheapest_policy(self):
        plan = build_compliance_plan(trip(13), policy="CHEAPEST")
        assert plan.plan_type == DOUBLE_CREW
        assert plan.additional_cost == Decimal("162.50")

    def test_prefer_internal_policy(self):
        """Test PREFER_INTERNAL favours plans with fewer drivers"""
        plan = build_compliance_plan(trip(13), policy="PREFER_INTERNAL")
        assert plan.plan_type == MULTI_DAY

    def test_fastest_policy(self):
        plan = build_compliance_plan(trip(13), policy="FASTEST")
        assert plan.adjusted_schedule.days_required == 1

    def test_unknown_policy(self):
        alternatives = staffing_alternatives(analyze_compliance(trip(13)))
        with pytest.raises(InvalidInputError):
            select_staffing_plan(alternatives, "RANDOM")

    def test_no_feasible_plan(self):
        plan = build_compliance_plan(trip(40))
        assert plan.is_required
        assert plan.plan_type == PLAN_NONE
        assert plan.additional_cost == 0


class TestIntegration:
    def test_light_vehicle_skips_compliance(self):
        result = integrate_compliance(trip(13), "LIGHT")
        assert result.trip_analysis.compliance_plan is None
        assert result.additional_staffing_cost == 0
        assert result.rule is None

    def test_heavy_vehicle_compliant(self):
        result = integrate_compliance(trip(2), "HEAVY")
        assert result.trip_analysis.compliance_plan.plan_type == PLAN_NONE
        assert result.rule is None

    def test_heavy_vehicle_staffing(self):
        analysis = trip(11)
        result = integrate_compliance(analysis, "HEAVY", added_to_price=False)
        assert result.additional_staffing_cost == Decimal("137.50")
        assert result.rule.type == "COMPLIANCE_STAFFING"
        assert result.rule.added_to_price is False
        # input analysis untouched
        assert analysis.compliance_plan is None

    def test_infeasible_plan_still_reported(self):
        result = integrate_compliance(trip(40), "HEAVY")
        assert result.rule is not None
        assert result.additional_staffing_cost == 0
