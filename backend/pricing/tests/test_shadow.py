"""
Tests for shadow segments and round-trip costing.
"""

from datetime import datetime, timezone
from decimal import Decimal

from ..dataclasses import OrganizationPricingSettings, VehiclePositioning
from ..services.shadow import (
    RETURN_BETWEEN_LEGS,
    ROUTING_PROVIDED,
    ROUTING_VEHICLE_SELECTION,
    WAIT_ON_SITE,
    apply_round_trip_multiplier,
    calculate_round_trip_segments,
    calculate_shadow_segments,
    decide_round_trip_mode,
    extend_trip_analysis_for_round_trip,
    service_end,
    wait_on_site_threshold,
)

POSITIONING = VehiclePositioning(
    approach_distance_km=Decimal("10"),
    approach_duration_minutes=Decimal("15"),
    return_distance_km=Decimal("10"),
    return_duration_minutes=Decimal("15"),
    base_name="Garage",
)


class TestShadowSegments:
    def test_service_only(self):
        analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"))
        assert [s.name for s in analysis.segments] == ["service"]
        assert analysis.total_internal_cost == Decimal("30.57")
        assert analysis.routing_source == ROUTING_PROVIDED

    def test_with_positioning(self):
        """Test approach and return legs are costed around the service"""
        analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"), positioning=POSITIONING)
        assert [s.name for s in analysis.segments] == ["approach", "service", "return"]
        assert analysis.total_distance_km == Decimal("50.00")
        assert analysis.total_internal_cost == Decimal("50.95")
        assert analysis.routing_source == ROUTING_VEHICLE_SELECTION
        assert analysis.segment("approach").description == "Approach from base (Garage)"

    def test_service_end(self):
        start = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        assert service_end(start, Decimal("90")) == datetime(2026, 3, 10, 21, 30, tzinfo=timezone.utc)
        assert service_end(None, Decimal("90")) is None


class TestRoundTripMode:
    """Test the wait-on-site decision"""

    def test_threshold_floor(self):
        assert wait_on_site_threshold(Decimal("30")) == Decimal("120")

    def test_threshold_from_outbound(self):
        """Test twice the outbound duration plus the buffer"""
        assert wait_on_site_threshold(Decimal("60")) == Decimal("150.00")

    def test_explicit_threshold(self):
        settings = OrganizationPricingSettings(wait_on_site_threshold_minutes=Decimal("200"))
        assert wait_on_site_threshold(Decimal("60"), settings) == Decimal("200")

    def test_short_wait(self):
        assert decide_round_trip_mode(Decimal("60"), Decimal("45")).mode == WAIT_ON_SITE

    def test_long_wait(self):
        assert decide_round_trip_mode(Decimal("180"), Decimal("45")).mode == RETURN_BETWEEN_LEGS

    def test_unknown_wait(self):
        assert decide_round_trip_mode(None, Decimal("45")).mode == RETURN_BETWEEN_LEGS


class TestRoundTripSegments:
    """Test segment A..F costing"""

    def setup_method(self):
        self.analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"), positioning=POSITIONING)

    def test_wait_on_site_drops_middle_positioning(self):
        """Test waiting on site costs less than two separate transfers"""
        result = calculate_round_trip_segments(Decimal("90"), Decimal("50.95"), self.analysis, None, Decimal("60"))
        assert result.mode == WAIT_ON_SITE
        assert result.segments["segment_c"] is None
        assert result.segments["segment_d"] is None
        assert result.adjusted_internal_cost == Decimal("81.52")
        assert result.adjusted_internal_cost < 2 * Decimal("50.95")
        assert result.adjusted_price == Decimal("144.00")

    def test_return_between_legs(self):
        result = calculate_round_trip_segments(Decimal("90"), Decimal("50.95"), self.analysis, None, Decimal("300"))
        assert result.mode == RETURN_BETWEEN_LEGS
        assert result.adjusted_internal_cost == Decimal("101.90")
        assert result.adjusted_price == Decimal("180.00")
        assert result.rule.segment_breakdown["total"] == Decimal("101.90")

    def test_without_positioning_doubles(self):
        analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"))
        result = calculate_round_trip_segments(Decimal("90"), Decimal("30.57"), analysis)
        assert result.adjusted_internal_cost == Decimal("61.14")
        assert result.adjusted_price == Decimal("180.00")

    def test_extend_trip_analysis(self):
        """Test the round-trip analysis is a new object listing named segments"""
        result = calculate_round_trip_segments(Decimal("90"), Decimal("50.95"), self.analysis, None, Decimal("60"))
        extended = extend_trip_analysis_for_round_trip(self.analysis, result)
        assert [s.name for s in extended.segments] == ["approach", "service", "second_service", "final_return"]
        assert extended.is_round_trip
        assert extended.round_trip_mode == WAIT_ON_SITE
        assert extended.total_internal_cost == Decimal("81.52")
        assert not self.analysis.is_round_trip


class TestRoundTripMultiplier:
    def test_doubles_price_and_cost(self):
        price, cost, rule = apply_round_trip_multiplier(Decimal("120"), Decimal("30.57"))
        assert price == Decimal("240.00")
        assert cost == Decimal("61.14")
        assert rule.type == "ROUND_TRIP"
        assert rule.multiplier == Decimal("2")
        assert rule.price_after == Decimal("240.00")
