"""
Tests for disposal, time-bucket and excursion pricing.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ..dataclasses import OrganizationPricingSettings, TimeBucket, TripStop, VehiclePositioning
from ..services.config import InvalidInputError
from ..services.shadow import calculate_shadow_segments
from ..services.trip_types import (
    apply_trip_type_pricing,
    build_excursion_legs,
    calculate_dispo_price,
    calculate_excursion_price,
    calculate_excursion_return_cost,
    calculate_smart_dispo_price,
    calculate_time_bucket_price,
    dispo_overage,
)
from .factories import ORLY, VERSAILLES, make_request

BUCKETS = [
    TimeBucket(duration_hours=Decimal("2"), price=Decimal("100"), vehicle_category_id="sedan"),
    TimeBucket(duration_hours=Decimal("4"), price=Decimal("180"), vehicle_category_id="sedan"),
    TimeBucket(duration_hours=Decimal("8"), price=Decimal("320"), vehicle_category_id="sedan"),
]


class TestDispo:
    """Test hourly disposal with included kilometres"""

    def test_dispo_with_overage(self):
        """Test 4h at 45/h with 250 km: 200 km included, 50 km at 0.50"""
        result = calculate_dispo_price(Decimal("4"), Decimal("250"), Decimal("45"))
        assert result.price == Decimal("205.00")
        details = result.rules[0].details
        assert details["included_km"] == Decimal("200.00")
        assert details["overage_amount"] == Decimal("25.00")

    def test_dispo_within_included_km(self):
        assert calculate_dispo_price(Decimal("4"), Decimal("120"), Decimal("45")).price == Decimal("180.00")

    def test_overage_never_negative(self):
        assert dispo_overage(Decimal("4"), Decimal("10")).overage_km == 0


class TestTimeBuckets:
    """Test bucket lookup and interpolation"""

    def price(self, hours, strategy="ROUND_UP", distance=Decimal("20")):
        return calculate_time_bucket_price(Decimal(hours), distance, BUCKETS, strategy, Decimal("45")).price

    def test_exact_bucket(self):
        assert self.price("4") == Decimal("180.00")

    def test_round_up(self):
        assert self.price("3", "ROUND_UP") == Decimal("180.00")

    def test_round_down(self):
        assert self.price("3", "ROUND_DOWN") == Decimal("100.00")

    def test_proportional(self):
        assert self.price("3", "PROPORTIONAL") == Decimal("140.00")

    def test_below_smallest_bucket_uses_hourly_rate(self):
        assert self.price("1") == Decimal("45.00")

    def test_above_largest_bucket(self):
        """Test extra hours beyond the largest bucket are charged hourly"""
        assert self.price("10") == Decimal("410.00")

    def test_overage_added(self):
        assert self.price("2", distance=Decimal("120")) == Decimal("110.00")

    def test_unknown_strategy(self):
        with pytest.raises(InvalidInputError):
            self.price("3", "NEAREST")

    def test_smart_dispo_uses_buckets_when_configured(self):
        settings = OrganizationPricingSettings(time_bucket_interpolation_strategy="ROUND_DOWN")
        result = calculate_smart_dispo_price(Decimal("3"), Decimal("20"), Decimal("45"), "sedan", BUCKETS, settings)
        assert result.price == Decimal("100.00")
        assert result.rules[0].type == "TIME_BUCKET"

    def test_smart_dispo_without_strategy(self):
        result = calculate_smart_dispo_price(Decimal("3"), Decimal("20"), Decimal("45"), "sedan", BUCKETS)
        assert result.price == Decimal("135.00")
        assert result.rules[0].type == "TRIP_TYPE"

    def test_smart_dispo_other_category(self):
        settings = OrganizationPricingSettings(time_bucket_interpolation_strategy="ROUND_UP")
        result = calculate_smart_dispo_price(Decimal("3"), Decimal("20"), Decimal("45"), "van", BUCKETS, settings)
        assert result.rules[0].type == "TRIP_TYPE"


class TestExcursion:
    def test_minimum_hours_and_surcharge(self):
        """Test a 2h excursion is billed 4h plus 15%"""
        result = calculate_excursion_price(Decimal("120"), Decimal("45"))
        assert result.price == Decimal("207.00")
        assert result.rules[0].details["effective_hours"] == Decimal("4.00")

    def test_long_excursion(self):
        assert calculate_excursion_price(Decimal("360"), Decimal("45")).price == Decimal("310.50")

    def test_transfer_keeps_standard_price(self):
        result = apply_trip_type_pricing("transfer", Decimal("30"), Decimal("45"), Decimal("45"), Decimal("75"))
        assert result.price == Decimal("75")
        assert result.rules == []

    def test_dispo_hours_from_request(self):
        result = apply_trip_type_pricing(
            "dispo", Decimal("250"), Decimal("0"), Decimal("45"), Decimal("0"), duration_hours=Decimal("4")
        )
        assert result.price == Decimal("205.00")

    def test_unknown_trip_type(self):
        with pytest.raises(InvalidInputError):
            apply_trip_type_pricing("shuttle", Decimal("1"), Decimal("1"), Decimal("45"), Decimal("0"))


class TestExcursionLegs:
    """Test multi-stop excursion legs"""

    def test_single_leg_uses_trip_estimate(self):
        legs = build_excursion_legs(make_request(trip_type="excursion"))
        assert len(legs.legs) == 1
        assert legs.total_distance_km == Decimal("30.00")
        assert legs.total_stops == 0
        assert not legs.legs[0].is_estimated

    def test_stops_sorted_by_order(self):
        stops = (
            TripStop(point=ORLY, order=2, address="Orly", distance_km=Decimal("20"), duration_minutes=Decimal("30")),
            TripStop(point=VERSAILLES, order=1, address="Versailles",
                     distance_km=Decimal("22"), duration_minutes=Decimal("35")),
        )
        request = make_request(trip_type="excursion", stops=stops, final_leg_distance_km=Decimal("40"),
                               final_leg_duration_minutes=Decimal("50"))
        legs = build_excursion_legs(request)
        assert [leg.to_address for leg in legs.legs] == ["Versailles", "Orly", "dropoff"]
        assert legs.total_distance_km == Decimal("82.00")
        assert legs.total_duration_minutes == Decimal("115.00")
        assert legs.total_stops == 2

    def test_unrouted_leg_is_estimated(self):
        stops = (TripStop(point=VERSAILLES, order=1),)
        request = make_request(trip_type="excursion", stops=stops)
        legs = build_excursion_legs(request)
        assert all(leg.is_estimated for leg in legs.legs)
        assert legs.to_rule().estimated_legs == 2

    def test_multi_day(self):
        request = make_request(
            trip_type="excursion",
            pickup_at=datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc),
            return_date=datetime(2026, 5, 2, 18, 0, tzinfo=timezone.utc),
        )
        assert build_excursion_legs(request).is_multi_day


class TestExcursionReturnCost:
    def test_symmetric_estimate(self):
        """Test without positioning the return mirrors the service leg"""
        analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"))
        cost, rule = calculate_excursion_return_cost(analysis, Decimal("30"), Decimal("45"))
        assert rule.return_source == "SYMMETRIC_ESTIMATE"
        # fuel 4.32 + driver 18.75
        assert cost == Decimal("23.07")

    def test_shadow_return_segment(self):
        positioning = VehiclePositioning(
            approach_distance_km=Decimal("10"),
            approach_duration_minutes=Decimal("15"),
            return_distance_km=Decimal("10"),
            return_duration_minutes=Decimal("15"),
        )
        analysis = calculate_shadow_segments(Decimal("30"), Decimal("45"), positioning=positioning)
        cost, rule = calculate_excursion_return_cost(analysis, Decimal("30"), Decimal("45"))
        assert rule.return_source == "SHADOW_CALCULATION"
        assert rule.return_distance_km == Decimal("10.00")
        assert cost == Decimal("7.69")
