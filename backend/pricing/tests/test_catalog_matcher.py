"""
Tests for the Engagement Rule: partner catalog matching and its search trace.
"""

from decimal import Decimal

from ..dataclasses import ContactData, DispoPackage, ExcursionPackage, GeoPoint
from ..services.catalog_matcher import (
    FallbackReason,
    RejectionReason,
    check_zone_route,
    effective_price,
    match_catalog,
    route_priority,
)
from .factories import CDG, ORLY, PARIS, make_request, make_route, paris_zones, partner, private


def _zones():
    zones = {z.id: z for z in paris_zones()}
    return zones["z-paris"], zones["z-cdg"], zones["z-orly"]


class TestEffectivePrice:
    def test_positive_override_wins(self):
        assert effective_price(Decimal("120"), Decimal("99.5")) == (Decimal("99.50"), True)

    def test_zero_override_ignored(self):
        """Test a zero override is treated as absent"""
        assert effective_price(Decimal("120"), Decimal("0")) == (Decimal("120.00"), False)

    def test_no_override(self):
        assert effective_price(Decimal("120"), None) == (Decimal("120.00"), False)


class TestRoutePriority:
    def test_address_routes_first(self):
        both = make_route(origin_type="ADDRESS", origin_lat=1.0, origin_lng=1.0,
                          destination_type="ADDRESS", destination_lat=2.0, destination_lng=2.0)
        origin_only = make_route(origin_type="ADDRESS", origin_lat=1.0, origin_lng=1.0)
        destination_only = make_route(destination_type="ADDRESS", destination_lat=2.0, destination_lng=2.0)
        multi = make_route(origin_zone_ids=["z-paris"], destination_zone_ids=["z-cdg"])
        legacy = make_route()
        assert [route_priority(r) for r in (both, origin_only, destination_only, multi, legacy)] == [1, 2, 3, 4, 5]


class TestCheckZoneRoute:
    """Test the per-route rejection reasons"""

    def setup_method(self):
        self.paris, self.cdg, self.orly = _zones()

    def check(self, route, pickup=PARIS, dropoff=CDG, pickup_zone=None, dropoff_zone=None, category="sedan"):
        return check_zone_route(
            route, category, pickup, dropoff, pickup_zone or self.paris, dropoff_zone or self.cdg
        )

    def test_forward_match(self):
        assert self.check(make_route()) is None

    def test_bidirectional_reverse_match(self):
        """Test a bidirectional route also prices the return journey"""
        assert self.check(make_route(), CDG, PARIS, self.cdg, self.paris) is None

    def test_category_checked_first(self):
        route = make_route(vehicle_category_id="van", is_active=False)
        assert self.check(route) == RejectionReason.CATEGORY_MISMATCH

    def test_direction_mismatch(self):
        """Test a one-way route refuses the opposite journey"""
        route = make_route(direction="A_TO_B")
        assert self.check(route, CDG, PARIS, self.cdg, self.paris) == RejectionReason.DIRECTION_MISMATCH

    def test_b_to_a_only_allows_reverse(self):
        route = make_route(direction="B_TO_A")
        assert self.check(route, CDG, PARIS, self.cdg, self.paris) is None
        assert self.check(route) == RejectionReason.DIRECTION_MISMATCH

    def test_inactive(self):
        assert self.check(make_route(is_active=False)) == RejectionReason.INACTIVE

    def test_zone_mismatch(self):
        assert self.check(make_route(), dropoff=ORLY, dropoff_zone=self.orly) == RejectionReason.ZONE_MISMATCH

    def test_multi_zone_route(self):
        route = make_route(from_zone_id=None, to_zone_id=None,
                           origin_zone_ids=["z-paris"], destination_zone_ids=["z-cdg", "z-orly"])
        assert self.check(route, dropoff=ORLY, dropoff_zone=self.orly) is None

    def test_address_route_within_radius(self):
        """Test address endpoints match within 50 m"""
        route = make_route(origin_type="ADDRESS", origin_lat=PARIS.lat + 0.0003, origin_lng=PARIS.lng)
        assert self.check(route) is None

    def test_address_route_outside_radius(self):
        route = make_route(origin_type="ADDRESS", origin_lat=PARIS.lat + 0.001, origin_lng=PARIS.lng)
        assert self.check(route) == RejectionReason.ZONE_MISMATCH


class TestMatchCatalog:
    """Test the full waterfall"""

    def setup_method(self):
        self.paris, self.cdg, self.orly = _zones()

    def test_private_client(self):
        """Test private clients skip the catalog without a trace"""
        match = match_catalog(make_request(), private(), self.paris, self.cdg)
        assert not match.is_match
        assert match.fallback_reason == FallbackReason.PRIVATE_CLIENT
        assert match.grid_search_details is None
        assert match.rules == []

    def test_partner_without_contract(self):
        match = match_catalog(make_request(), ContactData(id="c", is_partner=True), self.paris, self.cdg)
        assert match.fallback_reason == FallbackReason.NO_CONTRACT

    def test_no_zone_match(self):
        """Test an unzoned endpoint is reported once no route matched"""
        match = match_catalog(make_request(), partner([make_route()]), self.paris, None)
        assert match.fallback_reason == FallbackReason.NO_ZONE_MATCH
        assert match.grid_search_details.routes_checked[0].rejection_reason == RejectionReason.ZONE_MISMATCH
        assert [r.type for r in match.rules] == ["ZONE_MAPPING", "GRID_SEARCH_ATTEMPTED", "NO_GRID_MATCH"]

    def test_route_match(self):
        match = match_catalog(make_request(), partner([make_route()]), self.paris, self.cdg)
        assert match.is_match
        assert match.price == Decimal("120.00")
        assert match.matched_grid.type == "ZoneRoute"
        assert match.rules[0].type == "CATALOG_PRICE"
        assert match.grid_search_details.routes_checked[0].rejection_reason is None

    def test_partner_override_price(self):
        route = make_route(override_price=Decimal("105"))
        match = match_catalog(make_request(), partner([route]), self.paris, self.cdg)
        assert match.price == Decimal("105.00")
        assert match.matched_grid.catalog_price == Decimal("120.00")
        assert match.rules[0].type == "PARTNER_OVERRIDE_PRICE"

    def test_rejections_recorded(self):
        """Test every rejected route is listed with its reason"""
        routes = [
            make_route("wrong-category", vehicle_category_id="van"),
            make_route("inactive", is_active=False),
            make_route("orly", to_zone_id="z-orly"),
        ]
        match = match_catalog(make_request(), partner(routes), self.paris, self.cdg)
        assert match.fallback_reason == FallbackReason.NO_ROUTE_MATCH
        reasons = {c.entry_id: c.rejection_reason for c in match.grid_search_details.routes_checked}
        assert reasons == {
            "wrong-category": RejectionReason.CATEGORY_MISMATCH,
            "inactive": RejectionReason.INACTIVE,
            "orly": RejectionReason.ZONE_MISMATCH,
        }

    def test_address_route_checked_before_zone_route(self):
        zone_route = make_route("zone-route", fixed_price=Decimal("120"))
        address_route = make_route(
            "address-route",
            fixed_price=Decimal("95"),
            origin_type="ADDRESS",
            origin_lat=PARIS.lat,
            origin_lng=PARIS.lng,
        )
        match = match_catalog(make_request(), partner([zone_route, address_route]), self.paris, self.cdg)
        assert match.matched_grid.id == "address-route"
        assert match.price == Decimal("95.00")

    def test_excursion_package(self):
        package = ExcursionPackage(id="exc-1", vehicle_category_id="sedan", price=Decimal("450"),
                                   name="Versailles day", origin_zone_id="z-paris")
        match = match_catalog(make_request(trip_type="excursion"), partner(excursions=[package]),
                              self.paris, self.cdg)
        assert match.matched_grid.type == "ExcursionPackage"
        assert match.price == Decimal("450.00")

    def test_excursion_without_package(self):
        """Test excursions never fall through to zone routes"""
        match = match_catalog(make_request(trip_type="excursion"), partner([make_route()]), self.paris, self.cdg)
        assert match.fallback_reason == FallbackReason.NO_EXCURSION_MATCH

    def test_dispo_package(self):
        packages = [
            DispoPackage(id="d-van", vehicle_category_id="van", base_price=Decimal("300")),
            DispoPackage(id="d-sedan", vehicle_category_id="sedan", base_price=Decimal("250"), name="4h"),
        ]
        match = match_catalog(make_request(trip_type="dispo"), partner(dispos=packages), self.paris, self.cdg)
        assert match.matched_grid.id == "d-sedan"
        assert len(match.grid_search_details.dispos_checked) == 2

    def test_dispo_without_package(self):
        match = match_catalog(make_request(trip_type="dispo"), partner(), self.paris, self.cdg)
        assert match.fallback_reason == FallbackReason.NO_DISPO_MATCH

    def test_address_destination_matches_unzoned_dropoff(self):
        """Test an address route matches a dropoff outside every zone"""
        far = GeoPoint(lat=45.0, lng=5.0)
        request = make_request(dropoff=far)
        route = make_route(destination_type="ADDRESS", destination_lat=far.lat, destination_lng=far.lng)
        match = match_catalog(request, partner([route]), self.paris, None)
        assert match.is_match
        assert match.price == Decimal("120.00")
        assert match.fallback_reason is None

    def test_address_route_without_any_zone(self):
        route = make_route(
            origin_type="ADDRESS",
            origin_lat=PARIS.lat,
            origin_lng=PARIS.lng,
            destination_type="ADDRESS",
            destination_lat=CDG.lat,
            destination_lng=CDG.lng,
        )
        match = match_catalog(make_request(), partner([route]), None, None)
        assert match.matched_grid.id == "route-1"
        assert match.grid_search_details.pickup_zone is None

    def test_unzoned_dispo_package(self):
        """Test disposal packages carry no zone and match unzoned trips"""
        packages = [DispoPackage(id="d-sedan", vehicle_category_id="sedan", base_price=Decimal("250"))]
        match = match_catalog(make_request(trip_type="dispo"), partner(dispos=packages), None, None)
        assert match.matched_grid.id == "d-sedan"
