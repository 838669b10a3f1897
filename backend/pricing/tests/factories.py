"""Small builders shared by the pricing tests."""

from decimal import Decimal

from ..dataclasses import (
    ContactData,
    GeoPoint,
    OrganizationPricingSettings,
    PartnerContract,
    PricingContext,
    PricingRequest,
    VehicleCategory,
    ZoneData,
    ZoneRoute,
)

PARIS = GeoPoint(lat=48.8566, lng=2.3522)
CDG = GeoPoint(lat=49.0097, lng=2.5479)
ORLY = GeoPoint(lat=48.7262, lng=2.3652)
VERSAILLES = GeoPoint(lat=48.8049, lng=2.1204)


def square(center: GeoPoint, half: float = 0.05):
    """Closed GeoJSON ring of ``[lng, lat]`` pairs around ``center``."""
    return [
        [center.lng - half, center.lat - half],
        [center.lng + half, center.lat - half],
        [center.lng + half, center.lat + half],
        [center.lng - half, center.lat + half],
        [center.lng - half, center.lat - half],
    ]


def make_zone(zone_id, code, center: GeoPoint, half: float = 0.05, **kwargs) -> ZoneData:
    return ZoneData(id=zone_id, code=code, name=kwargs.pop("name", code), geometry=square(center, half), **kwargs)


def make_category(**kwargs) -> VehicleCategory:
    values = {"id": "sedan", "name": "Sedan", "code": "SEDAN"}
    values.update(kwargs)
    return VehicleCategory(**values)


def make_request(**kwargs) -> PricingRequest:
    values = {
        "contact_id": "contact-1",
        "pickup": PARIS,
        "dropoff": CDG,
        "vehicle_category_id": "sedan",
        "estimated_distance_km": Decimal("30"),
        "estimated_duration_minutes": Decimal("45"),
    }
    values.update(kwargs)
    return PricingRequest(**values)


def make_route(route_id="route-1", **kwargs) -> ZoneRoute:
    values = {
        "id": route_id,
        "vehicle_category_id": "sedan",
        "fixed_price": Decimal("120.00"),
        "name": "Paris - CDG",
        "from_zone_id": "z-paris",
        "to_zone_id": "z-cdg",
    }
    values.update(kwargs)
    return ZoneRoute(**values)


def partner(routes=(), excursions=(), dispos=(), contact_id="contact-1") -> ContactData:
    return ContactData(
        id=contact_id,
        is_partner=True,
        partner_contract=PartnerContract(
            id="contract-1",
            zone_routes=list(routes),
            excursion_packages=list(excursions),
            dispo_packages=list(dispos),
        ),
    )


def private(contact_id="contact-1") -> ContactData:
    return ContactData(id=contact_id)


def paris_zones():
    return [
        make_zone("z-paris", "PARIS_0", PARIS),
        make_zone("z-cdg", "CDG", CDG),
        make_zone("z-orly", "ORLY", ORLY),
    ]


def make_context(**kwargs) -> PricingContext:
    values = {
        "contact": private(),
        "settings": OrganizationPricingSettings(),
        "vehicle_category": make_category(),
        "zones": paris_zones(),
    }
    values.update(kwargs)
    return PricingContext(**values)


def zone_payload(zone_id, code, center: GeoPoint, **kwargs):
    values = {"id": zone_id, "code": code, "zone_type": "POLYGON", "geometry": square(center)}
    values.update(kwargs)
    return values


def pricing_payload(request=None, context=None):
    """JSON body of a pricing call: the default 30 km Paris - CDG transfer for a private client."""
    body = {
        "request": {
            "contact_id": "contact-1",
            "pickup": {"lat": PARIS.lat, "lng": PARIS.lng},
            "dropoff": {"lat": CDG.lat, "lng": CDG.lng},
            "vehicle_category_id": "sedan",
            "estimated_distance_km": "30",
            "estimated_duration_minutes": "45",
        },
        "context": {
            "contact": {"id": "contact-1"},
            "vehicle_category": {"id": "sedan", "name": "Sedan", "code": "SEDAN"},
            "zones": [
                zone_payload("z-paris", "PARIS_0", PARIS),
                zone_payload("z-cdg", "CDG", CDG),
            ],
        },
    }
    body["request"].update(request or {})
    body["context"].update(context or {})
    return body
