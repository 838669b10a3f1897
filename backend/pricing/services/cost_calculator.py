from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..dataclasses import (
    CostBreakdown,
    DistanceCost,
    DriverCost,
    FuelCost,
    OrganizationPricingSettings,
    ParkingCost,
)
from .config import default_fuel_prices, default_setting
from .utils import HUNDRED, ZERO, d, minutes_to_hours, round2

logger = logging.getLogger(__name__)


def fuel_price_for(fuel_type: Optional[str], custom_prices: Optional[Dict[str, Decimal]] = None) -> Decimal:
    """Price per litre for a fuel type; unknown types fall back to the flat default price."""
    prices = {**default_fuel_prices(), **(custom_prices or {})}
    if fuel_type and fuel_type.upper() in prices:
        return d(prices[fuel_type.upper()])
    return default_setting("fuel_price_per_liter")


def fuel_cost(
    distance_km,
    consumption_per_100km,
    fuel_type: Optional[str] = None,
    custom_prices: Optional[Dict[str, Decimal]] = None,
    price_per_liter=None,
) -> FuelCost:
    price = d(price_per_liter) if price_per_liter is not None else fuel_price_for(fuel_type, custom_prices)
    litres = d(distance_km) * d(consumption_per_100km) / HUNDRED
    return FuelCost(
        amount=round2(litres * price),
        distance_km=d(distance_km),
        consumption_l_per_100km=d(consumption_per_100km),
        price_per_liter=price,
        fuel_type=(fuel_type or "DEFAULT").upper(),
    )


def toll_cost(distance_km, rate_per_km) -> DistanceCost:
    return DistanceCost(
        amount=round2(d(distance_km) * d(rate_per_km)),
        distance_km=d(distance_km),
        rate_per_km=d(rate_per_km),
    )


def wear_cost(distance_km, rate_per_km) -> DistanceCost:
    return DistanceCost(
        amount=round2(d(distance_km) * d(rate_per_km)),
        distance_km=d(distance_km),
        rate_per_km=d(rate_per_km),
    )


def driver_cost(duration_minutes, hourly_rate) -> DriverCost:
    return DriverCost(
        amount=round2(minutes_to_hours(duration_minutes) * d(hourly_rate)),
        duration_minutes=d(duration_minutes),
        hourly_rate=d(hourly_rate),
    )


def _setting(settings: Optional[OrganizationPricingSettings], name: str) -> Decimal:
    value = getattr(settings, name, None) if settings is not None else None
    return d(value) if value is not None else default_setting(name)


def cost_breakdown(
    distance_km,
    duration_minutes,
    settings: Optional[OrganizationPricingSettings] = None,
    parking_amount=None,
    parking_description: str = "",
) -> CostBreakdown:
    """
    Operational cost of driving a segment.

    Args:
        distance_km: Segment distance
        duration_minutes: Segment duration
        settings: Organization settings; unset values use the shipped defaults
        parking_amount: Optional parking cost to include
        parking_description: Free text shown next to the parking amount

    Returns:
        CostBreakdown: fuel, tolls, wear, driver and parking with their total
    """
    fuel_type = getattr(settings, "fuel_type", None) if settings is not None else None
    custom_prices = getattr(settings, "fuel_prices", None) if settings is not None else None
    explicit_price = None
    if not fuel_type:
        explicit_price = _setting(settings, "fuel_price_per_liter")

    fuel = fuel_cost(
        distance_km,
        _setting(settings, "fuel_consumption_l_per_100km"),
        fuel_type=fuel_type,
        custom_prices=custom_prices,
        price_per_liter=explicit_price,
    )
    tolls = toll_cost(distance_km, _setting(settings, "toll_cost_per_km"))
    wear = wear_cost(distance_km, _setting(settings, "wear_cost_per_km"))
    driver = driver_cost(duration_minutes, _setting(settings, "driver_hourly_cost"))
    parking = ParkingCost(amount=round2(parking_amount or ZERO), description=parking_description)

    total = round2(fuel.amount + tolls.amount + wear.amount + driver.amount + parking.amount)
    return CostBreakdown(fuel=fuel, tolls=tolls, wear=wear, driver=driver, parking=parking, total=total)


def combine_breakdowns(breakdowns: Iterable[CostBreakdown]) -> CostBreakdown:
    """Sum several segment breakdowns; rates are taken from the first one."""
    items = list(breakdowns)
    if not items:
        return cost_breakdown(ZERO, ZERO)
    first = items[0]
    distance = sum((b.fuel.distance_km for b in items), ZERO)
    minutes = sum((b.driver.duration_minutes for b in items), ZERO)
    fuel = FuelCost(
        amount=round2(sum((b.fuel.amount for b in items), ZERO)),
        distance_km=distance,
        consumption_l_per_100km=first.fuel.consumption_l_per_100km,
        price_per_liter=first.fuel.price_per_liter,
        fuel_type=first.fuel.fuel_type,
    )
    tolls = DistanceCost(
        amount=round2(sum((b.tolls.amount for b in items), ZERO)),
        distance_km=distance,
        rate_per_km=first.tolls.rate_per_km,
    )
    wear = DistanceCost(
        amount=round2(sum((b.wear.amount for b in items), ZERO)),
        distance_km=distance,
        rate_per_km=first.wear.rate_per_km,
    )
    driver = DriverCost(
        amount=round2(sum((b.driver.amount for b in items), ZERO)),
        duration_minutes=minutes,
        hourly_rate=first.driver.hourly_rate,
    )
    descriptions = [b.parking.description for b in items if b.parking.description]
    parking = ParkingCost(
        amount=round2(sum((b.parking.amount for b in items), ZERO)),
        description="; ".join(descriptions),
    )
    total = round2(fuel.amount + tolls.amount + wear.amount + driver.amount + parking.amount)
    return CostBreakdown(fuel=fuel, tolls=tolls, wear=wear, driver=driver, parking=parking, total=total)


def with_extra_parking(breakdown: CostBreakdown, amount, description: str) -> CostBreakdown:
    """Return a copy of ``breakdown`` with ``amount`` added to its parking line."""
    amount = round2(amount)
    if amount == ZERO:
        return breakdown
    parts = [p for p in (breakdown.parking.description, description) if p]
    parking = ParkingCost(amount=round2(breakdown.parking.amount + amount), description="; ".join(parts))
    return CostBreakdown(
        fuel=breakdown.fuel,
        tolls=breakdown.tolls,
        wear=breakdown.wear,
        driver=breakdown.driver,
        parking=parking,
        total=round2(breakdown.total + amount),
    )
