from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..dataclasses import OrganizationPricingSettings, VehicleCategory
from ..rules import DynamicBaseRule
from .config import default_setting
from .utils import HUNDRED, ONE, d, minutes_to_hours, round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRates:
    rate_per_km: Decimal
    rate_per_hour: Decimal
    rate_source: str

    @property
    def used_category_rates(self) -> bool:
        return self.rate_source == "CATEGORY"


@dataclass(frozen=True)
class DynamicBaseResult:
    distance_km: Decimal
    duration_minutes: Decimal
    rates: ResolvedRates
    target_margin_percent: Decimal
    distance_based_price: Decimal
    duration_based_price: Decimal
    selected_method: str
    base_price: Decimal
    price_with_margin: Decimal

    def to_rule(self) -> DynamicBaseRule:
        return DynamicBaseRule(
            description=f"Dynamic pricing: {self.selected_method} method",
            inputs={
                "distance_km": self.distance_km,
                "duration_minutes": self.duration_minutes,
                "rate_per_km": self.rates.rate_per_km,
                "rate_per_hour": self.rates.rate_per_hour,
                "rate_source": self.rates.rate_source,
                "target_margin_percent": self.target_margin_percent,
            },
            distance_based_price=self.distance_based_price,
            duration_based_price=self.duration_based_price,
            selected_method=self.selected_method,
            base_price=self.base_price,
            price_with_margin=self.price_with_margin,
        )


def resolve_rates(
    vehicle_category: Optional[VehicleCategory],
    settings: Optional[OrganizationPricingSettings],
) -> ResolvedRates:
    """Category rates win when the category defines both of them."""
    if vehicle_category is not None and vehicle_category.has_own_rates:
        return ResolvedRates(
            rate_per_km=d(vehicle_category.default_rate_per_km),
            rate_per_hour=d(vehicle_category.default_rate_per_hour),
            rate_source="CATEGORY",
        )
    per_km = getattr(settings, "base_rate_per_km", None)
    per_hour = getattr(settings, "base_rate_per_hour", None)
    return ResolvedRates(
        rate_per_km=d(per_km) if per_km is not None else default_setting("base_rate_per_km"),
        rate_per_hour=d(per_hour) if per_hour is not None else default_setting("base_rate_per_hour"),
        rate_source="ORGANIZATION",
    )


def apply_margin(price, target_margin_percent) -> Decimal:
    return round2(d(price) * (ONE + d(target_margin_percent) / HUNDRED))


def calculate_dynamic_base_price(
    distance_km,
    duration_minutes,
    rates: ResolvedRates,
    target_margin_percent,
) -> DynamicBaseResult:
    """
    Price a trip from the larger of its distance and duration candidates.

    Args:
        distance_km: Service distance
        duration_minutes: Service duration
        rates: Per-km and per-hour rates to apply
        target_margin_percent: Margin added on top of the base price

    Returns:
        DynamicBaseResult: both candidates, the selected method and the prices
    """
    distance_price = round2(d(distance_km) * rates.rate_per_km)
    duration_price = round2(minutes_to_hours(duration_minutes) * rates.rate_per_hour)
    # Ties go to the distance method
    if distance_price >= duration_price:
        method, base = "distance", distance_price
    else:
        method, base = "duration", duration_price

    result = DynamicBaseResult(
        distance_km=d(distance_km),
        duration_minutes=d(duration_minutes),
        rates=rates,
        target_margin_percent=d(target_margin_percent),
        distance_based_price=distance_price,
        duration_based_price=duration_price,
        selected_method=method,
        base_price=base,
        price_with_margin=apply_margin(base, target_margin_percent),
    )
    logger.debug(
        f"Dynamic base: distance {distance_price} vs duration {duration_price} -> {method} {base}, "
        f"with margin {result.price_with_margin}"
    )
    return result
