"""
Price modifiers applied on top of a dynamic base price.

The pipeline order is fixed: vehicle category multiplier, zone multiplier,
advanced (night/weekend) rates, then seasonal multipliers. Each step returns
the adjusted price and the rule(s) explaining the adjustment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from ..dataclasses import AdvancedRate, SeasonalMultiplier, VehicleCategory, ZoneData
from ..rules import (
    AdvancedRateRule,
    AppliedRule,
    SeasonalMultiplierRule,
    VehicleCategoryMultiplierRule,
    ZoneMultiplierRule,
)
from .config import InvalidInputError
from .utils import HUNDRED, ONE, ZERO, d, round2, round3

logger = logging.getLogger(__name__)

ZONE_STRATEGIES = ("MAX", "PICKUP_ONLY", "DROPOFF_ONLY", "AVERAGE")

ADJUSTMENT_PERCENTAGE = "PERCENTAGE"
ADJUSTMENT_FIXED = "FIXED_AMOUNT"

NIGHT = "NIGHT"
WEEKEND = "WEEKEND"

DEFAULT_WEEKEND_DAYS = "0,6"
MINUTES_PER_DAY = 24 * 60


@dataclass
class ModifierStep:
    price: Decimal
    rules: List[AppliedRule] = field(default_factory=list)


# -- vehicle category ----------------------------------------------------------

def apply_vehicle_category_multiplier(
    price,
    vehicle_category: Optional[VehicleCategory],
    used_category_rates: bool = False,
) -> ModifierStep:
    """Multiply by the category's multiplier; a multiplier of exactly 1 leaves no trace."""
    price = d(price)
    if vehicle_category is None:
        return ModifierStep(price=price)
    multiplier = d(vehicle_category.price_multiplier if vehicle_category.price_multiplier is not None else ONE)
    if multiplier == ONE:
        return ModifierStep(price=price)

    if used_category_rates:
        # Category rates already carry the category premium
        rule = VehicleCategoryMultiplierRule(
            description=f"Vehicle category multiplier skipped for {vehicle_category.name or vehicle_category.id}",
            category_id=vehicle_category.id,
            category_name=vehicle_category.name,
            multiplier=ONE,
            price_before=price,
            price_after=price,
            skipped_reason="CATEGORY_RATES_USED",
        )
        return ModifierStep(price=price, rules=[rule])

    adjusted = round2(price * multiplier)
    rule = VehicleCategoryMultiplierRule(
        description=f"Vehicle category multiplier x{multiplier} ({vehicle_category.name or vehicle_category.id})",
        category_id=vehicle_category.id,
        category_name=vehicle_category.name,
        multiplier=multiplier,
        price_before=price,
        price_after=adjusted,
    )
    return ModifierStep(price=adjusted, rules=[rule])


# -- zones ---------------------------------------------------------------------

def _zone_multiplier(zone: Optional[ZoneData]) -> Decimal:
    if zone is None or zone.price_multiplier is None:
        return ONE
    return d(zone.price_multiplier)


def aggregate_zone_multiplier(
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
    strategy: Optional[str] = None,
) -> Tuple[Decimal, str]:
    """
    Combine pickup and dropoff multipliers.

    Returns:
        Tuple[Decimal, str]: the effective multiplier and its source
        (``pickup``, ``dropoff`` or ``both``)
    """
    strategy = strategy or "MAX"
    pickup, dropoff = _zone_multiplier(pickup_zone), _zone_multiplier(dropoff_zone)
    if strategy == "MAX":
        return (pickup, "pickup") if pickup >= dropoff else (dropoff, "dropoff")
    if strategy == "PICKUP_ONLY":
        return pickup, "pickup"
    if strategy == "DROPOFF_ONLY":
        return dropoff, "dropoff"
    if strategy == "AVERAGE":
        return round3((pickup + dropoff) / 2), "both"
    raise InvalidInputError(f"Unknown zone multiplier strategy: {strategy}")


def _zone_summary(zone: Optional[ZoneData]):
    if zone is None:
        return None
    return {"code": zone.code, "name": zone.name, "multiplier": _zone_multiplier(zone)}


def apply_zone_multiplier(
    price,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
    strategy: Optional[str] = None,
) -> ModifierStep:
    price = d(price)
    if pickup_zone is None and dropoff_zone is None:
        return ModifierStep(price=price)
    strategy = strategy or "MAX"
    multiplier, source = aggregate_zone_multiplier(pickup_zone, dropoff_zone, strategy)
    adjusted = round2(price * multiplier)
    rule = ZoneMultiplierRule(
        description=f"Zone multiplier x{multiplier} ({strategy}, from {source})",
        strategy=strategy,
        pickup_zone=_zone_summary(pickup_zone),
        dropoff_zone=_zone_summary(dropoff_zone),
        applied_multiplier=multiplier,
        source=source,
        price_before=price,
        price_after=adjusted,
    )
    return ModifierStep(price=adjusted, rules=[rule])


# -- time helpers --------------------------------------------------------------

def matches_vehicle_category(rule, vehicle_category_id: Optional[str]) -> bool:
    if not vehicle_category_id:
        return True
    if rule.vehicle_category_ids:
        return vehicle_category_id in rule.vehicle_category_ids
    if not rule.vehicle_category_id:
        return True
    return rule.vehicle_category_id == vehicle_category_id


def parse_time_of_day(value: str) -> int:
    """``"22:30"`` -> minutes since midnight."""
    try:
        hours, minutes = value.split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        raise InvalidInputError(f"Invalid time of day: {value!r}")


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def is_time_in_range(current: int, start: int, end: int) -> bool:
    """Window membership; ``start > end`` means the window crosses midnight."""
    if start > end:
        return current >= start or current < end
    return start <= current < end


def sunday_based_weekday(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def parse_days_of_week(value: Optional[str]) -> List[int]:
    raw = value or DEFAULT_WEEKEND_DAYS
    return [int(part) for part in raw.split(",") if part.strip()]


def night_overlap_minutes(start_at: datetime, end_at: datetime, window_start: int, window_end: int) -> Decimal:
    """
    Minutes of ``[start_at, end_at]`` that fall inside the daily night window.

    The window is clipped against each calendar day the trip touches, so
    windows crossing midnight and multi-day trips are both covered.
    """
    if end_at <= start_at:
        return ZERO
    total_minutes = d((end_at - start_at).total_seconds()) / d(60)

    if window_start > window_end:
        daily_windows = [(window_start, MINUTES_PER_DAY), (0, window_end)]
    else:
        daily_windows = [(window_start, window_end)]

    overlap = ZERO
    day: date = start_at.date()
    while day <= end_at.date():
        midnight = datetime.combine(day, time(0, 0), tzinfo=start_at.tzinfo)
        for win_start, win_end in daily_windows:
            lo = max(start_at, midnight + timedelta(minutes=win_start))
            hi = min(end_at, midnight + timedelta(minutes=win_end))
            if hi > lo:
                overlap += d((hi - lo).total_seconds()) / d(60)
        day += timedelta(days=1)

    return min(overlap, total_minutes)


@dataclass(frozen=True)
class WeightedNightResult:
    price: Decimal
    night_minutes: Decimal
    total_minutes: Decimal
    night_fraction: Decimal
    effective_adjustment: Decimal

    def details(self) -> dict:
        return {
            "night_minutes": round2(self.night_minutes),
            "total_minutes": round2(self.total_minutes),
            "night_fraction": round3(self.night_fraction),
            "effective_adjustment": round2(self.effective_adjustment),
        }


def weighted_night_rate(
    price,
    rate: AdvancedRate,
    pickup_at: Optional[datetime],
    end_at: Optional[datetime],
) -> Optional[WeightedNightResult]:
    """Scale a night adjustment by the share of the trip spent in the night window."""
    if pickup_at is None or end_at is None or not rate.start_time or not rate.end_time:
        return None
    total = d((end_at - pickup_at).total_seconds()) / d(60)
    if total <= ZERO:
        return None

    night = night_overlap_minutes(
        pickup_at, end_at, parse_time_of_day(rate.start_time), parse_time_of_day(rate.end_time)
    )
    price = d(price)
    if night == ZERO:
        return WeightedNightResult(price, ZERO, total, ZERO, ZERO)

    fraction = night / total
    effective = d(rate.value) * fraction
    adjusted = _adjust(price, rate.adjustment_type, effective)
    return WeightedNightResult(adjusted, night, total, fraction, effective)


def evaluate_advanced_rate(rate: AdvancedRate, pickup_at: Optional[datetime], vehicle_category_id: Optional[str]) -> bool:
    """Binary applicability check against the pickup moment alone."""
    if not rate.is_active or not matches_vehicle_category(rate, vehicle_category_id):
        return False
    if pickup_at is None:
        return False
    if rate.applies_to == NIGHT:
        if not rate.start_time or not rate.end_time:
            return False
        return is_time_in_range(
            minutes_of_day(pickup_at), parse_time_of_day(rate.start_time), parse_time_of_day(rate.end_time)
        )
    if rate.applies_to == WEEKEND:
        return sunday_based_weekday(pickup_at) in parse_days_of_week(rate.days_of_week)
    return False


def _adjust(price: Decimal, adjustment_type: str, value) -> Decimal:
    if adjustment_type == ADJUSTMENT_PERCENTAGE:
        return round2(price * (ONE + d(value) / HUNDRED))
    if adjustment_type == ADJUSTMENT_FIXED:
        return round2(price + d(value))
    raise InvalidInputError(f"Unknown adjustment type: {adjustment_type}")


def apply_advanced_rates(
    price,
    rates: Sequence[AdvancedRate],
    pickup_at: Optional[datetime],
    estimated_end_at: Optional[datetime],
    vehicle_category_id: Optional[str] = None,
) -> ModifierStep:
    """
    Apply night and weekend rates by descending priority.

    NIGHT rates are weighted by overlap when both ends of the trip are known;
    otherwise every rate is evaluated against the pickup time alone.
    """
    price = d(price)
    rules: List[AppliedRule] = []
    for rate in sorted(rates, key=lambda r: -(r.priority or 0)):
        if (
            rate.applies_to == NIGHT
            and rate.is_active
            and matches_vehicle_category(rate, vehicle_category_id)
            and pickup_at is not None
            and estimated_end_at is not None
        ):
            weighted = weighted_night_rate(price, rate, pickup_at, estimated_end_at)
            if weighted is not None:
                if weighted.night_minutes > ZERO:
                    rules.append(
                        AdvancedRateRule(
                            description=(
                                f"{rate.name}: {round2(weighted.effective_adjustment)} weighted over "
                                f"{round2(weighted.night_minutes)} of {round2(weighted.total_minutes)} minutes"
                            ),
                            rule_id=rate.id,
                            rule_name=rate.name,
                            applies_to=rate.applies_to,
                            adjustment_type=rate.adjustment_type,
                            adjustment_value=d(rate.value),
                            price_before=price,
                            price_after=weighted.price,
                            weighted_details=weighted.details(),
                        )
                    )
                    price = weighted.price
                continue

        if not evaluate_advanced_rate(rate, pickup_at, vehicle_category_id):
            continue
        adjusted = _adjust(price, rate.adjustment_type, rate.value)
        rules.append(
            AdvancedRateRule(
                description=f"{rate.name}: {rate.adjustment_type.lower()} {d(rate.value)}",
                rule_id=rate.id,
                rule_name=rate.name,
                applies_to=rate.applies_to,
                adjustment_type=rate.adjustment_type,
                adjustment_value=d(rate.value),
                price_before=price,
                price_after=adjusted,
            )
        )
        price = adjusted
    return ModifierStep(price=price, rules=rules)


def apply_seasonal_multipliers(
    price,
    multipliers: Sequence[SeasonalMultiplier],
    pickup_at: Optional[datetime],
    vehicle_category_id: Optional[str] = None,
) -> ModifierStep:
    """Apply every active seasonal multiplier whose date range covers the pickup day."""
    price = d(price)
    if pickup_at is None:
        return ModifierStep(price=price)
    rules: List[AppliedRule] = []
    pickup_day = pickup_at.date()
    for season in sorted(multipliers, key=lambda m: -(m.priority or 0)):
        if not season.is_active or not matches_vehicle_category(season, vehicle_category_id):
            continue
        # end_date covers the whole day
        if not (season.start_date <= pickup_day <= season.end_date):
            continue
        adjusted = round2(price * d(season.multiplier))
        rules.append(
            SeasonalMultiplierRule(
                description=f"{season.name}: x{d(season.multiplier)}",
                rule_id=season.id,
                rule_name=season.name,
                adjustment_value=d(season.multiplier),
                price_before=price,
                price_after=adjusted,
            )
        )
        price = adjusted
    return ModifierStep(price=price, rules=rules)
