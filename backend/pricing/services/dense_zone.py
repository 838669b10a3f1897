"""
Disposal (MAD) switch heuristics.

Two situations make hourly disposal pricing more appropriate than transfer
pricing: a slow trip inside dense urban zones, and a round trip where the
driver cannot usefully return to base between legs. In both cases the MAD
price is suggested, and applied when the organization enables auto-switching
and MAD pays more.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from ..dataclasses import OrganizationPricingSettings, ZoneData
from ..rules import AutoSwitchRoundTripToMadRule, AutoSwitchToMadRule
from .config import default_setting
from .dynamic_base import apply_margin
from .utils import HUNDRED, SIXTY, ZERO, d, round2, round_up_to_next_whole

logger = logging.getLogger(__name__)

DENSE_ZONE_LOW_SPEED = "DENSE_ZONE_LOW_SPEED"
DRIVER_BLOCKED = "DRIVER_BLOCKED"
EXCEEDS_MAX_RETURN_DISTANCE = "EXCEEDS_MAX_RETURN_DISTANCE"


def _setting(settings: Optional[OrganizationPricingSettings], name: str):
    value = getattr(settings, name, None) if settings is not None else None
    return value if value is not None else default_setting(name)


def commercial_speed_kmh(distance_km, duration_minutes) -> Optional[Decimal]:
    """Average speed of the trip; None when the duration is zero."""
    duration = d(duration_minutes)
    if duration <= ZERO:
        return None
    return round2(d(distance_km) / (duration / SIXTY))


@dataclass(frozen=True)
class DenseZoneDetection:
    is_intra_dense_zone: bool
    commercial_speed_kmh: Optional[Decimal]
    speed_threshold_kmh: Decimal
    is_below_threshold: bool
    pickup_zone_code: Optional[str]
    dropoff_zone_code: Optional[str]

    @property
    def flagged_for_mad(self) -> bool:
        return self.is_intra_dense_zone and self.is_below_threshold


def detect_dense_zone(
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
    distance_km,
    duration_minutes,
    settings: Optional[OrganizationPricingSettings] = None,
) -> DenseZoneDetection:
    codes = _setting(settings, "dense_zone_codes") or []
    threshold = d(_setting(settings, "dense_zone_speed_threshold"))
    intra_dense = (
        pickup_zone is not None
        and dropoff_zone is not None
        and pickup_zone.code in codes
        and dropoff_zone.code in codes
    )
    speed = commercial_speed_kmh(distance_km, duration_minutes)
    if speed is None:
        logger.warning("Commercial speed undefined for a zero-duration trip")
    return DenseZoneDetection(
        is_intra_dense_zone=intra_dense,
        commercial_speed_kmh=speed,
        speed_threshold_kmh=threshold,
        is_below_threshold=speed is not None and speed < threshold,
        pickup_zone_code=pickup_zone.code if pickup_zone else None,
        dropoff_zone_code=dropoff_zone.code if dropoff_zone else None,
    )


def calculate_mad_price(duration_minutes, rate_per_hour, target_margin_percent) -> Tuple[Decimal, int]:
    """Disposal price for the started hours of ``duration_minutes``."""
    hours = int(round_up_to_next_whole(d(duration_minutes) / SIXTY))
    return apply_margin(d(hours) * d(rate_per_hour), target_margin_percent), hours


@dataclass(frozen=True)
class MadSuggestion:
    transfer_price: Decimal
    mad_price: Decimal
    price_difference: Decimal
    percentage_gain: Decimal
    auto_switched: bool
    rule: Optional[object] = None

    @property
    def final_price(self) -> Decimal:
        return self.mad_price if self.auto_switched else self.transfer_price


def suggest_dense_zone_mad(
    detection: DenseZoneDetection,
    transfer_price,
    duration_minutes,
    rate_per_hour,
    settings: Optional[OrganizationPricingSettings] = None,
) -> Optional[MadSuggestion]:
    """
    Compare MAD with the transfer price for a slow intra-dense-zone trip.

    Returns:
        Optional[MadSuggestion]: None when the trip is not flagged
    """
    if not detection.flagged_for_mad:
        return None
    transfer_price = d(transfer_price)
    margin = _setting(settings, "target_margin_percent")
    mad_price, hours = calculate_mad_price(duration_minutes, rate_per_hour, margin)
    difference = round2(mad_price - transfer_price)
    gain = round2(difference / transfer_price * HUNDRED) if transfer_price > ZERO else ZERO
    auto_switch = bool(_setting(settings, "auto_switch_to_mad"))
    switched = auto_switch and mad_price > transfer_price
    verb = "Switched" if switched else "Suggested"
    rule = AutoSwitchToMadRule(
        description=(
            f"{verb} MAD pricing: {detection.commercial_speed_kmh} km/h below "
            f"{detection.speed_threshold_kmh} km/h in dense zone"
        ),
        reason=DENSE_ZONE_LOW_SPEED,
        transfer_price=transfer_price,
        mad_price=mad_price,
        price_difference=difference,
        auto_switched=switched,
        commercial_speed_kmh=detection.commercial_speed_kmh,
        speed_threshold_kmh=detection.speed_threshold_kmh,
        details={
            "mad_hours": hours,
            "percentage_gain": gain,
            "pickup_zone": detection.pickup_zone_code,
            "dropoff_zone": detection.dropoff_zone_code,
        },
    )
    if switched:
        logger.info(f"Auto-switched dense-zone transfer to MAD: {transfer_price} -> {mad_price}")
    return MadSuggestion(transfer_price, mad_price, difference, gain, switched, rule)


@dataclass(frozen=True)
class BlockedDriverCheck:
    is_blocked: bool
    reason: Optional[str]
    return_to_base_minutes: Decimal
    waiting_time_minutes: Decimal
    outbound_distance_km: Decimal
    min_waiting_time_minutes: Decimal


def check_driver_blocked(
    waiting_time_minutes,
    outbound_duration_minutes,
    outbound_distance_km,
    settings: Optional[OrganizationPricingSettings] = None,
) -> BlockedDriverCheck:
    """The driver is blocked when going back to base does not fit in the wait, or base is too far."""
    waiting = d(waiting_time_minutes) if waiting_time_minutes is not None else ZERO
    buffer = d(_setting(settings, "round_trip_buffer_minutes"))
    return_to_base = round2(2 * d(outbound_duration_minutes) + buffer)
    max_return = d(_setting(settings, "max_return_distance_km"))
    reason = None
    if waiting < return_to_base:
        reason = DRIVER_BLOCKED
    elif d(outbound_distance_km) > max_return:
        reason = EXCEEDS_MAX_RETURN_DISTANCE
    return BlockedDriverCheck(
        is_blocked=reason is not None,
        reason=reason,
        return_to_base_minutes=return_to_base,
        waiting_time_minutes=waiting,
        outbound_distance_km=d(outbound_distance_km),
        min_waiting_time_minutes=d(_setting(settings, "min_waiting_time_for_separate_transfers")),
    )


def suggest_round_trip_mad(
    check: BlockedDriverCheck,
    two_transfer_price,
    outbound_duration_minutes,
    rate_per_hour,
    settings: Optional[OrganizationPricingSettings] = None,
) -> Optional[MadSuggestion]:
    """
    Offer MAD instead of two transfers when the driver stays blocked on site.

    The switch happens when MAD pays more than the two transfers.
    """
    if not check.is_blocked:
        return None
    two_transfer_price = d(two_transfer_price)
    total_minutes = 2 * d(outbound_duration_minutes) + check.waiting_time_minutes
    margin = _setting(settings, "target_margin_percent")
    mad_price, hours = calculate_mad_price(total_minutes, rate_per_hour, margin)
    difference = round2(mad_price - two_transfer_price)
    gain = round2(difference / two_transfer_price * HUNDRED) if two_transfer_price > ZERO else ZERO
    auto_switch = bool(_setting(settings, "auto_switch_round_trip_to_mad"))
    switched = auto_switch and mad_price > two_transfer_price
    verb = "Switched" if switched else "Suggested"
    rule = AutoSwitchRoundTripToMadRule(
        description=f"{verb} MAD for round trip ({check.reason}): {two_transfer_price} vs {mad_price}",
        reason=check.reason,
        auto_switched=switched,
        two_transfer_price=two_transfer_price,
        mad_price=mad_price,
        price_difference=difference,
        details={
            "mad_hours": hours,
            "percentage_gain": gain,
            "waiting_time_minutes": check.waiting_time_minutes,
            "return_to_base_minutes": check.return_to_base_minutes,
            "outbound_distance_km": check.outbound_distance_km,
            "min_waiting_time_minutes": check.min_waiting_time_minutes,
        },
    )
    if switched:
        logger.info(f"Auto-switched round trip to MAD: {two_transfer_price} -> {mad_price}")
    return MadSuggestion(two_transfer_price, mad_price, difference, gain, switched, rule)
