"""
Margin classification and manual price overrides.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from django.utils.timezone import now

from ..dataclasses import (
    OrganizationPricingSettings,
    OverrideError,
    OverrideResult,
    PricingResult,
    ProfitabilityData,
)
from ..rules import ManualOverrideRule
from .config import default_setting
from .utils import ZERO, d, margin_percent, round2

logger = logging.getLogger(__name__)

GREEN = "green"
ORANGE = "orange"
RED = "red"

INVALID_PRICE = "INVALID_PRICE"
BELOW_MINIMUM_MARGIN = "BELOW_MINIMUM_MARGIN"

_LABELS = {GREEN: "Profitable", ORANGE: "Low margin", RED: "Loss"}


def thresholds_from_settings(settings: Optional[OrganizationPricingSettings] = None) -> Dict[str, Decimal]:
    green = getattr(settings, "green_margin_threshold", None) if settings is not None else None
    orange = getattr(settings, "orange_margin_threshold", None) if settings is not None else None
    return {
        "green": d(green) if green is not None else default_setting("green_margin_threshold"),
        "orange": d(orange) if orange is not None else default_setting("orange_margin_threshold"),
    }


def classify_profitability(margin_pct, thresholds: Optional[Dict[str, Decimal]] = None) -> str:
    """green at or above the green threshold, orange at or above orange, red below."""
    thresholds = thresholds or thresholds_from_settings()
    margin_pct = d(margin_pct)
    if margin_pct >= d(thresholds["green"]):
        return GREEN
    if margin_pct >= d(thresholds["orange"]):
        return ORANGE
    return RED


def profitability_data(margin_pct, thresholds: Optional[Dict[str, Decimal]] = None) -> ProfitabilityData:
    thresholds = thresholds or thresholds_from_settings()
    indicator = classify_profitability(margin_pct, thresholds)
    margin_pct = d(margin_pct)
    if indicator == GREEN:
        description = f"Margin: {margin_pct}% (≥{thresholds['green']}% target)"
    elif indicator == ORANGE:
        description = f"Margin: {margin_pct}% (below {thresholds['green']}% target)"
    else:
        description = f"Margin: {margin_pct}% (loss - below {thresholds['orange']}%)"
    return ProfitabilityData(
        indicator=indicator,
        margin_percent=margin_pct,
        thresholds=dict(thresholds),
        label=_LABELS[indicator],
        description=description,
    )


def validate_override(new_price, internal_cost, min_margin_percent=None) -> Optional[OverrideError]:
    """
    Check a manually entered price.

    Returns:
        Optional[OverrideError]: None when the price is acceptable
    """
    new_price, internal_cost = d(new_price), d(internal_cost)
    if new_price <= ZERO:
        return OverrideError(
            error_code=INVALID_PRICE,
            error_message="Price must be greater than zero",
            details={"requested_price": new_price},
        )
    margin = round2(new_price - internal_cost)
    pct = margin_percent(margin, new_price)
    if min_margin_percent is not None and pct < d(min_margin_percent):
        return OverrideError(
            error_code=BELOW_MINIMUM_MARGIN,
            error_message=(
                f"Price override rejected: resulting margin ({pct:.1f}%) is below "
                f"minimum threshold ({d(min_margin_percent)}%)"
            ),
            details={
                "requested_price": new_price,
                "internal_cost": internal_cost,
                "resulting_margin": margin,
                "resulting_margin_percent": pct,
                "minimum_margin_percent": d(min_margin_percent),
            },
        )
    return None


def apply_override(
    result: PricingResult,
    new_price,
    reason: Optional[str] = None,
    min_margin_percent=None,
    settings: Optional[OrganizationPricingSettings] = None,
    overridden_at: Optional[datetime] = None,
) -> OverrideResult:
    """
    Replace the computed price with a manual one.

    Args:
        result: The computed pricing result (left untouched)
        new_price: Price entered by the operator
        reason: Free-text justification kept in the audit rule
        min_margin_percent: Reject prices whose margin falls below this
        settings: Organization settings for the profitability thresholds
        overridden_at: Timestamp recorded in the rule; defaults to now

    Returns:
        OverrideResult: a new PricingResult on success, or the validation error
    """
    if min_margin_percent is None and settings is not None:
        min_margin_percent = settings.minimum_margin_percent
    error = validate_override(new_price, result.internal_cost, min_margin_percent)
    if error is not None:
        logger.info(f"Price override rejected: {error.error_code}")
        return OverrideResult(success=False, error=error)

    new_price = round2(new_price)
    previous = result.price
    change = round2(new_price - previous)
    change_pct = margin_percent(change, previous) if previous > ZERO else ZERO
    margin = round2(new_price - result.internal_cost)
    pct = margin_percent(margin, new_price)
    data = profitability_data(pct, thresholds_from_settings(settings))

    is_contract = result.pricing_mode == "FIXED_GRID"
    if is_contract:
        description = f"Contract price overridden: {previous}€ → {new_price}€ (Warning: Engagement Rule bypassed)"
    else:
        description = f"Price manually adjusted: {previous}€ → {new_price}€"
    rule = ManualOverrideRule(
        description=description,
        previous_price=previous,
        new_price=new_price,
        price_change=change,
        price_change_percent=change_pct,
        reason=reason,
        overridden_at=overridden_at or now(),
        is_contract_price_override=is_contract,
    )
    # Overrides replace each other rather than stacking
    rules = [r for r in result.applied_rules if getattr(r, "rule_type", None) != ManualOverrideRule.rule_type]
    rules.append(rule)

    logger.info(f"Price override applied: {previous} -> {new_price}")
    return OverrideResult(
        success=True,
        result=replace(
            result,
            price=new_price,
            margin=margin,
            margin_percent=pct,
            profitability_indicator=data.indicator,
            profitability_data=data,
            applied_rules=rules,
            override_applied=True,
            previous_price=previous,
        ),
    )
