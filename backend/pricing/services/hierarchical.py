"""
Four-level hierarchical pricing for zone-based organizations.

1. Intra-central flat rate (both endpoints in central zones)
2. Inter-zone forfait (explicit zone-pair package)
3. Same-ring dynamic (dynamic price times the shared ring's multiplier)
4. Horokilometric fallback (plain dynamic price)

Levels are tried strictly in order; the first one that applies wins and every
level before it records why it was skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from ..dataclasses import (
    HierarchicalPricingConfig,
    IntraCentralFlatRate,
    PricingRequest,
    ZoneData,
    ZoneRoute,
)
from ..rules import HierarchicalPricingRule
from .catalog_matcher import check_zone_route, effective_price
from .config import hierarchical_config
from .geo import check_same_ring, is_central_zone
from .utils import d, round2

logger = logging.getLogger(__name__)


class SkipReason:
    NOT_APPLICABLE = "NOT_APPLICABLE"
    NO_RATE_CONFIGURED = "NO_RATE_CONFIGURED"
    DISABLED_BY_CONFIG = "DISABLED_BY_CONFIG"


@dataclass
class HierarchicalInputs:
    pickup_zone: Optional[ZoneData]
    dropoff_zone: Optional[ZoneData]
    vehicle_category_id: str
    dynamic_price: Decimal
    flat_rates: Sequence[IntraCentralFlatRate] = ()
    forfait: Optional[ZoneRoute] = None
    config: Optional[HierarchicalPricingConfig] = None


@dataclass(frozen=True)
class LevelOutcome:
    applies: bool
    price: Optional[Decimal] = None
    reason: str = ""
    skip_reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HierarchicalResult:
    level: int
    level_name: str
    price: Decimal
    reason: str
    skipped_levels: List[Dict[str, Any]] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_fixed_price(self) -> bool:
        return self.level in (1, 2)

    def to_rule(self) -> HierarchicalPricingRule:
        return HierarchicalPricingRule(
            description=f"Hierarchical pricing level {self.level} ({self.level_name}): {self.reason}",
            level=self.level,
            level_name=self.level_name,
            reason=self.reason,
            skipped_levels=list(self.skipped_levels),
            applied_price=self.price,
            details=dict(self.details),
        )


def find_flat_rate(rates: Sequence[IntraCentralFlatRate], vehicle_category_id: str) -> Optional[IntraCentralFlatRate]:
    for rate in rates:
        if rate.is_active and rate.vehicle_category_id == vehicle_category_id:
            return rate
    return None


def find_forfait(
    forfaits: Sequence[ZoneRoute],
    request: PricingRequest,
    pickup_zone: Optional[ZoneData],
    dropoff_zone: Optional[ZoneData],
) -> Optional[ZoneRoute]:
    """First active zone-pair forfait covering the trip for the requested category."""
    for forfait in forfaits:
        reason = check_zone_route(
            forfait, request.vehicle_category_id, request.pickup, request.dropoff, pickup_zone, dropoff_zone
        )
        if reason is None:
            return forfait
    return None


def _intra_central(inputs: HierarchicalInputs, config: HierarchicalPricingConfig) -> LevelOutcome:
    both_central = is_central_zone(inputs.pickup_zone, config) and is_central_zone(inputs.dropoff_zone, config)
    if not both_central:
        return LevelOutcome(applies=False, skip_reason=SkipReason.NOT_APPLICABLE, reason="Endpoints not both central")
    rate = find_flat_rate(inputs.flat_rates, inputs.vehicle_category_id)
    if rate is None:
        return LevelOutcome(
            applies=False,
            skip_reason=SkipReason.NO_RATE_CONFIGURED,
            reason="No intra-central flat rate for vehicle category",
        )
    return LevelOutcome(
        applies=True,
        price=round2(rate.flat_price),
        reason="Both endpoints in central zones",
        details={"flat_rate_id": rate.id},
    )


def _inter_zone_forfait(inputs: HierarchicalInputs, config: HierarchicalPricingConfig) -> LevelOutcome:
    if inputs.forfait is None:
        return LevelOutcome(applies=False, skip_reason=SkipReason.NO_RATE_CONFIGURED, reason="No forfait for zone pair")
    price, _ = effective_price(inputs.forfait.fixed_price, inputs.forfait.override_price)
    return LevelOutcome(
        applies=True,
        price=price,
        reason="Inter-zone forfait",
        details={"forfait_id": inputs.forfait.id},
    )


def _same_ring(inputs: HierarchicalInputs, config: HierarchicalPricingConfig) -> LevelOutcome:
    same, code, multiplier = check_same_ring(inputs.pickup_zone, inputs.dropoff_zone)
    if not same:
        return LevelOutcome(applies=False, skip_reason=SkipReason.NOT_APPLICABLE, reason="Endpoints in different rings")
    return LevelOutcome(
        applies=True,
        price=round2(d(inputs.dynamic_price) * multiplier),
        reason=f"Both endpoints in ring {code}",
        details={"ring_code": code, "ring_multiplier": multiplier},
    )


# (level, name, config flag disabling it, evaluator); level 4 always applies
LEVELS: Sequence[tuple] = (
    (1, "INTRA_CENTRAL_FLAT_RATE", "skip_level1", _intra_central),
    (2, "INTER_ZONE_FORFAIT", "skip_level2", _inter_zone_forfait),
    (3, "SAME_RING_DYNAMIC", "skip_level3", _same_ring),
)
FALLBACK_LEVEL = (4, "HOROKILOMETRIC_DYNAMIC")


def evaluate_hierarchical_pricing(inputs: HierarchicalInputs) -> HierarchicalResult:
    """
    Walk the four pricing levels in order.

    Args:
        inputs: Zones, category, dynamic price, flat rates and matched forfait

    Returns:
        HierarchicalResult: winning level, its price, and the skip trace
    """
    config = hierarchical_config(inputs.config)
    if not config.enabled:
        level, name = FALLBACK_LEVEL
        return HierarchicalResult(
            level=level,
            level_name=name,
            price=round2(inputs.dynamic_price),
            reason="Hierarchical pricing disabled",
        )

    skipped: List[Dict[str, Any]] = []
    for level, name, flag, evaluate in LEVELS:
        if flag and getattr(config, flag):
            skipped.append({"level": level, "level_name": name, "reason": SkipReason.DISABLED_BY_CONFIG})
            continue
        outcome: LevelOutcome = evaluate(inputs, config)
        if outcome.applies:
            logger.debug(f"Hierarchical pricing resolved at level {level} ({name})")
            return HierarchicalResult(
                level=level,
                level_name=name,
                price=outcome.price,
                reason=outcome.reason,
                skipped_levels=skipped,
                details=outcome.details,
            )
        skipped.append({"level": level, "level_name": name, "reason": outcome.skip_reason})

    level, name = FALLBACK_LEVEL
    logger.debug(f"Hierarchical pricing resolved at level {level} ({name})")
    return HierarchicalResult(
        level=level,
        level_name=name,
        price=round2(inputs.dynamic_price),
        reason="Horokilometric fallback",
        skipped_levels=skipped,
    )
