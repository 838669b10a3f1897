"""
Pricing defaults and configuration errors.

Organizations may leave any pricing knob unset; the engine then falls back to
the versioned defaults shipped in ``pricing/config/pricing_defaults.json``.
Deployments can point ``PRICING_DEFAULTS_PATH`` at another file, or override
single keys through the ``PRICING_DEFAULTS`` Django setting.
"""

import copy
import json
import logging
from dataclasses import fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from django.conf import settings as django_settings

from ..dataclasses import (
    HierarchicalPricingConfig,
    OrganizationPricingSettings,
    RSERules,
    StaffingCostParameters,
)
from .utils import d

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ("version", "fuel_prices", "settings", "hierarchical_pricing", "rse", "staffing", "estimation")

# Settings fields holding money, rates or thresholds
_DECIMAL_FIELDS = {
    "base_rate_per_km",
    "base_rate_per_hour",
    "target_margin_percent",
    "fuel_consumption_l_per_100km",
    "fuel_price_per_liter",
    "toll_cost_per_km",
    "wear_cost_per_km",
    "driver_hourly_cost",
    "green_margin_threshold",
    "orange_margin_threshold",
    "minimum_margin_percent",
    "excursion_minimum_hours",
    "excursion_surcharge_percent",
    "dispo_included_km_per_hour",
    "dispo_overage_rate_per_km",
    "dense_zone_speed_threshold",
    "min_waiting_time_for_separate_transfers",
    "max_return_distance_km",
    "round_trip_buffer_minutes",
    "wait_on_site_threshold_minutes",
}


class PricingError(Exception):
    """Base exception for pricing engine faults"""
    pass


class ConfigurationError(PricingError):
    """Raised when the pricing defaults cannot be loaded or are incomplete"""
    pass


class InvalidInputError(PricingError):
    """Raised when the engine receives a value outside its known vocabulary"""
    pass


def _default_config_path() -> Path:
    configured = getattr(django_settings, "PRICING_DEFAULTS_PATH", None)
    if configured:
        return Path(configured)
    return Path(__file__).parent.parent / "config" / "pricing_defaults.json"


def load_pricing_defaults(config_path: str = None) -> dict:
    """
    Load pricing defaults from a JSON configuration file

    Args:
        config_path: Path to the defaults JSON file. If None, uses
            ``PRICING_DEFAULTS_PATH`` or the file shipped with the app.

    Returns:
        dict: Parsed defaults with every number as Decimal

    Raises:
        ConfigurationError: If the file is missing, unparsable or incomplete
    """
    path = Path(config_path) if config_path is not None else _default_config_path()
    if not path.exists():
        raise ConfigurationError(f"Pricing defaults file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            defaults = json.load(f, parse_float=Decimal, parse_int=Decimal)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in pricing defaults file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error reading pricing defaults file: {e}")

    missing = [key for key in REQUIRED_SECTIONS if key not in defaults]
    if missing:
        raise ConfigurationError(f"Pricing defaults missing sections: {', '.join(missing)}")

    logger.info(f"Loaded pricing defaults version {defaults['version']} from {path}")
    return defaults


def _merge(base: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_pricing_defaults() -> dict:
    """Get the cached defaults, with ``PRICING_DEFAULTS`` overrides applied"""
    if not hasattr(get_pricing_defaults, "_cached_defaults"):
        defaults = load_pricing_defaults()
        overrides = getattr(django_settings, "PRICING_DEFAULTS", None) or {}
        if overrides:
            logger.info(f"Applying PRICING_DEFAULTS overrides for: {', '.join(sorted(overrides))}")
        get_pricing_defaults._cached_defaults = _merge(defaults, overrides)
    return get_pricing_defaults._cached_defaults


def clear_pricing_defaults_cache():
    """Clear the cached defaults (useful for testing or config updates)"""
    if hasattr(get_pricing_defaults, "_cached_defaults"):
        delattr(get_pricing_defaults, "_cached_defaults")
    logger.info("Pricing defaults cache cleared")


def default_setting(name: str) -> Any:
    value = get_pricing_defaults()["settings"].get(name)
    if name in _DECIMAL_FIELDS and value is not None:
        return d(value)
    return value


def default_fuel_prices() -> Dict[str, Decimal]:
    return {k: d(v) for k, v in get_pricing_defaults()["fuel_prices"].items()}


def estimation_default(name: str) -> Decimal:
    return d(get_pricing_defaults()["estimation"][name])


def default_central_zone_codes() -> List[str]:
    return list(get_pricing_defaults()["hierarchical_pricing"]["central_zone_codes"])


def minimum_wait_on_site_threshold() -> Decimal:
    return d(get_pricing_defaults()["round_trip"]["minimum_wait_on_site_threshold_minutes"])


def effective_settings(org_settings: Optional[OrganizationPricingSettings]) -> OrganizationPricingSettings:
    """
    Fill every unset organization field from the defaults.

    Args:
        org_settings: Organization settings, possibly partial (or None)

    Returns:
        OrganizationPricingSettings: A new, fully populated settings object
    """
    org_settings = org_settings or OrganizationPricingSettings()
    changes = {}
    for f in fields(OrganizationPricingSettings):
        if getattr(org_settings, f.name) is not None:
            continue
        if f.name == "fuel_prices":
            changes[f.name] = default_fuel_prices()
        elif f.name == "staffing_cost_parameters":
            changes[f.name] = default_staffing_parameters()
        elif f.name == "hierarchical_pricing":
            # Opt-in: organizations without a hierarchical config keep plain dynamic pricing
            continue
        else:
            changes[f.name] = default_setting(f.name)
    if org_settings.fuel_prices is not None:
        changes["fuel_prices"] = {**default_fuel_prices(), **org_settings.fuel_prices}
    return replace(org_settings, **changes)


def hierarchical_config(config: Optional[HierarchicalPricingConfig]) -> HierarchicalPricingConfig:
    """Return ``config`` with central zone codes defaulted."""
    if config is None:
        section = get_pricing_defaults()["hierarchical_pricing"]
        config = HierarchicalPricingConfig(
            enabled=bool(section["enabled"]),
            skip_level1=bool(section["skip_level1"]),
            skip_level2=bool(section["skip_level2"]),
            skip_level3=bool(section["skip_level3"]),
        )
    if config.central_zone_codes is None:
        return replace(config, central_zone_codes=default_central_zone_codes())
    return config


def default_rse_rules() -> RSERules:
    section = get_pricing_defaults()["rse"]
    return RSERules(
        max_daily_driving_hours=d(section["max_daily_driving_hours"]),
        max_daily_amplitude_hours=d(section["max_daily_amplitude_hours"]),
        break_minutes_per_driving_block=d(section["break_minutes_per_driving_block"]),
        driving_block_hours_for_break=d(section["driving_block_hours_for_break"]),
        capped_average_speed_kmh=d(section["capped_average_speed_kmh"]),
        warning_ratio=d(section["warning_ratio"]),
    )


def default_staffing_parameters() -> StaffingCostParameters:
    section = get_pricing_defaults()["staffing"]
    return StaffingCostParameters(
        driver_hourly_cost=d(section["driver_hourly_cost"]),
        hotel_cost_per_night=d(section["hotel_cost_per_night"]),
        meal_allowance_per_day=d(section["meal_allowance_per_day"]),
        double_crew_amplitude_hours=d(section["double_crew_amplitude_hours"]),
        max_multi_day_days=int(section["max_multi_day_days"]),
        standard_work_day_hours=d(section["standard_work_day_hours"]),
    )


def default_currency() -> str:
    return get_pricing_defaults().get("currency", "EUR")
