"""
Tests for loading the pricing defaults and filling organization settings.
"""

import json
from decimal import Decimal

import pytest

from ..dataclasses import HierarchicalPricingConfig, OrganizationPricingSettings
from ..services.config import (
    ConfigurationError,
    PricingError,
    clear_pricing_defaults_cache,
    default_currency,
    default_fuel_prices,
    default_rse_rules,
    default_setting,
    effective_settings,
    get_pricing_defaults,
    hierarchical_config,
    load_pricing_defaults,
)


class TestLoadPricingDefaults:
    """Test reading the defaults file"""

    def test_shipped_defaults_load(self):
        """Test the packaged defaults file is complete"""
        defaults = load_pricing_defaults()
        assert defaults["currency"] == "EUR"
        assert defaults["settings"]["base_rate_per_km"] == Decimal("2.5")

    def test_numbers_are_decimals(self):
        """Test JSON numbers are parsed as Decimal, never float"""
        defaults = load_pricing_defaults()
        assert isinstance(defaults["fuel_prices"]["DIESEL"], Decimal)
        assert isinstance(defaults["rse"]["max_daily_driving_hours"], Decimal)

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigurationError"""
        with pytest.raises(ConfigurationError, match="not found"):
            load_pricing_defaults(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        """Test malformed JSON raises ConfigurationError"""
        path = tmp_path / "defaults.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_pricing_defaults(str(path))

    def test_missing_sections(self, tmp_path):
        """Test an incomplete file names the missing sections"""
        path = tmp_path / "defaults.json"
        path.write_text(json.dumps({"version": "1", "settings": {}}))
        with pytest.raises(ConfigurationError, match="fuel_prices"):
            load_pricing_defaults(str(path))

    def test_configuration_error_is_pricing_error(self):
        assert issubclass(ConfigurationError, PricingError)


class TestDefaultsCache:
    """Test caching and Django setting overrides"""

    def test_cached_between_calls(self):
        """Test the defaults are only loaded once"""
        assert get_pricing_defaults() is get_pricing_defaults()

    def test_pricing_defaults_setting_overrides_keys(self, settings):
        """Test PRICING_DEFAULTS is merged over the file"""
        settings.PRICING_DEFAULTS = {"currency": "CHF", "settings": {"base_rate_per_km": "3.10"}}
        clear_pricing_defaults_cache()
        assert default_currency() == "CHF"
        assert default_setting("base_rate_per_km") == Decimal("3.10")
        # untouched keys survive the merge
        assert default_setting("base_rate_per_hour") == Decimal("45")

    def test_pricing_defaults_path_setting(self, settings, tmp_path):
        """Test PRICING_DEFAULTS_PATH points at another file"""
        defaults = load_pricing_defaults()
        defaults["currency"] = "GBP"
        path = tmp_path / "defaults.json"
        path.write_text(json.dumps(defaults, default=str))
        settings.PRICING_DEFAULTS_PATH = str(path)
        clear_pricing_defaults_cache()
        assert default_currency() == "GBP"


class TestEffectiveSettings:
    """Test filling unset organization knobs"""

    def test_empty_settings_get_defaults(self):
        """Test every unset value comes from the defaults"""
        settings = effective_settings(None)
        assert settings.base_rate_per_km == Decimal("2.5")
        assert settings.target_margin_percent == Decimal("20")
        assert settings.zone_multiplier_aggregation_strategy == "MAX"
        assert settings.staffing_selection_policy == "CHEAPEST"
        assert settings.dense_zone_codes == ["PARIS_0", "PARIS_10", "LA_DEFENSE"]
        assert settings.staffing_cost_parameters.hotel_cost_per_night == Decimal("100")

    def test_explicit_values_win(self):
        """Test organization values are kept as-is"""
        settings = effective_settings(OrganizationPricingSettings(base_rate_per_km=Decimal("1.80")))
        assert settings.base_rate_per_km == Decimal("1.80")

    def test_input_not_mutated(self):
        """Test the organization object is left untouched"""
        org = OrganizationPricingSettings()
        effective_settings(org)
        assert org.base_rate_per_km is None

    def test_hierarchical_pricing_stays_opt_in(self):
        """Test no hierarchical config is invented for the organization"""
        assert effective_settings(None).hierarchical_pricing is None

    def test_custom_fuel_prices_merged(self):
        """Test custom fuel prices extend the default table"""
        settings = effective_settings(OrganizationPricingSettings(fuel_prices={"DIESEL": Decimal("1.50")}))
        assert settings.fuel_prices["DIESEL"] == Decimal("1.50")
        assert settings.fuel_prices["GASOLINE"] == default_fuel_prices()["GASOLINE"]

    def test_unset_minimum_margin_stays_none(self):
        assert effective_settings(None).minimum_margin_percent is None


class TestSectionDefaults:
    def test_hierarchical_config_defaults_central_codes(self):
        """Test central zone codes are filled in when missing"""
        config = hierarchical_config(HierarchicalPricingConfig())
        assert config.central_zone_codes == ["PARIS_0", "Z_0", "BUSSY_0"]

    def test_hierarchical_config_keeps_explicit_codes(self):
        config = hierarchical_config(HierarchicalPricingConfig(central_zone_codes=["LYON_0"]))
        assert config.central_zone_codes == ["LYON_0"]

    def test_rse_defaults(self):
        rules = default_rse_rules()
        assert rules.max_daily_driving_hours == Decimal("10")
        assert rules.max_daily_amplitude_hours == Decimal("14")
