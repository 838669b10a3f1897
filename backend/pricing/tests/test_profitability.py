"""
Tests for profitability classification and manual price overrides.
"""

from datetime import datetime, timezone
from decimal import Decimal

from ..dataclasses import OrganizationPricingSettings
from ..services.pricing_service import calculate_price
from ..services.profitability import (
    BELOW_MINIMUM_MARGIN,
    GREEN,
    INVALID_PRICE,
    ORANGE,
    RED,
    apply_override,
    classify_profitability,
    profitability_data,
    validate_override,
)
from .factories import make_context, make_request, make_route, partner

OVERRIDDEN_AT = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestClassification:
    """Test the green / orange / red thresholds"""

    def test_green_at_target(self):
        assert classify_profitability(Decimal("20")) == GREEN

    def test_orange_at_zero(self):
        """Test a zero margin is still orange"""
        assert classify_profitability(Decimal("0")) == ORANGE

    def test_red_below_zero(self):
        assert classify_profitability(Decimal("-0.01")) == RED

    def test_custom_thresholds(self):
        thresholds = {"green": Decimal("30"), "orange": Decimal("10")}
        assert classify_profitability(Decimal("20"), thresholds) == ORANGE
        assert classify_profitability(Decimal("5"), thresholds) == RED

    def test_profitability_data(self):
        data = profitability_data(Decimal("-5"))
        assert data.indicator == RED
        assert data.label == "Loss"
        assert data.thresholds == {"green": Decimal("20"), "orange": Decimal("0")}


class TestValidateOverride:
    def test_non_positive_price(self):
        error = validate_override(Decimal("0"), Decimal("30"))
        assert error.error_code == INVALID_PRICE

    def test_below_minimum_margin(self):
        """Test the resulting margin is checked against the minimum"""
        error = validate_override(Decimal("35"), Decimal("30.57"), Decimal("15"))
        assert error.error_code == BELOW_MINIMUM_MARGIN
        assert error.details["resulting_margin"] == Decimal("4.43")

    def test_loss_allowed_without_minimum(self):
        assert validate_override(Decimal("20"), Decimal("30.57")) is None


class TestApplyOverride:
    """Test overriding a computed price"""

    def setup_method(self):
        self.result = calculate_price(make_request(), make_context())

    def test_override_recomputes_margin(self):
        outcome = apply_override(self.result, Decimal("100"), reason="Loyal client", overridden_at=OVERRIDDEN_AT)
        assert outcome.success
        result = outcome.result
        assert result.price == Decimal("100.00")
        assert result.previous_price == Decimal("90.00")
        assert result.margin == Decimal("69.43")
        assert result.override_applied
        rule = result.applied_rules[-1]
        assert rule.type == "MANUAL_OVERRIDE"
        assert rule.price_change == Decimal("10.00")
        assert rule.price_change_percent == Decimal("11.11")
        assert rule.overridden_at == OVERRIDDEN_AT
        assert not rule.is_contract_price_override

    def test_original_result_untouched(self):
        apply_override(self.result, Decimal("100"), overridden_at=OVERRIDDEN_AT)
        assert self.result.price == Decimal("90.00")
        assert not self.result.override_applied

    def test_override_to_loss_is_red(self):
        outcome = apply_override(self.result, Decimal("25"), overridden_at=OVERRIDDEN_AT)
        assert outcome.result.profitability_indicator == RED

    def test_rejected_override(self):
        outcome = apply_override(self.result, Decimal("-5"))
        assert not outcome.success
        assert outcome.error.error_code == INVALID_PRICE
        assert outcome.to_dict()["success"] is False

    def test_minimum_margin_from_settings(self):
        settings = OrganizationPricingSettings(minimum_margin_percent=Decimal("50"))
        outcome = apply_override(self.result, Decimal("40"), settings=settings)
        assert outcome.error.error_code == BELOW_MINIMUM_MARGIN

    def test_repeated_overrides_do_not_stack(self):
        """Test a second override replaces the first audit rule"""
        first = apply_override(self.result, Decimal("100"), overridden_at=OVERRIDDEN_AT).result
        second = apply_override(first, Decimal("110"), overridden_at=OVERRIDDEN_AT).result
        overrides = [r for r in second.applied_rules if r.type == "MANUAL_OVERRIDE"]
        assert len(overrides) == 1
        assert overrides[0].previous_price == Decimal("100.00")

    def test_contract_price_override_flagged(self):
        context = make_context(contact=partner([make_route()]))
        contract_result = calculate_price(make_request(), context)
        outcome = apply_override(contract_result, Decimal("130"), overridden_at=OVERRIDDEN_AT)
        rule = outcome.result.applied_rules[-1]
        assert rule.is_contract_price_override
        assert "Engagement Rule bypassed" in rule.description
