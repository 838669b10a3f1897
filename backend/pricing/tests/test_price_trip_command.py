"""
Tests for the price_trip management command.
"""

import json
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from .factories import pricing_payload


def write_payload(tmp_path, payload):
    path = tmp_path / "trip.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestPriceTripCommand:
    """Test pricing a trip from a JSON file"""

    def test_prints_result(self, tmp_path):
        out = StringIO()
        call_command("price_trip", str(write_payload(tmp_path, pricing_payload())), stdout=out)
        result = json.loads(out.getvalue())
        assert result["pricing_mode"] == "DYNAMIC"
        assert result["price"] == 90.0

    def test_compact_output(self, tmp_path):
        out = StringIO()
        call_command("price_trip", str(write_payload(tmp_path, pricing_payload())), "--indent", "0", stdout=out)
        assert "\n" not in out.getvalue().strip()

    def test_missing_file(self, tmp_path):
        with pytest.raises(CommandError, match="not found"):
            call_command("price_trip", str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "trip.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CommandError, match="Invalid JSON"):
            call_command("price_trip", str(path))

    def test_invalid_payload(self, tmp_path):
        payload = pricing_payload()
        del payload["context"]
        with pytest.raises(CommandError, match="Invalid payload"):
            call_command("price_trip", str(write_payload(tmp_path, payload)))
