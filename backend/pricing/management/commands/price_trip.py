import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from rest_framework.utils.encoders import JSONEncoder

from pricing.builders import build_pricing_inputs
from pricing.serializers import CalculatePriceSerializer
from pricing.services.config import PricingError
from pricing.services.pricing_service import calculate_price


class Command(BaseCommand):
    help = "Prices one trip from a JSON payload ({\"request\": ..., \"context\": ...}) and prints the result."

    def add_arguments(self, parser):
        parser.add_argument("payload", help="Path to the JSON payload file")
        parser.add_argument("--indent", type=int, default=2, help="JSON indentation (0 for compact output)")

    def handle(self, *args, **options):
        path = Path(options["payload"])
        if not path.exists():
            raise CommandError(f"Payload file not found: {path}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CommandError(f"Invalid JSON in {path}: {e}")

        ser = CalculatePriceSerializer(data=payload)
        if not ser.is_valid():
            raise CommandError(f"Invalid payload: {json.dumps(ser.errors)}")

        pricing_request, context = build_pricing_inputs(ser.validated_data)
        try:
            result = calculate_price(pricing_request, context)
        except PricingError as e:
            raise CommandError(str(e))

        indent = options["indent"] or None
        self.stdout.write(json.dumps(result.to_dict(), cls=JSONEncoder, indent=indent))
