from __future__ import annotations

import logging

from rest_framework import status, views
from rest_framework.response import Response

from .builders import build_pricing_inputs
from .serializers import CalculatePriceSerializer, OverridePriceSerializer
from .services.config import PricingError
from .services.pricing_service import calculate_price
from .services.profitability import apply_override

logger = logging.getLogger(__name__)


class PricingCalculateView(views.APIView):
    def post(self, request):
        ser = CalculatePriceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        pricing_request, context = build_pricing_inputs(data)
        try:
            result = calculate_price(pricing_request, context)
        except PricingError as e:
            logger.warning(f"Pricing failed for contact {pricing_request.contact_id}: {e}")
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class PricingOverrideView(views.APIView):
    def post(self, request):
        ser = OverridePriceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        pricing_request, context = build_pricing_inputs(data)
        try:
            result = calculate_price(pricing_request, context)
        except PricingError as e:
            logger.warning(f"Pricing failed for contact {pricing_request.contact_id}: {e}")
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        outcome = apply_override(
            result,
            data["new_price"],
            reason=data.get("reason"),
            min_margin_percent=data.get("min_margin_percent"),
            settings=context.settings,
            overridden_at=data.get("overridden_at"),
        )
        # Rejected overrides are well-formed requests the business rules refuse
        code = status.HTTP_200_OK if outcome.success else status.HTTP_422_UNPROCESSABLE_ENTITY
        return Response(outcome.to_dict(), status=code)
