from django.urls import path

from .views import PricingCalculateView, PricingOverrideView

app_name = "pricing"

urlpatterns = [
    path("calculate", PricingCalculateView.as_view(), name="calculate"),
    path("override", PricingOverrideView.as_view(), name="override"),
]
