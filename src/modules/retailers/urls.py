"""Retailer URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.retailers.views import RetailerViewSet

router = DefaultRouter(trailing_slash=True)
router.register("retailers", RetailerViewSet, basename="retailer")

urlpatterns = router.urls
