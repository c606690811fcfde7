"""URL routing for hold orders."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import HoldOrderViewSet

router = DefaultRouter()
router.register(r"", HoldOrderViewSet, basename="hold")

urlpatterns = [
    path("", include(router.urls)),
]
