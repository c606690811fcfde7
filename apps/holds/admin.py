"""Admin registration for hold orders."""

from __future__ import annotations

from django.contrib import admin

from .models import HoldOrderModel


@admin.register(HoldOrderModel)
class HoldOrderAdmin(admin.ModelAdmin):
    list_display = (
        "booking_reference",
        "state",
        "total_amount",
        "currency",
        "payment_required_by",
        "confirmed_booking_reference",
        "created_at",
    )
    list_filter = ("state", "currency")
    search_fields = ("booking_reference", "confirmed_booking_reference", "offer_id", "provider_order_id")
    readonly_fields = (
        "id",
        "version",
        "base_amount",
        "tax_amount",
        "total_amount",
        "passengers",
        "slices",
        "conditions",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)
