"""Hold order persistence models."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class HoldOrderModel(models.Model):
    """Заказ с отложенной оплатой (hold order)."""

    class State(models.TextChoices):
        ACTIVE = "active", _("Active")
        PAID = "paid", _("Paid")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")

    TERMINAL_STATES = (State.PAID, State.CANCELLED, State.EXPIRED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_reference = models.CharField(max_length=32, db_index=True)
    offer_id = models.CharField(max_length=64)
    provider_order_id = models.CharField(max_length=64, blank=True, default="")
    state = models.CharField(
        max_length=16,
        choices=State.choices,
        default=State.ACTIVE,
        help_text=_("Stored state. An active hold past its deadline reads as expired."),
    )
    base_amount = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("0"))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("0"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("0"))
    currency = models.CharField(max_length=3)
    hold_expires_at = models.DateTimeField(help_text=_("Price guarantee deadline."))
    payment_required_by = models.DateTimeField(help_text=_("Payment deadline."))
    passengers = models.JSONField(default=list)
    slices = models.JSONField(default=list)
    conditions = models.JSONField(default=dict)
    payment_reference = models.CharField(max_length=128, blank=True, default="")
    confirmed_booking_reference = models.CharField(max_length=32, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=1)
    # Set by the domain clock, not auto_now
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        verbose_name = _("Hold order")
        verbose_name_plural = _("Hold orders")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="hold_order_non_negative_total",
            ),
        ]
        indexes = [
            models.Index(fields=["state", "payment_required_by"], name="hold_order_state_deadline_idx"),
        ]

    def __str__(self) -> str:
        return f"Hold order {self.booking_reference} ({self.state})"
