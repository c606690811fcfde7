import uuid
from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="HoldOrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("booking_reference", models.CharField(db_index=True, max_length=32)),
                ("offer_id", models.CharField(max_length=64)),
                ("provider_order_id", models.CharField(blank=True, default="", max_length=64)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        default="active",
                        help_text="Stored state. An active hold past its deadline reads as expired.",
                        max_length=16,
                    ),
                ),
                ("base_amount", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=12)),
                ("tax_amount", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=12)),
                ("currency", models.CharField(max_length=3)),
                ("hold_expires_at", models.DateTimeField(help_text="Price guarantee deadline.")),
                ("payment_required_by", models.DateTimeField(help_text="Payment deadline.")),
                ("passengers", models.JSONField(default=list)),
                ("slices", models.JSONField(default=list)),
                ("conditions", models.JSONField(default=dict)),
                ("payment_reference", models.CharField(blank=True, default="", max_length=128)),
                ("confirmed_booking_reference", models.CharField(blank=True, default="", max_length=32)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("expired_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "verbose_name": "Hold order",
                "verbose_name_plural": "Hold orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["state", "payment_required_by"], name="hold_order_state_deadline_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gte=0),
                        name="hold_order_non_negative_total",
                    ),
                ],
            },
        ),
    ]
