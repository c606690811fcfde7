"""FilterSet definitions for hold order listing."""

from __future__ import annotations

import django_filters  # type: ignore
from django.db.models import Q  # type: ignore

from apps.holds import conf
from apps.holds.models import HoldOrderModel


class HoldOrderFilterSet(django_filters.FilterSet):
    """
    ``state`` filters on the effective state: a stored ``active`` row past
    its payment deadline is listed as ``expired``.
    """

    state = django_filters.ChoiceFilter(choices=HoldOrderModel.State.choices, method="filter_state")
    booking_reference = django_filters.CharFilter(field_name="booking_reference", lookup_expr="iexact")

    class Meta:
        model = HoldOrderModel
        fields = ["state", "booking_reference"]

    def filter_state(self, queryset, name, value):  # type: ignore
        now = conf.get_clock().now()
        active = HoldOrderModel.State.ACTIVE
        if value == active:
            return queryset.filter(state=active, payment_required_by__gte=now)
        if value == HoldOrderModel.State.EXPIRED:
            return queryset.filter(
                Q(state=HoldOrderModel.State.EXPIRED) | Q(state=active, payment_required_by__lt=now)
            )
        return queryset.filter(state=value)
