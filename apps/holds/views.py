"""API views for hold orders."""

from __future__ import annotations

import structlog
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.domain.exceptions import CurrencyMismatchError, DomainError
from apps.holds import conf
from apps.holds.application.command_handlers import (
    CancelHoldCommand,
    CancelHoldHandler,
    CreateHoldCommand,
    CreateHoldHandler,
    PayHoldCommand,
    PayHoldHandler,
    QuoteCancellationCommand,
    QuoteCancellationHandler,
    QuoteChangeCommand,
    QuoteChangeHandler,
)
from apps.holds.domain.ancillaries import AncillaryBasket
from apps.holds.domain.entities import HoldState
from apps.holds.domain.exceptions import (
    AlreadyTerminalError,
    BookingApiError,
    ConcurrentModificationError,
    HoldExpiredError,
    HoldOrderNotFound,
    InvalidOfferError,
    InvalidPassengerDataError,
    PaymentDeclinedError,
    QuoteExpiredError,
    UnknownSliceError,
)
from apps.holds.filters import HoldOrderFilterSet
from apps.holds.models import HoldOrderModel
from apps.holds.repositories import to_domain
from apps.holds.serializers import (
    AncillarySelectionSerializer,
    AncillaryTotalSerializer,
    CancellationQuoteSerializer,
    ChangeQuoteRequestSerializer,
    ChangeQuoteSerializer,
    ConditionsSerializer,
    HoldCreateSerializer,
    HoldOrderSerializer,
    HoldStatusSerializer,
    PaySerializer,
    money_fields,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS = (
    (InvalidPassengerDataError, status.HTTP_400_BAD_REQUEST),
    (CurrencyMismatchError, status.HTTP_400_BAD_REQUEST),
    (UnknownSliceError, status.HTTP_400_BAD_REQUEST),
    (HoldOrderNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidOfferError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PaymentDeclinedError, status.HTTP_402_PAYMENT_REQUIRED),
    (HoldExpiredError, status.HTTP_409_CONFLICT),
    (QuoteExpiredError, status.HTTP_409_CONFLICT),
    (AlreadyTerminalError, status.HTTP_409_CONFLICT),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (BookingApiError, status.HTTP_502_BAD_GATEWAY),
)


def error_response(exc: DomainError) -> Response:
    """Translate a domain error into ``{"detail", "code"}`` with its HTTP status."""
    http_status = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in ERROR_STATUS:
        if isinstance(exc, error_type):
            http_status = mapped
            break
    body = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, HoldExpiredError):
        body["state"] = HoldState.EXPIRED.value
    elif isinstance(exc, AlreadyTerminalError) and exc.state is not None:
        body["state"] = getattr(exc.state, "value", exc.state)
    elif isinstance(exc, InvalidPassengerDataError) and exc.index is not None:
        body["passenger_index"] = exc.index
        body["field"] = exc.field
    return Response(body, status=http_status)


class HoldOrderViewSet(viewsets.GenericViewSet):
    """Viewset для hold-заказов: размещение, оплата, отмена и котировки."""

    queryset = HoldOrderModel.objects.all()
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_class = HoldOrderFilterSet
    serializer_class = HoldOrderSerializer

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return HoldCreateSerializer
        if self.action == "pay":
            return PaySerializer
        if self.action == "change_quote":
            return ChangeQuoteRequestSerializer
        if self.action == "ancillaries_total":
            return AncillaryTotalSerializer
        return HoldOrderSerializer

    def get_serializer_context(self):  # type: ignore
        context = super().get_serializer_context()
        context["now"] = self.clock.now()
        return context

    @property
    def clock(self):
        return conf.get_clock()

    def handler_kwargs(self) -> dict:
        return {"clock": self.clock}

    def get_order(self):
        return conf.get_repository().get_by_id(self.kwargs["pk"])

    def render_order(self, order, http_status=status.HTTP_200_OK) -> Response:
        return Response(HoldOrderSerializer(order, context=self.get_serializer_context()).data, status=http_status)

    def handle_exception(self, exc):  # type: ignore
        if isinstance(exc, DomainError):
            logger.info("holds.request.refused", action=self.action, code=exc.code, detail=str(exc))
            return error_response(exc)
        return super().handle_exception(exc)

    # ----- collection -----

    def list(self, request, *args, **kwargs):  # type: ignore
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        rows = page if page is not None else queryset
        data = HoldOrderSerializer(
            [to_domain(row) for row in rows], many=True, context=self.get_serializer_context()
        ).data
        if page is not None:
            return self.get_paginated_response(data)
        return Response(data)

    def retrieve(self, request, *args, **kwargs):  # type: ignore
        return self.render_order(self.get_order())

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        handler = CreateHoldHandler(conf.get_repository(), conf.get_booking_api(), **self.handler_kwargs())
        order = handler.handle(CreateHoldCommand(
            offer_id=data["offer_id"],
            passengers=[dict(p) for p in data["passengers"]],
            hold_duration_hours=data.get("hold_duration_hours"),
        ))
        logger.info("holds.created", hold_order_id=str(order.id), booking_reference=order.booking_reference)
        return self.render_order(order, status.HTTP_201_CREATED)

    # ----- actions -----

    @action(detail=True, methods=["get"], url_path="status", url_name="status")
    def hold_status(self, request, pk=None):  # type: ignore
        order = self.get_order()
        return Response(HoldStatusSerializer(order, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment_reference = serializer.validated_data["payment_reference"]

        handler = PayHoldHandler(conf.get_repository(), conf.get_booking_api(), **self.handler_kwargs())
        result = handler.handle(PayHoldCommand(hold_order_id=pk, payment_reference=payment_reference))
        logger.info(
            "holds.paid",
            hold_order_id=pk,
            payment_reference=payment_reference,
            already_processed=result.already_processed,
        )
        return Response({
            "booking_reference": result.booking_reference,
            "already_processed": result.already_processed,
            "hold": HoldOrderSerializer(self.get_order(), context=self.get_serializer_context()).data,
        })

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        handler = CancelHoldHandler(conf.get_repository(), conf.get_booking_api(), **self.handler_kwargs())
        order = handler.handle(CancelHoldCommand(hold_order_id=pk))
        logger.info("holds.cancel", hold_order_id=pk, state=order.state.value)
        return self.render_order(order)

    @action(detail=True, methods=["get"])
    def conditions(self, request, pk=None):  # type: ignore
        return Response(ConditionsSerializer(self.get_order()).data)

    @action(detail=True, methods=["post"], url_path="cancellation-quote")
    def cancellation_quote(self, request, pk=None):  # type: ignore
        handler = QuoteCancellationHandler(
            conf.get_repository(), conf.get_booking_api(), **self.handler_kwargs()
        )
        quote = handler.handle(QuoteCancellationCommand(hold_order_id=pk))
        return Response(CancellationQuoteSerializer(quote, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"], url_path="change-quote")
    def change_quote(self, request, pk=None):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        handler = QuoteChangeHandler(conf.get_repository(), conf.get_booking_api(), **self.handler_kwargs())
        quote = handler.handle(QuoteChangeCommand(hold_order_id=pk, slice_id=serializer.validated_data["slice_id"]))
        return Response(ChangeQuoteSerializer(quote, context=self.get_serializer_context()).data)

    @action(
        detail=False,
        methods=["post"],
        url_path="ancillaries/total",
        permission_classes=[permissions.AllowAny],
    )
    def ancillaries_total(self, request):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        basket = AncillaryBasket(settlement_currency=data.get("settlement_currency"))
        selection_serializer = AncillarySelectionSerializer()
        lines = []
        for index, selection in enumerate(data["selections"]):
            service = selection_serializer.to_service(selection, index)
            try:
                line = basket.select(service, selection["quantity"])
            except ValueError as exc:
                return Response(
                    {"detail": str(exc), "code": "invalid_quantity", "selection_index": index},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            if line is not None:
                lines.append({
                    "service_id": service.id,
                    "type": line.service_type.value,
                    "quantity": line.quantity,
                    **money_fields(line.unit_price, "unit_price"),
                    **money_fields(line.total, "total"),
                    "description": line.describe(),
                })

        if basket.settlement_currency is None:
            basket.settlement_currency = data["selections"][0]["currency"].upper()
        total = basket.total()
        return Response({
            "lines": lines,
            "quantity": basket.quantity,
            **money_fields(total, "total"),
            "total_display": total.format(),
        })
