"""Billing ledger views."""
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.observability import metrics, get_sanitized_logger

from . import payments, receipts, services
from .exceptions import ConflictError, LedgerError, LedgerValidationError, NotFound, StoreError
from .permissions import CanVoidLedgerEntries, IsBillingStaff
from .serializers import (
    BillCreateSerializer,
    BillDetailSerializer,
    BillLineItemSerializer,
    BillListSerializer,
    BillPaymentSerializer,
    CashPointSerializer,
    LineItemSpecSerializer,
    LineItemUpdateSerializer,
    PaymentCreateSerializer,
    PaymentModeSerializer,
    PaymentSummarySerializer,
    ReceiptSerializer,
    VoidSerializer,
)

logger = get_sanitized_logger(__name__)

LEDGER_ERROR_STATUS = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (LedgerValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def ledger_error_response(exc):
    """Map a LedgerError to {'error', 'error_type'} with its HTTP status."""
    http_status = status.HTTP_400_BAD_REQUEST
    for error_class, mapped_status in LEDGER_ERROR_STATUS:
        if isinstance(exc, error_class):
            http_status = mapped_status
            break
    body = {'error': str(exc), 'error_type': exc.error_type}
    field = getattr(exc, 'field', None)
    if field:
        body['field'] = field
    return Response(body, status=http_status)


class LedgerErrorMixin:
    """Turn ledger errors raised by services into HTTP responses."""

    def handle_exception(self, exc):
        if isinstance(exc, LedgerError):
            metrics.exceptions_total.labels(
                exception_type=exc.__class__.__name__,
                location=f'billing.api.{self.__class__.__name__}'
            ).inc()
            logger.warning(
                'Ledger request rejected',
                extra={
                    'event': 'billing.api_error',
                    'view': self.__class__.__name__,
                    'error_type': exc.error_type,
                }
            )
            return ledger_error_response(exc)
        return super().handle_exception(exc)


def _void_permissions(view):
    if view.action == 'void':
        return [IsBillingStaff(), CanVoidLedgerEntries()]
    return [IsBillingStaff()]


class BillViewSet(LedgerErrorMixin, viewsets.ViewSet):
    """
    Bills.

    - POST /bills/ - open a bill (optionally with line items)
    - GET /bills/{id}/ - bill with line items, payments and totals
    - POST /bills/{id}/items/ - add a line item
    - POST /bills/{id}/payments/ - apply a payment
    - POST /bills/{id}/void/ - void the bill
    - GET /bills/{id}/receipt/ - printable receipt
    - POST /bills/{id}/receipt/printed/ - mark the receipt printed
    """
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        return _void_permissions(self)

    def _detail_response(self, bill_id, include_voided=False, http_status=status.HTTP_200_OK):
        detail = services.get_bill(bill_id, include_voided=include_voided)
        return Response(BillDetailSerializer(detail).data, status=http_status)

    def create(self, request):
        serializer = BillCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bill_id = services.create_bill(
            patient_handle=serializer.validated_data['patient'],
            cash_point_id=serializer.validated_data['cash_point_id'],
            line_items=serializer.to_specs(),
            actor=request.user,
        )
        return self._detail_response(bill_id, http_status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        include_voided = request.query_params.get('include_voided', '').lower() in ('1', 'true', 'yes')
        return self._detail_response(int(pk), include_voided=include_voided)

    @action(detail=True, methods=['post'], url_path='items')
    def add_item(self, request, pk=None):
        serializer = LineItemSpecSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        line_item_id = services.add_line_item(int(pk), serializer.to_spec(), actor=request.user)
        line_item = services.get_line_item(line_item_id)
        return Response(BillLineItemSerializer(line_item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='payments')
    def apply_payment(self, request, pk=None):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment_id = payments.apply_payment(
            int(pk),
            data['payment_mode_id'],
            data['amount'],
            amount_tendered=data.get('amount_tendered'),
            attributes=data.get('attributes'),
            actor=request.user,
        )
        payment = payments.get_payment_details(payment_id)
        return Response(BillPaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='void')
    def void(self, request, pk=None):
        serializer = VoidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.void_bill(int(pk), serializer.validated_data['reason'], actor=request.user)
        return self._detail_response(int(pk), include_voided=True)

    @action(detail=True, methods=['get'], url_path='receipt')
    def receipt(self, request, pk=None):
        return Response(ReceiptSerializer(receipts.build_receipt(int(pk))).data)

    @action(detail=True, methods=['post'], url_path='receipt/printed')
    def receipt_printed(self, request, pk=None):
        bill = receipts.mark_receipt_printed(int(pk), actor=request.user)
        return Response({
            'id': bill.pk,
            'receipt_number': bill.receipt_number,
            'receipt_printed': bill.receipt_printed,
        })


class LineItemViewSet(LedgerErrorMixin, viewsets.ViewSet):
    """
    Line items.

    - PATCH /items/{id}/ - change price and/or quantity
    - POST /items/{id}/void/ - void the line item
    """
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        return _void_permissions(self)

    def partial_update(self, request, pk=None):
        serializer = LineItemUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        line_item = services.update_line_item(
            int(pk),
            price=serializer.validated_data.get('price'),
            quantity=serializer.validated_data.get('quantity'),
            actor=request.user,
        )
        return Response(BillLineItemSerializer(line_item).data)

    @action(detail=True, methods=['post'], url_path='void')
    def void(self, request, pk=None):
        serializer = VoidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        void_record = services.void_line_item(
            int(pk), serializer.validated_data['reason'], actor=request.user
        )
        return Response({
            'id': int(pk),
            'voided': True,
            'voided_by': void_record.actor_id,
            'void_reason': void_record.reason,
            'date_voided': void_record.timestamp,
        })


class PaymentViewSet(LedgerErrorMixin, viewsets.ViewSet):
    """
    Payments.

    - GET /payments/{id}/ - payment with its attributes
    - POST /payments/{id}/void/ - void the payment
    """
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        return _void_permissions(self)

    def retrieve(self, request, pk=None):
        payment = payments.get_payment_details(int(pk))
        return Response(BillPaymentSerializer(payment).data)

    @action(detail=True, methods=['post'], url_path='void')
    def void(self, request, pk=None):
        serializer = VoidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payments.void_payment(int(pk), serializer.validated_data['reason'], actor=request.user)
        payment = payments.get_payment_details(int(pk))
        return Response(BillPaymentSerializer(payment).data)


class CashPointViewSet(LedgerErrorMixin, viewsets.ViewSet):
    permission_classes = [IsBillingStaff]

    def list(self, request):
        return Response(CashPointSerializer(services.list_cash_points(), many=True).data)


class PaymentModeViewSet(LedgerErrorMixin, viewsets.ViewSet):
    permission_classes = [IsBillingStaff]

    def list(self, request):
        return Response(PaymentModeSerializer(payments.list_payment_modes(), many=True).data)


class PatientBillsView(LedgerErrorMixin, APIView):
    """GET /patients/{handle}/bills/ - active bills with totals, newest first."""
    permission_classes = [IsBillingStaff]

    def get(self, request, handle):
        bills = services.list_bills_for_patient(handle)
        return Response(BillListSerializer(bills, many=True).data)


class PatientPaymentsView(LedgerErrorMixin, APIView):
    """GET /patients/{handle}/payments/ - active payments, newest first."""
    permission_classes = [IsBillingStaff]

    def get(self, request, handle):
        patient_payments = payments.list_patient_payments(handle)
        return Response(BillPaymentSerializer(patient_payments, many=True).data)


class PatientPaymentSummaryView(LedgerErrorMixin, APIView):
    """GET /patients/{handle}/payments/summary/"""
    permission_classes = [IsBillingStaff]

    def get(self, request, handle):
        summary = payments.get_patient_payment_summary(handle)
        return Response(PaymentSummarySerializer(summary).data)
