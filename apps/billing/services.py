"""
Bill lifecycle services.

Business logic for opening bills, editing and voiding line items, voiding
bills and reading the ledger. Each mutation is one unit of work that ends
with a status recomputation (and receipt issuance on first PAID).
"""
import uuid

from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Max, Prefetch
from django.utils import timezone

from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event, log_void
from apps.core.observability.logging import get_sanitized_logger
from apps.core.observability.tracing import trace_span

from .domain import (
    BillDetail,
    LineItemPaymentStatus,
    ServiceRef,
    StockItemRef,
    require_actor,
    require_positive_amount,
    require_positive_quantity,
    require_reason,
)
from .exceptions import DuplicateCorrelationId, LedgerError, LedgerValidationError, NotFound
from .models import Bill, BillLineItem, BillPayment, BillPaymentAttribute, CashPoint
from .providers import catalog_provider, identity_resolver
from .receipts import issue_receipt_if_paid
from .store import (
    compute_totals,
    invalidate_patient_bills,
    ledger_setting,
    lock_bill,
    patient_bills_cache_key,
    recompute_bill_status,
    retry_on_conflict,
    unit_of_work,
)

logger = get_sanitized_logger(__name__)


def refresh_bill_state(bill, actor=None):
    """Recompute status and issue a receipt number if the bill just became PAID."""
    totals = recompute_bill_status(bill, actor)
    issue_receipt_if_paid(bill)
    return totals


def get_cash_point(cash_point_id):
    cash_point = CashPoint.objects.filter(pk=cash_point_id).first()
    if cash_point is None or cash_point.retired:
        raise NotFound(f'Cash point {cash_point_id} not found', cash_point_id=cash_point_id)
    return cash_point


def list_cash_points():
    return list(CashPoint.objects.filter(retired=False).order_by('name'))


def _insert_bill(patient, cash_point, actor, provider=None, correlation_id=None):
    bill_uuid = correlation_id or uuid.uuid4()
    try:
        with transaction.atomic():
            return Bill.objects.create(
                uuid=bill_uuid,
                patient=patient,
                provider=provider,
                cash_point=cash_point,
                status=Bill.Status.PENDING,
                creator=actor,
                date_created=timezone.now(),
            )
    except IntegrityError as e:
        if not Bill.objects.filter(uuid=bill_uuid).exists():
            raise
        raise DuplicateCorrelationId(
            f'Bill correlation id {bill_uuid} already exists',
            correlation_id=str(bill_uuid)
        ) from e


def _next_line_item_order(bill):
    current = bill.line_items.aggregate(highest=Max('line_item_order'))['highest']
    return (current or 0) + 1


def _insert_line_item(bill, spec, actor, default_order=None):
    """
    Validate one LineItemSpec against the catalog and insert it.

    Exactly one of service/item is set, taken from the LineItemSpec reference type.
    """
    target = catalog_provider.get_target(spec.ref)
    quantity = require_positive_quantity(spec.quantity)

    price = spec.price
    price_name = spec.price_name or ''
    price_tier = None
    if spec.price_tier_id is not None:
        price_tier = catalog_provider.get_price_tier(spec.ref, spec.price_tier_id)
        if price is None:
            price = price_tier.price
        price_name = price_name or price_tier.name
    if price is None:
        raise LedgerValidationError('price is required when no price tier is given', field='price')
    price = require_positive_amount(price, 'price')

    if spec.payment_status not in (LineItemPaymentStatus.PENDING, LineItemPaymentStatus.PAID):
        raise LedgerValidationError(
            f'Unknown payment status {spec.payment_status}',
            field='payment_status'
        )

    return BillLineItem.objects.create(
        bill=bill,
        item_type=spec.ref.kind,
        service=target if isinstance(spec.ref, ServiceRef) else None,
        item=target if isinstance(spec.ref, StockItemRef) else None,
        price_tier=price_tier,
        price=price,
        price_name=price_name,
        quantity=quantity,
        line_item_order=spec.line_item_order or default_order or _next_line_item_order(bill),
        payment_status=spec.payment_status,
        order_id=spec.order_id,
        creator=actor,
        date_created=timezone.now(),
    )


@metrics.track_duration('create_bill')
def create_bill(patient_handle, cash_point_id, line_items=None, actor=None, provider=None,
                correlation_id=None):
    """
    Open a bill for a patient, optionally with an initial batch of line items.

    The bill and all of its line items are inserted in one unit of work: if
    any line item is rejected nothing is persisted.

    Returns:
        int: the new bill id

    Raises:
        NotFound: unknown/retired patient, cash point or catalog entry
        LedgerValidationError: invalid line item
        DuplicateCorrelationId: the correlation id is already taken
    """
    specs = list(line_items or [])
    with trace_span('billing.create_bill', attributes={
        'cash_point_id': cash_point_id,
        'line_item_count': len(specs),
    }):
        try:
            patient = identity_resolver.resolve_patient(patient_handle)
            cash_point = get_cash_point(cash_point_id)

            with unit_of_work('create_bill'):
                bill = _insert_bill(patient, cash_point, actor, provider, correlation_id)
                for position, spec in enumerate(specs, start=1):
                    _insert_line_item(bill, spec, actor, default_order=position)
                totals = refresh_bill_state(bill, actor)
                invalidate_patient_bills(patient.pk)
        except LedgerError as e:
            metrics.billing_bills_created_total.labels(result='rolled_back').inc()
            logger.info(
                'Bill creation rejected',
                extra={
                    'event': 'bill.create_rejected',
                    'cash_point_id': cash_point_id,
                    'error_type': e.__class__.__name__,
                }
            )
            raise

    metrics.billing_bills_created_total.labels(result='success').inc()
    log_domain_event(
        'bill.created',
        entity_type='Bill',
        entity_id=bill.pk,
        entity_ids={'patient_id': patient.pk, 'cash_point_id': cash_point.pk},
        bill_uuid=str(bill.uuid),
        line_item_count=len(specs),
        total_amount=str(totals.total),
    )
    return bill.pk


@metrics.track_duration('add_line_item')
@retry_on_conflict('add_line_item')
def add_line_item(bill_id, spec, actor=None):
    """Append one line item to an active bill. Returns the line item id."""
    with trace_span('billing.add_line_item', attributes={'bill_id': bill_id}):
        try:
            with unit_of_work('add_line_item'):
                bill = lock_bill(bill_id)
                line_item = _insert_line_item(bill, spec, actor)
                refresh_bill_state(bill, actor)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError:
            metrics.billing_line_items_total.labels(operation='add', result='failure').inc()
            raise

    metrics.billing_line_items_total.labels(operation='add', result='success').inc()
    log_domain_event(
        'bill.line_item_added',
        entity_type='BillLineItem',
        entity_id=line_item.pk,
        entity_ids={'bill_id': bill.pk},
        item_type=line_item.item_type,
        quantity=line_item.quantity,
        price=str(line_item.price),
    )
    return line_item.pk


def _lock_line_item(line_item_id, include_voided_bill=False):
    """Lock the owning bill first, then the line item."""
    bill_id = BillLineItem.objects.filter(pk=line_item_id).values_list('bill_id', flat=True).first()
    if bill_id is None:
        raise NotFound(f'Line item {line_item_id} not found', line_item_id=line_item_id)
    bill = lock_bill(bill_id, include_voided=include_voided_bill)
    line_item = BillLineItem.objects.select_for_update().get(pk=line_item_id)
    if line_item.voided:
        raise NotFound(f'Line item {line_item_id} is voided', line_item_id=line_item_id)
    return bill, line_item


@metrics.track_duration('update_line_item')
@retry_on_conflict('update_line_item')
def update_line_item(line_item_id, price=None, quantity=None, actor=None):
    """
    Change price and/or quantity of an active line item.

    Stamps changed_by/date_changed and recomputes the bill status, which may
    move the bill in either direction.
    """
    if price is None and quantity is None:
        raise LedgerValidationError('Nothing to update: give a price or a quantity')
    if price is not None:
        price = require_positive_amount(price, 'price')
    if quantity is not None:
        quantity = require_positive_quantity(quantity)

    with trace_span('billing.update_line_item', attributes={'line_item_id': line_item_id}):
        try:
            with unit_of_work('update_line_item'):
                bill, line_item = _lock_line_item(line_item_id)
                update_fields = ['changed_by', 'date_changed']
                if price is not None:
                    line_item.price = price
                    update_fields.append('price')
                if quantity is not None:
                    line_item.quantity = quantity
                    update_fields.append('quantity')
                line_item.changed_by = actor
                line_item.date_changed = timezone.now()
                line_item.save(update_fields=update_fields)
                refresh_bill_state(bill, actor)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError:
            metrics.billing_line_items_total.labels(operation='update', result='failure').inc()
            raise

    metrics.billing_line_items_total.labels(operation='update', result='success').inc()
    log_domain_event(
        'bill.line_item_updated',
        entity_type='BillLineItem',
        entity_id=line_item.pk,
        entity_ids={'bill_id': bill.pk},
        quantity=line_item.quantity,
        price=str(line_item.price),
        bill_status=bill.status,
    )
    return line_item


@metrics.track_duration('void_line_item')
@retry_on_conflict('void_line_item')
def void_line_item(line_item_id, reason, actor=None):
    """Soft-void a line item and recompute the owning bill's status."""
    reason = require_reason(reason)
    require_actor(actor)
    with trace_span('billing.void_line_item', attributes={'line_item_id': line_item_id}):
        try:
            with unit_of_work('void_line_item'):
                bill, line_item = _lock_line_item(line_item_id, include_voided_bill=True)
                void_record = line_item.mark_voided(actor, reason)
                refresh_bill_state(bill, actor)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError:
            metrics.billing_voids_total.labels(entity='line_item', result='failure').inc()
            raise

    metrics.billing_voids_total.labels(entity='line_item', result='success').inc()
    log_void('bill.line_item_voided', line_item, reason_length=len(reason), bill_id=bill.pk)
    return void_record


@metrics.track_duration('void_bill')
def void_bill(bill_id, reason, actor=None):
    """
    Soft-void a bill.

    Line items and payments are left untouched as history; the bill drops
    out of active listings.
    """
    reason = require_reason(reason)
    require_actor(actor)
    with trace_span('billing.void_bill', attributes={'bill_id': bill_id}):
        try:
            with unit_of_work('void_bill'):
                bill = lock_bill(bill_id)
                void_record = bill.mark_voided(actor, reason)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError:
            metrics.billing_voids_total.labels(entity='bill', result='failure').inc()
            raise

    metrics.billing_voids_total.labels(entity='bill', result='success').inc()
    log_void('bill.voided', bill, reason_length=len(reason), patient_id=bill.patient_id)
    return void_record


def get_bill(bill_id, include_voided=False):
    """
    Read a bill with its line items and payments.

    By default a voided bill is NotFound and voided children are left out;
    ``include_voided=True`` returns both for audit.
    """
    bill = Bill.objects.select_related('patient', 'cash_point').filter(pk=bill_id).first()
    if bill is None or (bill.voided and not include_voided):
        raise NotFound(f'Bill {bill_id} not found', bill_id=bill_id)

    line_items = BillLineItem.objects.filter(bill=bill).select_related('service', 'item')
    payments = BillPayment.objects.filter(bill=bill).select_related('payment_mode')
    if not include_voided:
        line_items = line_items.active()
        payments = payments.active()
    payments = payments.prefetch_related(Prefetch(
        'attributes',
        queryset=BillPaymentAttribute.objects.select_related('attribute_type'),
    ))

    return BillDetail(
        bill=bill,
        line_items=list(line_items.order_by('line_item_order', 'id')),
        payments=list(payments),
        totals=compute_totals(bill.pk),
    )


def calculate_bill_totals(bill_id):
    """Return BillTotals(total, paid) for a bill, voided or not."""
    if not Bill.objects.filter(pk=bill_id).exists():
        raise NotFound(f'Bill {bill_id} not found', bill_id=bill_id)
    return compute_totals(bill_id)


def list_bills_for_patient(patient_handle):
    """
    Active bills for a patient, newest first.

    Each bill carries ``total_amount`` and ``amount_paid``. The listing is
    cached per patient and invalidated by every ledger mutation.
    """
    patient = identity_resolver.resolve_patient(patient_handle)
    key = patient_bills_cache_key(patient.pk)
    bills = cache.get(key)
    if bills is not None:
        return bills

    bills = list(
        Bill.objects.active()
        .filter(patient=patient)
        .select_related('patient', 'cash_point')
        .order_by('-date_created', '-id')
    )
    for bill in bills:
        totals = compute_totals(bill.pk)
        bill.total_amount = totals.total
        bill.amount_paid = totals.paid

    cache.set(key, bills, ledger_setting('PATIENT_BILLS_CACHE_TIMEOUT'))
    return bills


def get_line_item(line_item_id):
    """A line item by id, voided or not."""
    line_item = BillLineItem.objects.select_related('bill').filter(pk=line_item_id).first()
    if line_item is None:
        raise NotFound(f'Line item {line_item_id} not found', line_item_id=line_item_id)
    return line_item
