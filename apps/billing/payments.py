"""
Payment processor.

A payment, its mode attributes, the status recomputation and (on first
PAID) the receipt number are written in one unit of work.
"""
from django.db.models import Prefetch
from django.utils import timezone

from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event, log_void
from apps.core.observability.logging import get_sanitized_logger
from apps.core.observability.tracing import trace_span

from .domain import ZERO, require_actor, require_positive_amount, require_reason, to_decimal
from .exceptions import LedgerError, LedgerValidationError, NotFound
from .models import Bill, BillPayment, BillPaymentAttribute, PaymentMode, PaymentModeAttributeType
from .providers import identity_resolver
from .services import refresh_bill_state
from .store import invalidate_patient_bills, lock_bill, retry_on_conflict, unit_of_work

logger = get_sanitized_logger(__name__)


def _active_attribute_types():
    return PaymentModeAttributeType.objects.filter(retired=False).order_by('attribute_order', 'name')


def list_payment_modes():
    """Active payment modes with their active attribute types."""
    return list(
        PaymentMode.objects.filter(retired=False)
        .order_by('sort_order', 'name')
        .prefetch_related(Prefetch('attribute_types', queryset=_active_attribute_types()))
    )


def get_payment_mode(payment_mode_id):
    mode = PaymentMode.objects.filter(pk=payment_mode_id).first()
    if mode is None or mode.retired:
        raise NotFound(f'Payment mode {payment_mode_id} not found', payment_mode_id=payment_mode_id)
    return mode


def resolve_payment_attributes(mode, attributes):
    """
    Match supplied attribute keys to the mode's active attribute types.

    Keys may be attribute type ids or names. Returns a list of
    (attribute_type, value) pairs.
    """
    attribute_types = list(_active_attribute_types().filter(payment_mode=mode))
    by_key = {}
    for attribute_type in attribute_types:
        by_key[str(attribute_type.pk)] = attribute_type
        by_key[attribute_type.name] = attribute_type

    resolved = {}
    for key, value in (attributes or {}).items():
        attribute_type = by_key.get(str(key))
        if attribute_type is None:
            raise LedgerValidationError(
                f'Attribute {key} is not valid for payment mode {mode.name}',
                field='attributes'
            )
        if value is None or not str(value).strip():
            raise LedgerValidationError(f'Attribute {key} has no value', field='attributes')
        resolved[attribute_type.pk] = (attribute_type, str(value).strip())

    missing = [t.name for t in attribute_types if t.required and t.pk not in resolved]
    if missing:
        raise LedgerValidationError(
            f'Missing required attributes: {", ".join(missing)}',
            field='attributes'
        )
    return list(resolved.values())


@metrics.track_duration('apply_payment')
@retry_on_conflict('apply_payment')
def apply_payment(bill_id, payment_mode_id, amount, amount_tendered=None, attributes=None,
                  actor=None):
    """
    Record a payment against an active bill.

    The amount is not checked against the outstanding balance: an
    overpayment is accepted and simply settles the bill.

    Args:
        bill_id: Bill to pay
        payment_mode_id: PaymentMode used
        amount: Amount applied (> 0)
        amount_tendered: Amount handed over (>= amount, defaults to amount)
        attributes: {attribute type id or name: value}
        actor: User recording the payment

    Returns:
        int: the new payment id
    """
    amount = require_positive_amount(amount, 'amount')
    tendered = amount if amount_tendered is None else to_decimal(amount_tendered, 'amount_tendered')
    if tendered < amount:
        raise LedgerValidationError(
            'amount_tendered must be greater than or equal to amount',
            field='amount_tendered'
        )

    with trace_span('billing.apply_payment', attributes={
        'bill_id': bill_id,
        'payment_mode_id': payment_mode_id,
    }):
        try:
            mode = get_payment_mode(payment_mode_id)
            resolved_attributes = resolve_payment_attributes(mode, attributes)

            with unit_of_work('apply_payment'):
                bill = lock_bill(bill_id)
                now = timezone.now()
                payment = BillPayment.objects.create(
                    bill=bill,
                    payment_mode=mode,
                    amount=amount,
                    amount_tendered=tendered,
                    creator=actor,
                    date_created=now,
                )
                BillPaymentAttribute.objects.bulk_create([
                    BillPaymentAttribute(
                        payment=payment,
                        attribute_type=attribute_type,
                        value_reference=value,
                        creator=actor,
                        date_created=now,
                    )
                    for attribute_type, value in resolved_attributes
                ])
                totals = refresh_bill_state(bill, actor)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError as e:
            metrics.billing_payments_total.labels(result='failure').inc()
            logger.info(
                'Payment rejected',
                extra={
                    'event': 'bill.payment_rejected',
                    'bill_id': bill_id,
                    'error_type': e.__class__.__name__,
                }
            )
            raise

    metrics.billing_payments_total.labels(result='success').inc()
    log_domain_event(
        'bill.payment_applied',
        entity_type='BillPayment',
        entity_id=payment.pk,
        entity_ids={'bill_id': bill.pk, 'payment_mode_id': mode.pk},
        amount=str(amount),
        change=str(tendered - amount),
        attribute_count=len(resolved_attributes),
        bill_status=bill.status,
        balance=str(totals.balance),
        receipt_number=bill.receipt_number,
    )
    return payment.pk


@metrics.track_duration('void_payment')
@retry_on_conflict('void_payment')
def void_payment(payment_id, reason, actor=None):
    """
    Soft-void a payment and recompute the owning bill's status.

    The payment's attributes stay attached for audit. A receipt number
    already issued to the bill is kept even if the bill leaves PAID.
    """
    reason = require_reason(reason)
    require_actor(actor)
    with trace_span('billing.void_payment', attributes={'payment_id': payment_id}):
        try:
            with unit_of_work('void_payment'):
                bill_id = BillPayment.objects.filter(pk=payment_id).values_list('bill_id', flat=True).first()
                if bill_id is None:
                    raise NotFound(f'Payment {payment_id} not found', payment_id=payment_id)
                bill = lock_bill(bill_id, include_voided=True)
                payment = BillPayment.objects.select_for_update().get(pk=payment_id)
                if payment.voided:
                    raise NotFound(f'Payment {payment_id} is voided', payment_id=payment_id)
                void_record = payment.mark_voided(actor, reason)
                refresh_bill_state(bill, actor)
                invalidate_patient_bills(bill.patient_id)
        except LedgerError:
            metrics.billing_voids_total.labels(entity='payment', result='failure').inc()
            raise

    metrics.billing_voids_total.labels(entity='payment', result='success').inc()
    log_void(
        'bill.payment_voided',
        payment,
        reason_length=len(reason),
        bill_id=bill.pk,
        bill_status=bill.status,
    )
    return void_record


def get_payment_details(payment_id):
    """A payment (voided or not) with its attributes."""
    payment = (
        BillPayment.objects
        .select_related('payment_mode', 'bill')
        .prefetch_related(Prefetch(
            'attributes',
            queryset=BillPaymentAttribute.objects.select_related('attribute_type'),
        ))
        .filter(pk=payment_id)
        .first()
    )
    if payment is None:
        raise NotFound(f'Payment {payment_id} not found', payment_id=payment_id)
    return payment


def _patient_payments(patient):
    return (
        BillPayment.objects.active()
        .filter(bill__patient=patient, bill__voided=False)
        .select_related('payment_mode', 'bill')
        .order_by('-date_created', '-id')
    )


def list_patient_payments(patient_handle):
    """Active payments on active bills for a patient, newest first."""
    patient = identity_resolver.resolve_patient(patient_handle)
    return list(_patient_payments(patient))


def get_patient_payment_summary(patient_handle):
    """Totals across a patient's active payments."""
    patient = identity_resolver.resolve_patient(patient_handle)
    payments = list(_patient_payments(patient))
    return {
        'total_paid': sum((p.amount for p in payments), ZERO),
        'bill_count': Bill.objects.active().filter(patient=patient).count(),
        'payment_count': len(payments),
        'payment_modes': sorted({p.payment_mode.name for p in payments}),
    }
