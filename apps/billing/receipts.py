"""
Receipt numbers and printable receipts.

A receipt number is assigned once, when a bill first reaches PAID, and is
never retracted or reassigned afterwards.
"""
from django.db.models import Prefetch

from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event, log_receipt_issued
from apps.core.observability.tracing import trace_span

from .domain import ZERO, BillStatus
from .models import Bill, BillLineItem, BillPaymentAttribute, ReceiptNumberGenerator
from .store import compute_totals, invalidate_patient_bills, ledger_setting, lock_bill, unit_of_work


def _lock_generator(cash_point_id):
    """
    Lock and return the generator for a cash point.

    The fallback row is locked on every issuance, whichever generator ends
    up numbering the bill, so all generators hand out numbers one at a time.
    """
    generators = ReceiptNumberGenerator.objects.select_for_update()
    fallback, _ = generators.get_or_create(
        cash_point=None,
        defaults={
            'cashier_prefix': ledger_setting('RECEIPT_PREFIX'),
            'padding': ledger_setting('RECEIPT_SEQUENCE_PADDING'),
        }
    )
    if cash_point_id is None:
        return fallback
    return generators.filter(cash_point_id=cash_point_id).first() or fallback


def _format_receipt_number(generator, bill, sequence):
    return '{}{}{}'.format(
        generator.cashier_prefix,
        bill.cash_point.receipt_prefix,
        str(sequence).zfill(generator.padding),
    )


def generate_receipt_number(bill):
    """
    Assign a receipt number to ``bill`` unless it already has one.

    Idempotent: an existing number is returned unchanged. Must run inside
    the same unit of work that holds the bill lock. Numbers already issued
    by another generator with the same effective prefix are skipped.
    """
    if bill.receipt_number:
        return bill.receipt_number

    generator = _lock_generator(bill.cash_point_id)
    sequence = generator.next_sequence
    number = _format_receipt_number(generator, bill, sequence)
    while Bill.objects.filter(receipt_number=number).exists():
        sequence += 1
        number = _format_receipt_number(generator, bill, sequence)
    ReceiptNumberGenerator.objects.filter(pk=generator.pk).update(next_sequence=sequence + 1)

    updated = Bill.objects.filter(pk=bill.pk, receipt_number__isnull=True).update(
        receipt_number=number
    )
    if not updated:
        bill.receipt_number = Bill.objects.values_list('receipt_number', flat=True).get(pk=bill.pk)
        return bill.receipt_number

    bill.receipt_number = number
    metrics.billing_receipts_issued_total.inc()
    log_receipt_issued(bill)
    return number


def issue_receipt_if_paid(bill):
    if bill.status == BillStatus.PAID and not bill.receipt_number:
        generate_receipt_number(bill)
    return bill.receipt_number


def build_receipt(bill_id):
    """
    Assemble the printable receipt for a bill.

    Issues a receipt number first when the bill is PAID and has none.
    Voided bills cannot be printed.
    """
    with trace_span('billing.build_receipt', attributes={'bill_id': bill_id}):
        with unit_of_work('build_receipt'):
            bill = lock_bill(bill_id)
            issue_receipt_if_paid(bill)

        bill = (
            Bill.objects
            .select_related('patient', 'cash_point')
            .prefetch_related(
                Prefetch('line_items', queryset=BillLineItem.objects.active()),
            )
            .get(pk=bill_id)
        )
        payments = list(
            bill.payments.active()
            .select_related('payment_mode')
            .prefetch_related(Prefetch(
                'attributes',
                queryset=BillPaymentAttribute.objects.active().select_related('attribute_type'),
            ))
        )
        totals = compute_totals(bill.pk)
        change = sum((p.change for p in payments), ZERO)

        return {
            'bill': {
                'id': bill.pk,
                'uuid': str(bill.uuid),
                'receipt_number': bill.receipt_number,
                'status': bill.status,
                'patient_handle': str(bill.patient.uuid),
                'patient_name': bill.patient.display_name,
                'cash_point': bill.cash_point.name,
                'date_created': bill.date_created,
            },
            'line_items': [
                {
                    'line_item_order': item.line_item_order,
                    'item_type': item.item_type,
                    'price_name': item.price_name,
                    'quantity': item.quantity,
                    'price': item.price,
                    'line_total': item.line_total,
                }
                for item in bill.line_items.all()
            ],
            'payments': [
                {
                    'payment_mode': payment.payment_mode.name,
                    'amount': payment.amount,
                    'amount_tendered': payment.amount_tendered,
                    'change': payment.change,
                    'attributes': {
                        attribute.attribute_type.name: attribute.value_reference
                        for attribute in payment.attributes.all()
                    },
                }
                for payment in payments
            ],
            'summary': {
                'total': totals.total,
                'paid': totals.paid,
                'balance': totals.balance,
                'change': change,
            },
        }


def mark_receipt_printed(bill_id, actor=None):
    """Flag the bill's receipt as printed. Repeated calls are no-ops."""
    with unit_of_work('mark_receipt_printed'):
        bill = lock_bill(bill_id)
        if not bill.receipt_number:
            issue_receipt_if_paid(bill)
        if not bill.receipt_printed:
            Bill.objects.filter(pk=bill.pk).update(receipt_printed=True)
            bill.receipt_printed = True
            invalidate_patient_bills(bill.patient_id)
            log_domain_event(
                'bill.receipt_printed',
                entity_type='Bill',
                entity_id=bill.pk,
                actor_id=getattr(actor, 'pk', None),
            )
    return bill
