"""
Ledger store primitives.

Every mutating ledger operation runs as one unit of work:

    with unit_of_work('apply_payment'):
        bill = lock_bill(bill_id)
        ...insert/void rows...
        recompute_bill_status(bill, actor)

``lock_bill`` takes a row lock on the bill (SELECT ... FOR UPDATE) so
concurrent mutations of the same bill are serialized. ``recompute_bill_status``
additionally writes the status with a compare-and-swap on ``Bill.version``;
a mismatch raises StatusConflictError, which ``retry_on_conflict`` retries.
"""
import time
from contextlib import contextmanager
from decimal import Decimal
from functools import wraps

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, models, transaction
from django.db.models import ExpressionWrapper, F, Sum
from django.utils import timezone

from apps.core.observability import metrics
from apps.core.observability.events import (
    log_consistency_checkpoint,
    log_recompute_conflict,
    log_status_recomputed,
)
from apps.core.observability.logging import get_sanitized_logger

from .domain import BillTotals, derive_status
from .exceptions import LedgerError, NotFound, StatusConflictError, StoreError
from .models import Bill, BillLineItem, BillPayment

logger = get_sanitized_logger(__name__)

CENT = Decimal('0.01')

DEFAULT_LEDGER_SETTINGS = {
    'RECOMPUTE_MAX_ATTEMPTS': 3,
    'RECEIPT_PREFIX': 'REC-',
    'RECEIPT_SEQUENCE_PADDING': 6,
    'PATIENT_BILLS_CACHE_TIMEOUT': 300,
}


def ledger_setting(name):
    return getattr(settings, 'BILLING_LEDGER', {}).get(name, DEFAULT_LEDGER_SETTINGS[name])


@contextmanager
def unit_of_work(operation):
    """
    Run the enclosed block in one database transaction.

    Ledger errors propagate unchanged; any DatabaseError is wrapped in
    StoreError. Either way the transaction is rolled back.
    """
    try:
        with transaction.atomic():
            yield
    except LedgerError as e:
        logger.warning(
            f'Unit of work rolled back: {operation}',
            extra={
                'event': 'billing.unit_of_work_rolled_back',
                'operation': operation,
                'error_type': e.__class__.__name__,
            }
        )
        raise
    except DatabaseError as e:
        metrics.exceptions_total.labels(
            exception_type=e.__class__.__name__,
            location=f'billing.{operation}'
        ).inc()
        logger.error(
            f'Unit of work failed to commit: {operation}',
            extra={
                'event': 'billing.unit_of_work_failed',
                'operation': operation,
                'error_type': e.__class__.__name__,
            }
        )
        raise StoreError(f'{operation} could not be committed', operation=operation) from e


def retry_on_conflict(operation):
    """
    Re-run a whole unit of work when its status write lost a race.

    Bounded by BILLING_LEDGER['RECOMPUTE_MAX_ATTEMPTS']; the last conflict
    is raised to the caller.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_attempts = max(1, int(ledger_setting('RECOMPUTE_MAX_ATTEMPTS')))
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except StatusConflictError as e:
                    exhausted = attempt >= max_attempts
                    metrics.billing_recompute_conflicts_total.labels(
                        outcome='exhausted' if exhausted else 'retried'
                    ).inc()
                    log_recompute_conflict(
                        e.context.get('bill_id'),
                        attempt=attempt,
                        max_attempts=max_attempts,
                        exhausted=exhausted,
                    )
                    if exhausted:
                        raise
                    attempt += 1
        return wrapper
    return decorator


def lock_bill(bill_id, include_voided=False):
    """
    Row-lock and return the bill.

    Must be called inside a unit of work. A voided bill is NotFound unless
    ``include_voided`` is set.
    """
    bill = Bill.objects.select_for_update().filter(pk=bill_id).first()
    if bill is None:
        raise NotFound(f'Bill {bill_id} not found', bill_id=bill_id)
    if bill.voided and not include_voided:
        raise NotFound(f'Bill {bill_id} is voided', bill_id=bill_id)
    return bill


def compute_totals(bill_id):
    """Sum active line items and active payments for one bill."""
    line_total = ExpressionWrapper(
        F('price') * F('quantity'),
        output_field=models.DecimalField(max_digits=14, decimal_places=2)
    )
    total = BillLineItem.objects.active().filter(bill_id=bill_id).aggregate(
        total=Sum(line_total)
    )['total'] or Decimal('0')
    paid = BillPayment.objects.active().filter(bill_id=bill_id).aggregate(
        paid=Sum('amount')
    )['paid'] or Decimal('0')
    return BillTotals(total=Decimal(total).quantize(CENT), paid=Decimal(paid).quantize(CENT))


def recompute_bill_status(bill, actor=None):
    """
    Derive and persist the bill status from current sums.

    The status is written even when unchanged. The write only succeeds if
    ``Bill.version`` still matches the locked copy; otherwise
    StatusConflictError is raised and the enclosing unit of work rolls back.
    """
    totals = compute_totals(bill.pk)
    from_status = bill.status
    to_status = derive_status(totals.total, totals.paid)
    now = timezone.now()

    updated = Bill.objects.filter(pk=bill.pk, version=bill.version).update(
        status=to_status,
        version=F('version') + 1,
        changed_by=actor,
        date_changed=now,
    )
    if not updated:
        raise StatusConflictError(
            f'Bill {bill.pk} changed while its status was being recomputed',
            bill_id=bill.pk
        )

    bill.status = to_status
    bill.version += 1
    bill.changed_by = actor
    bill.date_changed = now

    metrics.billing_status_transitions_total.labels(
        from_status=from_status,
        to_status=to_status
    ).inc()
    log_status_recomputed(bill, from_status, to_status, totals.total, totals.paid)
    log_consistency_checkpoint(
        'bill_status_matches_sums',
        entity_ids={'bill_id': bill.pk},
        checks_passed={'status_derived': bill.status == derive_status(totals.total, totals.paid)},
    )
    return totals


def _patient_generation_key(patient_id):
    return f'billing:patient_bills_generation:{patient_id}'


def patient_bills_cache_key(patient_id):
    """
    Cache key for one patient's listing at the current generation.

    Invalidation bumps the generation, so a listing computed before a write
    committed is stored under a key no reader will ask for again.
    """
    generation = cache.get_or_set(_patient_generation_key(patient_id), time.time_ns, timeout=None)
    return f'billing:patient_bills:{patient_id}:{generation}'


def _bump_patient_generation(patient_id):
    key = _patient_generation_key(patient_id)
    try:
        cache.incr(key)
    except ValueError:
        # evicted; restart from a value no earlier generation used
        cache.set(key, time.time_ns(), timeout=None)


def invalidate_patient_bills(patient_id):
    """Move the patient's listing to a new generation now and again on commit."""
    _bump_patient_generation(patient_id)
    transaction.on_commit(lambda: _bump_patient_generation(patient_id))
