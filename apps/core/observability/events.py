"""
Domain events logging helpers.

Provides structured event logging for ledger operations.
"""
from typing import Dict, Any, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    entity_ids: Optional[Dict[str, Any]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'bill.payment_applied')
        entity_type: Type of entity (e.g., 'Bill', 'BillPayment')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, etc.)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'bill.payment_applied',
            entity_type='BillPayment',
            entity_id=payment.pk,
            entity_ids={'bill_id': bill.pk},
            amount=str(payment.amount),
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id is not None:
        event_data['entity_id'] = str(entity_id)

    if entity_ids:
        event_data.update({k: str(v) for k, v in entity_ids.items() if v is not None})

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'conflict', 'retried']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, Any],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to record that a derived field agrees with the sums it is derived
    from at the end of a unit of work.
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update({k: str(v) for k, v in entity_ids.items()})
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_status_recomputed(bill, from_status, to_status, total, paid):
    """Log a bill status recomputation."""
    log_domain_event(
        'bill.status_recomputed',
        entity_type='Bill',
        entity_id=bill.pk,
        from_status=from_status,
        to_status=to_status,
        total_amount=str(total),
        amount_paid=str(paid),
    )


def log_receipt_issued(bill):
    """Log a receipt number assignment."""
    log_domain_event(
        'bill.receipt_issued',
        entity_type='Bill',
        entity_id=bill.pk,
        receipt_number=bill.receipt_number,
    )


def log_void(event_name, entity, reason_length=None, **entity_ids):
    """Log a soft void of any ledger row."""
    log_domain_event(
        event_name,
        entity_type=entity.__class__.__name__,
        entity_id=entity.pk,
        entity_ids=entity_ids,
        voided_by=entity.voided_by_id,
        reason_length=reason_length,
    )


def log_recompute_conflict(bill_id, attempt, max_attempts, exhausted=False):
    """Log a detected status-recomputation race."""
    log_domain_event(
        'bill.recompute_conflict',
        entity_type='Bill',
        entity_id=bill_id,
        result='failure' if exhausted else 'retried',
        attempt=attempt,
        max_attempts=max_attempts,
    )
