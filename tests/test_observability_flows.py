"""
Tests for end-to-end observability flows.

Verifies that metrics and domain events are emitted for the critical
ledger flows (bill opened, payment settles bill, void regresses status)
without exposing PHI/PII.
"""
import logging
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY

from apps.billing.exceptions import NotFound
from apps.billing.payments import apply_payment, void_payment


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0


@pytest.fixture
def ledger_logs(caplog):
    """caplog for the 'apps' logger tree, which does not propagate to root."""
    logger = logging.getLogger('apps')
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.INFO, logger='apps')
    yield caplog
    logger.removeHandler(caplog.handler)


def events(ledger_logs):
    return [getattr(record, 'event', None) for record in ledger_logs.records]


@pytest.mark.django_db
class TestPaymentSettlesBillFlow:

    def test_metrics_and_events(self, make_bill, cash_mode, cashier, ledger_logs):
        bill_id = make_bill(('100.00', 1))
        payments_before = sample('billing_payments_total', result='success')
        receipts_before = sample('billing_receipts_issued_total')
        transitions_before = sample(
            'billing_status_transitions_total', from_status='PENDING', to_status='PAID'
        )

        with ledger_logs.at_level(logging.INFO, logger='apps'):
            apply_payment(bill_id, cash_mode.pk, Decimal('100.00'), actor=cashier)

        assert sample('billing_payments_total', result='success') == payments_before + 1
        assert sample('billing_receipts_issued_total') == receipts_before + 1
        assert sample(
            'billing_status_transitions_total', from_status='PENDING', to_status='PAID'
        ) == transitions_before + 1

        emitted = events(ledger_logs)
        assert 'bill.status_recomputed' in emitted
        assert 'bill.receipt_issued' in emitted
        assert 'bill.payment_applied' in emitted
        checkpoint = next(r for r in ledger_logs.records if getattr(r, 'event', None) == 'consistency_checkpoint')
        assert checkpoint.status == 'passed'

    def test_rejected_payment_is_counted(self, make_bill, cash_mode, cashier, ledger_logs):
        bill_id = make_bill(('100.00', 1))
        failures_before = sample('billing_payments_total', result='failure')

        with ledger_logs.at_level(logging.INFO, logger='apps'):
            with pytest.raises(NotFound):
                apply_payment(bill_id, 424242, Decimal('10.00'), actor=cashier)

        assert sample('billing_payments_total', result='failure') == failures_before + 1
        assert 'bill.payment_rejected' in events(ledger_logs)


@pytest.mark.django_db
class TestVoidFlow:

    def test_void_event_has_no_reason_text(self, make_bill, cash_mode, cashier, billing_admin, ledger_logs):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('100.00'), actor=cashier)
        voids_before = sample('billing_voids_total', entity='payment', result='success')

        with ledger_logs.at_level(logging.INFO, logger='apps'):
            void_payment(payment_id, 'Patient Ana Mensah refunded', actor=billing_admin)

        assert sample('billing_voids_total', entity='payment', result='success') == voids_before + 1
        record = next(r for r in ledger_logs.records if getattr(r, 'event', None) == 'bill.payment_voided')
        assert record.reason_length == len('Patient Ana Mensah refunded')
        assert 'Ana Mensah' not in ledger_logs.text


@pytest.mark.django_db
class TestBillCreatedFlow:

    def test_bill_created_event(self, make_bill, ledger_logs):
        created_before = sample('billing_bills_created_total', result='success')

        with ledger_logs.at_level(logging.INFO, logger='apps'):
            make_bill(('100.00', 1), ('20.00', 2))

        assert sample('billing_bills_created_total', result='success') == created_before + 1
        record = next(r for r in ledger_logs.records if getattr(r, 'event', None) == 'bill.created')
        assert record.entity_type == 'Bill'
        assert 'Ana' not in ledger_logs.text
