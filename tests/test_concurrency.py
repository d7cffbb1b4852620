"""
Tests for concurrent mutation of one bill.

Business Rules:
- Mutations of the same bill are serialized by a row lock
- The status write is a compare-and-swap on Bill.version
- A lost race re-runs the whole unit of work a bounded number of times
"""
import threading
from decimal import Decimal
from unittest import mock

import pytest
from django.db import connection
from django.db.models import F
from django.test import override_settings
from prometheus_client import REGISTRY

from apps.billing import services
from apps.billing.domain import BillStatus
from apps.billing.exceptions import StatusConflictError
from apps.billing.models import Bill, BillPayment, CashPoint, ReceiptNumberGenerator
from apps.billing.payments import apply_payment
from apps.billing.services import calculate_bill_totals, create_bill
from apps.billing.store import recompute_bill_status


def conflicts(outcome):
    return REGISTRY.get_sample_value(
        'billing_recompute_conflicts_total', {'outcome': outcome}
    ) or 0


def racing_recompute(losses):
    """
    Stand-in for recompute_bill_status that loses the version race
    ``losses`` times: another writer bumps the version just before the CAS.
    """
    state = {'remaining': losses}

    def side_effect(bill, actor=None):
        if state['remaining'] > 0:
            state['remaining'] -= 1
            Bill.objects.filter(pk=bill.pk).update(version=F('version') + 1)
        return recompute_bill_status(bill, actor)

    return side_effect


@pytest.mark.django_db
class TestConflictRetry:

    def test_lost_race_is_retried(self, make_bill, cash_mode, cashier):
        """
        Scenario: bill of 100; 60 already paid; the 40 payment loses one race.
        Expected: the retry commits exactly one payment and the bill is PAID.
        """
        bill_id = make_bill(('100.00', 1))
        apply_payment(bill_id, cash_mode.pk, Decimal('60.00'), actor=cashier)
        retried_before = conflicts('retried')

        with mock.patch.object(services, 'recompute_bill_status', side_effect=racing_recompute(1)):
            apply_payment(bill_id, cash_mode.pk, Decimal('40.00'), actor=cashier)

        bill = Bill.objects.get(pk=bill_id)
        assert bill.status == BillStatus.PAID
        assert bill.receipt_number
        assert BillPayment.objects.filter(bill_id=bill_id).count() == 2
        assert calculate_bill_totals(bill_id).paid == Decimal('100.00')
        assert conflicts('retried') == retried_before + 1

    @override_settings(BILLING_LEDGER={'RECOMPUTE_MAX_ATTEMPTS': 2})
    def test_exhausted_retries_raise(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        exhausted_before = conflicts('exhausted')

        with mock.patch.object(services, 'recompute_bill_status', side_effect=racing_recompute(5)):
            with pytest.raises(StatusConflictError):
                apply_payment(bill_id, cash_mode.pk, Decimal('40.00'), actor=cashier)

        bill = Bill.objects.get(pk=bill_id)
        assert bill.status == BillStatus.PENDING
        assert BillPayment.objects.filter(bill_id=bill_id).count() == 0
        assert conflicts('exhausted') == exhausted_before + 1

    def test_stale_version_is_rejected(self, make_bill):
        bill_id = make_bill(('100.00', 1))
        stale = Bill.objects.get(pk=bill_id)
        Bill.objects.filter(pk=bill_id).update(version=F('version') + 1)

        with pytest.raises(StatusConflictError):
            recompute_bill_status(stale)


@pytest.mark.postgres
@pytest.mark.django_db(transaction=True)
class TestParallelPayments:
    """
    Real row locks; SQLite serializes writers at the file level instead.

    Run against PostgreSQL with:
        BILLING_TEST_USE_CONFIGURED_DB=1 DATABASE_ENGINE=django.db.backends.postgresql pytest -m postgres
    """

    def test_two_cashiers_settle_one_bill(self, make_bill, cash_mode, cashier):
        if connection.vendor != 'postgresql':
            pytest.skip('row-level locking needs PostgreSQL; set BILLING_TEST_USE_CONFIGURED_DB=1')

        bill_id = make_bill(('100.00', 2))
        barrier = threading.Barrier(2)
        errors = []

        def pay(amount):
            try:
                barrier.wait()
                apply_payment(bill_id, cash_mode.pk, amount, actor=cashier)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [
            threading.Thread(target=pay, args=(Decimal('120.00'),)),
            threading.Thread(target=pay, args=(Decimal('80.00'),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        bill = Bill.objects.get(pk=bill_id)
        assert bill.status == BillStatus.PAID
        assert bill.receipt_number
        assert calculate_bill_totals(bill_id).paid == Decimal('200.00')

    def test_parallel_receipts_across_generators_are_distinct(self, patient, service_spec,
                                                              cash_mode, cashier):
        if connection.vendor != 'postgresql':
            pytest.skip('row-level locking needs PostgreSQL; set BILLING_TEST_USE_CONFIGURED_DB=1')

        lab = CashPoint.objects.create(name='Laboratory')
        pharmacy = CashPoint.objects.create(name='Pharmacy')
        ReceiptNumberGenerator.objects.create(cash_point=lab, cashier_prefix='REC-')
        bill_ids = [
            create_bill(patient.uuid, cash_point.pk, [service_spec('10.00', 1)], actor=cashier)
            for cash_point in (lab, pharmacy)
        ]
        barrier = threading.Barrier(2)
        errors = []

        def pay(bill_id):
            try:
                barrier.wait()
                apply_payment(bill_id, cash_mode.pk, Decimal('10.00'), actor=cashier)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=pay, args=(bill_id,)) for bill_id in bill_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        numbers = set(Bill.objects.filter(pk__in=bill_ids).values_list('receipt_number', flat=True))
        assert numbers == {'REC-000001', 'REC-000002'}
