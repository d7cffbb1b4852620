"""
Tests for soft voids.

Business Rule: ledger rows are never deleted. A void is a state transition
Active -> Voided(actor, reason, timestamp) recorded on the row itself.
"""
from decimal import Decimal

import pytest
from django.contrib.auth.models import AnonymousUser

from apps.billing.domain import BillStatus
from apps.billing.exceptions import LedgerValidationError, NotFound
from apps.billing.models import Bill, BillLineItem, BillPayment
from apps.billing.payments import apply_payment, get_payment_details, void_payment
from apps.billing.services import (
    get_bill,
    get_line_item,
    list_bills_for_patient,
    void_bill,
    void_line_item,
)
from apps.core.models import VoidRecord


@pytest.mark.django_db
class TestVoidIsNonDestructive:

    def test_void_line_item_keeps_row(self, make_bill, billing_admin):
        bill_id = make_bill(('100.00', 1), ('50.00', 1))
        line_item = BillLineItem.objects.filter(bill_id=bill_id).first()
        rows_before = BillLineItem.objects.count()

        record = void_line_item(line_item.pk, 'Ordered in error', actor=billing_admin)

        assert BillLineItem.objects.count() == rows_before
        stored = get_line_item(line_item.pk)
        assert stored.voided is True
        assert stored.voided_by == billing_admin
        assert stored.date_voided is not None
        assert stored.void_reason == 'Ordered in error'
        assert record == VoidRecord(billing_admin.pk, 'Ordered in error', stored.date_voided)
        assert stored.void_state == record

    def test_void_payment_keeps_row(self, make_bill, cash_mode, cashier, billing_admin):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('30.00'), actor=cashier)

        void_payment(payment_id, 'Counterfeit note', actor=billing_admin)

        payment = get_payment_details(payment_id)
        assert payment.voided is True
        assert payment.voided_by == billing_admin
        assert payment.date_voided is not None
        assert payment.void_reason == 'Counterfeit note'
        assert BillPayment.objects.filter(pk=payment_id).exists()

    def test_active_row_has_no_void_state(self, make_bill):
        bill_id = make_bill(('100.00', 1))
        assert Bill.objects.get(pk=bill_id).void_state is None

    def test_void_line_item_twice(self, make_bill, billing_admin):
        bill_id = make_bill(('100.00', 1))
        line_item = BillLineItem.objects.get(bill_id=bill_id)
        void_line_item(line_item.pk, 'Duplicate', actor=billing_admin)

        with pytest.raises(NotFound):
            void_line_item(line_item.pk, 'Duplicate', actor=billing_admin)

    def test_void_line_item_requires_reason(self, make_bill, billing_admin):
        bill_id = make_bill(('100.00', 1))
        line_item = BillLineItem.objects.get(bill_id=bill_id)

        with pytest.raises(LedgerValidationError):
            void_line_item(line_item.pk, ' ', actor=billing_admin)
        assert BillLineItem.objects.get(pk=line_item.pk).voided is False

    def test_void_reason_length_is_capped(self, make_bill, billing_admin):
        bill_id = make_bill(('100.00', 1))
        line_item = BillLineItem.objects.get(bill_id=bill_id)

        with pytest.raises(LedgerValidationError) as exc:
            void_line_item(line_item.pk, 'x' * 256, actor=billing_admin)
        assert exc.value.field == 'reason'

        void_line_item(line_item.pk, 'x' * 255, actor=billing_admin)
        assert BillLineItem.objects.get(pk=line_item.pk).void_reason == 'x' * 255


@pytest.mark.django_db
class TestVoidRequiresActor:

    @pytest.mark.parametrize('actor', [None, AnonymousUser()])
    def test_line_item(self, make_bill, actor):
        bill_id = make_bill(('100.00', 1))
        line_item = BillLineItem.objects.get(bill_id=bill_id)

        with pytest.raises(LedgerValidationError) as exc:
            void_line_item(line_item.pk, 'Typo', actor=actor)
        assert exc.value.field == 'actor'
        assert BillLineItem.objects.get(pk=line_item.pk).voided is False

    def test_payment(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('100.00'), actor=cashier)

        with pytest.raises(LedgerValidationError):
            void_payment(payment_id, 'Typo', actor=None)
        assert BillPayment.objects.get(pk=payment_id).voided is False
        assert Bill.objects.get(pk=bill_id).status == BillStatus.PAID

    def test_bill(self, make_bill):
        bill_id = make_bill(('100.00', 1))

        with pytest.raises(LedgerValidationError):
            void_bill(bill_id, 'Typo')
        assert Bill.objects.get(pk=bill_id).voided is False


@pytest.mark.django_db
class TestVoidBill:

    def test_void_bill_does_not_cascade(self, make_bill, cash_mode, cashier, billing_admin):
        bill_id = make_bill(('100.00', 1), ('20.00', 1))
        apply_payment(bill_id, cash_mode.pk, Decimal('50.00'), actor=cashier)

        record = void_bill(bill_id, 'Patient billed twice', actor=billing_admin)

        bill = Bill.objects.get(pk=bill_id)
        assert bill.voided is True
        assert bill.void_state == record
        assert bill.status == BillStatus.PARTIALLY_PAID
        assert BillLineItem.objects.filter(bill_id=bill_id, voided=False).count() == 2
        assert BillPayment.objects.filter(bill_id=bill_id, voided=False).count() == 1

    def test_voided_bill_leaves_listing(self, make_bill, patient, billing_admin):
        bill_id = make_bill(('100.00', 1))
        assert len(list_bills_for_patient(patient.uuid)) == 1

        void_bill(bill_id, 'Duplicate', actor=billing_admin)

        assert list_bills_for_patient(patient.uuid) == []
        assert get_bill(bill_id, include_voided=True).bill.voided is True

    def test_void_bill_twice(self, make_bill, billing_admin):
        bill_id = make_bill(('100.00', 1))
        void_bill(bill_id, 'Duplicate', actor=billing_admin)

        with pytest.raises(NotFound):
            void_bill(bill_id, 'Duplicate', actor=billing_admin)

    def test_children_of_voided_bill_can_still_be_voided(self, make_bill, cash_mode, cashier,
                                                         billing_admin):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('100.00'), actor=cashier)
        void_bill(bill_id, 'Duplicate', actor=billing_admin)

        void_payment(payment_id, 'Refunded at desk', actor=billing_admin)

        bill = Bill.objects.get(pk=bill_id)
        assert bill.status == BillStatus.PENDING
        assert bill.receipt_number is not None
