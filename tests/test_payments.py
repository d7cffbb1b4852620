"""
Tests for the payment processor.

Business Rules:
- amount > 0, amount_tendered >= amount (defaults to amount)
- Overpayment is accepted; change is tendered - amount and never persisted
- Attributes must belong to the payment mode; required ones must be present
- Payment, attributes, status and receipt number commit or roll back together
"""
from decimal import Decimal
from unittest import mock

import pytest

from apps.billing import receipts
from apps.billing.domain import BillStatus
from apps.billing.exceptions import LedgerValidationError, NotFound, StoreError
from apps.billing.models import Bill, BillPayment, BillPaymentAttribute, PaymentMode
from apps.billing.payments import (
    apply_payment,
    get_patient_payment_summary,
    get_payment_details,
    list_patient_payments,
    list_payment_modes,
    void_payment,
)
from apps.billing.services import void_bill


@pytest.mark.django_db
class TestApplyPayment:

    def test_apply_cash_payment(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 2))

        payment_id = apply_payment(
            bill_id, cash_mode.pk, Decimal('120.00'), amount_tendered=Decimal('150.00'), actor=cashier
        )

        payment = BillPayment.objects.get(pk=payment_id)
        assert payment.amount == Decimal('120.00')
        assert payment.amount_tendered == Decimal('150.00')
        assert payment.change == Decimal('30.00')
        assert payment.creator == cashier
        assert Bill.objects.get(pk=bill_id).status == BillStatus.PARTIALLY_PAID

    def test_tendered_defaults_to_amount(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, '40', actor=cashier)

        payment = BillPayment.objects.get(pk=payment_id)
        assert payment.amount_tendered == payment.amount == Decimal('40.00')

    @pytest.mark.parametrize('amount', [
        Decimal('0'), Decimal('-10.00'), '0.00', None,
        'NaN', Decimal('sNaN'), 'Infinity', Decimal('-Infinity'),
    ])
    def test_non_positive_amount(self, make_bill, cash_mode, cashier, amount):
        bill_id = make_bill(('100.00', 1))

        with pytest.raises(LedgerValidationError):
            apply_payment(bill_id, cash_mode.pk, amount, actor=cashier)
        assert BillPayment.objects.count() == 0

    def test_tendered_below_amount(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        with pytest.raises(LedgerValidationError):
            apply_payment(bill_id, cash_mode.pk, Decimal('50'), amount_tendered=Decimal('40'), actor=cashier)

    def test_infinite_tendered(self, make_bill, cash_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        with pytest.raises(LedgerValidationError) as exc:
            apply_payment(bill_id, cash_mode.pk, Decimal('50'), amount_tendered='Infinity', actor=cashier)
        assert exc.value.field == 'amount_tendered'

    def test_unknown_or_retired_mode(self, make_bill, cashier):
        bill_id = make_bill(('100.00', 1))
        retired = PaymentMode.objects.create(name='Cheque', retired=True)

        with pytest.raises(NotFound):
            apply_payment(bill_id, 999999, Decimal('10'), actor=cashier)
        with pytest.raises(NotFound):
            apply_payment(bill_id, retired.pk, Decimal('10'), actor=cashier)

    def test_voided_bill_is_not_found(self, make_bill, cash_mode, cashier, billing_admin):
        bill_id = make_bill(('100.00', 1))
        void_bill(bill_id, 'Duplicate', actor=billing_admin)

        with pytest.raises(NotFound):
            apply_payment(bill_id, cash_mode.pk, Decimal('10'), actor=cashier)


@pytest.mark.django_db
class TestPaymentAttributes:

    def test_attributes_by_name_and_id(self, make_bill, card_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        bank = card_mode.attribute_types.get(name='Bank')

        payment_id = apply_payment(
            bill_id,
            card_mode.pk,
            Decimal('100.00'),
            attributes={'Card Reference': 'TXN-991', str(bank.pk): 'Ecobank'},
            actor=cashier,
        )

        payment = get_payment_details(payment_id)
        values = {a.attribute_type.name: a.value_reference for a in payment.attributes.all()}
        assert values == {'Card Reference': 'TXN-991', 'Bank': 'Ecobank'}
        assert all(a.creator == cashier for a in payment.attributes.all())

    def test_missing_required_attribute(self, make_bill, card_mode, cashier):
        bill_id = make_bill(('100.00', 1))

        with pytest.raises(LedgerValidationError):
            apply_payment(bill_id, card_mode.pk, Decimal('10'), attributes={'Bank': 'X'}, actor=cashier)
        assert BillPayment.objects.count() == 0

    def test_attribute_of_another_mode(self, make_bill, cash_mode, card_mode, cashier):
        bill_id = make_bill(('100.00', 1))

        with pytest.raises(LedgerValidationError):
            apply_payment(
                bill_id, cash_mode.pk, Decimal('10'), attributes={'Card Reference': 'X'}, actor=cashier
            )

    def test_retired_attribute_type_is_rejected(self, make_bill, card_mode, cashier):
        bill_id = make_bill(('100.00', 1))
        card_mode.attribute_types.filter(name='Bank').update(retired=True)

        with pytest.raises(LedgerValidationError):
            apply_payment(
                bill_id,
                card_mode.pk,
                Decimal('10'),
                attributes={'Card Reference': 'TXN-1', 'Bank': 'X'},
                actor=cashier,
            )

    def test_receipt_failure_rolls_back_payment_and_attributes(self, make_bill, card_mode, cashier):
        """
        Scenario: the payment settles the bill but receipt issuance fails.
        Expected: no payment, no attributes, bill still PENDING without receipt.
        """
        bill_id = make_bill(('100.00', 1))

        with mock.patch.object(
            receipts, 'generate_receipt_number', side_effect=StoreError('receipt sequence unavailable')
        ):
            with pytest.raises(StoreError):
                apply_payment(
                    bill_id, card_mode.pk, Decimal('100.00'),
                    attributes={'Card Reference': 'TXN-7'}, actor=cashier,
                )

        bill = Bill.objects.get(pk=bill_id)
        assert bill.status == BillStatus.PENDING
        assert bill.receipt_number is None
        assert BillPayment.objects.count() == 0
        assert BillPaymentAttribute.objects.count() == 0


@pytest.mark.django_db
class TestVoidPayment:

    def test_void_keeps_attributes(self, make_bill, card_mode, billing_admin, cashier):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(
            bill_id, card_mode.pk, Decimal('60.00'),
            attributes={'Card Reference': 'TXN-3'}, actor=cashier,
        )

        void_payment(payment_id, 'Card declined later', actor=billing_admin)

        payment = get_payment_details(payment_id)
        assert payment.voided is True
        attributes = list(payment.attributes.all())
        assert len(attributes) == 1
        assert attributes[0].voided is False
        assert Bill.objects.get(pk=bill_id).status == BillStatus.PENDING

    def test_void_twice_is_not_found(self, make_bill, cash_mode, billing_admin, cashier):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('10'), actor=cashier)
        void_payment(payment_id, 'Mistake', actor=billing_admin)

        with pytest.raises(NotFound):
            void_payment(payment_id, 'Again', actor=billing_admin)

    def test_void_unknown_payment(self, billing_admin):
        with pytest.raises(NotFound):
            void_payment(31337, 'Missing', actor=billing_admin)

    @pytest.mark.parametrize('reason', ['', '   ', None])
    def test_reason_is_required(self, make_bill, cash_mode, billing_admin, cashier, reason):
        bill_id = make_bill(('100.00', 1))
        payment_id = apply_payment(bill_id, cash_mode.pk, Decimal('10'), actor=cashier)

        with pytest.raises(LedgerValidationError):
            void_payment(payment_id, reason, actor=billing_admin)
        assert BillPayment.objects.get(pk=payment_id).voided is False


@pytest.mark.django_db
class TestPaymentReads:

    def test_list_payment_modes(self, cash_mode, card_mode):
        PaymentMode.objects.create(name='Voucher', sort_order=0, retired=True)
        card_mode.attribute_types.filter(name='Bank').update(retired=True)

        modes = list_payment_modes()

        assert [m.name for m in modes] == ['Cash', 'Card']
        assert [t.name for t in modes[1].attribute_types.all()] == ['Card Reference']

    def test_patient_payments_and_summary(self, make_bill, patient, cash_mode, card_mode,
                                          cashier, billing_admin):
        first = make_bill(('100.00', 1))
        second = make_bill(('50.00', 1))
        voided_bill = make_bill(('10.00', 1))
        apply_payment(first, cash_mode.pk, Decimal('100.00'), actor=cashier)
        apply_payment(second, card_mode.pk, Decimal('20.00'),
                      attributes={'Card Reference': 'R1'}, actor=cashier)
        reversed_id = apply_payment(second, cash_mode.pk, Decimal('5.00'), actor=cashier)
        apply_payment(voided_bill, cash_mode.pk, Decimal('10.00'), actor=cashier)
        void_payment(reversed_id, 'Reversed', actor=billing_admin)
        void_bill(voided_bill, 'Duplicate', actor=billing_admin)

        payments = list_patient_payments(patient.uuid)
        assert [p.amount for p in payments] == [Decimal('20.00'), Decimal('100.00')]
        assert payments[1].bill.receipt_number is not None

        summary = get_patient_payment_summary(patient.uuid)
        assert summary == {
            'total_paid': Decimal('120.00'),
            'bill_count': 2,
            'payment_count': 2,
            'payment_modes': ['Card', 'Cash'],
        }
