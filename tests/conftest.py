"""
Global test fixtures for pytest.

Provides reusable fixtures for ledger testing:
- Users and authenticated API clients by role
- Patients, cash points, payment modes and catalog entries
- A bill factory
"""
from decimal import Decimal

import pytest
from django.contrib.auth.models import Group, User
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.billing.domain import LineItemSpec, ServiceRef, StockItemRef
from apps.billing.models import CashPoint, PaymentMode, PaymentModeAttributeType
from apps.billing.permissions import BILLING_ADMIN_GROUP, CASHIER_GROUP
from apps.billing.services import create_bill
from apps.catalog.models import BillableService, ItemPrice, StockItem
from apps.patients.models import Patient


@pytest.fixture(autouse=True)
def clear_cache():
    """Bill listings are cached per patient id; ids are reused between tests."""
    cache.clear()
    yield
    cache.clear()


# ============================================================================
# Users and API clients
# ============================================================================

@pytest.fixture
def cashier(db):
    user = User.objects.create_user(username='cashier', password='testpass123')
    group, _ = Group.objects.get_or_create(name=CASHIER_GROUP)
    user.groups.add(group)
    return user


@pytest.fixture
def billing_admin(db):
    user = User.objects.create_user(username='billing_admin', password='testpass123')
    group, _ = Group.objects.get_or_create(name=BILLING_ADMIN_GROUP)
    user.groups.add(group)
    return user


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def cashier_client(cashier):
    client = APIClient()
    client.force_authenticate(user=cashier)
    return client


@pytest.fixture
def billing_admin_client(billing_admin):
    client = APIClient()
    client.force_authenticate(user=billing_admin)
    return client


# ============================================================================
# Ledger configuration and collaborators
# ============================================================================

@pytest.fixture
def patient(db):
    return Patient.objects.create(given_name='Ana', family_name='Mensah')


@pytest.fixture
def retired_patient(db):
    return Patient.objects.create(given_name='Old', family_name='Record', voided=True)


@pytest.fixture
def cash_point(db):
    return CashPoint.objects.create(name='Main Cashier', receipt_prefix='MC-')


@pytest.fixture
def cash_mode(db):
    return PaymentMode.objects.create(name='Cash', sort_order=1)


@pytest.fixture
def card_mode(db):
    mode = PaymentMode.objects.create(name='Card', sort_order=2)
    PaymentModeAttributeType.objects.create(
        payment_mode=mode, name='Card Reference', required=True, attribute_order=1
    )
    PaymentModeAttributeType.objects.create(
        payment_mode=mode, name='Bank', required=False, attribute_order=2
    )
    return mode


@pytest.fixture
def consultation(db):
    return BillableService.objects.create(name='Consultation')


@pytest.fixture
def consultation_price(consultation):
    return ItemPrice.objects.create(service=consultation, name='Standard', price=Decimal('100.00'))


@pytest.fixture
def paracetamol(db):
    return StockItem.objects.create(code='PARA-500', name='Paracetamol 500mg')


@pytest.fixture
def service_spec(consultation):
    """Factory for service line item specs."""
    def make(price='100.00', quantity=1, **kwargs):
        return LineItemSpec(
            ref=ServiceRef(consultation.pk),
            price=Decimal(price) if price is not None else None,
            quantity=quantity,
            **kwargs
        )
    return make


@pytest.fixture
def item_spec(paracetamol):
    """Factory for stock item line item specs."""
    def make(price='5.00', quantity=1, **kwargs):
        return LineItemSpec(
            ref=StockItemRef(paracetamol.pk),
            price=Decimal(price) if price is not None else None,
            quantity=quantity,
            **kwargs
        )
    return make


@pytest.fixture
def make_bill(patient, cash_point, cashier, service_spec):
    """
    Factory creating a bill through the ledger.

    make_bill(('100.00', 2)) opens a bill with one service line of 100 x 2.
    """
    def make(*lines):
        specs = [service_spec(price, quantity) for price, quantity in lines]
        return create_bill(patient.uuid, cash_point.pk, specs, actor=cashier)
    return make
