"""Billing ledger URLs."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    BillViewSet,
    CashPointViewSet,
    LineItemViewSet,
    PatientBillsView,
    PatientPaymentsView,
    PatientPaymentSummaryView,
    PaymentModeViewSet,
    PaymentViewSet,
)

router = DefaultRouter()
router.register(r'bills', BillViewSet, basename='bill')
router.register(r'items', LineItemViewSet, basename='bill-line-item')
router.register(r'payments', PaymentViewSet, basename='bill-payment')
router.register(r'cash-points', CashPointViewSet, basename='cash-point')
router.register(r'payment-modes', PaymentModeViewSet, basename='payment-mode')

urlpatterns = [
    path('', include(router.urls)),
    path('patients/<uuid:handle>/bills/', PatientBillsView.as_view(), name='patient-bills'),
    path('patients/<uuid:handle>/payments/', PatientPaymentsView.as_view(), name='patient-payments'),
    path(
        'patients/<uuid:handle>/payments/summary/',
        PatientPaymentSummaryView.as_view(),
        name='patient-payment-summary'
    ),
]
