"""
DRF Permission classes for billing ledger RBAC.

- Cashier: CAN open bills, add/edit line items, take payments, print receipts
- BillingAdmin: everything a cashier can do, plus voids
- Superuser: Full access
"""
from rest_framework import permissions

CASHIER_GROUP = 'Cashier'
BILLING_ADMIN_GROUP = 'BillingAdmin'


def _in_groups(user, group_names):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return user.groups.filter(name__in=group_names).exists()


class IsBillingStaff(permissions.BasePermission):
    """Allow Cashier or BillingAdmin group members, or superusers."""

    message = 'Billing operations require the Cashier or BillingAdmin role, or admin privileges.'

    def has_permission(self, request, view):
        return _in_groups(request.user, [CASHIER_GROUP, BILLING_ADMIN_GROUP])


class CanVoidLedgerEntries(permissions.BasePermission):
    """
    Allow voids only to BillingAdmin members or superusers.

    Cashiers are explicitly blocked from voiding bills, line items and payments.
    """

    message = 'Voiding ledger entries requires the BillingAdmin role, or admin privileges.'

    def has_permission(self, request, view):
        return _in_groups(request.user, [BILLING_ADMIN_GROUP])
