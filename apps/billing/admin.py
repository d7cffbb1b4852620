from django.contrib import admin

from .models import (
    Bill,
    BillLineItem,
    BillPayment,
    BillPaymentAttribute,
    CashPoint,
    PaymentMode,
    PaymentModeAttributeType,
    ReceiptNumberGenerator,
)


class ReadOnlyLedgerInline(admin.TabularInline):
    """
    Ledger rows are read-only in the admin.

    SECURITY: Changes must go through the ledger services so status,
    receipts and audit columns stay consistent.
    """
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class BillLineItemInline(ReadOnlyLedgerInline):
    model = BillLineItem
    fields = ['line_item_order', 'item_type', 'service', 'item', 'price_name', 'price', 'quantity', 'voided']
    readonly_fields = fields


class BillPaymentInline(ReadOnlyLedgerInline):
    model = BillPayment
    fields = ['payment_mode', 'amount', 'amount_tendered', 'creator', 'date_created', 'voided']
    readonly_fields = fields


class BillPaymentAttributeInline(ReadOnlyLedgerInline):
    model = BillPaymentAttribute
    fields = ['attribute_type', 'value_reference']
    readonly_fields = fields


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    """No add, change or delete from the admin for ledger tables."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        """Ledger rows are never deleted, only voided."""
        return False


@admin.register(Bill)
class BillAdmin(ReadOnlyLedgerAdmin):
    list_display = ['id', 'uuid', 'patient', 'cash_point', 'status', 'receipt_number', 'voided', 'date_created']
    list_filter = ['status', 'voided', 'cash_point']
    search_fields = ['uuid', 'receipt_number', 'patient__uuid']
    inlines = [BillLineItemInline, BillPaymentInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('uuid', 'patient', 'provider', 'cash_point', 'status', 'version')
        }),
        ('Receipt', {
            'fields': ('receipt_number', 'receipt_printed')
        }),
        ('Audit', {
            'fields': (
                'creator', 'date_created', 'changed_by', 'date_changed',
                'voided', 'voided_by', 'date_voided', 'void_reason',
            ),
            'classes': ('collapse',)
        }),
    )


@admin.register(BillPayment)
class BillPaymentAdmin(ReadOnlyLedgerAdmin):
    list_display = ['id', 'bill', 'payment_mode', 'amount', 'amount_tendered', 'voided', 'date_created']
    list_filter = ['payment_mode', 'voided']
    search_fields = ['uuid', 'bill__uuid', 'bill__receipt_number']
    inlines = [BillPaymentAttributeInline]


class PaymentModeAttributeTypeInline(admin.TabularInline):
    model = PaymentModeAttributeType
    extra = 0
    fields = ['name', 'format', 'required', 'attribute_order', 'retired']


@admin.register(PaymentMode)
class PaymentModeAdmin(admin.ModelAdmin):
    list_display = ['name', 'sort_order', 'retired']
    list_filter = ['retired']
    search_fields = ['name']
    inlines = [PaymentModeAttributeTypeInline]


@admin.register(CashPoint)
class CashPointAdmin(admin.ModelAdmin):
    list_display = ['name', 'receipt_prefix', 'retired']
    list_filter = ['retired']
    search_fields = ['name']


@admin.register(ReceiptNumberGenerator)
class ReceiptNumberGeneratorAdmin(admin.ModelAdmin):
    list_display = ['id', 'cash_point', 'cashier_prefix', 'padding', 'next_sequence']
