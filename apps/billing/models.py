"""
Billing ledger models.

Bill owns its line items and payments; a payment owns its attributes.
No row in this module is ever physically deleted.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models.functions import Coalesce
from django.utils.translation import gettext_lazy as _

from apps.core.models import VoidableAuditModel


class CashPoint(models.Model):
    """Register/location a bill is opened under."""
    name = models.CharField(_('Name'), max_length=255, unique=True)
    description = models.TextField(_('Description'), blank=True)
    receipt_prefix = models.CharField(_('Receipt Prefix'), max_length=20, blank=True)
    retired = models.BooleanField(_('Retired'), default=False)
    date_created = models.DateTimeField(_('Date Created'), auto_now_add=True)

    class Meta:
        db_table = 'billing_cash_point'
        ordering = ['name']
        verbose_name = _('Cash Point')
        verbose_name_plural = _('Cash Points')

    def __str__(self):
        return self.name


class PaymentMode(models.Model):
    """A way of paying (cash, card, mobile money, insurance)."""
    name = models.CharField(_('Name'), max_length=100, unique=True)
    description = models.TextField(_('Description'), blank=True)
    sort_order = models.PositiveIntegerField(_('Sort Order'), default=0)
    retired = models.BooleanField(_('Retired'), default=False)

    class Meta:
        db_table = 'billing_payment_mode'
        ordering = ['sort_order', 'name']
        verbose_name = _('Payment Mode')
        verbose_name_plural = _('Payment Modes')

    def __str__(self):
        return self.name


class PaymentModeAttributeType(models.Model):
    """A piece of metadata a payment mode collects (e.g. card reference)."""
    payment_mode = models.ForeignKey(
        PaymentMode,
        on_delete=models.PROTECT,
        related_name='attribute_types',
        verbose_name=_('Payment Mode')
    )
    name = models.CharField(_('Name'), max_length=100)
    format = models.CharField(_('Format'), max_length=100, blank=True)
    required = models.BooleanField(_('Required'), default=False)
    attribute_order = models.PositiveIntegerField(_('Order'), default=0)
    retired = models.BooleanField(_('Retired'), default=False)

    class Meta:
        db_table = 'billing_payment_mode_attribute_type'
        ordering = ['attribute_order', 'name']
        verbose_name = _('Payment Mode Attribute Type')
        verbose_name_plural = _('Payment Mode Attribute Types')
        constraints = [
            models.UniqueConstraint(
                fields=['payment_mode', 'name'],
                name='uniq_attribute_type_per_mode'
            ),
        ]

    def __str__(self):
        return f"{self.payment_mode.name}: {self.name}"


class ReceiptNumberGenerator(models.Model):
    """
    Receipt sequence configuration.

    One row may exist per cash point; the single row with no cash point is
    the fallback shared by every other register.
    """
    cash_point = models.OneToOneField(
        CashPoint,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='receipt_generator',
        verbose_name=_('Cash Point')
    )
    cashier_prefix = models.CharField(_('Cashier Prefix'), max_length=20, blank=True)
    padding = models.PositiveSmallIntegerField(_('Sequence Padding'), default=6)
    next_sequence = models.PositiveBigIntegerField(_('Next Sequence'), default=1)

    class Meta:
        db_table = 'billing_receipt_number_generator'
        verbose_name = _('Receipt Number Generator')
        verbose_name_plural = _('Receipt Number Generators')
        constraints = [
            # NULL cash points collapse to 0, so only one fallback row can exist
            models.UniqueConstraint(
                Coalesce('cash_point', models.Value(0), output_field=models.BigIntegerField()),
                name='one_receipt_generator_per_scope'
            ),
        ]

    def __str__(self):
        return f"{self.cashier_prefix or '-'} ({self.cash_point or 'default'})"


class Bill(VoidableAuditModel):
    """
    One patient encounter's financial record.

    ``status`` is a cached value derived from the active line item and
    payment sums; only the ledger store writes it.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        PARTIALLY_PAID = 'PARTIALLY_PAID', _('Partially Paid')
        PAID = 'PAID', _('Paid')

    uuid = models.UUIDField(_('Correlation ID'), default=uuid.uuid4, unique=True, editable=False)
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='bills',
        verbose_name=_('Patient')
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Provider')
    )
    cash_point = models.ForeignKey(
        CashPoint,
        on_delete=models.PROTECT,
        related_name='bills',
        verbose_name=_('Cash Point')
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    receipt_number = models.CharField(
        _('Receipt Number'),
        max_length=255,
        null=True,
        blank=True,
        unique=True
    )
    receipt_printed = models.BooleanField(_('Receipt Printed'), default=False)
    version = models.PositiveIntegerField(_('Version'), default=0)

    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Changed By')
    )
    date_changed = models.DateTimeField(_('Date Changed'), null=True, blank=True)

    class Meta:
        db_table = 'billing_bill'
        ordering = ['-date_created', '-id']
        indexes = [
            models.Index(fields=['patient', 'voided'], name='billing_bil_patient_7e2c1a_idx'),
            models.Index(fields=['status'], name='billing_bil_status_3f9d0b_idx'),
        ]
        verbose_name = _('Bill')
        verbose_name_plural = _('Bills')

    def __str__(self):
        return f"Bill {self.pk} ({self.status})"


class BillLineItem(VoidableAuditModel):
    """
    One priced entry on a bill: a catalog service or a stock item.

    Exactly one of ``service``/``item`` is set, matching ``item_type``.
    """

    class ItemType(models.TextChoices):
        SERVICE = 'SERVICE', _('Service')
        ITEM = 'ITEM', _('Stock Item')

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        PAID = 'PAID', _('Paid')

    bill = models.ForeignKey(
        Bill,
        on_delete=models.PROTECT,
        related_name='line_items',
        verbose_name=_('Bill')
    )
    item_type = models.CharField(_('Item Type'), max_length=10, choices=ItemType.choices)
    service = models.ForeignKey(
        'catalog.BillableService',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Service')
    )
    item = models.ForeignKey(
        'catalog.StockItem',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Stock Item')
    )
    price_tier = models.ForeignKey(
        'catalog.ItemPrice',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Price Tier')
    )
    price = models.DecimalField(_('Unit Price'), max_digits=12, decimal_places=2)
    price_name = models.CharField(_('Price Name'), max_length=255, blank=True)
    quantity = models.PositiveIntegerField(_('Quantity'))
    line_item_order = models.PositiveIntegerField(_('Order'), default=1)
    payment_status = models.CharField(
        _('Payment Status'),
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    order_id = models.BigIntegerField(_('Source Order'), null=True, blank=True)

    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Changed By')
    )
    date_changed = models.DateTimeField(_('Date Changed'), null=True, blank=True)

    class Meta:
        db_table = 'billing_line_item'
        ordering = ['line_item_order', 'id']
        verbose_name = _('Bill Line Item')
        verbose_name_plural = _('Bill Line Items')
        constraints = [
            models.CheckConstraint(
                check=(
                    models.Q(item_type='SERVICE', service__isnull=False, item__isnull=True)
                    | models.Q(item_type='ITEM', service__isnull=True, item__isnull=False)
                ),
                name='line_item_exactly_one_target'
            ),
            models.CheckConstraint(
                check=models.Q(price__gte=Decimal('0')),
                name='line_item_price_non_negative'
            ),
            models.CheckConstraint(
                check=models.Q(quantity__gte=0),
                name='line_item_quantity_non_negative'
            ),
        ]

    def __str__(self):
        return f"{self.price_name or self.item_type} x{self.quantity} @ {self.price}"

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def ref(self):
        """The catalog reference as a ServiceRef or StockItemRef."""
        from .domain import ServiceRef, StockItemRef
        if self.item_type == self.ItemType.SERVICE:
            return ServiceRef(self.service_id)
        return StockItemRef(self.item_id)


class BillPayment(VoidableAuditModel):
    """One funds-received event against a bill."""
    uuid = models.UUIDField(_('Correlation ID'), default=uuid.uuid4, unique=True, editable=False)
    bill = models.ForeignKey(
        Bill,
        on_delete=models.PROTECT,
        related_name='payments',
        verbose_name=_('Bill')
    )
    payment_mode = models.ForeignKey(
        PaymentMode,
        on_delete=models.PROTECT,
        related_name='+',
        verbose_name=_('Payment Mode')
    )
    amount = models.DecimalField(_('Amount'), max_digits=12, decimal_places=2)
    amount_tendered = models.DecimalField(_('Amount Tendered'), max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'billing_payment'
        ordering = ['date_created', 'id']
        verbose_name = _('Bill Payment')
        verbose_name_plural = _('Bill Payments')
        constraints = [
            models.CheckConstraint(
                check=models.Q(amount__gt=Decimal('0')),
                name='payment_amount_positive'
            ),
            models.CheckConstraint(
                check=models.Q(amount_tendered__gte=models.F('amount')),
                name='payment_tendered_covers_amount'
            ),
        ]

    def __str__(self):
        return f"Payment {self.amount} ({self.payment_mode_id})"

    @property
    def change(self):
        return self.amount_tendered - self.amount


class BillPaymentAttribute(VoidableAuditModel):
    """Mode-specific key/value metadata attached to one payment."""
    payment = models.ForeignKey(
        BillPayment,
        on_delete=models.PROTECT,
        related_name='attributes',
        verbose_name=_('Payment')
    )
    attribute_type = models.ForeignKey(
        PaymentModeAttributeType,
        on_delete=models.PROTECT,
        related_name='+',
        verbose_name=_('Attribute Type')
    )
    value_reference = models.CharField(_('Value'), max_length=255)

    class Meta:
        db_table = 'billing_payment_attribute'
        ordering = ['attribute_type__attribute_order', 'id']
        verbose_name = _('Bill Payment Attribute')
        verbose_name_plural = _('Bill Payment Attributes')

    def __str__(self):
        return f"{self.attribute_type.name}={self.value_reference}"
