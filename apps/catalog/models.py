"""
Catalog models - billable services, stock items and their price tiers.

The ledger copies price and label onto each line item at billing time, so
later catalog edits never change an existing bill.
"""
from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class BillableService(models.Model):
    """A service that can be billed (consultation, lab test, procedure)."""
    name = models.CharField(_('Name'), max_length=255)
    short_name = models.CharField(_('Short Name'), max_length=50, blank=True)
    description = models.TextField(_('Description'), blank=True)
    retired = models.BooleanField(_('Retired'), default=False)
    date_created = models.DateTimeField(_('Date Created'), auto_now_add=True)

    class Meta:
        db_table = 'catalog_billable_service'
        ordering = ['name']
        verbose_name = _('Billable Service')
        verbose_name_plural = _('Billable Services')

    def __str__(self):
        return self.name


class StockItem(models.Model):
    """A stock item that can be dispensed and billed."""
    code = models.CharField(_('Code'), max_length=100, unique=True)
    name = models.CharField(_('Name'), max_length=255)
    description = models.TextField(_('Description'), blank=True)
    department = models.CharField(_('Department'), max_length=100, blank=True)
    retired = models.BooleanField(_('Retired'), default=False)
    date_created = models.DateTimeField(_('Date Created'), auto_now_add=True)

    class Meta:
        db_table = 'catalog_stock_item'
        ordering = ['name']
        indexes = [
            models.Index(fields=['code'], name='catalog_sto_code_5d1f2a_idx'),
            models.Index(fields=['name'], name='catalog_sto_name_8c3b7e_idx'),
        ]
        verbose_name = _('Stock Item')
        verbose_name_plural = _('Stock Items')

    def __str__(self):
        return f"{self.name} ({self.code})"


class ItemPrice(models.Model):
    """
    A named price tier for exactly one service or stock item.

    Examples: "Standard", "Insurance", "Staff".
    """
    service = models.ForeignKey(
        BillableService,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='prices',
        verbose_name=_('Service')
    )
    item = models.ForeignKey(
        StockItem,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='prices',
        verbose_name=_('Stock Item')
    )
    name = models.CharField(_('Tier Name'), max_length=100)
    price = models.DecimalField(_('Price'), max_digits=12, decimal_places=2)
    voided = models.BooleanField(_('Voided'), default=False)
    date_created = models.DateTimeField(_('Date Created'), auto_now_add=True)

    class Meta:
        db_table = 'catalog_item_price'
        ordering = ['date_created']
        verbose_name = _('Item Price')
        verbose_name_plural = _('Item Prices')
        constraints = [
            models.CheckConstraint(
                check=(
                    models.Q(service__isnull=False, item__isnull=True)
                    | models.Q(service__isnull=True, item__isnull=False)
                ),
                name='item_price_exactly_one_target'
            ),
            models.CheckConstraint(
                check=models.Q(price__gte=Decimal('0')),
                name='item_price_non_negative'
            ),
        ]

    def __str__(self):
        target = self.service or self.item
        return f"{target} - {self.name}: {self.price}"
