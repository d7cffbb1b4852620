"""
Ledger value types and the status derivation rule.

Nothing here touches the database.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union

from .exceptions import LedgerValidationError

ZERO = Decimal('0.00')

# Matches VoidableAuditModel.void_reason
VOID_REASON_MAX_LENGTH = 255


class BillStatus:
    PENDING = 'PENDING'
    PARTIALLY_PAID = 'PARTIALLY_PAID'
    PAID = 'PAID'


class LineItemPaymentStatus:
    PENDING = 'PENDING'
    PAID = 'PAID'


@dataclass(frozen=True)
class ServiceRef:
    """A line item that bills a catalog service."""
    service_id: int

    kind = 'SERVICE'


@dataclass(frozen=True)
class StockItemRef:
    """A line item that bills a stock item."""
    item_id: int

    kind = 'ITEM'


CatalogRef = Union[ServiceRef, StockItemRef]


@dataclass
class LineItemSpec:
    """
    Everything needed to insert one line item.

    ``price`` and ``price_name`` may be left out when ``price_tier_id`` is
    given; the catalog fills them from the tier.
    """
    ref: CatalogRef
    quantity: int = 1
    price: Optional[Decimal] = None
    price_tier_id: Optional[int] = None
    price_name: str = ''
    line_item_order: Optional[int] = None
    order_id: Optional[int] = None
    payment_status: str = LineItemPaymentStatus.PENDING


@dataclass(frozen=True)
class BillTotals:
    total: Decimal
    paid: Decimal

    @property
    def balance(self):
        return self.total - self.paid


@dataclass
class BillDetail:
    """A bill together with the children a reader is allowed to see."""
    bill: object
    line_items: List[object] = field(default_factory=list)
    payments: List[object] = field(default_factory=list)
    totals: BillTotals = None


def derive_status(total, paid):
    """
    Settlement status as a pure function of the two running sums.

    A zero total is always PENDING, whatever has been paid.
    """
    if total > ZERO and paid >= total:
        return BillStatus.PAID
    if ZERO < paid < total:
        return BillStatus.PARTIALLY_PAID
    return BillStatus.PENDING


def to_decimal(value, field_name):
    if value is None:
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except ArithmeticError:
            raise LedgerValidationError(f'{field_name} must be a decimal number', field=field_name)
    if not amount.is_finite():
        raise LedgerValidationError(f'{field_name} must be a finite number', field=field_name)
    return amount


def require_positive_amount(value, field_name='amount'):
    amount = to_decimal(value, field_name)
    if amount is None or amount <= ZERO:
        raise LedgerValidationError(f'{field_name} must be greater than zero', field=field_name)
    return amount


def require_positive_quantity(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise LedgerValidationError('quantity must be an integer', field='quantity')
    if value <= 0:
        raise LedgerValidationError('quantity must be greater than zero', field='quantity')
    return value


def require_reason(reason):
    if reason is None or not str(reason).strip():
        raise LedgerValidationError('A void reason is required', field='reason')
    reason = str(reason).strip()
    if len(reason) > VOID_REASON_MAX_LENGTH:
        raise LedgerValidationError(
            f'A void reason may not exceed {VOID_REASON_MAX_LENGTH} characters',
            field='reason'
        )
    return reason


def require_actor(actor):
    """Voids are attributed; an anonymous void is rejected."""
    if actor is None or getattr(actor, 'pk', None) is None:
        raise LedgerValidationError('A void must be made by a known user', field='actor')
    return actor
