"""
Collaborators the ledger consumes through narrow interfaces.

The identity resolver turns an opaque patient handle into the numeric
patient key; the catalog provider validates line item references and
supplies tier prices. Lookups are synchronous and never retried.
"""
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.catalog.models import BillableService, ItemPrice, StockItem
from apps.patients.models import Patient

from .domain import ServiceRef, StockItemRef
from .exceptions import LedgerValidationError, NotFound


class IdentityResolver:
    """Patient handle -> Patient row."""

    def _parse_handle(self, handle):
        if isinstance(handle, uuid.UUID):
            return handle
        try:
            return uuid.UUID(str(handle))
        except (ValueError, TypeError, AttributeError):
            raise NotFound(f'Patient {handle} not found', patient_handle=handle)

    def resolve_patient(self, handle):
        """
        Resolve a handle to an active patient.

        Raises NotFound for unknown handles and for voided (retired) patients.
        """
        key = self._parse_handle(handle)
        try:
            patient = Patient.objects.get(uuid=key)
        except (Patient.DoesNotExist, DjangoValidationError):
            raise NotFound(f'Patient {handle} not found', patient_handle=handle)
        if patient.voided:
            raise NotFound(f'Patient {handle} is retired', patient_handle=handle)
        return patient


class CatalogProvider:
    """Validates catalog references and resolves price tiers."""

    def get_target(self, ref):
        if isinstance(ref, ServiceRef):
            model, pk, label = BillableService, ref.service_id, 'Service'
        elif isinstance(ref, StockItemRef):
            model, pk, label = StockItem, ref.item_id, 'Stock item'
        else:
            raise LedgerValidationError(
                'A line item must reference exactly one service or stock item',
                field='ref'
            )
        target = model.objects.filter(pk=pk).first()
        if target is None or target.retired:
            raise NotFound(f'{label} {pk} not found')
        return target

    def get_price_tier(self, ref, price_tier_id):
        """Return the tier, checking it belongs to the referenced entity."""
        tier = ItemPrice.objects.filter(pk=price_tier_id, voided=False).first()
        if tier is None:
            raise NotFound(f'Price tier {price_tier_id} not found')
        if isinstance(ref, ServiceRef):
            belongs = tier.service_id == ref.service_id
        else:
            belongs = tier.item_id == ref.item_id
        if not belongs:
            raise LedgerValidationError(
                f'Price tier {price_tier_id} does not belong to the referenced entry',
                field='price_tier_id'
            )
        return tier


identity_resolver = IdentityResolver()
catalog_provider = CatalogProvider()
