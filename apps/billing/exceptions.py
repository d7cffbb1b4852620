"""
Ledger error taxonomy.

Every error raised inside a unit of work aborts it and reaches the caller
unchanged. ``StatusConflictError`` is the only one retried automatically.
"""
from django.core.exceptions import ValidationError


class LedgerError(Exception):
    """Base class for all billing ledger errors."""
    error_type = 'ledger_error'

    def __init__(self, message='', **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        return self.message


class NotFound(LedgerError):
    """Referenced patient, bill, payment or line item is missing or voided."""
    error_type = 'not_found'


class LedgerValidationError(LedgerError, ValidationError):
    """Input rejected before anything is written."""
    error_type = 'validation_error'

    def __init__(self, message='', field=None, **context):
        ValidationError.__init__(self, message)
        self.message = message
        self.field = field
        self.context = context

    def __str__(self):
        return self.message


class ConflictError(LedgerError):
    error_type = 'conflict'


class DuplicateCorrelationId(ConflictError):
    """The store rejected a freshly generated bill correlation id."""
    error_type = 'duplicate_correlation_id'


class StatusConflictError(ConflictError):
    """Bill version moved between reading the sums and writing the status."""
    error_type = 'status_conflict'


class StoreError(LedgerError):
    """The underlying transaction could not commit."""
    error_type = 'store_error'
