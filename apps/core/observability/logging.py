"""
Structured logging with PHI/PII protection.

Ledger logs carry ids and amounts only. Patient identity and free-text
payment attributes are redacted before they reach a handler.
"""
import logging
import json
from datetime import datetime, timezone

from .correlation import get_request_id, get_trace_id, get_user_id


# Keys that must never be emitted verbatim
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'api_key',
    'given_name',
    'family_name',
    'patient_name',
    'first_name',
    'last_name',
    'phone',
    'phone_number',
    'email',
    'address',
    'birthdate',
    'date_of_birth',
    'value_reference',
    'attributes',
    'notes',
}

# Attributes every LogRecord has; never copied into the JSON payload
_RESERVED_RECORD_KEYS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
])


class CorrelationFilter(logging.Filter):
    """Inject request correlation ids into every record."""

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        record.trace_id = get_trace_id() or '-'
        record.user_id = get_user_id() or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """
    Render records as one JSON object per line.

    Fields passed through ``extra={}`` are included after redaction.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'trace_id': getattr(record, 'trace_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
        }

        for key, value in record.__dict__.items():
            if key in log_data or key.startswith('_') or key in _RESERVED_RECORD_KEYS:
                continue
            if key.lower() in SENSITIVE_FIELDS:
                log_data[key] = '[REDACTED]'
            else:
                log_data[key] = _sanitize_value(value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _sanitize_value(value):
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    return value


def get_sanitized_logger(name):
    """
    Get a logger with the correlation filter attached.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Payment applied', extra={'bill_id': bill.pk})
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())
    return logger


def sanitize_dict(data):
    """Return a copy of ``data`` with sensitive keys redacted, recursively."""
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_FIELDS:
            sanitized[key] = '[REDACTED]'
        else:
            sanitized[key] = _sanitize_value(value)
    return sanitized
