"""
Tracing support through the OpenTelemetry API.

Without a configured SDK the API hands out non-recording spans, so
``trace_span`` is always safe to use.
"""
import logging
import time
from contextlib import contextmanager
from typing import Optional, Dict, Any

from opentelemetry import trace
from opentelemetry.trace import SpanKind

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)

_SPAN_KINDS = {
    'server': SpanKind.SERVER,
    'client': SpanKind.CLIENT,
    'internal': SpanKind.INTERNAL,
}


@contextmanager
def trace_span(
    name: str,
    kind: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Context manager for creating trace spans.

    Usage:
        with trace_span('billing.apply_payment', attributes={'bill_id': bill_id}):
            ...
    """
    start_time = time.time()
    span_kind = _SPAN_KINDS.get(kind, SpanKind.INTERNAL)

    with tracer.start_as_current_span(name, kind=span_kind) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            span.set_attribute('error', True)
            span.set_attribute('error.type', e.__class__.__name__)
            logger.debug(
                f'Span failed: {name}',
                extra={
                    'event': 'span_error',
                    'span_name': name,
                    'duration_ms': (time.time() - start_time) * 1000,
                    'error_type': e.__class__.__name__,
                }
            )
            raise
