"""
Request correlation middleware.

Generates or propagates X-Request-ID and keeps it, together with the acting
user id, in a context variable so ledger logs can be joined per request.
"""
import uuid
import time
import logging
from contextvars import ContextVar

from django.utils.deprecation import MiddlewareMixin

from .metrics import metrics

_request_id = ContextVar('request_id', default=None)
_trace_id = ContextVar('trace_id', default=None)
_user_id = ContextVar('user_id', default=None)

logger = logging.getLogger(__name__)


def get_request_id():
    return _request_id.get()


def get_trace_id():
    return _trace_id.get()


def get_user_id():
    return _user_id.get()


def bind_request_context(request_id=None, trace_id=None, user_id=None):
    """Bind correlation values for the current execution context."""
    _request_id.set(request_id)
    _trace_id.set(trace_id)
    _user_id.set(user_id)


def clear_request_context():
    """Reset correlation values (used between requests and in tests)."""
    bind_request_context()


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Attach correlation ids to each request and response.

    - Generates or propagates X-Request-ID
    - Propagates X-Trace-ID when the caller supplies one
    - Logs request completion with its duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'

    def process_request(self, request):
        request.request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.trace_id = request.META.get(self.TRACE_ID_HEADER)
        request.start_time = time.time()

        user = getattr(request, 'user', None)
        user_id = str(user.pk) if user is not None and user.is_authenticated else None
        bind_request_context(request.request_id, request.trace_id, user_id)

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        match = getattr(request, 'resolver_match', None)
        metrics.http_requests_total.labels(
            path=match.route if match is not None else 'unmatched',
            method=request.method,
            status=response.status_code
        ).inc()

        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000
            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
            }
        )
