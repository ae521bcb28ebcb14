"""
Request-scoped user tracking for audit columns and the audit log.
"""
import threading
from django.utils.deprecation import MiddlewareMixin

_thread_locals = threading.local()


def get_current_user():
    """User of the request being served on this thread, if any."""
    return getattr(_thread_locals, 'user', None)


def get_current_request():
    """Request being served on this thread, if any."""
    return getattr(_thread_locals, 'request', None)


def _clear():
    for attr in ('user', 'request'):
        if hasattr(_thread_locals, attr):
            delattr(_thread_locals, attr)


class AuditMiddleware(MiddlewareMixin):
    """
    Stores the current user and request in thread local storage so that
    BaseModel.save() and log_audit() can attribute writes without the
    request being passed through every service call.
    """

    def process_request(self, request):
        _thread_locals.user = getattr(request, 'user', None)
        _thread_locals.request = request

    def process_response(self, request, response):
        _clear()
        return response

    def process_exception(self, request, exception):
        _clear()
        return None
