"""
Audit Logging Utility.
Append-only trail of every lifecycle action on cheques and ledger postings.
"""
import json
from decimal import Decimal

from .middleware import get_current_user, get_current_request
from .utils import get_client_ip


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def log_audit(user, action, model_name, record_id=None, changes=None, request=None):
    """
    Create an audit log entry.

    Args:
        user: The user performing the action (None for background jobs;
              falls back to the request user on this thread)
        action: One of AuditLog.ACTION_CHOICES
        model_name: Name of the model being modified
        record_id: Primary key of the record
        changes: Dictionary describing the change
        request: HTTP request object (optional)
    """
    from .models import AuditLog

    if user is None:
        user = get_current_user()
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None

    ip_address = get_client_ip(request or get_current_request())

    changes = {key: serialize_value(value) for key, value in (changes or {}).items()}
    try:
        json.dumps(changes)
    except (TypeError, ValueError):
        changes = {'message': str(changes)}

    return AuditLog.objects.create(
        user=user,
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id is not None else '',
        changes=changes,
        ip_address=ip_address
    )


def log_transition_audit(pdc, from_status, to_status, user=None, details=None):
    """Log a PDC status transition with the before/after state."""
    changes = {
        'pdc_number': pdc.pdc_number,
        'cheque_number': pdc.cheque_number,
        'from_status': from_status,
        'to_status': to_status,
        'version': pdc.version,
        'amount': pdc.amount,
    }
    if details:
        changes.update(details)
    return log_audit(user, 'transition', 'pdc.PDCCheque', pdc.pk, changes)


def get_entity_audit_history(model_name, record_id):
    """
    Audit history for a single record, newest first.
    """
    from .models import AuditLog

    return AuditLog.objects.filter(
        model=model_name,
        record_id=str(record_id)
    ).select_related('user')
