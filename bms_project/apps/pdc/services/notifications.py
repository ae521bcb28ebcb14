"""
Fire-and-forget notification dispatch.

Notifications never take part in the transaction that triggered them: they
are handed to Celery only after commit, and a broker failure is logged and
dropped.
"""
import logging
from functools import partial

from django.db import transaction

from apps.core.audit import serialize_value

logger = logging.getLogger(__name__)

DEPOSIT_APPROACHING = 'deposit-approaching'
DEPOSIT_DUE_SOON = 'deposit-due-soon'
PDC_CLEARED = 'pdc-cleared'
PDC_BOUNCED = 'pdc-bounced'
PDC_CANCELLED = 'pdc-cancelled'
PDC_REPLACED = 'pdc-replaced'


def build_payload(pdc, **extra):
    payload = {
        'pdc_id': pdc.pk,
        'pdc_number': pdc.pdc_number,
        'cheque_number': pdc.cheque_number,
        'bank_name': pdc.bank_name,
        'amount': pdc.amount,
        'cheque_date': pdc.cheque_date,
        'status': pdc.status,
        'tenant_ref': pdc.tenant_ref,
        'lease_ref': pdc.lease_ref,
        'invoice_ref': pdc.invoice_ref,
    }
    payload.update(extra)
    return {key: serialize_value(value) for key, value in payload.items()}


def dispatch_notification(recipient_ref, template_type, payload, reminder_id=None):
    """Queue delivery now. Never raises."""
    from apps.pdc.tasks import deliver_notification, mark_reminder

    try:
        deliver_notification.delay(recipient_ref, template_type, payload, reminder_id=reminder_id)
    except Exception as exc:
        logger.exception("Could not queue %s notification for %s", template_type, recipient_ref)
        mark_reminder(reminder_id, error=f'{exc.__class__.__name__}: {exc}')


def notify_on_commit(pdc, template_type, reminder_id=None, **extra):
    """Queue a tenant notification once the current transaction commits."""
    payload = build_payload(pdc, **extra)
    transaction.on_commit(partial(
        dispatch_notification, pdc.tenant_ref, template_type, payload, reminder_id=reminder_id,
    ))
