"""
PDC State Machine Engine.

The only code path that changes PDCCheque.status. A transition:

1. loads the cheque and its version,
2. rejects a stale caller (ConcurrentModification) or an edge that is not in
   PDC_TRANSITIONS (InvalidTransition),
3. writes the new status, its transition fields and version + 1 with a
   compare-and-swap UPDATE on the expected version,
4. runs the ledger-affecting hook for the target status inside the same
   atomic block, so a failed ledger call rolls the status back,
5. queues cache invalidation and notifications for after commit.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.core.audit import log_transition_audit
from apps.core.utils import as_date
from apps.pdc import cache
from apps.pdc.exceptions import (
    ConcurrentModification, InvalidTransition, PDCDoesNotExist, PDCError,
)
from apps.pdc.models import PDCCheque, PDCStatus, PDC_TRANSITIONS
from . import notifications
from .bounce import handle_bounce, verify_replacement_exists
from .reconciliation import reconcile_cleared_pdc

logger = logging.getLogger(__name__)


# Ledger-affecting hooks, run inside the transition's transaction.
SIDE_EFFECT_HOOKS = {
    PDCStatus.CLEARED: reconcile_cleared_pdc,
    PDCStatus.BOUNCED: handle_bounce,
    PDCStatus.REPLACED: verify_replacement_exists,
}

# Tenant notifications queued after commit.
TRANSITION_NOTIFICATIONS = {
    PDCStatus.CLEARED: notifications.PDC_CLEARED,
    PDCStatus.BOUNCED: notifications.PDC_BOUNCED,
    PDCStatus.CANCELLED: notifications.PDC_CANCELLED,
    PDCStatus.REPLACED: notifications.PDC_REPLACED,
}


def coerce_status(value):
    """Accept PDCStatus members, their values ('due') or names ('DUE')."""
    if isinstance(value, PDCStatus):
        return value
    text = str(value or '').strip()
    try:
        return PDCStatus(text.lower())
    except ValueError:
        raise InvalidTransition(f'Unknown PDC status: {value!r}', target_status=text)


def is_legal_edge(from_status, to_status):
    return to_status in PDC_TRANSITIONS.get(from_status, ())


def _event_date(context, key):
    """Date for a transition field: explicit value, else the as-of date, else today."""
    return as_date(context.get(key)) or as_date(context.get('as_of')) or timezone.localdate()


def _transition_fields(pdc, target_status, context):
    """Column writes that belong to the edge being taken."""
    if target_status == PDCStatus.DEPOSITED:
        deposit_date = _event_date(context, 'deposit_date')
        return {
            'deposit_date': deposit_date,
            'bank_account_ref': context.get('bank_account_ref') or '',
        }

    if target_status == PDCStatus.CLEARED:
        cleared_date = _event_date(context, 'cleared_date')
        if pdc.deposit_date and cleared_date < pdc.deposit_date:
            raise ValidationError({'cleared_date': 'Cleared date cannot be before the deposit date.'})
        return {'cleared_date': cleared_date}

    if target_status == PDCStatus.BOUNCED:
        bounce_reason = (context.get('bounce_reason') or '').strip()
        if not bounce_reason:
            raise ValidationError({'bounce_reason': 'A bounce reason is required.'})
        bounced_date = _event_date(context, 'bounced_date')
        if pdc.deposit_date and bounced_date < pdc.deposit_date:
            raise ValidationError({'bounced_date': 'Bounced date cannot be before the deposit date.'})
        return {'bounced_date': bounced_date, 'bounce_reason': bounce_reason}

    if target_status == PDCStatus.CANCELLED:
        return {
            'cancelled_date': _event_date(context, 'cancelled_date'),
            'cancellation_reason': (context.get('cancellation_reason') or '').strip(),
        }

    return {}


def load_pdc(pdc_id):
    try:
        return PDCCheque.objects.get(pk=pdc_id, is_active=True)
    except (PDCCheque.DoesNotExist, ValueError, TypeError):
        raise PDCDoesNotExist(f'PDC {pdc_id} does not exist.', pdc_id=pdc_id)


def transition(pdc_id, target_status, expected_version, context=None, user=None):
    """
    Move a cheque to target_status.

    Args:
        pdc_id: Primary key of the cheque
        target_status: PDCStatus (or its value/name)
        expected_version: The version the caller read; must match the stored one
        context: Transition fields (deposit_date, cleared_date, bounced_date,
                 bounce_reason, cancellation_reason, bank_account_ref, as_of)
        user: Acting user for audit columns and the audit log

    Returns:
        PDCCheque: The cheque as committed, with the incremented version

    Raises:
        PDCDoesNotExist, ConcurrentModification, InvalidTransition,
        ReconciliationOverflow, ReplacementValidationFailed,
        ExternalServiceFailure, ValidationError (bad transition fields)
    """
    context = dict(context or {})
    target_status = coerce_status(target_status)

    with transaction.atomic():
        pdc = load_pdc(pdc_id)
        from_status = PDCStatus(pdc.status)

        if expected_version is None or int(expected_version) != pdc.version:
            raise ConcurrentModification(
                f'PDC {pdc.pdc_number} is at version {pdc.version}, not {expected_version}.',
                pdc_id=pdc.pk, current_status=from_status, target_status=target_status,
                details={'current_version': pdc.version, 'expected_version': expected_version},
            )

        if not is_legal_edge(from_status, target_status):
            raise InvalidTransition(
                f'PDC {pdc.pdc_number} cannot move from {from_status.label} to {target_status.label}.',
                pdc_id=pdc.pk, current_status=from_status, target_status=target_status,
                details={'allowed': [status.value for status in PDC_TRANSITIONS[from_status]]},
            )

        updates = _transition_fields(pdc, target_status, context)
        updates.update({
            'status': target_status,
            'version': F('version') + 1,
            'updated_at': timezone.now(),
        })
        if user is not None and getattr(user, 'is_authenticated', False):
            updates['updated_by'] = user

        rows = PDCCheque.objects.filter(
            pk=pdc.pk, version=pdc.version, status=from_status
        ).update(**updates)
        if rows != 1:
            raise ConcurrentModification(
                f'PDC {pdc.pdc_number} was changed by another request.',
                pdc_id=pdc.pk, current_status=from_status, target_status=target_status,
            )

        pdc = PDCCheque.objects.get(pk=pdc.pk)

        hook = SIDE_EFFECT_HOOKS.get(target_status)
        if hook is not None:
            try:
                hook(pdc, context, user)
            except PDCError as exc:
                exc.pdc_id = pdc.pk
                exc.current_status = from_status
                exc.target_status = target_status
                raise
            pdc = PDCCheque.objects.get(pk=pdc.pk)

        log_transition_audit(pdc, from_status.value, target_status.value, user=user, details={
            key: value for key, value in updates.items() if key not in ('version', 'updated_at', 'updated_by')
        })

        cache.invalidate_on_commit(pdc.pk)
        template_type = TRANSITION_NOTIFICATIONS.get(target_status)
        if template_type:
            notifications.notify_on_commit(pdc, template_type, previous_status=from_status.value)

    logger.info("PDC %s moved %s -> %s (version %s)", pdc.pdc_number, from_status.value, target_status.value, pdc.version)
    return pdc
