"""
Bounce & Replacement Handler.

- handle_bounce: DEPOSITED -> BOUNCED hook. Books the late fee on the
  ledger and bumps the tenant's bounce counter.
- register_replacement: creates the replacement cheque and moves the
  bounced original to REPLACED in one transaction.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.core.audit import log_audit
from apps.core.utils import as_date
from apps.pdc import cache
from apps.pdc.exceptions import (
    ConcurrentModification, ExternalServiceFailure, PDCError,
    ReplacementValidationFailed,
)
from apps.pdc.gateways import get_ledger_service
from apps.pdc.models import PDCCheque, PDCStatus, TenantBounceCounter

logger = logging.getLogger(__name__)

LATE_FEE_REASON = 'PDC_BOUNCED'
CENT = Decimal('0.01')


def compute_late_fee(amount, fee_type=None, fee_value=None):
    """
    Late fee for a bounced cheque.

    fee_type 'percentage' charges fee_value percent of amount, 'flat'
    charges fee_value. Rounded half-up to cents, never negative.
    """
    fee_type = (fee_type or settings.PDC_LATE_FEE_TYPE).lower()
    fee_value = Decimal(str(settings.PDC_LATE_FEE_VALUE if fee_value is None else fee_value))

    if fee_type == 'percentage':
        fee = Decimal(amount) * fee_value / Decimal('100')
    elif fee_type == 'flat':
        fee = fee_value
    else:
        raise ValueError(f'Unknown late fee type: {fee_type}')

    return max(fee, Decimal('0')).quantize(CENT, rounding=ROUND_HALF_UP)


def handle_bounce(pdc, context=None, user=None):
    fee = compute_late_fee(pdc.amount)
    fee_ref = ''

    if fee > 0 and (pdc.lease_ref or pdc.invoice_ref):
        try:
            result = get_ledger_service().apply_late_fee(
                pdc.lease_ref, fee, LATE_FEE_REASON,
                source_ref=f'{pdc.pk}:bounce',
                invoice_ref=pdc.invoice_ref,
            )
        except PDCError:
            raise
        except Exception as exc:
            raise ExternalServiceFailure(
                f'Ledger rejected late fee for cheque {pdc.cheque_number}: {exc}',
                pdc_id=pdc.pk,
                details={'lease_ref': pdc.lease_ref, 'fee': str(fee)},
            ) from exc
        fee_ref = str(result.get('fee_line_id') or '')
    elif fee > 0:
        logger.warning("PDC %s bounced with no lease or invoice to charge a late fee to", pdc.pdc_number)
        fee = None

    PDCCheque.objects.filter(pk=pdc.pk).update(late_fee_amount=fee, late_fee_ref=fee_ref)

    counter, _ = TenantBounceCounter.objects.get_or_create(tenant_ref=pdc.tenant_ref)
    TenantBounceCounter.objects.filter(pk=counter.pk).update(
        bounce_count=F('bounce_count') + 1,
        last_bounced_date=pdc.bounced_date,
    )

    log_audit(user, 'late_fee', 'pdc.PDCCheque', pdc.pk, {
        'pdc_number': pdc.pdc_number,
        'bounce_reason': pdc.bounce_reason,
        'late_fee_amount': fee,
        'late_fee_ref': fee_ref,
        'tenant_ref': pdc.tenant_ref,
    })
    logger.info("PDC %s bounced (%s), late fee %s", pdc.pdc_number, pdc.bounce_reason, fee)


def verify_replacement_exists(pdc, context=None, user=None):
    """BOUNCED -> REPLACED hook: the replacement must already be registered."""
    if not PDCCheque.objects.filter(replacement_of=pdc).exists():
        raise ReplacementValidationFailed(
            f'PDC {pdc.pdc_number} has no registered replacement cheque.',
            pdc_id=pdc.pk,
            details={'replacement_of': 'Register the replacement cheque to mark this cheque replaced.'},
        )


def replacement_chain(pdc):
    """
    Cheques this one replaces, nearest first, following replacement_of.
    Raises ReplacementValidationFailed if the chain loops.
    """
    chain = []
    seen = {pdc.pk}
    current = pdc.replacement_of
    while current is not None:
        if current.pk in seen:
            raise ReplacementValidationFailed(
                f'Replacement chain of PDC {pdc.pdc_number} contains a cycle.',
                pdc_id=pdc.pk,
            )
        seen.add(current.pk)
        chain.append(current)
        current = current.replacement_of
    return chain


def _parse_amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    # NaN and Infinity parse but cannot be compared or stored
    if not amount.is_finite():
        return None
    return amount


def validate_replacement(original, fields, today):
    """
    Check a replacement for original. Returns cleaned values or raises
    ReplacementValidationFailed with per-field errors.
    """
    errors = {}

    if original.status != PDCStatus.BOUNCED:
        errors['replacement_of'] = f'Only bounced cheques can be replaced (current status: {original.get_status_display()}).'
    elif PDCCheque.objects.filter(replacement_of=original).exists():
        errors['replacement_of'] = 'This cheque already has a replacement.'

    cheque_number = str(fields.get('cheque_number') or '').strip()
    bank_name = str(fields.get('bank_name') or '').strip()
    amount = _parse_amount(fields.get('amount'))
    try:
        cheque_date = as_date(fields.get('cheque_date'))
    except ValueError:
        cheque_date = None

    if not cheque_number:
        errors['cheque_number'] = 'Cheque number is required.'
    elif PDCCheque.objects.filter(tenant_ref=original.tenant_ref, cheque_number=cheque_number).exists():
        errors['cheque_number'] = f'Cheque number {cheque_number} already exists for this tenant.'

    if not bank_name:
        errors['bank_name'] = 'Bank name is required.'

    if amount is None:
        errors['amount'] = 'A valid amount is required.'
    elif amount < original.amount:
        errors['amount'] = f'Replacement amount must be at least {original.amount}.'

    if cheque_date is None:
        errors['cheque_date'] = 'A valid cheque date is required.'
    elif cheque_date <= today:
        errors['cheque_date'] = 'Replacement cheque date must be after today.'

    if not errors:
        # The new cheque is not saved yet, so it can only close a loop if the
        # original's own chain already loops.
        replacement_chain(original)

    if errors:
        raise ReplacementValidationFailed(
            f'Replacement for PDC {original.pdc_number} is not valid.',
            pdc_id=original.pk,
            current_status=original.status,
            details=errors,
        )

    return {
        'cheque_number': cheque_number,
        'bank_name': bank_name,
        'amount': amount,
        'cheque_date': cheque_date,
        'notes': fields.get('notes') or '',
    }


def register_replacement(bounced_pdc_id, fields, expected_version=None, user=None, today=None):
    """
    Register the replacement for a bounced cheque.

    The new cheque inherits the tenant, lease and invoice of the original and
    starts RECEIVED; the original moves BOUNCED -> REPLACED. Both writes
    commit together or not at all.

    Returns:
        PDCCheque: the replacement cheque
    """
    from .state_machine import load_pdc, transition

    today = as_date(today) or timezone.localdate()

    with transaction.atomic():
        original = load_pdc(bounced_pdc_id)

        if expected_version is not None and int(expected_version) != original.version:
            raise ConcurrentModification(
                f'PDC {original.pdc_number} is at version {original.version}, not {expected_version}.',
                pdc_id=original.pk, current_status=original.status, target_status=PDCStatus.REPLACED,
            )

        cleaned = validate_replacement(original, fields, today)

        try:
            with transaction.atomic():
                replacement = PDCCheque.objects.create(
                    tenant_ref=original.tenant_ref,
                    lease_ref=original.lease_ref,
                    invoice_ref=original.invoice_ref,
                    replacement_of=original,
                    created_by=user if getattr(user, 'is_authenticated', False) else None,
                    **cleaned
                )
        except IntegrityError:
            # Lost a race after validation; re-check to name the field that collided.
            if PDCCheque.objects.filter(
                tenant_ref=original.tenant_ref, cheque_number=cleaned['cheque_number']
            ).exists():
                raise ReplacementValidationFailed(
                    f'Cheque number {cleaned["cheque_number"]} was registered by another request.',
                    pdc_id=original.pk,
                    current_status=original.status,
                    details={'cheque_number': f'Cheque number {cleaned["cheque_number"]} already exists for this tenant.'},
                )
            raise ReplacementValidationFailed(
                f'PDC {original.pdc_number} was replaced by another request.',
                pdc_id=original.pk,
                current_status=original.status,
                details={'replacement_of': 'This cheque already has a replacement.'},
            )

        transition(
            original.pk, PDCStatus.REPLACED, original.version,
            context={'replacement_id': replacement.pk}, user=user,
        )

        log_audit(user, 'replace', 'pdc.PDCCheque', original.pk, {
            'pdc_number': original.pdc_number,
            'replacement_id': replacement.pk,
            'replacement_number': replacement.pdc_number,
            'replacement_amount': replacement.amount,
            'replacement_cheque_date': replacement.cheque_date,
        })
        cache.invalidate_on_commit(replacement.pk)

    logger.info("PDC %s replaced by %s", original.pdc_number, replacement.pdc_number)
    return PDCCheque.objects.get(pk=replacement.pk)


def get_replacement(pdc_id):
    try:
        return PDCCheque.objects.get(replacement_of_id=pdc_id)
    except PDCCheque.DoesNotExist:
        return None
