"""
Reconciliation Engine: applies a cleared cheque to its invoice, once.

Runs as the DEPOSITED -> CLEARED hook inside the transition's transaction.
One cheque is never split; several cheques may settle one invoice as long as
their sum stays within the invoice total.
"""
import logging
from decimal import Decimal

from apps.core.audit import log_audit
from apps.pdc.exceptions import (
    ExternalServiceFailure, OverAllocation, PDCError, ReconciliationOverflow,
)
from apps.pdc.gateways import get_ledger_service
from apps.pdc.models import PDCCheque, PDCStatus

logger = logging.getLogger(__name__)


def _overflow(pdc, outstanding):
    return ReconciliationOverflow(
        f'Cheque {pdc.cheque_number} ({pdc.amount}) exceeds the outstanding balance '
        f'{outstanding} of invoice {pdc.invoice_ref}.',
        pdc_id=pdc.pk,
        details={'invoice_ref': pdc.invoice_ref, 'amount': str(pdc.amount), 'outstanding': str(outstanding)},
    )


def reconcile_cleared_pdc(pdc, context=None, user=None):
    """
    Apply pdc.amount to pdc.invoice_ref and flag the cheque reconciled.

    A cheque without an invoice is a standalone receipt: no ledger call,
    but it is still flagged reconciled.

    Returns the ledger response, or None for standalone receipts and
    cheques that were already reconciled.
    """
    if pdc.reconciled:
        return None

    result = None
    if pdc.invoice_ref:
        ledger = get_ledger_service()
        try:
            balance = ledger.get_invoice_balance(pdc.invoice_ref)
            total_due = Decimal(str(balance['total_due']))
            total_applied = Decimal(str(balance['total_applied']))
            if total_applied + pdc.amount > total_due:
                raise _overflow(pdc, total_due - total_applied)
            result = ledger.apply_payment(pdc.invoice_ref, pdc.amount, source_ref=str(pdc.pk))
        except OverAllocation as exc:
            raise _overflow(pdc, exc.outstanding)
        except PDCError:
            raise
        except Exception as exc:
            raise ExternalServiceFailure(
                f'Ledger rejected payment for cheque {pdc.cheque_number}: {exc}',
                pdc_id=pdc.pk,
                details={'invoice_ref': pdc.invoice_ref},
            ) from exc

    PDCCheque.objects.filter(pk=pdc.pk, status=PDCStatus.CLEARED, reconciled=False).update(reconciled=True)

    log_audit(user, 'reconcile', 'pdc.PDCCheque', pdc.pk, {
        'pdc_number': pdc.pdc_number,
        'invoice_ref': pdc.invoice_ref,
        'amount': pdc.amount,
        'standalone_receipt': not pdc.invoice_ref,
        'new_balance': result.get('new_balance') if result else None,
    })

    if pdc.invoice_ref:
        logger.info("Reconciled PDC %s against invoice %s", pdc.pdc_number, pdc.invoice_ref)
    else:
        logger.info("PDC %s recorded as standalone receipt", pdc.pdc_number)
    return result
