"""
PDC lifecycle errors.

Every error carries the cheque's current status and the attempted target so
callers (views, the scheduler) can report what happened without reloading.
"""


class PDCError(Exception):
    """Base class for PDC lifecycle failures."""
    default_message = 'The cheque could not be processed.'

    def __init__(self, message=None, pdc_id=None, current_status=None, target_status=None, details=None):
        self.message = message or self.default_message
        self.pdc_id = pdc_id
        self.current_status = current_status
        self.target_status = target_status
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self):
        return self.default_message

    def as_dict(self):
        return {
            'error': self.__class__.__name__,
            'message': self.message,
            'user_message': self.user_message,
            'pdc_id': self.pdc_id,
            'current_status': self.current_status,
            'target_status': self.target_status,
            'details': self.details,
        }


class PDCDoesNotExist(PDCError):
    default_message = 'The cheque does not exist.'


class InvalidTransition(PDCError):
    """Requested edge does not exist from the current status. Never retried."""
    default_message = 'This cheque cannot move directly to that state.'


class ConcurrentModification(PDCError):
    """Stored version differs from the caller's. Re-fetch and retry."""
    default_message = 'Someone else already changed this cheque. Please refresh and try again.'


class ReconciliationOverflow(PDCError):
    """Applying the cheque would exceed the invoice total. Needs manual review."""
    default_message = 'Clearing this cheque would exceed the outstanding invoice balance. The cheque stays deposited for review.'


class ReplacementValidationFailed(PDCError):
    """Replacement cheque violates amount, date or uniqueness rules."""
    default_message = 'The replacement cheque is not valid.'


class ExternalServiceFailure(PDCError):
    """Ledger or notification call failed."""
    default_message = 'A connected service failed. No changes were saved.'


class OverAllocation(Exception):
    """Raised by ledger adapters when a payment would exceed the invoice total."""

    def __init__(self, invoice_ref, amount, outstanding):
        self.invoice_ref = invoice_ref
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            f'Payment of {amount} exceeds outstanding balance {outstanding} on invoice {invoice_ref}.'
        )
