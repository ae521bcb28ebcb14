"""
Ports to the services the PDC engine consumes: the invoice ledger and the
outbound notification channel. Implementations are chosen in settings
(PDC_LEDGER_SERVICE, PDC_NOTIFICATION_GATEWAY) as dotted paths.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class InvoiceLedgerService:
    """
    Invoice/ledger operations called synchronously inside a transition.

    Implementations raise apps.pdc.exceptions.OverAllocation when a payment
    would exceed the invoice total, and ExternalServiceFailure for anything
    else that went wrong. apply_payment must be idempotent per source_ref.
    """

    def get_invoice_balance(self, invoice_ref):
        """Return {'total_due', 'total_applied', 'outstanding'} as Decimals."""
        raise NotImplementedError

    def apply_payment(self, invoice_ref, amount, source_ref):
        """Apply a payment. Return {'new_balance': Decimal}."""
        raise NotImplementedError

    def apply_late_fee(self, lease_ref, amount, reason, source_ref=None, invoice_ref=None):
        """Book a late fee line. Return {'fee_line_id': str}."""
        raise NotImplementedError


class NotificationGateway:
    """
    Outbound tenant/staff notifications. Best-effort from the engine's
    point of view: the return value only says whether the channel accepted
    the message.
    """

    def send(self, recipient_ref, template_type, payload):
        """Return {'accepted': bool}."""
        raise NotImplementedError


class LoggingNotificationGateway(NotificationGateway):
    """Writes notifications to the log. Default for development."""

    def send(self, recipient_ref, template_type, payload):
        logger.info("Notification %s to %s: %s", template_type, recipient_ref, payload)
        return {'accepted': True}


class EmailNotificationGateway(NotificationGateway):
    """
    Sends notifications by email. The recipient ref must be an address.
    """
    SUBJECTS = {
        'deposit-approaching': 'PDC deposit approaching - cheque {cheque_number}',
        'deposit-due-soon': 'PDC deposit due soon - cheque {cheque_number}',
        'pdc-cleared': 'Cheque {cheque_number} cleared',
        'pdc-bounced': 'Cheque {cheque_number} bounced',
        'pdc-cancelled': 'Cheque {cheque_number} cancelled',
        'pdc-replaced': 'Cheque {cheque_number} replaced',
    }

    def send(self, recipient_ref, template_type, payload):
        if not recipient_ref or '@' not in recipient_ref:
            logger.warning("Cannot email %s notification: no address for %s", template_type, recipient_ref)
            return {'accepted': False}

        subject = self.SUBJECTS.get(template_type, 'PDC notification').format(
            cheque_number=payload.get('cheque_number', '')
        )
        body = '\n'.join(f"{key}: {value}" for key, value in sorted(payload.items()))
        sent = send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient_ref], fail_silently=False)
        return {'accepted': sent > 0}


def get_ledger_service():
    return import_string(settings.PDC_LEDGER_SERVICE)()


def get_notification_gateway():
    return import_string(settings.PDC_NOTIFICATION_GATEWAY)()
