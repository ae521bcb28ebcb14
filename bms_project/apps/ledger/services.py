"""
Database-backed InvoiceLedgerService.

Runs in the same database as the PDC tables, so a failed transition rolls
back the ledger postings it made.
"""
import logging
import uuid
from decimal import Decimal

from django.db import transaction

from apps.core.audit import log_audit
from apps.pdc.exceptions import ExternalServiceFailure, OverAllocation
from apps.pdc.gateways import InvoiceLedgerService
from .models import LedgerInvoice, LedgerPayment, LateFeeLine

logger = logging.getLogger(__name__)


class DatabaseLedgerService(InvoiceLedgerService):

    def _get_invoice(self, invoice_ref, for_update=False):
        queryset = LedgerInvoice.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(invoice_ref=invoice_ref, is_active=True)
        except LedgerInvoice.DoesNotExist:
            raise ExternalServiceFailure(f'Invoice {invoice_ref} not found in ledger.')

    def get_invoice_balance(self, invoice_ref):
        invoice = self._get_invoice(invoice_ref)
        return {
            'total_due': invoice.total_due,
            'total_applied': invoice.total_applied,
            'outstanding': invoice.outstanding,
        }

    def apply_payment(self, invoice_ref, amount, source_ref):
        amount = Decimal(amount)
        with transaction.atomic():
            invoice = self._get_invoice(invoice_ref, for_update=True)

            existing = invoice.payments.filter(source_ref=source_ref).first()
            if existing:
                logger.info("Payment from %s already applied to %s", source_ref, invoice_ref)
                return {'new_balance': existing.new_balance}

            if amount > invoice.outstanding:
                raise OverAllocation(invoice_ref, amount, invoice.outstanding)

            invoice.total_applied += amount
            invoice.refresh_status()
            invoice.save()

            payment = LedgerPayment.objects.create(
                invoice=invoice,
                amount=amount,
                source_ref=source_ref,
                new_balance=invoice.outstanding,
            )

            log_audit(None, 'reconcile', 'ledger.LedgerInvoice', invoice.pk, {
                'invoice_ref': invoice_ref,
                'amount': amount,
                'source_ref': source_ref,
                'new_balance': payment.new_balance,
            })

        logger.info("Applied %s from %s to invoice %s, balance %s", amount, source_ref, invoice_ref, payment.new_balance)
        return {'new_balance': payment.new_balance}

    def apply_late_fee(self, lease_ref, amount, reason, source_ref=None, invoice_ref=None):
        amount = Decimal(amount)
        source_ref = source_ref or uuid.uuid4().hex
        with transaction.atomic():
            existing = LateFeeLine.objects.filter(source_ref=source_ref).first()
            if existing:
                return {'fee_line_id': str(existing.pk)}

            invoice = None
            if invoice_ref:
                invoice = self._get_invoice(invoice_ref, for_update=True)
                invoice.total_due += amount
                invoice.late_fee_total += amount
                invoice.refresh_status()
                invoice.save()

            fee_line = LateFeeLine.objects.create(
                lease_ref=lease_ref or '',
                invoice=invoice,
                amount=amount,
                reason=reason,
                source_ref=source_ref,
            )

            log_audit(None, 'late_fee', 'ledger.LateFeeLine', fee_line.pk, {
                'lease_ref': lease_ref,
                'invoice_ref': invoice_ref,
                'amount': amount,
                'reason': reason,
                'source_ref': source_ref,
            })

        logger.info("Booked late fee %s (%s) for lease %s", amount, reason, lease_ref)
        return {'fee_line_id': str(fee_line.pk)}
