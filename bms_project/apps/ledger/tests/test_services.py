"""
Database ledger adapter: payments, over-allocation and late fees.
"""
from decimal import Decimal

from django.test import TestCase

from apps.core.models import AuditLog
from apps.pdc.exceptions import ExternalServiceFailure, OverAllocation
from apps.pdc.gateways import get_ledger_service
from apps.ledger.models import LedgerInvoice, LedgerPayment, LateFeeLine
from apps.ledger.services import DatabaseLedgerService


class LedgerSetupMixin:

    @classmethod
    def setUpTestData(cls):
        cls.invoice = LedgerInvoice.objects.create(
            invoice_ref='INV-100',
            tenant_ref='TEN-001',
            lease_ref='LEASE-001',
            total_due=Decimal('3000.00'),
        )

    def setUp(self):
        self.ledger = DatabaseLedgerService()


class TestApplyPayment(LedgerSetupMixin, TestCase):

    def test_default_service_from_settings(self):
        self.assertIsInstance(get_ledger_service(), DatabaseLedgerService)

    def test_partial_then_full_payment(self):
        result = self.ledger.apply_payment('INV-100', Decimal('1000.00'), source_ref='pdc-1')
        self.assertEqual(result['new_balance'], Decimal('2000.00'))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'partial')

        self.ledger.apply_payment('INV-100', Decimal('2000.00'), source_ref='pdc-2')
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'paid')
        self.assertEqual(self.invoice.outstanding, Decimal('0.00'))

    def test_payment_is_idempotent_per_source(self):
        self.ledger.apply_payment('INV-100', Decimal('1000.00'), source_ref='pdc-1')
        again = self.ledger.apply_payment('INV-100', Decimal('1000.00'), source_ref='pdc-1')

        self.assertEqual(again['new_balance'], Decimal('2000.00'))
        self.assertEqual(LedgerPayment.objects.count(), 1)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_applied, Decimal('1000.00'))

    def test_over_allocation(self):
        with self.assertRaises(OverAllocation) as ctx:
            self.ledger.apply_payment('INV-100', Decimal('3000.01'), source_ref='pdc-1')

        self.assertEqual(ctx.exception.outstanding, Decimal('3000.00'))
        self.assertEqual(LedgerPayment.objects.count(), 0)

    def test_unknown_invoice(self):
        with self.assertRaises(ExternalServiceFailure):
            self.ledger.apply_payment('INV-404', Decimal('1.00'), source_ref='pdc-1')

    def test_balance(self):
        self.ledger.apply_payment('INV-100', Decimal('500.00'), source_ref='pdc-1')
        balance = self.ledger.get_invoice_balance('INV-100')
        self.assertEqual(balance['total_applied'], Decimal('500.00'))
        self.assertEqual(balance['outstanding'], Decimal('2500.00'))

    def test_payment_audited(self):
        self.ledger.apply_payment('INV-100', Decimal('500.00'), source_ref='pdc-1')
        entry = AuditLog.objects.get(model='ledger.LedgerInvoice')
        self.assertEqual(entry.action, 'reconcile')
        self.assertEqual(entry.changes['source_ref'], 'pdc-1')


class TestApplyLateFee(LedgerSetupMixin, TestCase):

    def test_fee_raises_invoice_total(self):
        result = self.ledger.apply_late_fee('LEASE-001', Decimal('150.00'), 'PDC_BOUNCED',
                                            source_ref='7:bounce', invoice_ref='INV-100')

        fee_line = LateFeeLine.objects.get(pk=result['fee_line_id'])
        self.assertEqual(fee_line.invoice, self.invoice)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_due, Decimal('3150.00'))
        self.assertEqual(self.invoice.late_fee_total, Decimal('150.00'))

    def test_fee_without_invoice(self):
        result = self.ledger.apply_late_fee('LEASE-001', Decimal('150.00'), 'PDC_BOUNCED')
        fee_line = LateFeeLine.objects.get(pk=result['fee_line_id'])
        self.assertIsNone(fee_line.invoice)
        self.assertEqual(fee_line.lease_ref, 'LEASE-001')

    def test_fee_is_idempotent_per_source(self):
        first = self.ledger.apply_late_fee('LEASE-001', Decimal('150.00'), 'PDC_BOUNCED',
                                           source_ref='7:bounce', invoice_ref='INV-100')
        second = self.ledger.apply_late_fee('LEASE-001', Decimal('150.00'), 'PDC_BOUNCED',
                                            source_ref='7:bounce', invoice_ref='INV-100')

        self.assertEqual(first, second)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_due, Decimal('3150.00'))
