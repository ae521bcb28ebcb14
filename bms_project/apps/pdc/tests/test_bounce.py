"""
Bounce handling, late fees and replacement cheques.
"""
from decimal import Decimal
from unittest import mock

from django.test import TestCase, override_settings

from apps.core.models import AuditLog
from apps.ledger.models import LateFeeLine
from apps.pdc.exceptions import (
    ConcurrentModification, ExternalServiceFailure, PDCDoesNotExist, ReplacementValidationFailed,
)
from apps.pdc.models import PDCCheque, PDCStatus, ReminderFired, ReminderThreshold, TenantBounceCounter
from apps.pdc.services import bounce, register_replacement, replacement_chain, run_scheduler
from apps.pdc.services.bounce import compute_late_fee
from apps.pdc.services.state_machine import transition
from .base import PDCSetupMixin


class TestLateFee(TestCase):

    def test_percentage_fee(self):
        self.assertEqual(compute_late_fee(Decimal('5000.00')), Decimal('250.00'))

    def test_percentage_fee_rounds_half_up(self):
        self.assertEqual(compute_late_fee(Decimal('100.10'), 'percentage', '5'), Decimal('5.01'))

    def test_flat_fee(self):
        self.assertEqual(compute_late_fee(Decimal('5000.00'), 'flat', '300'), Decimal('300.00'))

    def test_unknown_fee_type(self):
        with self.assertRaises(ValueError):
            compute_late_fee(Decimal('5000.00'), 'daily', '1')


class TestBounce(PDCSetupMixin, TestCase):

    def deposited(self, cheque_number='1001', amount='5000.00', invoice_ref='INV-001', **kwargs):
        pdc = self.register(cheque_number=cheque_number, amount=amount, invoice_ref=invoice_ref, **kwargs)
        return self.advance(pdc, PDCStatus.DUE, PDCStatus.DEPOSITED)

    def test_bounce_books_late_fee_on_invoice(self):
        pdc = self.deposited()
        pdc = transition(pdc.pk, PDCStatus.BOUNCED, pdc.version, context={
            'bounce_reason': 'Insufficient funds', 'bounced_date': self.days(2),
        })

        self.assertEqual(pdc.bounce_reason, 'Insufficient funds')
        self.assertEqual(pdc.bounced_date, self.days(2))
        self.assertEqual(pdc.late_fee_amount, Decimal('250.00'))

        fee_line = LateFeeLine.objects.get()
        self.assertEqual(pdc.late_fee_ref, str(fee_line.pk))
        self.assertEqual(fee_line.reason, 'PDC_BOUNCED')
        self.assertEqual(fee_line.lease_ref, self.lease_ref)
        self.assertEqual(fee_line.source_ref, f'{pdc.pk}:bounce')

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_due, Decimal('5250.00'))
        self.assertEqual(self.invoice.late_fee_total, Decimal('250.00'))

    def test_bounce_increments_tenant_counter(self):
        for number in ('B1', 'B2'):
            pdc = self.deposited(cheque_number=number, amount='1000.00', invoice_ref=None)
            self.advance(pdc, PDCStatus.BOUNCED, bounced_date=self.days(4))

        counter = TenantBounceCounter.objects.get(tenant_ref=self.tenant_ref)
        self.assertEqual(counter.bounce_count, 2)
        self.assertEqual(counter.last_bounced_date, self.days(4))

    @override_settings(PDC_LATE_FEE_TYPE='flat', PDC_LATE_FEE_VALUE=Decimal('150'))
    def test_flat_fee_policy(self):
        pdc = self.advance(self.deposited(), PDCStatus.BOUNCED)
        self.assertEqual(pdc.late_fee_amount, Decimal('150.00'))

    @override_settings(PDC_LATE_FEE_TYPE='flat', PDC_LATE_FEE_VALUE=Decimal('0'))
    def test_zero_fee_skips_ledger(self):
        pdc = self.advance(self.deposited(), PDCStatus.BOUNCED)
        self.assertEqual(pdc.late_fee_amount, Decimal('0.00'))
        self.assertEqual(LateFeeLine.objects.count(), 0)

    def test_ledger_failure_rolls_back_bounce(self):
        pdc = self.deposited()

        with override_settings(PDC_LEDGER_SERVICE='apps.pdc.tests.fakes.FailingLedgerService'):
            with self.assertRaises(ExternalServiceFailure):
                self.advance(pdc, PDCStatus.BOUNCED)

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)
        self.assertEqual(pdc.bounce_reason, '')
        self.assertFalse(TenantBounceCounter.objects.exists())

    def test_bounce_is_audited(self):
        pdc = self.advance(self.deposited(), PDCStatus.BOUNCED)
        entry = AuditLog.objects.get(action='late_fee', model='pdc.PDCCheque')
        self.assertEqual(entry.record_id, str(pdc.pk))
        self.assertEqual(entry.changes['late_fee_amount'], '250.00')


class TestReplacement(PDCSetupMixin, TestCase):

    def bounced(self, cheque_number='1001', amount='5000.00'):
        pdc = self.register(cheque_number=cheque_number, amount=amount, invoice_ref='INV-001')
        return self.advance(pdc, PDCStatus.DUE, PDCStatus.DEPOSITED, PDCStatus.BOUNCED)

    def fields(self, **overrides):
        fields = {
            'cheque_number': '1002',
            'bank_name': 'Emirates NBD',
            'amount': '5250.00',
            'cheque_date': self.days(20),
        }
        fields.update(overrides)
        return fields

    def assert_rejected(self, pdc, field, **overrides):
        with self.assertRaises(ReplacementValidationFailed) as ctx:
            register_replacement(pdc.pk, self.fields(**overrides), today=self.as_of)
        self.assertIn(field, ctx.exception.details)
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.BOUNCED)
        return ctx.exception

    def test_replacement_links_and_replaces_original(self):
        original = self.bounced()

        replacement = register_replacement(original.pk, self.fields(), user=self.user, today=self.as_of)

        original.refresh_from_db()
        self.assertEqual(original.status, PDCStatus.REPLACED)
        self.assertEqual(replacement.status, PDCStatus.RECEIVED)
        self.assertEqual(replacement.replacement_of, original)
        self.assertEqual(replacement.tenant_ref, original.tenant_ref)
        self.assertEqual(replacement.lease_ref, original.lease_ref)
        self.assertEqual(replacement.invoice_ref, original.invoice_ref)
        self.assertEqual(original.replacement, replacement)
        self.assertTrue(AuditLog.objects.filter(action='replace', record_id=str(original.pk)).exists())

    def test_amount_below_original_rejected(self):
        self.assert_rejected(self.bounced(), 'amount', amount='4999.99')

    def test_equal_amount_accepted(self):
        original = self.bounced()
        replacement = register_replacement(original.pk, self.fields(amount='5000.00'), today=self.as_of)
        self.assertEqual(replacement.amount, Decimal('5000.00'))

    def test_cheque_date_must_be_after_today(self):
        self.assert_rejected(self.bounced(), 'cheque_date', cheque_date=self.as_of)

    def test_duplicate_cheque_number_rejected(self):
        self.assert_rejected(self.bounced(), 'cheque_number', cheque_number='1001')

    def test_missing_fields_reported_per_field(self):
        error = self.assert_rejected(self.bounced(), 'bank_name', bank_name='', amount='abc')
        self.assertIn('amount', error.details)

    def test_only_bounced_cheques_can_be_replaced(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        with self.assertRaises(ReplacementValidationFailed) as ctx:
            register_replacement(pdc.pk, self.fields(), today=self.as_of)
        self.assertIn('replacement_of', ctx.exception.details)

    def test_non_finite_amount_rejected(self):
        original = self.bounced()
        for amount in ('NaN', 'sNaN', 'Infinity', '-Infinity'):
            with self.subTest(amount=amount):
                self.assert_rejected(original, 'amount', amount=amount)

    def test_cheque_number_taken_during_registration(self):
        original = self.bounced()
        real_validate = bounce.validate_replacement

        def validate_then_number_taken(*args, **kwargs):
            cleaned = real_validate(*args, **kwargs)
            self.register(cheque_number=cleaned['cheque_number'], cheque_date=self.days(40))
            return cleaned

        with mock.patch('apps.pdc.services.bounce.validate_replacement', side_effect=validate_then_number_taken):
            error = self.assert_rejected(original, 'cheque_number')

        self.assertNotIn('replacement_of', error.details)
        self.assertFalse(PDCCheque.objects.filter(replacement_of=original).exists())

    def test_replaced_during_registration(self):
        original = self.bounced()
        real_validate = bounce.validate_replacement

        def validate_then_replaced(*args, **kwargs):
            cleaned = real_validate(*args, **kwargs)
            PDCCheque.objects.create(
                tenant_ref=original.tenant_ref, cheque_number='1009', bank_name='ADCB',
                amount=original.amount, cheque_date=self.days(40), replacement_of=original,
            )
            return cleaned

        with mock.patch('apps.pdc.services.bounce.validate_replacement', side_effect=validate_then_replaced):
            error = self.assert_rejected(original, 'replacement_of')

        self.assertNotIn('cheque_number', error.details)

    def test_second_replacement_rejected(self):
        original = self.bounced()
        register_replacement(original.pk, self.fields(), today=self.as_of)

        with self.assertRaises(ReplacementValidationFailed):
            register_replacement(original.pk, self.fields(cheque_number='1003'), today=self.as_of)
        self.assertEqual(PDCCheque.objects.filter(replacement_of=original).count(), 1)

    def test_stale_version_rejected(self):
        original = self.bounced()
        with self.assertRaises(ConcurrentModification):
            register_replacement(original.pk, self.fields(), expected_version=1, today=self.as_of)
        self.assertFalse(PDCCheque.objects.filter(replacement_of=original).exists())

    def test_missing_original(self):
        with self.assertRaises(PDCDoesNotExist):
            register_replacement(999999, self.fields(), today=self.as_of)

    def test_chain_is_acyclic_and_one_to_one(self):
        first = self.bounced()
        second = register_replacement(first.pk, self.fields(), today=self.as_of)
        second = self.advance(second, PDCStatus.DUE, PDCStatus.DEPOSITED, PDCStatus.BOUNCED)
        third = register_replacement(second.pk, self.fields(cheque_number='1003', amount='5600.00'),
                                     today=self.as_of)

        self.assertEqual(replacement_chain(third), [second, first])
        for pdc in PDCCheque.objects.filter(status=PDCStatus.REPLACED):
            self.assertEqual(PDCCheque.objects.filter(replacement_of=pdc).count(), 1)


class TestBounceAndReplacementScenario(PDCSetupMixin, TestCase):
    """Received cheque goes due, bounces and is replaced by a larger one."""

    def test_full_bounce_and_replacement_flow(self):
        pdc = self.register(cheque_number='1001', amount='5000.00', cheque_date=self.days(10),
                            invoice_ref='INV-001')

        run_scheduler(self.as_of, horizon_days=7)
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.RECEIVED)

        run_scheduler(self.days(3), horizon_days=7)
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DUE)
        self.assertEqual(
            ReminderFired.objects.filter(pdc=pdc, threshold_type=ReminderThreshold.DEPOSIT_APPROACHING).count(), 1
        )

        pdc = transition(pdc.pk, PDCStatus.DEPOSITED, pdc.version, context={'deposit_date': self.days(3)})
        pdc = transition(pdc.pk, PDCStatus.BOUNCED, pdc.version, context={
            'bounce_reason': 'insufficient funds', 'bounced_date': self.days(5),
        })
        self.assertEqual(pdc.status, PDCStatus.BOUNCED)
        self.assertEqual(pdc.late_fee_amount, Decimal('250.00'))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_due, Decimal('5250.00'))

        replacement = register_replacement(pdc.pk, {
            'cheque_number': '1002',
            'bank_name': 'Emirates NBD',
            'amount': '5250.00',
            'cheque_date': self.days(20),
        }, today=self.days(5))

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.REPLACED)
        self.assertEqual(replacement.status, PDCStatus.RECEIVED)
        self.assertEqual(replacement.replacement_of_id, pdc.pk)

        # The replacement settles the invoice including the late fee.
        replacement = self.advance(replacement, PDCStatus.DUE, PDCStatus.DEPOSITED, PDCStatus.CLEARED)
        self.assertTrue(replacement.reconciled)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.outstanding, Decimal('0.00'))
