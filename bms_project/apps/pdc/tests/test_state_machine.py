"""
State machine: the legal transition graph, versioning and transition fields.
"""
import random
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings

from apps.core.models import AuditLog
from apps.pdc.exceptions import (
    ConcurrentModification, InvalidTransition, PDCDoesNotExist, ReplacementValidationFailed,
)
from apps.pdc.models import PDCCheque, PDCStatus, PDC_TRANSITIONS
from apps.pdc.services import register_replacement
from apps.pdc.services.state_machine import transition
from .base import PDCSetupMixin, RECORDING_GATEWAY
from .fakes import RecordingNotificationGateway

# Shortest path from RECEIVED to each status (REPLACED needs a replacement).
PATHS = {
    PDCStatus.RECEIVED: [],
    PDCStatus.DUE: [PDCStatus.DUE],
    PDCStatus.DEPOSITED: [PDCStatus.DUE, PDCStatus.DEPOSITED],
    PDCStatus.CLEARED: [PDCStatus.DUE, PDCStatus.DEPOSITED, PDCStatus.CLEARED],
    PDCStatus.BOUNCED: [PDCStatus.DUE, PDCStatus.DEPOSITED, PDCStatus.BOUNCED],
    PDCStatus.CANCELLED: [PDCStatus.CANCELLED],
}


class TestTransitionGraph(PDCSetupMixin, TestCase):

    def make(self, status):
        self.counter = getattr(self, 'counter', 0) + 1
        pdc = self.register(cheque_number=f'9{self.counter:04d}', amount='1000.00')
        if status == PDCStatus.REPLACED:
            bounced = self.advance(pdc, *PATHS[PDCStatus.BOUNCED])
            register_replacement(bounced.pk, {
                'cheque_number': f'8{self.counter:04d}',
                'bank_name': 'ADCB',
                'amount': '1000.00',
                'cheque_date': self.days(60),
            }, today=self.as_of)
            return PDCCheque.objects.get(pk=pdc.pk)
        return self.advance(pdc, *PATHS[status])

    def test_illegal_edges_rejected(self):
        for from_status in PDCStatus:
            for to_status in PDCStatus:
                if to_status in PDC_TRANSITIONS[from_status]:
                    continue
                with self.subTest(from_status=from_status, to_status=to_status):
                    pdc = self.make(from_status)
                    with self.assertRaises(InvalidTransition) as ctx:
                        transition(pdc.pk, to_status, pdc.version, context={'bounce_reason': 'x'})

                    self.assertEqual(ctx.exception.current_status, from_status)
                    self.assertEqual(ctx.exception.target_status, to_status)
                    self.assertEqual(ctx.exception.user_message, 'This cheque cannot move directly to that state.')

                    pdc.refresh_from_db()
                    self.assertEqual(pdc.status, from_status)

    def test_legal_edges_succeed(self):
        for from_status, targets in PDC_TRANSITIONS.items():
            for to_status in targets:
                if to_status == PDCStatus.REPLACED:
                    continue
                with self.subTest(from_status=from_status, to_status=to_status):
                    pdc = self.make(from_status)
                    moved = transition(pdc.pk, to_status, pdc.version, context={'bounce_reason': 'x'})

                    self.assertEqual(moved.status, to_status)
                    self.assertEqual(moved.version, pdc.version + 1)

    def test_terminal_statuses_have_no_exits(self):
        for status in (PDCStatus.CLEARED, PDCStatus.REPLACED, PDCStatus.CANCELLED):
            self.assertEqual(PDC_TRANSITIONS[status], ())

    def test_replaced_requires_registered_replacement(self):
        pdc = self.make(PDCStatus.BOUNCED)

        with self.assertRaises(ReplacementValidationFailed):
            transition(pdc.pk, PDCStatus.REPLACED, pdc.version)

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.BOUNCED)

    def test_random_walks_only_follow_legal_edges(self):
        rng = random.Random(20260105)
        targets = [status for status in PDCStatus if status != PDCStatus.REPLACED]

        for walk in range(15):
            pdc = self.register(cheque_number=f'F{walk:03d}', amount='750.00')
            expected = PDCStatus.RECEIVED
            for _ in range(8):
                target = rng.choice(targets)
                if target in PDC_TRANSITIONS[expected]:
                    pdc = transition(pdc.pk, target, pdc.version, context={'bounce_reason': 'fuzz'})
                    expected = target
                else:
                    with self.assertRaises(InvalidTransition):
                        transition(pdc.pk, target, pdc.version, context={'bounce_reason': 'fuzz'})
                pdc.refresh_from_db()
                self.assertEqual(pdc.status, expected)


class TestTransitionContract(PDCSetupMixin, TestCase):

    def test_version_increments_per_transition(self):
        pdc = self.register()
        pdc = self.advance(pdc, PDCStatus.DUE)
        self.assertEqual(pdc.version, 1)
        pdc = self.advance(pdc, PDCStatus.DEPOSITED)
        self.assertEqual(pdc.version, 2)

    def test_status_accepts_names_and_values(self):
        pdc = self.register()
        pdc = transition(pdc.pk, 'DUE', pdc.version)
        pdc = transition(pdc.pk, 'deposited', pdc.version)
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)

    def test_unknown_status_rejected(self):
        pdc = self.register()
        with self.assertRaises(InvalidTransition):
            transition(pdc.pk, 'lost', pdc.version)

    def test_missing_pdc(self):
        with self.assertRaises(PDCDoesNotExist):
            transition(424242, PDCStatus.DUE, 0)

    def test_stale_version_reported_before_illegal_edge(self):
        pdc = self.register()
        self.advance(pdc, PDCStatus.DUE)

        with self.assertRaises(ConcurrentModification) as ctx:
            transition(pdc.pk, PDCStatus.CLEARED, 0)
        self.assertIn('refresh', ctx.exception.user_message)

    def test_missing_version_is_stale(self):
        pdc = self.register()
        with self.assertRaises(ConcurrentModification):
            transition(pdc.pk, PDCStatus.DUE, None)

    def test_deposit_fields_written(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        pdc = transition(pdc.pk, PDCStatus.DEPOSITED, pdc.version, context={
            'deposit_date': self.days(1), 'bank_account_ref': 'ACC-77',
        })
        self.assertEqual(pdc.deposit_date, self.days(1))
        self.assertEqual(pdc.bank_account_ref, 'ACC-77')
        self.assertIsNone(pdc.cleared_date)
        self.assertIsNone(pdc.bounced_date)

    def test_deposit_date_defaults_to_as_of(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        pdc = transition(pdc.pk, PDCStatus.DEPOSITED, pdc.version, context={'as_of': self.days(2)})
        self.assertEqual(pdc.deposit_date, self.days(2))

    def test_bounce_requires_reason(self):
        pdc = self.advance(self.register(), PDCStatus.DUE, PDCStatus.DEPOSITED)

        with self.assertRaises(ValidationError):
            transition(pdc.pk, PDCStatus.BOUNCED, pdc.version, context={})

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)
        self.assertEqual(pdc.version, 2)

    def test_cleared_date_cannot_precede_deposit(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        pdc = transition(pdc.pk, PDCStatus.DEPOSITED, pdc.version, context={'deposit_date': self.days(3)})

        with self.assertRaises(ValidationError):
            transition(pdc.pk, PDCStatus.CLEARED, pdc.version, context={'cleared_date': self.days(1)})

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)

    def test_cancellation_fields_written(self):
        pdc = self.register()
        pdc = transition(pdc.pk, PDCStatus.CANCELLED, pdc.version, context={
            'cancellation_reason': 'Lease terminated', 'cancelled_date': self.days(1),
        })
        self.assertEqual(pdc.cancellation_reason, 'Lease terminated')
        self.assertEqual(pdc.cancelled_date, self.days(1))

    def test_transition_is_audited(self):
        pdc = self.register()
        self.advance(pdc, PDCStatus.DUE)

        entry = AuditLog.objects.filter(action='transition', record_id=str(pdc.pk)).get()
        self.assertEqual(entry.user, self.user)
        self.assertEqual(entry.changes['from_status'], 'received')
        self.assertEqual(entry.changes['to_status'], 'due')
        self.assertEqual(entry.changes['version'], 1)

    def test_updated_by_set(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        self.assertEqual(pdc.updated_by, self.user)


class TestLifecycleFieldGuard(PDCSetupMixin, TestCase):

    def test_status_cannot_be_saved_directly(self):
        pdc = self.register()
        pdc.status = PDCStatus.CLEARED
        with self.assertRaises(ValidationError):
            pdc.save()
        self.assertEqual(PDCCheque.objects.get(pk=pdc.pk).status, PDCStatus.RECEIVED)

    def test_amount_cannot_be_changed(self):
        pdc = PDCCheque.objects.get(pk=self.register().pk)
        pdc.amount = Decimal('1.00')
        with self.assertRaises(ValidationError):
            pdc.save()

    def test_reconciled_cannot_be_set_directly(self):
        pdc = PDCCheque.objects.get(pk=self.register().pk)
        pdc.reconciled = True
        with self.assertRaises(ValidationError):
            pdc.save()

    def test_notes_can_be_edited(self):
        pdc = PDCCheque.objects.get(pk=self.register().pk)
        pdc.notes = 'Collected by courier'
        pdc.save()
        self.assertEqual(PDCCheque.objects.get(pk=pdc.pk).notes, 'Collected by courier')

    def test_guard_tracks_state_after_transition(self):
        pdc = self.advance(self.register(), PDCStatus.DUE)
        pdc.notes = 'Reminder sent by phone'
        pdc.save()
        self.assertEqual(PDCCheque.objects.get(pk=pdc.pk).status, PDCStatus.DUE)


@override_settings(PDC_NOTIFICATION_GATEWAY=RECORDING_GATEWAY)
class TestTransitionNotifications(PDCSetupMixin, TestCase):

    def test_notification_sent_after_commit(self):
        pdc = self.register()

        with self.captureOnCommitCallbacks(execute=True):
            self.advance(pdc, PDCStatus.CANCELLED)

        self.assertEqual(len(RecordingNotificationGateway.sent), 1)
        recipient, template_type, payload = RecordingNotificationGateway.sent[0]
        self.assertEqual(recipient, self.tenant_ref)
        self.assertEqual(template_type, 'pdc-cancelled')
        self.assertEqual(payload['cheque_number'], '1001')
        self.assertEqual(payload['amount'], '5000.00')
        self.assertEqual(payload['previous_status'], 'received')

    def test_nothing_sent_until_commit(self):
        pdc = self.register()

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.advance(pdc, PDCStatus.CANCELLED)

        self.assertTrue(callbacks)
        self.assertEqual(RecordingNotificationGateway.sent, [])

    def test_failed_transition_sends_nothing(self):
        pdc = self.advance(self.register(), PDCStatus.DUE, PDCStatus.DEPOSITED)

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(ValidationError):
                transition(pdc.pk, PDCStatus.BOUNCED, pdc.version, context={})

        self.assertEqual(RecordingNotificationGateway.sent, [])

    def test_promotion_to_due_has_no_transition_notification(self):
        pdc = self.register()
        with self.captureOnCommitCallbacks(execute=True):
            self.advance(pdc, PDCStatus.DUE)
        self.assertEqual(RecordingNotificationGateway.sent, [])
