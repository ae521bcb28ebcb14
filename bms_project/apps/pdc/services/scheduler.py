"""
Reminder Scheduler.

Deterministic over an explicit as-of date:

1. Reminders whose delivery was dropped after its retries are queued again
   while the cheque is still DUE.
2. RECEIVED cheques whose cheque date falls within the horizon are promoted
   to DUE through the state machine and get a "deposit-approaching" reminder.
3. DUE cheques within the due-soon window get one "deposit-due-soon" reminder.

Every cheque is processed in its own transaction. A failure is logged and
listed in the run summary, and the next cheque is processed regardless.
ReminderFired rows make re-runs for the same date send nothing twice.
Reminders are counted when queued. Delivery happens in the Celery task,
which records the outcome on the ReminderFired row.
"""
import logging
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from apps.core.audit import log_audit
from apps.core.utils import as_date
from apps.pdc.exceptions import ConcurrentModification, InvalidTransition
from apps.pdc.models import (
    PDCCheque, PDCStatus, ReminderFired, ReminderThreshold, SchedulerRun,
)
from . import notifications
from .state_machine import transition

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = 'pdc:scheduler:lock'

REMINDER_TEMPLATES = {
    ReminderThreshold.DEPOSIT_APPROACHING: notifications.DEPOSIT_APPROACHING,
    ReminderThreshold.DEPOSIT_DUE_SOON: notifications.DEPOSIT_DUE_SOON,
}


def lock_key(as_of):
    return f'{LOCK_KEY_PREFIX}:{as_of.isoformat()}'


def describe(exc):
    return f'{exc.__class__.__name__}: {exc}'


def _record_error(run, pdc, step, error):
    run.failed += 1
    run.errors.append({
        'pdc_id': pdc.pk,
        'pdc_number': pdc.pdc_number,
        'step': step,
        'error': error,
    })


def _queue_reminder(reminder, as_of):
    pdc = reminder.pdc
    notifications.notify_on_commit(
        pdc, REMINDER_TEMPLATES[reminder.threshold_type],
        reminder_id=reminder.pk,
        as_of=as_of,
        days_until_cheque_date=pdc.days_until_cheque_date(as_of),
    )


def _fire_reminder(pdc, threshold_type, as_of):
    """Record the threshold and queue the notification. None if it already fired."""
    reminder, created = ReminderFired.objects.get_or_create(
        pdc=pdc, threshold_type=threshold_type, defaults={'as_of': as_of}
    )
    if not created:
        return None
    _queue_reminder(reminder, as_of)
    return reminder


def _check_delivery(run, pdc, reminders):
    """
    Collect reminders already known to be dropped. The outcome is only known
    here when the task ran on commit in this process (eager Celery).
    """
    for reminder in reminders:
        reminder.refresh_from_db(fields=['delivered_at', 'last_error'])
        if reminder.is_dropped:
            logger.warning("Reminder %s for PDC %s was not delivered: %s",
                           reminder.threshold_type, pdc.pdc_number, reminder.last_error)
            _record_error(run, pdc, 'deliver', reminder.last_error)


def _redeliver_dropped(run, as_of):
    dropped = ReminderFired.objects.filter(
        delivered_at__isnull=True, pdc__is_active=True, pdc__status=PDCStatus.DUE,
    ).exclude(last_error='').select_related('pdc').order_by('fired_at', 'id')

    for reminder in dropped:
        pdc = reminder.pdc
        if run.dry_run:
            logger.info("DRY RUN: would redeliver %s reminder for PDC %s", reminder.threshold_type, pdc.pdc_number)
            run.redelivered += 1
            continue
        try:
            with transaction.atomic():
                ReminderFired.objects.filter(pk=reminder.pk).update(last_error='')
                _queue_reminder(reminder, as_of)
            run.redelivered += 1
            run.reminders_queued += 1
        except Exception as exc:
            logger.exception("Scheduler failed to redeliver reminder for PDC %s", pdc.pdc_number)
            _record_error(run, pdc, 'redeliver', describe(exc))
            continue
        _check_delivery(run, pdc, [reminder])


def _promote_received(run, as_of, horizon_days):
    window_end = as_of + timedelta(days=horizon_days)
    candidates = PDCCheque.objects.filter(
        is_active=True, status=PDCStatus.RECEIVED, cheque_date__lte=window_end
    ).order_by('cheque_date', 'id')

    for pdc in candidates:
        if run.dry_run:
            logger.info("DRY RUN: would promote PDC %s to due", pdc.pdc_number)
            run.promoted += 1
            continue
        try:
            with transaction.atomic():
                promoted = transition(pdc.pk, PDCStatus.DUE, pdc.version, context={'as_of': as_of})
                reminder = _fire_reminder(promoted, ReminderThreshold.DEPOSIT_APPROACHING, as_of)
            run.promoted += 1
        except (ConcurrentModification, InvalidTransition) as exc:
            # Moved by someone else since the candidate query.
            logger.info("Skipping PDC %s: %s", pdc.pdc_number, exc)
            run.skipped += 1
            continue
        except Exception as exc:
            logger.exception("Scheduler failed to promote PDC %s", pdc.pdc_number)
            _record_error(run, pdc, 'promote', describe(exc))
            continue
        if reminder is not None:
            run.reminders_queued += 1
            _check_delivery(run, pdc, [reminder])


def _remind_due_soon(run, as_of, due_soon_days):
    window_end = as_of + timedelta(days=due_soon_days)
    candidates = PDCCheque.objects.filter(
        is_active=True, status=PDCStatus.DUE, cheque_date__lte=window_end
    ).exclude(
        reminders_fired__threshold_type=ReminderThreshold.DEPOSIT_DUE_SOON
    ).order_by('cheque_date', 'id')

    for pdc in candidates:
        if run.dry_run:
            logger.info("DRY RUN: would send due-soon reminder for PDC %s", pdc.pdc_number)
            run.reminders_queued += 1
            continue
        try:
            with transaction.atomic():
                reminder = _fire_reminder(pdc, ReminderThreshold.DEPOSIT_DUE_SOON, as_of)
        except Exception as exc:
            logger.exception("Scheduler failed to send due-soon reminder for PDC %s", pdc.pdc_number)
            _record_error(run, pdc, 'due_soon', describe(exc))
            continue
        if reminder is None:
            run.skipped += 1
        else:
            run.reminders_queued += 1
            _check_delivery(run, pdc, [reminder])


def run_scheduler(as_of, horizon_days=None, due_soon_days=None, dry_run=False):
    """
    Run the reminder scheduler for one as-of date.

    Args:
        as_of: Date (or datetime / ISO string) the run is evaluated at
        horizon_days: RECEIVED -> DUE window (PDC_REMINDER_HORIZON_DAYS)
        due_soon_days: due-soon reminder window (PDC_DUE_SOON_DAYS)
        dry_run: Count candidates without writing anything

    Returns:
        SchedulerRun: The persisted batch summary. status is 'skipped' when
        another run for the same date holds the lock.
    """
    as_of = as_date(as_of)
    if as_of is None:
        raise ValueError('run_scheduler requires an explicit as_of date')
    horizon_days = settings.PDC_REMINDER_HORIZON_DAYS if horizon_days is None else int(horizon_days)
    due_soon_days = settings.PDC_DUE_SOON_DAYS if due_soon_days is None else int(due_soon_days)
    if horizon_days < 0 or due_soon_days < 0:
        raise ValueError('Scheduler windows cannot be negative')

    run = SchedulerRun(
        run_key=f'{as_of:%Y%m%d}-{uuid.uuid4().hex[:8]}',
        as_of=as_of,
        horizon_days=horizon_days,
        due_soon_days=due_soon_days,
        dry_run=dry_run,
        errors=[],
    )

    key = lock_key(as_of)
    if not cache.add(key, run.run_key, settings.PDC_SCHEDULER_LOCK_TIMEOUT):
        run.status = 'skipped'
        run.finished_at = timezone.now()
        run.save()
        logger.warning("Scheduler run for %s skipped: another run holds the lock", as_of)
        return run

    try:
        run.save()
        logger.info(
            "Scheduler run %s started (as of %s, horizon %s, due soon %s%s)",
            run.run_key, as_of, horizon_days, due_soon_days, ', dry run' if dry_run else '',
        )

        _redeliver_dropped(run, as_of)
        _promote_received(run, as_of, horizon_days)
        _remind_due_soon(run, as_of, due_soon_days)

        run.status = 'completed'
        run.finished_at = timezone.now()
        run.save()

        if not dry_run:
            log_audit(None, 'schedule', 'pdc.SchedulerRun', run.pk, {
                'run_key': run.run_key,
                'as_of': as_of,
                'promoted': run.promoted,
                'reminders_queued': run.reminders_queued,
                'redelivered': run.redelivered,
                'skipped': run.skipped,
                'failed': run.failed,
            })
    finally:
        cache.delete(key)

    log = logger.warning if run.failed else logger.info
    log(
        "Scheduler run %s finished: %s promoted, %s reminders queued (%s redelivered), %s skipped, %s failed",
        run.run_key, run.promoted, run.reminders_queued, run.redelivered, run.skipped, run.failed,
    )
    return run
