import logging

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


def mark_reminder(reminder_id, delivered=False, error=''):
    """Record the delivery outcome on the scheduler's ReminderFired row."""
    from apps.pdc.models import ReminderFired

    if reminder_id is None:
        return
    if delivered:
        ReminderFired.objects.filter(pk=reminder_id).update(delivered_at=timezone.now(), last_error='')
    else:
        ReminderFired.objects.filter(pk=reminder_id, delivered_at__isnull=True).update(
            last_error=(error or 'not delivered')[:255]
        )


@shared_task(bind=True)
def deliver_notification(self, recipient_ref, template_type, payload, reminder_id=None):
    """
    Hand one notification to the configured gateway.

    Rejections and gateway errors are retried with exponential backoff up to
    PDC_NOTIFICATION_MAX_RETRIES times, then logged and dropped. Never fails
    the caller. Scheduler reminders pass reminder_id so the outcome is
    recorded and a dropped reminder is queued again by the next run.
    """
    # import lazily so the worker can load without the gateway's dependencies
    from apps.pdc.gateways import get_notification_gateway

    try:
        result = get_notification_gateway().send(recipient_ref, template_type, payload) or {}
        accepted = bool(result.get('accepted'))
        reason = 'rejected by gateway'
    except Exception as exc:
        accepted = False
        reason = f'{exc.__class__.__name__}: {exc}'
        logger.warning("Notification %s to %s failed: %s", template_type, recipient_ref, reason)

    if accepted:
        mark_reminder(reminder_id, delivered=True)
        return True

    max_retries = settings.PDC_NOTIFICATION_MAX_RETRIES
    if self.request.retries < max_retries:
        countdown = settings.PDC_NOTIFICATION_RETRY_BACKOFF * (2 ** self.request.retries)
        raise self.retry(countdown=countdown, max_retries=max_retries)

    logger.error(
        "Dropping %s notification to %s after %s attempt(s): %s",
        template_type, recipient_ref, self.request.retries + 1, reason,
    )
    mark_reminder(reminder_id, error=reason)
    return False


@shared_task
def run_pdc_scheduler_task(as_of=None, horizon_days=None, due_soon_days=None):
    """Beat entrypoint. Resolves today here and passes it in explicitly."""
    from apps.pdc.services.scheduler import run_scheduler

    run = run_scheduler(
        as_of or timezone.localdate(),
        horizon_days=horizon_days,
        due_soon_days=due_soon_days,
    )
    return {
        'run_key': run.run_key,
        'status': run.status,
        'promoted': run.promoted,
        'reminders_queued': run.reminders_queued,
        'redelivered': run.redelivered,
        'skipped': run.skipped,
        'failed': run.failed,
    }
