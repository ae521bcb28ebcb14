"""
Management command to run the PDC reminder scheduler.
Should be scheduled as a daily cron job.

Example cron entry (runs every day at 6 AM):
0 6 * * * cd /path/to/project && python manage.py run_pdc_scheduler
"""
from datetime import date
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from apps.pdc.services.scheduler import run_scheduler


class Command(BaseCommand):
    help = 'Promote upcoming PDCs to due and send deposit reminders'

    def add_arguments(self, parser):
        parser.add_argument(
            '--as-of',
            type=str,
            help='Run date (YYYY-MM-DD). Defaults to today.'
        )
        parser.add_argument(
            '--horizon',
            type=int,
            help='Days ahead a received cheque becomes due. Defaults to PDC_REMINDER_HORIZON_DAYS.'
        )
        parser.add_argument(
            '--due-soon',
            type=int,
            help='Days ahead a due cheque gets a due-soon reminder. Defaults to PDC_DUE_SOON_DAYS.'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Count what would happen without changing anything'
        )

    def handle(self, *args, **options):
        if options['as_of']:
            try:
                as_of = date.fromisoformat(options['as_of'])
            except ValueError:
                raise CommandError('Invalid date format. Use YYYY-MM-DD')
        else:
            as_of = timezone.localdate()

        try:
            run = run_scheduler(
                as_of,
                horizon_days=options['horizon'],
                due_soon_days=options['due_soon'],
                dry_run=options['dry_run'],
            )
        except ValueError as e:
            raise CommandError(str(e))

        self.stdout.write(f'Scheduler date: {as_of}')

        if run.status == 'skipped':
            self.stdout.write(self.style.WARNING(f'Another scheduler run for {as_of} is in progress. Skipped.'))
            return

        for error in run.errors:
            self.stderr.write(
                self.style.ERROR(f"  ERROR: {error['pdc_number']} ({error['step']}) - {error['error']}")
            )

        # Summary
        self.stdout.write('')
        self.stdout.write('=' * 50)
        self.stdout.write(f'Run: {run.run_key}')
        self.stdout.write(f'  Promoted to due: {run.promoted}')
        self.stdout.write(f'  Reminders queued: {run.reminders_queued}')
        self.stdout.write(f'  Redelivered: {run.redelivered}')
        self.stdout.write(f'  Skipped: {run.skipped}')
        self.stdout.write(f'  Errors: {run.failed}')

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('\nDRY RUN - No changes were made'))
        else:
            self.stdout.write(self.style.SUCCESS('\nScheduler run completed'))
