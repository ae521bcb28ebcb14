"""
Post-Dated Cheque (PDC) Models

Key Features:
- Cheque lifecycle RECEIVED -> DUE -> DEPOSITED -> CLEARED / BOUNCED -> REPLACED
- Status and lifecycle columns writable only by the state machine
- Optimistic concurrency through a per-row version counter
- Forward-only replacement chain (one replacement per bounced cheque)
- Companion tables for scheduler idempotency, bounce counters and run history
"""
from datetime import timedelta
from django.db import models
from django.db.models import Q
from django.core.exceptions import ValidationError
from apps.core.models import BaseModel
from apps.core.utils import generate_number, as_date


class PDCStatus(models.TextChoices):
    RECEIVED = 'received', 'Received'
    DUE = 'due', 'Due'
    DEPOSITED = 'deposited', 'Deposited'
    CLEARED = 'cleared', 'Cleared'
    BOUNCED = 'bounced', 'Bounced'
    REPLACED = 'replaced', 'Replaced'
    CANCELLED = 'cancelled', 'Cancelled'


# The complete transition graph. No other edge exists.
PDC_TRANSITIONS = {
    PDCStatus.RECEIVED: (PDCStatus.DUE, PDCStatus.CANCELLED),
    PDCStatus.DUE: (PDCStatus.DEPOSITED, PDCStatus.CANCELLED),
    PDCStatus.DEPOSITED: (PDCStatus.CLEARED, PDCStatus.BOUNCED),
    PDCStatus.BOUNCED: (PDCStatus.REPLACED,),
    PDCStatus.CLEARED: (),
    PDCStatus.REPLACED: (),
    PDCStatus.CANCELLED: (),
}

TERMINAL_STATUSES = (PDCStatus.CLEARED, PDCStatus.REPLACED, PDCStatus.CANCELLED)

# Statuses in which the cheque is still expected to turn into money.
PENDING_STATUSES = (PDCStatus.RECEIVED, PDCStatus.DUE, PDCStatus.DEPOSITED)


class PDCCheque(BaseModel):
    """
    One physical post-dated cheque.

    Tenant, lease and invoice are external entities referenced by opaque
    refs; they are looked up, never owned. A cheque number is unique per
    tenant. Rows are never deleted: cleared, replaced and cancelled cheques
    stay for audit.
    """
    # Written only by the state machine (queryset update), never by save().
    LIFECYCLE_FIELDS = (
        'status', 'version', 'amount', 'cheque_date', 'replacement_of_id',
        'deposit_date', 'cleared_date', 'bounced_date', 'bounce_reason',
        'cancelled_date', 'reconciled',
    )

    pdc_number = models.CharField(max_length=50, unique=True, editable=False)

    # External references
    tenant_ref = models.CharField(max_length=64, db_index=True)
    lease_ref = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    invoice_ref = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    # Cheque details
    cheque_number = models.CharField(max_length=50)
    bank_name = models.CharField(max_length=200)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    cheque_date = models.DateField(help_text='Post-dated cheque date')

    status = models.CharField(max_length=20, choices=PDCStatus.choices, default=PDCStatus.RECEIVED, db_index=True)
    version = models.PositiveIntegerField(default=0, editable=False)

    # Deposit details
    deposit_date = models.DateField(null=True, blank=True)
    bank_account_ref = models.CharField(max_length=64, blank=True)

    # Clearing details
    cleared_date = models.DateField(null=True, blank=True)
    reconciled = models.BooleanField(default=False)

    # Bounce details
    bounced_date = models.DateField(null=True, blank=True)
    bounce_reason = models.CharField(max_length=255, blank=True)
    late_fee_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    late_fee_ref = models.CharField(max_length=64, blank=True)

    # Cancellation
    cancelled_date = models.DateField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    # Replacement chain: set once on the new cheque, never mutated
    replacement_of = models.OneToOneField(
        'self',
        on_delete=models.PROTECT,
        null=True, blank=True,
        related_name='replacement'
    )

    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['cheque_date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_ref', 'cheque_number'],
                name='unique_pdc_cheque_per_tenant'
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='pdc_amount_positive'
            ),
            models.CheckConstraint(
                condition=Q(reconciled=False) | Q(status='cleared'),
                name='pdc_reconciled_implies_cleared'
            ),
        ]

    def __str__(self):
        return f"PDC {self.pdc_number} - {self.cheque_number} ({self.tenant_ref})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_values = dict(zip(field_names, values))
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._remember_loaded_values()

    def _remember_loaded_values(self):
        deferred = self.get_deferred_fields()
        self._loaded_values = {
            field.attname: getattr(self, field.attname)
            for field in self._meta.concrete_fields
            if field.attname not in deferred
        }

    def clean(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be positive.'})
        if self.replacement_of_id and self.pk and self.replacement_of_id == self.pk:
            raise ValidationError({'replacement_of': 'A cheque cannot replace itself.'})

    def save(self, *args, **kwargs):
        if not self._state.adding:
            loaded = getattr(self, '_loaded_values', {})
            for attname in self.LIFECYCLE_FIELDS:
                if attname in loaded and getattr(self, attname) != loaded[attname]:
                    field_name = attname[:-3] if attname.endswith('_id') else attname
                    raise ValidationError({
                        field_name: 'This field can only change through a PDC status transition.'
                    })
        if not self.pdc_number:
            self.pdc_number = generate_number('PDC', PDCCheque, 'pdc_number')
        super().save(*args, **kwargs)
        self._remember_loaded_values()

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def allowed_transitions(self):
        return PDC_TRANSITIONS.get(self.status, ())

    def can_transition_to(self, target_status):
        return target_status in self.allowed_transitions

    def days_until_cheque_date(self, as_of):
        """Days from as_of to the cheque date (negative when overdue)."""
        return (self.cheque_date - as_date(as_of)).days

    def is_within_window(self, as_of, days):
        return self.cheque_date <= as_date(as_of) + timedelta(days=days)


class ReminderThreshold(models.TextChoices):
    DEPOSIT_APPROACHING = 'deposit_approaching', 'Deposit Approaching'
    DEPOSIT_DUE_SOON = 'deposit_due_soon', 'Deposit Due Soon'


class ReminderFired(models.Model):
    """
    Records that a reminder threshold already fired for a cheque.
    The unique constraint is what makes scheduler re-runs send nothing twice.

    delivered_at is set once the gateway accepts the notification. A row
    with last_error set and no delivered_at was dropped after its retries
    and is queued again by the next scheduler run.
    """
    pdc = models.ForeignKey(PDCCheque, on_delete=models.PROTECT, related_name='reminders_fired')
    threshold_type = models.CharField(max_length=30, choices=ReminderThreshold.choices)
    as_of = models.DateField(help_text='Scheduler as-of date that fired the reminder')
    fired_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    last_error = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-fired_at']
        constraints = [
            models.UniqueConstraint(
                fields=['pdc', 'threshold_type'],
                name='unique_reminder_per_threshold'
            )
        ]

    def __str__(self):
        return f"{self.pdc.pdc_number} - {self.get_threshold_type_display()}"

    @property
    def is_dropped(self):
        return self.delivered_at is None and bool(self.last_error)


class TenantBounceCounter(models.Model):
    """
    Tenant-level bounce counter. Exposed to tenant management, which does
    not own it.
    """
    tenant_ref = models.CharField(max_length=64, unique=True)
    bounce_count = models.PositiveIntegerField(default=0)
    last_bounced_date = models.DateField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-bounce_count']

    def __str__(self):
        return f"{self.tenant_ref}: {self.bounce_count} bounce(s)"


class SchedulerRun(models.Model):
    """
    Batch summary of one reminder scheduler invocation.
    """
    STATUS_CHOICES = [
        ('running', 'Running'),
        ('completed', 'Completed'),
        ('skipped', 'Skipped - Locked'),
    ]

    run_key = models.CharField(max_length=64, db_index=True)
    as_of = models.DateField()
    horizon_days = models.PositiveIntegerField()
    due_soon_days = models.PositiveIntegerField()
    dry_run = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='running')

    promoted = models.PositiveIntegerField(default=0)
    reminders_queued = models.PositiveIntegerField(default=0)
    redelivered = models.PositiveIntegerField(default=0)
    skipped = models.PositiveIntegerField(default=0)
    failed = models.PositiveIntegerField(default=0)
    errors = models.JSONField(default=list, blank=True)

    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at', '-id']

    def __str__(self):
        return f"Scheduler run {self.run_key} ({self.status})"
