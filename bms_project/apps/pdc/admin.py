"""
PDC Admin
Status and lifecycle columns are read-only here; they change only through
transitions.
"""
from django.contrib import admin
from .models import PDCCheque, ReminderFired, TenantBounceCounter, SchedulerRun


class ReminderFiredInline(admin.TabularInline):
    model = ReminderFired
    extra = 0
    can_delete = False
    readonly_fields = ['threshold_type', 'as_of', 'fired_at', 'delivered_at', 'last_error']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PDCCheque)
class PDCChequeAdmin(admin.ModelAdmin):
    list_display = [
        'pdc_number', 'cheque_number', 'bank_name', 'cheque_date',
        'amount', 'tenant_ref', 'status', 'reconciled', 'version'
    ]
    list_filter = ['status', 'reconciled', 'bank_name']
    search_fields = ['pdc_number', 'cheque_number', 'tenant_ref', 'lease_ref', 'invoice_ref', 'bank_name']
    date_hierarchy = 'cheque_date'
    inlines = [ReminderFiredInline]

    lifecycle_readonly_fields = [
        'pdc_number', 'status', 'version', 'deposit_date', 'bank_account_ref',
        'cleared_date', 'reconciled', 'bounced_date', 'bounce_reason',
        'late_fee_amount', 'late_fee_ref', 'cancelled_date', 'cancellation_reason',
        'replacement_of', 'created_at', 'updated_at', 'created_by', 'updated_by',
    ]

    fieldsets = (
        ('Cheque Details', {
            'fields': ('pdc_number', 'cheque_number', 'bank_name', 'cheque_date', 'amount')
        }),
        ('Tenant & Lease', {
            'fields': ('tenant_ref', 'lease_ref', 'invoice_ref')
        }),
        ('Status', {
            'fields': ('status', 'version', 'reconciled')
        }),
        ('Deposit', {
            'fields': ('deposit_date', 'bank_account_ref', 'cleared_date')
        }),
        ('Bounce', {
            'fields': ('bounced_date', 'bounce_reason', 'late_fee_amount', 'late_fee_ref', 'replacement_of'),
            'classes': ('collapse',)
        }),
        ('Cancellation', {
            'fields': ('cancelled_date', 'cancellation_reason'),
            'classes': ('collapse',)
        }),
        ('Notes', {
            'fields': ('notes',)
        }),
        ('Audit', {
            'fields': ('created_at', 'updated_at', 'created_by', 'updated_by'),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        fields = list(self.lifecycle_readonly_fields)
        if obj is not None:
            fields += ['amount', 'cheque_date', 'tenant_ref', 'cheque_number']
        return fields

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ReminderFired)
class ReminderFiredAdmin(admin.ModelAdmin):
    list_display = ['pdc', 'threshold_type', 'as_of', 'fired_at', 'delivered_at']
    list_filter = ['threshold_type']
    search_fields = ['pdc__pdc_number', 'pdc__cheque_number']
    readonly_fields = ['pdc', 'threshold_type', 'as_of', 'fired_at', 'delivered_at', 'last_error']


@admin.register(TenantBounceCounter)
class TenantBounceCounterAdmin(admin.ModelAdmin):
    list_display = ['tenant_ref', 'bounce_count', 'last_bounced_date', 'updated_at']
    search_fields = ['tenant_ref']
    readonly_fields = ['bounce_count', 'last_bounced_date', 'updated_at']


@admin.register(SchedulerRun)
class SchedulerRunAdmin(admin.ModelAdmin):
    list_display = ['run_key', 'as_of', 'status', 'promoted', 'reminders_queued', 'redelivered', 'skipped', 'failed', 'started_at']
    list_filter = ['status', 'dry_run']
    readonly_fields = [
        'run_key', 'as_of', 'horizon_days', 'due_soon_days', 'dry_run', 'status',
        'promoted', 'reminders_queued', 'redelivered', 'skipped', 'failed', 'errors', 'started_at', 'finished_at',
    ]
