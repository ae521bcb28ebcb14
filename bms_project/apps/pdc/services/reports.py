"""
PDC read models for dashboards and tenant screens.
"""
from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, Sum

from apps.core.utils import as_date
from apps.pdc.models import PDCCheque, PDCStatus, PENDING_STATUSES, TenantBounceCounter


def _total(queryset):
    return queryset.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')


def _bounce_rate(bounced, settled):
    """Bounced cheques as a percentage of cheques that reached the bank."""
    if not settled:
        return Decimal('0.00')
    return (Decimal(bounced) * 100 / Decimal(settled)).quantize(Decimal('0.01'))


def dashboard_summary(as_of):
    """
    Headline numbers for the PDC dashboard as of a given date.

    Week and month windows are computed from as_of, never from the clock.
    """
    as_of = as_date(as_of)
    pdcs = PDCCheque.objects.filter(is_active=True)

    week_end = as_of + timedelta(days=7)
    month_start = as_of.replace(day=1)
    bounce_window_start = as_of - timedelta(days=30)

    due_this_week = pdcs.filter(
        status__in=[PDCStatus.RECEIVED, PDCStatus.DUE],
        cheque_date__gte=as_of,
        cheque_date__lte=week_end,
    )
    deposited_this_month = pdcs.filter(deposit_date__gte=month_start, deposit_date__lte=as_of)
    outstanding = pdcs.filter(status__in=PENDING_STATUSES)
    bounced_recent = pdcs.filter(bounced_date__gte=bounce_window_start, bounced_date__lte=as_of)

    # Every cheque that ever bounced keeps its bounced_date, including replaced ones.
    bounced_total = pdcs.filter(bounced_date__isnull=False).count()
    banked_total = pdcs.filter(deposit_date__isnull=False).count()

    by_status = {
        row['status']: row['count']
        for row in pdcs.values('status').annotate(count=Count('id'))
    }

    return {
        'as_of': as_of,
        'received_count': by_status.get(PDCStatus.RECEIVED, 0),
        'due_this_week_count': due_this_week.count(),
        'due_this_week_amount': _total(due_this_week),
        'deposited_this_month_count': deposited_this_month.count(),
        'deposited_this_month_amount': _total(deposited_this_month),
        'outstanding_count': outstanding.count(),
        'outstanding_amount': _total(outstanding),
        'bounced_last_30_days': bounced_recent.count(),
        'bounce_rate': _bounce_rate(bounced_total, banked_total),
        'by_status': {status.value: by_status.get(status.value, 0) for status in PDCStatus},
    }


def tenant_pdc_history(tenant_ref):
    """All cheques of a tenant with totals, oldest cheque date first."""
    pdcs = PDCCheque.objects.filter(tenant_ref=tenant_ref, is_active=True).order_by('cheque_date', 'id')

    cleared = pdcs.filter(status=PDCStatus.CLEARED)
    pending = pdcs.filter(status__in=PENDING_STATUSES)
    bounced_count = pdcs.filter(bounced_date__isnull=False).count()
    banked_count = pdcs.filter(deposit_date__isnull=False).count()

    counter = TenantBounceCounter.objects.filter(tenant_ref=tenant_ref).first()

    return {
        'tenant_ref': tenant_ref,
        'cheques': list(pdcs),
        'total_count': pdcs.count(),
        'total_amount': _total(pdcs),
        'cleared_count': cleared.count(),
        'cleared_amount': _total(cleared),
        'pending_count': pending.count(),
        'pending_amount': _total(pending),
        'bounced_count': bounced_count,
        'bounce_rate': _bounce_rate(bounced_count, banked_count),
        'bounce_counter': counter.bounce_count if counter else 0,
        'last_bounced_date': counter.last_bounced_date if counter else None,
    }
