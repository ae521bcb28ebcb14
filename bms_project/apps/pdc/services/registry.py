"""
PDC Registry: registration and read access.

Registration creates cheques in RECEIVED; everything afterwards goes through
the state machine.
"""
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.http import QueryDict

from apps.core.audit import log_audit
from apps.pdc import cache
from apps.pdc.exceptions import PDCDoesNotExist
from apps.pdc.filters import PDCChequeFilter
from apps.pdc.forms import PDCEntryForm
from apps.pdc.models import PDCCheque

logger = logging.getLogger(__name__)


def _entry_errors(form):
    return {field: [str(message) for message in messages] for field, messages in form.errors.items()}


def register_pdcs(tenant_ref, cheques, lease_ref=None, invoice_ref=None, user=None):
    """
    Register a batch of cheques for one tenant, all in RECEIVED.

    Args:
        tenant_ref: Tenant the cheques belong to
        cheques: List of dicts with cheque_number, bank_name, amount,
                 cheque_date and optionally invoice_ref and notes
        lease_ref: Lease the cheques pay for (optional)
        invoice_ref: Default invoice for entries that do not name one
        user: Registering user

    Returns:
        list[PDCCheque]: The created cheques, in submission order

    Raises:
        ValidationError: nothing is created if any entry is invalid
    """
    tenant_ref = (tenant_ref or '').strip()
    if not tenant_ref:
        raise ValidationError({'tenant_ref': 'Tenant is required.'})

    cheques = list(cheques or [])
    if not cheques:
        raise ValidationError({'cheques': 'At least one cheque is required.'})

    max_cheques = settings.PDC_MAX_BULK_CHEQUES
    if len(cheques) > max_cheques:
        raise ValidationError({'cheques': f'Cannot register more than {max_cheques} cheques at once.'})

    cleaned_entries = []
    entry_errors = {}
    for index, entry in enumerate(cheques):
        if not isinstance(entry, dict):
            entry_errors[index] = {'__all__': ['Each cheque must be an object with its details.']}
            continue
        form = PDCEntryForm(data=entry)
        if form.is_valid():
            cleaned_entries.append(form.cleaned_data)
        else:
            entry_errors[index] = _entry_errors(form)
    if entry_errors:
        raise ValidationError({'cheques': [f'Cheque {index + 1}: {errors}' for index, errors in entry_errors.items()]})

    numbers = [entry['cheque_number'] for entry in cleaned_entries]
    if len(set(numbers)) != len(numbers):
        raise ValidationError({'cheques': 'Duplicate cheque numbers within submission.'})

    existing = list(
        PDCCheque.objects.filter(tenant_ref=tenant_ref, cheque_number__in=numbers)
        .values_list('cheque_number', flat=True)
    )
    if existing:
        raise ValidationError({
            'cheques': f"Cheque numbers already exist for this tenant: {', '.join(sorted(existing))}"
        })

    created = []
    with transaction.atomic():
        for entry in cleaned_entries:
            pdc = PDCCheque.objects.create(
                tenant_ref=tenant_ref,
                lease_ref=lease_ref or None,
                invoice_ref=entry.get('invoice_ref') or invoice_ref or None,
                cheque_number=entry['cheque_number'],
                bank_name=entry['bank_name'],
                amount=entry['amount'],
                cheque_date=entry['cheque_date'],
                notes=entry.get('notes') or '',
                created_by=user if getattr(user, 'is_authenticated', False) else None,
            )
            log_audit(user, 'create', 'pdc.PDCCheque', pdc.pk, {
                'pdc_number': pdc.pdc_number,
                'tenant_ref': tenant_ref,
                'cheque_number': pdc.cheque_number,
                'amount': pdc.amount,
                'cheque_date': pdc.cheque_date,
            })
            created.append(pdc)
        cache.invalidate_on_commit(*[pdc.pk for pdc in created])

    logger.info("Registered %s PDC(s) for tenant %s", len(created), tenant_ref)
    return created


def register_pdc(tenant_ref, cheque, lease_ref=None, invoice_ref=None, user=None):
    """Register a single cheque."""
    return register_pdcs(tenant_ref, [cheque], lease_ref=lease_ref, invoice_ref=invoice_ref, user=user)[0]


def get_pdc(pdc_id):
    """Cached detail read. Raises PDCDoesNotExist."""
    pdc = cache.get(pdc_id)
    if pdc is None:
        raise PDCDoesNotExist(f'PDC {pdc_id} does not exist.', pdc_id=pdc_id)
    return pdc


def _as_query_dict(filters):
    if isinstance(filters, QueryDict):
        return filters
    data = QueryDict('', mutable=True)
    for key, value in (filters or {}).items():
        if value is None or value == '':
            continue
        if isinstance(value, (list, tuple, set)):
            data.setlist(key, [str(item) for item in value])
        else:
            data[key] = str(value)
    return data


def list_pdcs(filters=None, **kwargs):
    """
    Filtered read model.

    Accepts a QueryDict (from a request) or keyword filters: status (one or
    a list), tenant_ref, lease_ref, invoice_ref, bank_name, date_from,
    date_to, reconciled, search.

    Raises:
        ValidationError: if a filter value is malformed
    """
    data = _as_query_dict(filters) if filters is not None else _as_query_dict(kwargs)
    if 'status' in data:
        data = data.copy()
        data.setlist('status', [status.lower() for status in data.getlist('status')])

    filterset = PDCChequeFilter(data, queryset=PDCCheque.objects.filter(is_active=True))
    if not filterset.is_valid():
        raise ValidationError(filterset.errors)
    return filterset.qs


def cheque_number_exists(tenant_ref, cheque_number):
    return PDCCheque.objects.filter(tenant_ref=tenant_ref, cheque_number=cheque_number.strip()).exists()


def distinct_bank_names():
    return list(
        PDCCheque.objects.order_by('bank_name').values_list('bank_name', flat=True).distinct()
    )
