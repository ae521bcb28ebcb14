"""
PDC JSON API.
Thin views over apps.pdc.services; lifecycle errors map to HTTP status codes.
"""
import json

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from apps.core.audit import get_entity_audit_history
from .exceptions import (
    ConcurrentModification, ExternalServiceFailure, InvalidTransition,
    PDCDoesNotExist, PDCError, ReconciliationOverflow, ReplacementValidationFailed,
)
from .forms import (
    PDCRegistrationForm, PDCReplacementForm, PDCTransitionForm, SchedulerRunForm,
)
from . import services

ERROR_STATUS = {
    InvalidTransition: 400,
    ReplacementValidationFailed: 400,
    PDCDoesNotExist: 404,
    ConcurrentModification: 409,
    ReconciliationOverflow: 422,
    ExternalServiceFailure: 502,
}


def pdc_to_dict(pdc):
    return {
        'id': pdc.pk,
        'pdc_number': pdc.pdc_number,
        'tenant_ref': pdc.tenant_ref,
        'lease_ref': pdc.lease_ref,
        'invoice_ref': pdc.invoice_ref,
        'cheque_number': pdc.cheque_number,
        'bank_name': pdc.bank_name,
        'amount': str(pdc.amount),
        'cheque_date': pdc.cheque_date,
        'status': pdc.status,
        'status_display': pdc.get_status_display(),
        'version': pdc.version,
        'deposit_date': pdc.deposit_date,
        'bank_account_ref': pdc.bank_account_ref,
        'cleared_date': pdc.cleared_date,
        'reconciled': pdc.reconciled,
        'bounced_date': pdc.bounced_date,
        'bounce_reason': pdc.bounce_reason,
        'late_fee_amount': str(pdc.late_fee_amount) if pdc.late_fee_amount is not None else None,
        'cancelled_date': pdc.cancelled_date,
        'cancellation_reason': pdc.cancellation_reason,
        'replacement_of': pdc.replacement_of_id,
        'allowed_transitions': [status.value for status in pdc.allowed_transitions],
        'notes': pdc.notes,
    }


def _error_response(exc):
    status = next(
        (code for error_class, code in ERROR_STATUS.items() if isinstance(exc, error_class)),
        400,
    )
    return JsonResponse(exc.as_dict(), status=status)


def _validation_response(exc):
    errors = getattr(exc, 'message_dict', None) or {'__all__': exc.messages}
    return JsonResponse({'error': 'ValidationError', 'errors': errors}, status=400)


def _form_response(form):
    return JsonResponse({'error': 'ValidationError', 'errors': form.errors.get_json_data()}, status=400)


def _request_data(request):
    """JSON body for API clients, form data otherwise."""
    if request.content_type == 'application/json':
        try:
            return json.loads(request.body or b'{}')
        except ValueError:
            raise ValidationError('Request body is not valid JSON.')
    return request.POST


@login_required
@require_GET
def pdc_list(request):
    try:
        pdcs = services.list_pdcs(request.GET)
    except ValidationError as e:
        return _validation_response(e)

    results = [pdc_to_dict(pdc) for pdc in pdcs]
    return JsonResponse({'count': len(results), 'results': results})


@login_required
@require_GET
def pdc_detail(request, pk):
    try:
        pdc = services.get_pdc(pk)
        chain = services.replacement_chain(pdc)
    except PDCError as e:
        return _error_response(e)

    replacement = services.get_replacement(pdc.pk)
    history = [{
        'action': entry.action,
        'user': entry.user.username if entry.user else None,
        'timestamp': entry.timestamp,
        'changes': entry.changes,
    } for entry in get_entity_audit_history('pdc.PDCCheque', pdc.pk)]

    data = pdc_to_dict(pdc)
    data['replaces'] = [pdc_to_dict(previous) for previous in chain]
    data['replacement'] = pdc_to_dict(replacement) if replacement else None
    data['history'] = history
    return JsonResponse(data)


@login_required
@require_POST
def pdc_register(request):
    """Register a batch of cheques for one tenant."""
    try:
        data = _request_data(request)
    except ValidationError as e:
        return _validation_response(e)

    form = PDCRegistrationForm(data)
    if not form.is_valid():
        return _form_response(form)

    cheques = data.get('cheques')
    if not isinstance(cheques, list):
        return JsonResponse(
            {'error': 'ValidationError', 'errors': {'cheques': ['A list of cheques is required.']}},
            status=400,
        )

    try:
        pdcs = services.register_pdcs(
            form.cleaned_data['tenant_ref'],
            cheques,
            lease_ref=form.cleaned_data.get('lease_ref') or None,
            invoice_ref=form.cleaned_data.get('invoice_ref') or None,
            user=request.user,
        )
    except ValidationError as e:
        return _validation_response(e)

    return JsonResponse({'count': len(pdcs), 'results': [pdc_to_dict(pdc) for pdc in pdcs]}, status=201)


@login_required
@require_POST
def pdc_transition(request, pk):
    try:
        data = _request_data(request)
    except ValidationError as e:
        return _validation_response(e)

    form = PDCTransitionForm(data)
    if not form.is_valid():
        return _form_response(form)

    try:
        pdc = services.transition_pdc(
            pk,
            form.cleaned_data['target_status'],
            form.cleaned_data['version'],
            fields=form.transition_context(),
            user=request.user,
        )
    except PDCError as e:
        return _error_response(e)
    except ValidationError as e:
        return _validation_response(e)

    return JsonResponse(pdc_to_dict(pdc))


@login_required
@require_POST
def pdc_replacement(request, pk):
    """Register the replacement cheque for a bounced PDC."""
    try:
        data = _request_data(request)
    except ValidationError as e:
        return _validation_response(e)

    form = PDCReplacementForm(data)
    if not form.is_valid():
        return _form_response(form)

    fields = {key: value for key, value in form.cleaned_data.items() if key != 'version'}
    try:
        replacement = services.register_replacement(
            pk, fields,
            expected_version=form.cleaned_data.get('version'),
            user=request.user,
        )
    except PDCError as e:
        return _error_response(e)

    return JsonResponse(pdc_to_dict(replacement), status=201)


@login_required
@require_POST
def scheduler_run(request):
    """Run the reminder scheduler on demand. Staff only."""
    if not request.user.is_staff:
        return JsonResponse({'error': 'PermissionDenied'}, status=403)

    try:
        data = _request_data(request)
    except ValidationError as e:
        return _validation_response(e)

    form = SchedulerRunForm(data)
    if not form.is_valid():
        return _form_response(form)

    run = services.run_scheduler(
        form.cleaned_data['as_of'],
        horizon_days=form.cleaned_data.get('horizon_days'),
        due_soon_days=form.cleaned_data.get('due_soon_days'),
        dry_run=form.cleaned_data.get('dry_run', False),
    )
    return JsonResponse({
        'run_key': run.run_key,
        'status': run.status,
        'as_of': run.as_of,
        'promoted': run.promoted,
        'reminders_queued': run.reminders_queued,
        'redelivered': run.redelivered,
        'skipped': run.skipped,
        'failed': run.failed,
        'errors': run.errors,
    })


@login_required
@require_GET
def dashboard(request):
    try:
        as_of = request.GET.get('as_of') or timezone.localdate()
        summary = services.dashboard_summary(as_of)
    except ValueError:
        return JsonResponse(
            {'error': 'ValidationError', 'errors': {'as_of': ['Enter a valid date.']}}, status=400
        )
    return JsonResponse(summary)


@login_required
@require_GET
def tenant_history(request, tenant_ref):
    history = services.tenant_pdc_history(tenant_ref)
    history['cheques'] = [pdc_to_dict(pdc) for pdc in history['cheques']]
    return JsonResponse(history)


@login_required
@require_GET
def bank_names(request):
    return JsonResponse({'results': services.distinct_bank_names()})


@login_required
@require_GET
def cheque_exists(request):
    """Live uniqueness check for the registration form."""
    tenant_ref = request.GET.get('tenant_ref', '')
    cheque_number = request.GET.get('cheque_number', '')

    if not tenant_ref or not cheque_number:
        return JsonResponse({'exists': False, 'message': 'Incomplete data'})

    exists = services.cheque_number_exists(tenant_ref, cheque_number)
    return JsonResponse({
        'exists': exists,
        'message': 'This cheque number is already registered for the tenant.' if exists else '',
    })
