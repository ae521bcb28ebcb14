"""
PDC Forms - input validation for registration, transitions and replacements.
"""
from decimal import Decimal
from django import forms
from .models import PDCStatus


class PDCEntryForm(forms.Form):
    """One cheque in a registration batch."""
    cheque_number = forms.CharField(max_length=50)
    bank_name = forms.CharField(max_length=200)
    amount = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    cheque_date = forms.DateField()
    invoice_ref = forms.CharField(max_length=64, required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 2}))

    def clean_cheque_number(self):
        return self.cleaned_data['cheque_number'].strip()

    def clean_bank_name(self):
        return self.cleaned_data['bank_name'].strip()


class PDCRegistrationForm(forms.Form):
    """Header of a registration batch: who the cheques belong to."""
    tenant_ref = forms.CharField(max_length=64)
    lease_ref = forms.CharField(max_length=64, required=False)
    invoice_ref = forms.CharField(max_length=64, required=False)


class PDCTransitionForm(forms.Form):
    """Manual status change. version is the one the operator was looking at."""
    target_status = forms.CharField(max_length=20)
    version = forms.IntegerField(min_value=0)
    deposit_date = forms.DateField(required=False)
    bank_account_ref = forms.CharField(max_length=64, required=False)
    cleared_date = forms.DateField(required=False)
    bounced_date = forms.DateField(required=False)
    bounce_reason = forms.CharField(max_length=255, required=False)
    cancelled_date = forms.DateField(required=False)
    cancellation_reason = forms.CharField(max_length=255, required=False)

    def clean_target_status(self):
        # Accept 'DEPOSITED' as well as 'deposited'
        value = self.cleaned_data['target_status'].strip().lower()
        if value not in PDCStatus.values:
            raise forms.ValidationError(f'Unknown status: {value}')
        return value

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('target_status') == PDCStatus.BOUNCED and not cleaned_data.get('bounce_reason'):
            self.add_error('bounce_reason', 'A bounce reason is required.')
        return cleaned_data

    def transition_context(self):
        fields = (
            'deposit_date', 'bank_account_ref', 'cleared_date', 'bounced_date',
            'bounce_reason', 'cancelled_date', 'cancellation_reason',
        )
        return {field: self.cleaned_data[field] for field in fields if self.cleaned_data.get(field)}


class PDCReplacementForm(forms.Form):
    """Replacement cheque for a bounced PDC."""
    cheque_number = forms.CharField(max_length=50)
    bank_name = forms.CharField(max_length=200)
    amount = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    cheque_date = forms.DateField()
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 2}))
    version = forms.IntegerField(min_value=0, required=False)


class SchedulerRunForm(forms.Form):
    as_of = forms.DateField()
    horizon_days = forms.IntegerField(min_value=0, required=False)
    due_soon_days = forms.IntegerField(min_value=0, required=False)
    dry_run = forms.BooleanField(required=False)
