"""
Filters for the PDC read model (list endpoint and list_pdcs()).
"""
import django_filters
from django.db.models import Q
from .models import PDCCheque, PDCStatus


class PDCChequeFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=PDCStatus.choices)
    tenant_ref = django_filters.CharFilter()
    lease_ref = django_filters.CharFilter()
    invoice_ref = django_filters.CharFilter()
    bank_name = django_filters.CharFilter(lookup_expr='iexact')
    date_from = django_filters.DateFilter(field_name='cheque_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='cheque_date', lookup_expr='lte')
    reconciled = django_filters.BooleanFilter()
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = PDCCheque
        fields = ['status', 'tenant_ref', 'lease_ref', 'invoice_ref', 'bank_name', 'reconciled']

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(cheque_number__icontains=value) |
            Q(pdc_number__icontains=value) |
            Q(bank_name__icontains=value) |
            Q(tenant_ref__icontains=value)
        )
