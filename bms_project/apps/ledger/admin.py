"""
Ledger Admin
"""
from django.contrib import admin
from .models import LedgerInvoice, LedgerPayment, LateFeeLine


class LedgerPaymentInline(admin.TabularInline):
    model = LedgerPayment
    extra = 0
    readonly_fields = ['amount', 'source_ref', 'new_balance', 'applied_at']


@admin.register(LedgerInvoice)
class LedgerInvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_ref', 'tenant_ref', 'lease_ref', 'total_due', 'total_applied', 'late_fee_total', 'status']
    list_filter = ['status', 'is_active']
    search_fields = ['invoice_ref', 'tenant_ref', 'lease_ref']
    readonly_fields = ['total_applied', 'late_fee_total', 'status', 'created_at', 'updated_at']
    inlines = [LedgerPaymentInline]


@admin.register(LedgerPayment)
class LedgerPaymentAdmin(admin.ModelAdmin):
    list_display = ['invoice', 'amount', 'source_ref', 'new_balance', 'applied_at']
    search_fields = ['invoice__invoice_ref', 'source_ref']
    readonly_fields = ['invoice', 'amount', 'source_ref', 'new_balance', 'applied_at']


@admin.register(LateFeeLine)
class LateFeeLineAdmin(admin.ModelAdmin):
    list_display = ['source_ref', 'lease_ref', 'invoice', 'amount', 'reason', 'created_at']
    list_filter = ['reason']
    search_fields = ['source_ref', 'lease_ref', 'invoice__invoice_ref']
    readonly_fields = ['lease_ref', 'invoice', 'amount', 'reason', 'source_ref', 'created_at']
