"""
Invoice Ledger Models

Minimal receivables ledger backing the default InvoiceLedgerService:
invoice balances, payments applied from cleared cheques, and late fee lines.
"""
from decimal import Decimal
from django.db import models
from apps.core.models import BaseModel


class LedgerInvoice(BaseModel):
    """
    Outstanding balance of one invoice as the ledger sees it.
    total_due includes any late fees booked against the invoice.
    """
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
    ]

    invoice_ref = models.CharField(max_length=64, unique=True)
    tenant_ref = models.CharField(max_length=64, blank=True)
    lease_ref = models.CharField(max_length=64, blank=True, db_index=True)

    total_due = models.DecimalField(max_digits=15, decimal_places=2)
    total_applied = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    late_fee_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open')

    class Meta:
        ordering = ['invoice_ref']

    def __str__(self):
        return f"{self.invoice_ref} ({self.outstanding} outstanding)"

    @property
    def outstanding(self):
        return self.total_due - self.total_applied

    def refresh_status(self):
        if self.total_applied <= 0:
            self.status = 'open'
        elif self.total_applied >= self.total_due:
            self.status = 'paid'
        else:
            self.status = 'partial'


class LedgerPayment(models.Model):
    """
    A payment applied to an invoice. source_ref identifies the cheque that
    produced it; one payment per source per invoice.
    """
    invoice = models.ForeignKey(LedgerInvoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    source_ref = models.CharField(max_length=100)
    new_balance = models.DecimalField(max_digits=15, decimal_places=2)
    applied_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['applied_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['invoice', 'source_ref'],
                name='unique_ledger_payment_source'
            )
        ]

    def __str__(self):
        return f"{self.invoice.invoice_ref} <- {self.amount} ({self.source_ref})"


class LateFeeLine(models.Model):
    """
    Late fee charged to a lease (and, when known, the invoice it relates to).
    """
    lease_ref = models.CharField(max_length=64, blank=True, db_index=True)
    invoice = models.ForeignKey(
        LedgerInvoice,
        on_delete=models.PROTECT,
        null=True, blank=True,
        related_name='late_fees'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=50)
    source_ref = models.CharField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Late fee {self.amount} - {self.reason} ({self.source_ref})"
