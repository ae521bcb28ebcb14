# Generated migration for the invoice ledger

import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='LedgerInvoice',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('invoice_ref', models.CharField(max_length=64, unique=True)),
                ('tenant_ref', models.CharField(blank=True, max_length=64)),
                ('lease_ref', models.CharField(blank=True, db_index=True, max_length=64)),
                ('total_due', models.DecimalField(decimal_places=2, max_digits=15)),
                ('total_applied', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('late_fee_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('status', models.CharField(choices=[('open', 'Open'), ('partial', 'Partially Paid'), ('paid', 'Paid')], default='open', max_length=20)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['invoice_ref'],
            },
        ),
        migrations.CreateModel(
            name='LedgerPayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=15)),
                ('source_ref', models.CharField(max_length=100)),
                ('new_balance', models.DecimalField(decimal_places=2, max_digits=15)),
                ('applied_at', models.DateTimeField(auto_now_add=True)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='ledger.ledgerinvoice')),
            ],
            options={
                'ordering': ['applied_at', 'id'],
                'constraints': [models.UniqueConstraint(fields=('invoice', 'source_ref'), name='unique_ledger_payment_source')],
            },
        ),
        migrations.CreateModel(
            name='LateFeeLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('lease_ref', models.CharField(blank=True, db_index=True, max_length=64)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('reason', models.CharField(max_length=50)),
                ('source_ref', models.CharField(max_length=100, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('invoice', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='late_fees', to='ledger.ledgerinvoice')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
    ]
