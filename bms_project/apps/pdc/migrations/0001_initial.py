# Generated migration for the PDC lifecycle tables

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PDCCheque',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('pdc_number', models.CharField(editable=False, max_length=50, unique=True)),
                ('tenant_ref', models.CharField(db_index=True, max_length=64)),
                ('lease_ref', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('invoice_ref', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('cheque_number', models.CharField(max_length=50)),
                ('bank_name', models.CharField(max_length=200)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=15)),
                ('cheque_date', models.DateField(help_text='Post-dated cheque date')),
                ('status', models.CharField(choices=[('received', 'Received'), ('due', 'Due'), ('deposited', 'Deposited'), ('cleared', 'Cleared'), ('bounced', 'Bounced'), ('replaced', 'Replaced'), ('cancelled', 'Cancelled')], db_index=True, default='received', max_length=20)),
                ('version', models.PositiveIntegerField(default=0, editable=False)),
                ('deposit_date', models.DateField(blank=True, null=True)),
                ('bank_account_ref', models.CharField(blank=True, max_length=64)),
                ('cleared_date', models.DateField(blank=True, null=True)),
                ('reconciled', models.BooleanField(default=False)),
                ('bounced_date', models.DateField(blank=True, null=True)),
                ('bounce_reason', models.CharField(blank=True, max_length=255)),
                ('late_fee_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('late_fee_ref', models.CharField(blank=True, max_length=64)),
                ('cancelled_date', models.DateField(blank=True, null=True)),
                ('cancellation_reason', models.CharField(blank=True, max_length=255)),
                ('notes', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
                ('replacement_of', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='replacement', to='pdc.pdccheque')),
            ],
            options={
                'ordering': ['cheque_date', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_ref', 'cheque_number'), name='unique_pdc_cheque_per_tenant'),
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='pdc_amount_positive'),
                    models.CheckConstraint(condition=models.Q(('reconciled', False), ('status', 'cleared'), _connector='OR'), name='pdc_reconciled_implies_cleared'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SchedulerRun',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('run_key', models.CharField(db_index=True, max_length=64)),
                ('as_of', models.DateField()),
                ('horizon_days', models.PositiveIntegerField()),
                ('due_soon_days', models.PositiveIntegerField()),
                ('dry_run', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('running', 'Running'), ('completed', 'Completed'), ('skipped', 'Skipped - Locked')], default='running', max_length=20)),
                ('promoted', models.PositiveIntegerField(default=0)),
                ('reminders_sent', models.PositiveIntegerField(default=0)),
                ('skipped', models.PositiveIntegerField(default=0)),
                ('failed', models.PositiveIntegerField(default=0)),
                ('errors', models.JSONField(blank=True, default=list)),
                ('started_at', models.DateTimeField(auto_now_add=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-started_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='TenantBounceCounter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_ref', models.CharField(max_length=64, unique=True)),
                ('bounce_count', models.PositiveIntegerField(default=0)),
                ('last_bounced_date', models.DateField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-bounce_count'],
            },
        ),
        migrations.CreateModel(
            name='ReminderFired',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('threshold_type', models.CharField(choices=[('deposit_approaching', 'Deposit Approaching'), ('deposit_due_soon', 'Deposit Due Soon')], max_length=30)),
                ('as_of', models.DateField(help_text='Scheduler as-of date that fired the reminder')),
                ('fired_at', models.DateTimeField(auto_now_add=True)),
                ('pdc', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='reminders_fired', to='pdc.pdccheque')),
            ],
            options={
                'ordering': ['-fired_at'],
                'constraints': [models.UniqueConstraint(fields=('pdc', 'threshold_type'), name='unique_reminder_per_threshold')],
            },
        ),
    ]
