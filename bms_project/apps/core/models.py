"""
Core models and mixins shared by the PDC and ledger apps.
"""
from django.db import models
from django.conf import settings


class TimeStampedModel(models.Model):
    """
    Abstract base model with created_at and updated_at fields.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UserTrackingModel(models.Model):
    """
    Abstract base model with created_by and updated_by fields.
    """
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_updated'
    )

    class Meta:
        abstract = True


class ActiveModel(models.Model):
    """
    Abstract base model with is_active field.
    Records are never physically deleted; retired rows are kept for audit.
    """
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True


class BaseModel(TimeStampedModel, UserTrackingModel, ActiveModel):
    """
    Base model combining all common fields.

    Fields:
    - created_at
    - updated_at
    - created_by
    - updated_by
    - is_active

    created_by/updated_by are filled from the request user stored by
    AuditMiddleware, unless the caller already set them explicitly
    (background jobs have no request).
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        from apps.core.middleware import get_current_user
        user = get_current_user()

        if user and user.is_authenticated:
            if not self.pk and not self.created_by_id:
                self.created_by = user
            self.updated_by = user

        super().save(*args, **kwargs)


class AuditLog(models.Model):
    """
    System audit log for tracking lifecycle actions on financial documents.
    Append-only: rows are never updated or deleted.
    """
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('transition', 'Status Transition'),
        ('reconcile', 'Reconcile'),
        ('late_fee', 'Late Fee'),
        ('replace', 'Replace'),
        ('schedule', 'Scheduled Run'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    model = models.CharField(max_length=100)
    record_id = models.CharField(max_length=50, blank=True)
    changes = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['model', 'record_id'], name='core_audit_model_record_idx'),
        ]

    def __str__(self):
        return f"{self.user} - {self.action} - {self.model}"
