"""
Utility functions shared across apps.
"""
from datetime import datetime, date
from django.conf import settings
from django.utils import timezone


def generate_number(document_type, model_class, number_field='number'):
    """
    Generate a sequential number for documents.
    Format: PREFIX-YEAR-NUMBER (e.g., PDC-2025-0001)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'PDC')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number

    Returns:
        str: Generated number
    """
    series = settings.NUMBER_SERIES.get(document_type, {})
    prefix = series.get('prefix', document_type)
    padding = series.get('padding', 4)

    year = timezone.localdate().year
    year_prefix = f"{prefix}-{year}-"

    filter_kwargs = {f'{number_field}__startswith': year_prefix}
    last_record = model_class.objects.filter(**filter_kwargs).order_by(f'-{number_field}').first()

    if last_record:
        last_number = getattr(last_record, number_field)
        try:
            last_seq = int(last_number.split('-')[-1])
        except (ValueError, IndexError):
            last_seq = 0
    else:
        last_seq = 0

    return f"{year_prefix}{str(last_seq + 1).zfill(padding)}"


def get_client_ip(request):
    """Get the client IP address from request."""
    if not request:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def as_date(value):
    """
    Normalise a date, datetime or ISO string to a date.
    Aware datetimes are converted to the project time zone first.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
