"""
Read-through cache in front of the PDC registry.

Reads go through get(); every write path (registration, transitions)
calls invalidate() once its transaction commits. The state machine never
reads from here, it always loads the row and its version from the database.
"""
from django.conf import settings
from django.core.cache import cache
from django.db import transaction

from .models import PDCCheque

KEY_PREFIX = 'pdc:detail'


def cache_key(pdc_id):
    return f'{KEY_PREFIX}:{pdc_id}'


def get(pdc_id):
    """Return the cheque, loading and caching it on a miss. None if absent."""
    key = cache_key(pdc_id)
    pdc = cache.get(key)
    if pdc is None:
        pdc = PDCCheque.objects.filter(pk=pdc_id, is_active=True).first()
        if pdc is not None:
            cache.set(key, pdc, settings.PDC_CACHE_TIMEOUT)
    return pdc


def invalidate(pdc_id):
    cache.delete(cache_key(pdc_id))


def invalidate_on_commit(*pdc_ids):
    """Drop cached entries after the surrounding transaction commits."""
    ids = [pdc_id for pdc_id in pdc_ids if pdc_id is not None]
    transaction.on_commit(lambda: cache.delete_many([cache_key(pdc_id) for pdc_id in ids]))
