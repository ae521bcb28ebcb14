# Celery instance is defined in bms_project/celery.py and loaded with Django
# so that shared_task decorators bind to it.
from .celery import celery_app

__all__ = ('celery_app',)
