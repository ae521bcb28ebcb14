import os
from celery import Celery

# ensure Django settings are set for Celery
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bms_project.settings')

celery_app = Celery('bms_project')

# read config from Django settings, using CELERY_ prefix
celery_app.config_from_object('django.conf:settings', namespace='CELERY')

# autoload tasks.py from installed apps
celery_app.autodiscover_tasks()
