"""
WSGI config for the Building Management project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bms_project.settings')

application = get_wsgi_application()
