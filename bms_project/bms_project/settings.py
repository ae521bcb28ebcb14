"""
Django settings for the Building Management (PDC lifecycle) project.
"""

from pathlib import Path
from decimal import Decimal
from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='django-insecure-change-this-in-production-key-123456789')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=True, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,testserver', cast=Csv())

# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party apps
    'django_filters',

    # Local apps
    'apps.core',
    'apps.ledger',
    'apps.pdc',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'apps.core.middleware.AuditMiddleware',
]

ROOT_URLCONF = 'bms_project.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'bms_project.wsgi.application'

# Database
# Use SQLite for development, PostgreSQL for production
DATABASE_ENGINE = config('DB_ENGINE', default='sqlite')

if DATABASE_ENGINE == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': config('DB_NAME', default='bms_db'),
            'USER': config('DB_USER', default='postgres'),
            'PASSWORD': config('DB_PASSWORD', default='postgres'),
            'HOST': config('DB_HOST', default='localhost'),
            'PORT': config('DB_PORT', default='5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# Cache
# The PDC read-through cache and the scheduler run-lock both live here.
# Use a shared backend (Redis/Memcached) when running more than one worker.
CACHE_BACKEND = config('CACHE_BACKEND', default='django.core.cache.backends.locmem.LocMemCache')
CACHES = {
    'default': {
        'BACKEND': CACHE_BACKEND,
        'LOCATION': config('CACHE_LOCATION', default='bms-default'),
    }
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Dubai'
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Login URLs
LOGIN_URL = '/admin/login/'

# Email (used by the email notification gateway)
EMAIL_BACKEND = config('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='noreply@bms.local')

# Logging
LOG_LEVEL = config('LOG_LEVEL', default='INFO')
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {'format': '%(asctime)s %(levelname)s %(name)s %(message)s'},
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'apps': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
}

# Celery
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='memory://')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default=None)
# Notifications are delivered by a worker. Tests run tasks eagerly (settings_test.py).
CELERY_TASK_ALWAYS_EAGER = config('CELERY_TASK_ALWAYS_EAGER', default=False, cast=bool)
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_TIMEZONE = TIME_ZONE

# Number Series Configuration
NUMBER_SERIES = {
    'PDC': {'prefix': 'PDC', 'padding': 4},
}

# PDC lifecycle
PDC_REMINDER_HORIZON_DAYS = config('PDC_REMINDER_HORIZON_DAYS', default=7, cast=int)
PDC_DUE_SOON_DAYS = config('PDC_DUE_SOON_DAYS', default=3, cast=int)
PDC_LATE_FEE_TYPE = config('PDC_LATE_FEE_TYPE', default='percentage')  # 'percentage' or 'flat'
PDC_LATE_FEE_VALUE = config('PDC_LATE_FEE_VALUE', default='5', cast=Decimal)
PDC_MAX_BULK_CHEQUES = config('PDC_MAX_BULK_CHEQUES', default=24, cast=int)
PDC_CACHE_TIMEOUT = config('PDC_CACHE_TIMEOUT', default=300, cast=int)
PDC_SCHEDULER_LOCK_TIMEOUT = config('PDC_SCHEDULER_LOCK_TIMEOUT', default=3600, cast=int)
PDC_NOTIFICATION_MAX_RETRIES = config('PDC_NOTIFICATION_MAX_RETRIES', default=3, cast=int)
PDC_NOTIFICATION_RETRY_BACKOFF = config('PDC_NOTIFICATION_RETRY_BACKOFF', default=30, cast=int)  # seconds
PDC_LEDGER_SERVICE = config('PDC_LEDGER_SERVICE', default='apps.ledger.services.DatabaseLedgerService')
PDC_NOTIFICATION_GATEWAY = config('PDC_NOTIFICATION_GATEWAY', default='apps.pdc.gateways.LoggingNotificationGateway')
