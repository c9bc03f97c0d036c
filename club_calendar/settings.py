"""
Django settings for club_calendar project.

Values that differ between deployments are read from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-club-calendar-dev-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
    if host.strip()
]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'events',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'club_calendar.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'club_calendar.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DJANGO_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'

# All recurrence is computed in this single local time reference.
TIME_ZONE = os.environ.get('CALENDAR_TIME_ZONE', 'UTC')

USE_I18N = True

USE_TZ = True

STATIC_URL = 'static/'

REST_FRAMEWORK = {
    'EXCEPTION_HANDLER': 'events.views.exception_handler',
}

EVENTS_RECURRENCE_LIMITS = {
    'MAX_RECURRENCE_MONTHS': 6,
    'MAX_OCCURRENCES': 365,
}

CALENDAR_SYNC = {
    # Without a calendar id every remote call is a no-op.
    'CALENDAR_ID': os.environ.get('GOOGLE_CALENDAR_ID', ''),
    'CREDENTIALS_FILE': os.environ.get('GOOGLE_APPLICATION_CREDENTIALS') or None,
    'TIMEOUT': float(os.environ.get('CALENDAR_SYNC_TIMEOUT', '10')),
    'ASYNC': os.environ.get('CALENDAR_SYNC_ASYNC', 'true').lower() == 'true',
    'MAX_WORKERS': int(os.environ.get('CALENDAR_SYNC_MAX_WORKERS', '2')),
    'CLIENT': 'events.calendar_client.GoogleCalendarClient',
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'events': {
            'handlers': ['console'],
            'level': os.environ.get('EVENTS_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
