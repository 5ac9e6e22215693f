"""
Django settings for the attachhub project.

Deployment switches are read from environment variables.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-change-me')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.sessions',
    'attachments',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
]

ROOT_URLCONF = 'attachhub.urls'
WSGI_APPLICATION = 'attachhub.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DJANGO_DB_PATH', BASE_DIR / 'db.sqlite3'),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'

# Attachments
ATTACHMENTS_DEFAULT_DISK = os.environ.get('ATTACHMENTS_DEFAULT_DISK', 'local')
ATTACHMENTS_DISKS = {
    'local': {
        'driver': 'local',
        'root': Path(os.environ.get('ATTACHMENTS_DATA_DIR', BASE_DIR / 'data' / 'attachments')),
    },
}
if os.environ.get('ATTACHMENTS_S3_BUCKET'):
    ATTACHMENTS_DISKS['s3'] = {
        'driver': 's3',
        'bucket': os.environ['ATTACHMENTS_S3_BUCKET'],
        'prefix': os.environ.get('ATTACHMENTS_S3_PREFIX', 'attachments'),
        'region': os.environ.get('ATTACHMENTS_S3_REGION'),
        'endpoint_url': os.environ.get('ATTACHMENTS_S3_ENDPOINT'),
        'access_key': os.environ.get('ATTACHMENTS_S3_ACCESS_KEY'),
        'secret_key': os.environ.get('ATTACHMENTS_S3_SECRET_KEY'),
        'public_base_url': os.environ.get('ATTACHMENTS_S3_PUBLIC_URL'),
        'force_path_style': env_bool('ATTACHMENTS_S3_FORCE_PATH_STYLE', False),
    }

ATTACHMENTS_UUID_PROVIDER = os.environ.get(
    'ATTACHMENTS_UUID_PROVIDER', 'attachments.services.identifiers.uuid_v4_base36'
)
ATTACHMENTS_CASCADE_DELETE = env_bool('ATTACHMENTS_CASCADE_DELETE', True)
ATTACHMENTS_DROPZONE_CHECK_CSRF = env_bool('ATTACHMENTS_DROPZONE_CHECK_CSRF', True)
ATTACHMENTS_MAX_SIZE_MB = int(os.environ.get('ATTACHMENTS_MAX_SIZE_MB', 25))
ATTACHMENTS_CLEANUP_DEFAULT_MINUTES = int(os.environ.get('ATTACHMENTS_CLEANUP_DEFAULT_MINUTES', 1440))

# Access gates, dotted paths to predicates (None allows everything)
ATTACHMENTS_OUTPUT_GATE = os.environ.get('ATTACHMENTS_OUTPUT_GATE') or None
ATTACHMENTS_UPLOAD_GATE = os.environ.get('ATTACHMENTS_UPLOAD_GATE') or None
ATTACHMENTS_DELETE_GATE = os.environ.get('ATTACHMENTS_DELETE_GATE') or None

# Routes
ATTACHMENTS_ROUTES_PUBLISH = env_bool('ATTACHMENTS_ROUTES_PUBLISH', True)
ATTACHMENTS_ROUTE_PREFIX = os.environ.get('ATTACHMENTS_ROUTE_PREFIX', 'attachments/')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'attachments': {
            'handlers': ['console'],
            'level': os.environ.get('ATTACHMENTS_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
