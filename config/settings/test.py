"""Test settings.

In-memory SQLite, eager Celery and a dummy provider token so that nothing
leaves the process. Tests replace the provider client and the clock
through ``apps.holds.conf``.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

DUFFEL_ACCESS_TOKEN = 'duffel_test_token'
DUFFEL_API_URL = 'https://api.duffel.test'

HOLD_ORDERS = {
    'HOLD_DURATION_HOURS': 24,
    'AUTO_CANCEL_ON_EXPIRY': True,
    'RETENTION_DAYS': 30,
}
