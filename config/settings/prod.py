"""Production settings for the flight holds project.

This module extends the base settings with production specific
configuration. Ensure that sensitive values (the Django secret key and the
Duffel access token) are provided via environment variables.
"""

from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa: F401,F403

# Never run with debug enabled in production
DEBUG = False

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',')  # noqa: F405

if not DUFFEL_ACCESS_TOKEN:  # noqa: F405
    raise ImproperlyConfigured("DUFFEL_ACCESS_TOKEN must be set in production")

# Configure secure proxies and cookies
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True
