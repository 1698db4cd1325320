# config/settings/production.py

import logging
import dj_database_url
from .base import *

# === PRODUCTION ===

DEBUG = False

# Allowed hosts (must be set)
ALLOWED_HOSTS = env('ALLOWED_HOSTS', default=['localhost'])

# === SECURITY ===

# SSL/HTTPS required
SECURE_SSL_REDIRECT = env('SECURE_SSL_REDIRECT', cast=bool, default=True)
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Secure cookies
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_CONTENT_TYPE_NOSNIFF = True

# HSTS (HTTP Strict Transport Security)
SECURE_HSTS_SECONDS = 31536000  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

X_FRAME_OPTIONS = 'DENY'

# === DATABASE ===

# DATABASE_URL in production (Heroku, Railway, etc)
if env('DATABASE_URL', default=None):
    DATABASES['default'] = dj_database_url.parse(
        env('DATABASE_URL'),
        conn_max_age=600,
        conn_health_checks=True,
    )
else:
    # Manual setup for other providers
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': env('DB_NAME', default=''),
            'USER': env('DB_USER', default=''),
            'PASSWORD': env('DB_PASSWORD', default=''),
            'HOST': env('DB_HOST', default=''),
            'PORT': env('DB_PORT', default='5432'),
            'OPTIONS': {
                'sslmode': 'require',
            },
            'CONN_MAX_AGE': 600,
        }
    }

# === LOGGING ===

LOGGING['handlers']['file']['filename'] = env('LOG_FILE', default=str(BASE_DIR / 'logs' / 'kanban.log'))

# Sentry (when configured)
if env('SENTRY_DSN', default=None):
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_logging = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR
    )

    sentry_sdk.init(
        dsn=env('SENTRY_DSN'),
        integrations=[
            DjangoIntegration(),
            sentry_logging,
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
        environment=env('ENVIRONMENT', default='production')
    )

# === PERFORMANCE ===

# Compressed responses
MIDDLEWARE = ['django.middleware.gzip.GZipMiddleware'] + MIDDLEWARE

# === VALIDATION ===

# Required environment variables
required_settings = ['SECRET_KEY']
if env('DATABASE_URL', default=None) is None:
    required_settings.extend(['DB_NAME', 'DB_USER', 'DB_PASSWORD', 'DB_HOST'])

for setting in required_settings:
    if not env(setting, default=None):
        raise ValueError(f"Environment variable {setting} is required in production")

print("🚀 PRODUCTION settings loaded")
print(f"🔒 DEBUG: {DEBUG}")
print(f"🌐 ALLOWED_HOSTS: {ALLOWED_HOSTS[:3]}...")  # first three only
