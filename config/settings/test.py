# config/settings/test.py

from .base import *

# === TESTS ===

DEBUG = False

ALLOWED_HOSTS = ['testserver', 'localhost']

SECRET_KEY = 'test-secret-key-not-for-production'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Relational backend unless a test swaps in the document stores
MONGODB_URI = ''

STORAGES['staticfiles'] = {
    'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
}

# Fast hashing in tests
KANBAN_BCRYPT_ROUNDS = 4

# No log file in tests
LOGGING['handlers'] = {
    'console': {
        'level': 'WARNING',
        'class': 'logging.StreamHandler',
        'formatter': 'simple',
    },
}
LOGGING['root']['handlers'] = ['console']
LOGGING['loggers']['django']['handlers'] = ['console']
LOGGING['loggers']['apps']['handlers'] = ['console']
