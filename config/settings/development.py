# config/settings/development.py

from .base import *

# === DEVELOPMENT ===

DEBUG = True

ALLOWED_HOSTS = ['localhost', '127.0.0.1', '0.0.0.0']

# === DATABASE ===

# PostgreSQL by default (same as production)
# DATABASE_URL wins over the individual variables
if env('DATABASE_URL', default=None):
    import dj_database_url

    DATABASES['default'] = dj_database_url.parse(env('DATABASE_URL'), conn_max_age=600)
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': env('DB_NAME', default='kanban_board'),
            'USER': env('DB_USER', default='kanban_user'),
            'PASSWORD': env('DB_PASSWORD', default='kanban123'),
            'HOST': env('DB_HOST', default='localhost'),
            'PORT': env('DB_PORT', default='5432'),
            'OPTIONS': {
                'sslmode': 'prefer',
            },
            'CONN_MAX_AGE': 60,  # persistent connections
        }
    }

# SQLite only when explicitly requested
if env('USE_SQLITE', cast=bool, default=False):
    print("🔄 Using SQLite for development")
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }
else:
    print(f"🐘 Using PostgreSQL: {DATABASES['default'].get('NAME')}@{DATABASES['default'].get('HOST')}")

# === MORE VERBOSE LOGGING ===

LOGGING['handlers']['console']['level'] = 'DEBUG'
LOGGING['root']['level'] = 'DEBUG'
LOGGING['loggers']['apps']['level'] = 'DEBUG'

LOGGING['loggers']['django.db.backends'] = {
    'handlers': ['console'],
    'level': 'INFO',
    'propagate': False,
}

# Relaxed settings for development
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# Cheaper hashing while developing
KANBAN_BCRYPT_ROUNDS = env.int('KANBAN_BCRYPT_ROUNDS', default=8)

print("🚀 DEVELOPMENT settings loaded")
print(f"📁 BASE_DIR: {BASE_DIR}")
print(f"🔑 DEBUG: {DEBUG}")
print(f"🍃 MONGODB_URI: {'set' if MONGODB_URI else 'not set'} (USE_MONGODB={USE_MONGODB})")
