# config/settings/base.py

import os
import environ
from pathlib import Path

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# django-environ setup
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    USE_MONGODB=(bool, True),
    MONGODB_USE_TRANSACTIONS=(bool, False),
)

# Read the .env file when there is one
environ.Env.read_env(BASE_DIR / '.env')

# === BASIC SETTINGS ===

SECRET_KEY = env('SECRET_KEY', default='django-insecure-CHANGE-ME-IN-PRODUCTION')

DEBUG = env('DEBUG', default=False)

ALLOWED_HOSTS = env('ALLOWED_HOSTS', default=[])

# === APPLICATIONS ===

DJANGO_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

LOCAL_APPS = [
    'apps.core',
    'apps.board',
]

INSTALLED_APPS = DJANGO_APPS + LOCAL_APPS

# === MIDDLEWARE ===

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',  # static files
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'apps.core.middleware.StoreSelectionMiddleware',
    'apps.core.middleware.TokenAuthenticationMiddleware',
    'apps.core.middleware.ApiErrorMiddleware',
]

ROOT_URLCONF = 'config.urls'

# API routes have no trailing slash
APPEND_SLASH = False

# === TEMPLATES (admin only) ===

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
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

# === ASGI/WSGI ===

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# === RELATIONAL DATABASE ===

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': env('DB_NAME', default='kanban_board'),
        'USER': env('DB_USER', default='kanban_user'),
        'PASSWORD': env('DB_PASSWORD', default='kanban123'),
        'HOST': env('DB_HOST', default='localhost'),
        'PORT': env('DB_PORT', default='5432'),
    }
}

# Alternative setup through DATABASE_URL
if env('DATABASE_URL', default=None):
    import dj_database_url

    DATABASES['default'] = dj_database_url.parse(env('DATABASE_URL'))

# === DOCUMENT STORE ===

# Empty MONGODB_URI means the relational backend serves every request
MONGODB_URI = env('MONGODB_URI', default='')
MONGODB_NAME = env('MONGODB_NAME', default='kanban_board')
USE_MONGODB = env('USE_MONGODB')
MONGODB_SERVER_SELECTION_TIMEOUT_MS = env.int('MONGODB_SERVER_SELECTION_TIMEOUT_MS', default=5000)
# Multi-document transactions need a replica set
MONGODB_USE_TRANSACTIONS = env('MONGODB_USE_TRANSACTIONS')

# === INTERNATIONALIZATION ===

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# === STATIC FILES ===

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# WhiteNoise serves static files
STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage',
    },
}

# === LOGGING ===

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'file': {
            'level': 'INFO',
            'class': 'logging.FileHandler',
            'filename': BASE_DIR / 'logs' / 'kanban.log',
            'formatter': 'verbose',
        },
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console', 'file'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['file'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Create the logs folder when missing
(BASE_DIR / 'logs').mkdir(exist_ok=True)

# === SECURITY ===

# Board passwords are hashed with bcrypt; the cost factor is KANBAN_BCRYPT_ROUNDS
PASSWORD_HASHERS = [
    'apps.core.hashers.KanbanBCryptPasswordHasher',
    'django.contrib.auth.hashers.PBKDF2PasswordHasher',
]

# Password validation (admin accounts)
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# === KANBAN BOARD SETTINGS ===

# Token lifetime in seconds (7 days)
KANBAN_TOKEN_MAX_AGE = env.int('KANBAN_TOKEN_MAX_AGE', default=7 * 24 * 60 * 60)
KANBAN_TOKEN_COOKIE = env('KANBAN_TOKEN_COOKIE', default='token')

# bcrypt cost factor
KANBAN_BCRYPT_ROUNDS = env.int('KANBAN_BCRYPT_ROUNDS', default=10)

KANBAN_PASSWORD_MIN_LENGTH = env.int('KANBAN_PASSWORD_MIN_LENGTH', default=8)
