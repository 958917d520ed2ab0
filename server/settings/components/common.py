"""Core Django settings shared by every environment."""

from typing import Any, Final

from django.core.exceptions import ImproperlyConfigured

from server.settings.components import BASE_DIR, config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

INSTALLED_APPS: Final = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Our apps:
    'server.apps.vault',
]

MIDDLEWARE: Final = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'server.urls'

TEMPLATES: Final = [{
    'BACKEND': 'django.template.backends.django.DjangoTemplates',
    'APP_DIRS': True,
    'OPTIONS': {
        'context_processors': [
            'django.template.context_processors.request',
            'django.contrib.auth.context_processors.auth',
            'django.contrib.messages.context_processors.messages',
        ],
    },
}]

# Database
# SQLite runs writers in IMMEDIATE transactions so concurrent ledger
# updates wait on the busy timeout instead of failing on lock upgrade.

_SQLITE_BUSY_TIMEOUT: Final = 30

_DATABASE_ENGINE = config('DJANGO_DATABASE_ENGINE', default='sqlite')

_DATABASES: Final[dict[str, dict[str, Any]]] = {
    'sqlite': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': config(
            'DJANGO_DATABASE_NAME',
            default=str(BASE_DIR.joinpath('vault.sqlite3')),
        ),
        'OPTIONS': {
            'timeout': _SQLITE_BUSY_TIMEOUT,
            'transaction_mode': 'IMMEDIATE',
        },
        'TEST': {
            # File database: threads in concurrency tests need
            # their own connections to the same data.
            'NAME': str(BASE_DIR.joinpath('test_vault.sqlite3')),
        },
    },
    'postgres': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': config('POSTGRES_DB', default='vault'),
        'USER': config('POSTGRES_USER', default='vault'),
        'PASSWORD': config('POSTGRES_PASSWORD', default=''),
        'HOST': config('DJANGO_DATABASE_HOST', default='localhost'),
        'PORT': config('DJANGO_DATABASE_PORT', cast=int, default=5432),
        'CONN_MAX_AGE': config('CONN_MAX_AGE', cast=int, default=60),
    },
}

if _DATABASE_ENGINE not in _DATABASES:
    raise ImproperlyConfigured(
        f'Unknown DJANGO_DATABASE_ENGINE: {_DATABASE_ENGINE!r}',
    )

DATABASES: Final = {'default': _DATABASES[_DATABASE_ENGINE]}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Internationalization

LANGUAGE_CODE = 'en-us'

USE_I18N = True

TIME_ZONE = 'UTC'

USE_TZ = True

# Static files (CSS, JavaScript, Images)

STATIC_URL = '/static/'

STATIC_ROOT = BASE_DIR.joinpath('staticfiles')
