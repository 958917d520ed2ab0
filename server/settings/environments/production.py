"""Settings for production deployments."""

from typing import Final

from server.settings.components import config

DEBUG = False

ALLOWED_HOSTS: Final = [
    config('DOMAIN_NAME'),
]

SESSION_COOKIE_SECURE = True

CSRF_COOKIE_SECURE = True
