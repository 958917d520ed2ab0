"""Django app configuration for vault app."""

from typing import override

from django.apps import AppConfig


class VaultConfig(AppConfig):
    """Configuration for vault app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'server.apps.vault'
    verbose_name = 'Vault'

    @override
    def ready(self) -> None:
        """Import signal handlers when app is ready."""
        from server.apps.vault import signals  # noqa: F401
