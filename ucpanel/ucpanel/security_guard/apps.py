from django.apps import AppConfig


class SecurityGuardConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ucpanel.security_guard'
    verbose_name = 'Jails and Rule Cache'

    def ready(self):
        """Register cache invalidation handlers"""
        from . import signals  # noqa: F401
