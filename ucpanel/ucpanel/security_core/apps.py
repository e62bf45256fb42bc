from django.apps import AppConfig


class SecurityCoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ucpanel.security_core'
    verbose_name = 'Proxy Security'

    def ready(self):
        """Import signal handlers when the app is ready."""
        import ucpanel.security_core.signals  # noqa
