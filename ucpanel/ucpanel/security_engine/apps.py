from django.apps import AppConfig


class SecurityEngineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ucpanel.security_engine'
    verbose_name = 'Proxy Security Engine'
