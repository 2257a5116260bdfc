from django.apps import AppConfig


class RwaConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'rwa'
    verbose_name = 'RWA Management'

    def ready(self):
        from . import receipts  # noqa: F401 - connects signal receivers
