from django.apps import AppConfig


class DashboardConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "dashboard"
    verbose_name = "Clients & Parrainages"

    def ready(self):
        import dashboard.signals  # noqa
