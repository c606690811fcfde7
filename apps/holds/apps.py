from django.apps import AppConfig


class HoldsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.holds"
    verbose_name = "Hold orders"

    def ready(self) -> None:
        from .application import event_handlers  # noqa: F401
