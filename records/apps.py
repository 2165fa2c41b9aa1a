from django.apps import AppConfig


class RecordsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "records"
    verbose_name = "Student records"

    def ready(self) -> None:  # pragma: no cover - Django convention
        from . import signals  # noqa: F401
