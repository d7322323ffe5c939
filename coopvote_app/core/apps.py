from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = "core"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self) -> None:
        # Connects the election_status_changed receivers.
        from core import elections_side_effects  # noqa: F401
