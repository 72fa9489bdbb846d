# testflow/apps.py

from django.apps import AppConfig


class TestflowConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "testflow"
    verbose_name = "Material test workflow"

    def ready(self):
        from . import signals  # noqa
