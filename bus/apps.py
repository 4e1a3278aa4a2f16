from django.apps import AppConfig


class BusConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "bus"
    verbose_name = "Event Bus"
