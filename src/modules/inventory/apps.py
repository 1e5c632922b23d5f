from django.apps import AppConfig


class InventoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.inventory"
    label = "inventory"

    def ready(self) -> None:
        from modules.inventory.events import ReservationEvent
        from modules.inventory.handlers import reservation_event_logger
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(ReservationEvent, reservation_event_logger)
