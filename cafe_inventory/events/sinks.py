"""
Outbound sinks used by the inventory engine.

Both sinks are fire-and-forget: the engine calls them through ``safe_notify``
and ``safe_emit`` so an unavailable sink never fails a deduction.
"""
import logging
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

from cafe_inventory.events.outbox_utility import create_outbox_event
from cafe_inventory.models.alerts import Notification

log = logging.getLogger("sinks")


class NotificationSink(Protocol):
    async def notify(self, notification_type: str, payload: Dict[str, Any]) -> None:
        ...


class EventSink(Protocol):
    async def emit(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class DatabaseNotificationSink:
    """Persists notifications for the admin and staff dashboards."""

    async def notify(self, notification_type: str, payload: Dict[str, Any]) -> None:
        await Notification.create(
            type=notification_type,
            title=payload.get("title", notification_type.replace("_", " ").title()),
            message=payload.get("message", ""),
            data=payload.get("data"),
            user_type=payload.get("user_type", "admin"),
            priority=payload.get("priority", "medium"),
        )


class OutboxEventSink:
    """Records real-time events in the outbox for the socket relay."""

    async def emit(self, event: str, payload: Dict[str, Any]) -> None:
        aggregate_id: Optional[UUID] = None
        if payload.get("ingredient_id"):
            aggregate_id = UUID(str(payload["ingredient_id"]))
        await create_outbox_event(
            aggregate_type="ingredient",
            aggregate_id=aggregate_id,
            event_type=event,
            payload=payload,
        )


async def safe_notify(sink: Optional[NotificationSink], notification_type: str, payload: Dict[str, Any]) -> bool:
    if sink is None:
        return False
    try:
        await sink.notify(notification_type, payload)
        return True
    except Exception as e:
        log.warning(f"Notification sink failed for '{notification_type}': {e}")
        return False


async def safe_emit(sink: Optional[EventSink], event: str, payload: Dict[str, Any]) -> bool:
    if sink is None:
        return False
    try:
        await sink.emit(event, payload)
        return True
    except Exception as e:
        log.warning(f"Event sink failed for '{event}': {e}")
        return False
