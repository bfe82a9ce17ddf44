"""
Periodic low-stock sweep over all ingredients.

Complements the per-deduction alerts: one summary notification per severity
for admins plus a simplified one for staff, gated by the throttle.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from cafe_inventory.events.sinks import NotificationSink, safe_notify
from cafe_inventory.models.alerts import NotificationType
from cafe_inventory.models.ingredient import Ingredient
from cafe_inventory.services.throttle_service import LowStockAlertThrottle

log = logging.getLogger("low_stock_monitor")


def _stock_ratio(ingredient: Ingredient) -> float:
    if ingredient.reorder_level <= 0:
        return 0.0
    return ingredient.actual_quantity / ingredient.reorder_level


class LowStockMonitor:

    def __init__(self, throttle: LowStockAlertThrottle, notification_sink: Optional[NotificationSink] = None):
        self.throttle = throttle
        self.notification_sink = notification_sink

    async def get_low_stock_items(self) -> List[Dict[str, Any]]:
        """Available ingredients at or below reorder level, most depleted first."""
        ingredients = await Ingredient.filter(is_available=True)
        low = [ing for ing in ingredients if ing.actual_quantity <= ing.reorder_level]
        low.sort(key=_stock_ratio)
        return [
            {
                "id": str(ing.id),
                "name": ing.name,
                "quantity": ing.actual_quantity,
                "unit": ing.actual_unit,
                "reorder_level": ing.reorder_level,
                "category": ing.category,
                "status": "out_of_stock" if ing.actual_quantity <= 0 else "low_stock",
            }
            for ing in low
        ]

    async def check_low_stock_items(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Throttled sweep. Critical (out of stock) and low items are notified
        separately, each only when its throttle allows it. Low items are held
        back while a critical notification is still due but blocked.
        """
        log.info("Checking for low stock items...")
        items = await self.get_low_stock_items()
        summary = {"critical": 0, "low": 0, "sent": []}
        if not items:
            log.info("All items are well stocked.")
            return summary

        critical = [item for item in items if item["status"] == "out_of_stock"]
        low = [item for item in items if item["status"] == "low_stock"]
        summary["critical"], summary["low"] = len(critical), len(low)
        log.warning(f"Found {len(items)} low stock items ({len(critical)} out of stock)")

        if critical:
            if await self.throttle.should_send_notification(NotificationType.LOW_STOCK_CRITICAL, now):
                await self._send(NotificationType.LOW_STOCK_CRITICAL, critical, items, now)
                summary["sent"].append(NotificationType.LOW_STOCK_CRITICAL.value)
            else:
                log.info("Critical stock notification throttled.")

        critical_clear = not critical or await self.throttle.can_send_notification(NotificationType.LOW_STOCK_CRITICAL, now)
        if low and (critical_clear or NotificationType.LOW_STOCK_CRITICAL.value in summary["sent"]):
            if await self.throttle.should_send_notification(NotificationType.LOW_STOCK_LOW, now):
                await self._send(NotificationType.LOW_STOCK_LOW, low, items, now)
                summary["sent"].append(NotificationType.LOW_STOCK_LOW.value)
            else:
                log.info("Low stock notification throttled.")

        return summary

    async def run_fallback_check(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Hourly catch-up for a notification window the process missed."""
        items = await self.get_low_stock_items()
        summary = {"critical": 0, "low": 0, "sent": []}
        for kind, status in (
            (NotificationType.LOW_STOCK_CRITICAL, "out_of_stock"),
            (NotificationType.LOW_STOCK_LOW, "low_stock"),
        ):
            matching = [item for item in items if item["status"] == status]
            summary["critical" if status == "out_of_stock" else "low"] = len(matching)
            if matching and await self.throttle.should_send_fallback(kind, now):
                log.info(f"Fallback: sending missed {kind.value} notification")
                await self._send(kind, matching, items, now)
                summary["sent"].append(kind.value)
        return summary

    async def force_check(self) -> Dict[str, Any]:
        """Sends one combined notification regardless of the throttle."""
        log.info("Force low stock check triggered")
        items = await self.get_low_stock_items()
        if not items:
            return {"critical": 0, "low": 0, "sent": []}

        critical = sum(1 for item in items if item["status"] == "out_of_stock")
        low = len(items) - critical
        if critical and low:
            title = "Critical & Low Stock Alert"
            message = f"{critical} item(s) are out of stock and {low} item(s) are running low"
            priority = "urgent"
        elif critical:
            title = "Critical Stock Alert"
            message = f"{critical} item(s) are out of stock"
            priority = "urgent"
        else:
            title = "Low Stock Alert"
            message = f"{low} item(s) are running low on stock"
            priority = "high"

        data = {"items": items, "critical_count": critical, "low_stock_count": low, "total_count": len(items)}
        await safe_notify(self.notification_sink, "low_stock", {
            "title": title, "message": message, "data": data, "user_type": "admin", "priority": priority,
        })
        await safe_notify(self.notification_sink, "low_stock", {
            "title": "Inventory Alert", "message": message, "data": {"items": items, "total_count": len(items)},
            "user_type": "staff", "priority": "high" if critical else "medium",
        })
        return {"critical": critical, "low": low, "sent": ["forced"]}

    async def _send(
        self,
        kind: NotificationType,
        matching: List[Dict[str, Any]],
        all_items: List[Dict[str, Any]],
        now: Optional[datetime],
    ) -> None:
        critical = kind == NotificationType.LOW_STOCK_CRITICAL
        if critical:
            title, message = "Critical Stock Alert", f"{len(matching)} item(s) are out of stock"
        else:
            title, message = "Low Stock Alert", f"{len(matching)} item(s) are running low on stock"

        admin_sent = await safe_notify(self.notification_sink, "low_stock", {
            "title": title,
            "message": message,
            "data": {"items": all_items, "count": len(matching), "total_count": len(all_items)},
            "user_type": "admin",
            "priority": "urgent" if critical else "high",
        })
        await safe_notify(self.notification_sink, "low_stock", {
            "title": "Critical Inventory Alert" if critical else "Low Stock Alert",
            "message": message if critical else f"{len(matching)} item(s) need restocking",
            "data": {"items": all_items, "total_count": len(all_items)},
            "user_type": "staff",
            "priority": "high" if critical else "medium",
        })
        if admin_sent:
            await self.throttle.update_last_sent_time(kind, now)
