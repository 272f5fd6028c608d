# app/services/notify.py

from typing import Protocol

from app.utils.log import Log


class NotificationSender(Protocol):
    async def send(self, email: str, name: str | None, order) -> bool:
        ...


class LogNotificationSender:
    """Writes order confirmations to the "notify" log target instead of a mail gateway."""

    def __init__(self, log: Log):
        self.log = log

    async def send(self, email: str, name: str | None, order) -> bool:
        await self.log.log_info("notify", "Order confirmation", {
            "email": email,
            "name": name or "",
            "order_number": order.order_number,
            "total": order.total,
        })
        return True
