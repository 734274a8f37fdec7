# app/services/titles.py
from typing import Callable, Dict

from app.models.notification import BaseNotification, NotificationType, OrderType

DEFAULT_TITLE = "New Notification From Spot!"


def _order_prefix(n: BaseNotification) -> str:
    return "Order" if n.orderType == OrderType.REGULAR else "Sample"


_TITLES: Dict[NotificationType, Callable[[BaseNotification], str]] = {
    NotificationType.ORDER_PLACED: lambda n: f"{_order_prefix(n)} placed",
    NotificationType.ORDER_DISPATCHED: lambda n: f"{_order_prefix(n)} dispatched",
    NotificationType.ORDER_SHIPPED: lambda n: f"{_order_prefix(n)} shipped",
    NotificationType.INQUIRY_RECEIVED: lambda n: "Inquiry Received",
    NotificationType.NEW_QUOTE_RECEIVED: lambda n: "New Quote Received",
    NotificationType.QUOTE_ACCEPTED: lambda n: "Quote Accepted",
    NotificationType.QUOTE_REJECTED: lambda n: "Quote Rejected",
}

# agregar un NotificationType sin título rompe al importar
_missing = set(NotificationType) - set(_TITLES)
if _missing:
    raise RuntimeError(f"NotificationType sin título: {sorted(t.value for t in _missing)}")


def notification_title(notification: BaseNotification) -> str:
    try:
        kind = NotificationType(getattr(notification, "type", None))
    except ValueError:
        return DEFAULT_TITLE
    return _TITLES[kind](notification)
