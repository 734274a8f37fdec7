# app/models/notification.py
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class NotificationType(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_DISPATCHED = "ORDER_DISPATCHED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    INQUIRY_RECEIVED = "INQUIRY_RECEIVED"
    NEW_QUOTE_RECEIVED = "NEW_QUOTE_RECEIVED"
    QUOTE_ACCEPTED = "QUOTE_ACCEPTED"
    QUOTE_REJECTED = "QUOTE_REJECTED"


class OrderType(str, Enum):
    REGULAR = "REGULAR"
    SAMPLE = "SAMPLE"


_datetime_adapter = TypeAdapter(datetime)


def normalize_timestamp(value) -> str:
    """
    Lleva un timestamp (str ISO-8601 o datetime) al formato canónico
    UTC con microsegundos: 2026-01-01T00:00:00.000000+00:00.
    Formato fijo => el orden lexicográfico coincide con el cronológico.
    Sin zona horaria se asume UTC. Lanza ValidationError si no es fecha.
    """
    dt = _datetime_adapter.validate_python(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    return normalize_timestamp(datetime.now(timezone.utc))


class BaseNotification(BaseModel):
    id: Optional[str] = None          # lo genera el store al crear
    createdAt: str = Field(default_factory=utc_now_iso)
    message: str
    read: bool = False
    userId: str

    @field_validator("createdAt", mode="before")
    @classmethod
    def _canonical_created_at(cls, value):
        return normalize_timestamp(value)


class OrderNotification(BaseNotification):
    orderId: str
    orderType: OrderType


class OrderPlaced(OrderNotification):
    type: Literal["ORDER_PLACED"]


class OrderDispatched(OrderNotification):
    type: Literal["ORDER_DISPATCHED"]


class OrderShipped(OrderNotification):
    type: Literal["ORDER_SHIPPED"]


class InquiryReceived(BaseNotification):
    type: Literal["INQUIRY_RECEIVED"]
    inquiryId: str


class QuoteNotification(BaseNotification):
    quoteId: str
    inquiryId: str


class NewQuoteReceived(QuoteNotification):
    type: Literal["NEW_QUOTE_RECEIVED"]


class QuoteAccepted(QuoteNotification):
    type: Literal["QUOTE_ACCEPTED"]


class QuoteRejected(QuoteNotification):
    type: Literal["QUOTE_REJECTED"]


Notification = Annotated[
    Union[
        OrderPlaced,
        OrderDispatched,
        OrderShipped,
        InquiryReceived,
        NewQuoteReceived,
        QuoteAccepted,
        QuoteRejected,
    ],
    Field(discriminator="type"),
]

_notification_adapter = TypeAdapter(Notification)


def parse_notification(data: Any) -> BaseNotification:
    """
    Valida un dict contra la unión de notificaciones.
    Lanza pydantic.ValidationError si el tipo es desconocido
    o faltan los campos propios de la variante.
    """
    return _notification_adapter.validate_python(data)


def parse_notification_json(raw) -> BaseNotification:
    return _notification_adapter.validate_json(raw)


def notification_channel(user_id: str) -> str:
    """Canal pub/sub de un usuario: notification:user:<userId>"""
    return f"notification:user:{user_id}"
