# app/infra/notification_store.py
import logging
import uuid
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.orm import Session

from app.infra.db import NotificationRecord
from app.models.notification import BaseNotification, normalize_timestamp, parse_notification

logger = logging.getLogger(__name__)

# campo del modelo -> columna de la tabla
_FIELD_TO_COLUMN = {
    "id": "id",
    "userId": "user_id",
    "type": "type",
    "message": "message",
    "read": "read",
    "createdAt": "created_at",
    "orderId": "order_id",
    "orderType": "order_type",
    "inquiryId": "inquiry_id",
    "quoteId": "quote_id",
}


def _to_row(notification: BaseNotification) -> dict:
    data = notification.model_dump(mode="json", exclude_none=True)
    return {_FIELD_TO_COLUMN[k]: v for k, v in data.items()}


def _from_row(row) -> dict:
    """Fila (mapping) -> dict con los nombres del modelo, sin los NULL."""
    return {
        field: row[column]
        for field, column in _FIELD_TO_COLUMN.items()
        if row[column] is not None
    }


def create_notification(session: Session, notification: BaseNotification) -> Optional[BaseNotification]:
    """
    Inserta la notificación con un id nuevo y read=False.
    Devuelve el registro guardado, o None si el insert no afectó filas.
    """
    values = _to_row(notification)
    values["id"] = uuid.uuid4().hex
    values["read"] = False

    table = NotificationRecord.__table__
    result = session.execute(insert(table).values(**values).returning(*table.c))
    row = result.mappings().first()
    if row is None:
        return None
    return parse_notification(_from_row(row))


def list_user_notifications(
    session: Session,
    user_id: str,
    limit: int,
    cursor: Optional[str] = None,
) -> List[BaseNotification]:
    """
    Notificaciones de un usuario, más nuevas primero.
    cursor = createdAt de la última vista; sólo devuelve las estrictamente
    anteriores. Las filas que no validan se loguean y se descartan, así que
    puede volver menos de `limit` aunque haya más filas.
    """
    table = NotificationRecord.__table__
    conditions = [table.c.user_id == user_id]
    if cursor:
        # mismo formato canónico que createdAt; ValidationError si no es fecha
        conditions.append(table.c.created_at < normalize_timestamp(cursor))

    stmt = (
        select(table)
        .where(and_(*conditions))
        .order_by(table.c.created_at.desc())
        .limit(limit)
    )

    notis = []
    for row in session.execute(stmt).mappings():
        try:
            notis.append(parse_notification(_from_row(row)))
        except ValidationError as e:
            logger.warning("[store] notificación inválida id=%s descartada: %s", row["id"], e)
    return notis


def mark_as_read(session: Session, user_id: str, notification_id: str) -> None:
    """Idempotente: si no existe la notificación no pasa nada."""
    table = NotificationRecord.__table__
    session.execute(
        update(table)
        .where(and_(table.c.user_id == user_id, table.c.id == notification_id))
        .values(read=True)
    )


def count_unread(session: Session, user_id: str) -> int:
    table = NotificationRecord.__table__
    stmt = select(func.count()).select_from(table).where(
        and_(table.c.user_id == user_id, table.c.read.is_(False))
    )
    return session.execute(stmt).scalar_one()
