# app/api/notifications.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.deps import get_dispatcher, get_session
from app.infra.notification_store import (
    count_unread,
    list_user_notifications,
    mark_as_read,
)
from app.models.notification import Notification
from app.models.queue_message import QueueMessage
from app.services.notification_handler import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notifications(
    body: QueueMessage,
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Crea las notificaciones del body y hace el fan-out
    (mismo flujo que un mensaje de la cola).
    """
    created, report = await dispatcher.process_notifications(session, body.notifications)
    return {
        "notifications": [n.model_dump(mode="json") for n in created],
        "deliveries": report.attempts,
        "failed": len(report.failures),
        "removedTokens": len(report.removed_tokens),
    }


@router.get("/user/{user_id}", response_model=List[Notification])
async def list_notifications(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="createdAt de la última notificación vista"),
    session: Session = Depends(get_session),
):
    """
    Devuelve las notificaciones de un usuario, más nuevas primero.
    Para la página siguiente mandar cursor = createdAt de la última.
    """
    try:
        return list_user_notifications(session, user_id, limit=limit, cursor=cursor)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"cursor inválido: {cursor!r}",
        )


@router.get("/unread-count/{user_id}")
async def unread_count(user_id: str, session: Session = Depends(get_session)):
    """Cuenta las notificaciones NO leídas de un usuario."""
    return {"count": count_unread(session, user_id)}


@router.post("/user/{user_id}/mark-read/{notification_id}")
async def mark_notification_as_read(
    user_id: str,
    notification_id: str,
    session: Session = Depends(get_session),
):
    """
    Marca una notificación como leída.
    Si no existe no es error (idempotente). Errores de la base (también
    al hacer commit en get_session) se propagan como 500.
    """
    mark_as_read(session, user_id, notification_id)
    return {"ok": True}


# =========================
# 🔎 Diagnóstico del consumer de Service Bus
# =========================
@router.get("/debug/consumer-status")
async def debug_consumer_status(request: Request):
    """
    Devuelve el estado del consumer de Service Bus:
    - startedAt: cuándo arrancó
    - lastMessageAt: último mensaje procesado
    - lastError: último error visto (si hubo)
    - queue: nombre de la cola
    - hasConnectionString: si hay conn string configurado
    """
    consumer = getattr(request.app.state, "consumer", None)
    if consumer is None:
        return {"running": False}
    return consumer.status()
