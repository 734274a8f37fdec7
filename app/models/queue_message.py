# app/models/queue_message.py
from typing import List

from pydantic import BaseModel, Field

from app.models.notification import Notification


class QueueMessage(BaseModel):
    """
    Evento de dominio tal como llega por la cola (o por POST /notifications).
    Un mensaje puede traer varias notificaciones (p.ej. comprador y vendedor
    de la misma orden); se procesan como un solo lote.
    """
    notifications: List[Notification] = Field(min_length=1)
