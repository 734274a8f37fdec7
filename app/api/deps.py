# app/api/deps.py
from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from app.services.notification_handler import NotificationDispatcher


def get_session(request: Request) -> Iterator[Session]:
    """Una transacción por request: commit al final, rollback si hubo error."""
    with request.app.state.session_factory.begin() as session:
        yield session


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher
