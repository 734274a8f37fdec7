# app/infra/pubsub.py
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from pydantic import ValidationError
from redis.asyncio import Redis

from app.models.notification import (
    BaseNotification,
    notification_channel,
    parse_notification_json,
)

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


def create_redis_client(url: str = REDIS_URL) -> Redis:
    return Redis.from_url(url)


class NotificationPubSub:
    """
    Puente entre las notificaciones y los canales Redis por usuario.
    El cliente Redis se inyecta; quien lo crea (startup) es quien lo cierra.
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def publish(self, notification: BaseNotification) -> int:
        channel = notification_channel(notification.userId)
        return await self.redis.publish(channel, notification.model_dump_json())

    @asynccontextmanager
    async def subscribe(self, user_id: str) -> AsyncIterator[AsyncIterator[BaseNotification]]:
        """
        Abre una suscripción dedicada al canal del usuario:

            async with bridge.subscribe(user_id) as notifications:
                async for n in notifications:
                    ...

        Al salir del bloque (normal, error o cancelación) se desuscribe
        y se libera la conexión. Los mensajes que no validan se loguean
        y se saltan, igual que en la lectura del store.
        """
        channel = notification_channel(user_id)
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        notifications = None
        try:
            await pubsub.subscribe(channel)
            logger.debug("[pubsub] suscrito a %s", channel)
            notifications = self._iter_notifications(pubsub, channel)
            yield notifications
        finally:
            try:
                # cerrar el generador antes que la conexión que usa
                if notifications is not None:
                    await notifications.aclose()
                await pubsub.unsubscribe(channel)
            finally:
                await pubsub.aclose()
            logger.debug("[pubsub] suscripción cerrada %s", channel)

    async def _iter_notifications(self, pubsub, channel: str) -> AsyncIterator[BaseNotification]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield parse_notification_json(message["data"])
            except ValidationError as e:
                logger.warning("[pubsub] mensaje inválido en %s descartado: %s", channel, e)
