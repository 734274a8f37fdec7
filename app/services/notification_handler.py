# app/services/notification_handler.py
import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.infra.device_directory import delete_devices_by_token, get_delivery_targets
from app.infra.notification_store import create_notification
from app.infra.pubsub import NotificationPubSub
from app.infra.senders import NotificationSender, PushSender
from app.models.notification import BaseNotification
from app.services.titles import notification_title

logger = logging.getLogger(__name__)

# segundos máximos por intento de entrega (por canal y notificación)
DELIVERY_TIMEOUT = float(os.getenv("NOTIFICATION_DELIVERY_TIMEOUT", "10"))


@dataclass
class DeliveryFailure:
    notification_id: Optional[str]
    channel: str
    error: str


@dataclass
class DeliveryReport:
    attempts: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)
    removed_tokens: List[str] = field(default_factory=list)


class NotificationDispatcher:
    """
    Fan-out de notificaciones ya persistidas:
      in-app (pub/sub) siempre, push si hay tokens,
      WhatsApp si hay teléfono, email si hay email.
    Todos los intentos corren en paralelo; el fallo de uno no afecta
    a los demás. Al final se borran los devices con token inválido.
    """

    def __init__(
        self,
        pubsub: NotificationPubSub,
        push_sender: PushSender,
        sms_sender: NotificationSender,
        email_sender: NotificationSender,
        delivery_timeout: float = DELIVERY_TIMEOUT,
    ):
        self.pubsub = pubsub
        self.push_sender = push_sender
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.delivery_timeout = delivery_timeout

    async def send_notifications(self, session: Session, notifications: Sequence[BaseNotification]) -> DeliveryReport:
        report = DeliveryReport()
        if not notifications:
            return report

        # 1. destinos de todos los usuarios del lote en una sola consulta
        targets = get_delivery_targets(session, {n.userId for n in notifications})

        # 2. armar todos los intentos; las corutinas se crean recién en _attempt
        attempts = []
        for n in notifications:
            attempts.append((n, "in_app", self.pubsub.publish, (n,)))

            t = targets.get(n.userId)
            if t is None:
                continue
            if t.push_tokens:
                attempts.append((n, "push", self.push_sender.send, (t.push_tokens, notification_title(n), n.message)))
            if t.phone:
                attempts.append((n, "whatsapp", self.sms_sender.send, ([t.phone], n)))
            if t.email:
                attempts.append((n, "email", self.email_sender.send, ([t.email], n)))

        # 3. esperar a que terminen todos
        results = await asyncio.gather(
            *(self._attempt(n, channel, send, args) for n, channel, send, args in attempts)
        )
        report.attempts = len(attempts)

        tokens_to_cleanup = set()
        for (_, channel, _, _), (result, failure) in zip(attempts, results):
            if failure is not None:
                report.failures.append(failure)
            elif channel == "push" and result:
                tokens_to_cleanup.update(result)

        # 4. limpiar tokens muertos en un solo delete
        if tokens_to_cleanup:
            deleted = delete_devices_by_token(session, tokens_to_cleanup)
            report.removed_tokens = sorted(tokens_to_cleanup)
            logger.info("[fanout] %d devices con token inválido eliminados", deleted)

        if report.failures:
            logger.warning(
                "[fanout] %d de %d entregas fallaron", len(report.failures), report.attempts
            )
        return report

    async def _attempt(self, notification: BaseNotification, channel: str, send: Callable[..., Awaitable], args: tuple):
        """Corre un intento con timeout; nunca lanza, devuelve (resultado, fallo)."""
        try:
            result = await asyncio.wait_for(send(*args), timeout=self.delivery_timeout)
            return result, None
        except asyncio.TimeoutError:
            error = f"timeout tras {self.delivery_timeout}s"
        except Exception as e:
            error = repr(e)
        logger.error(
            "[fanout] ❗ falló %s para notificación %s (user %s): %s",
            channel, notification.id, notification.userId, error,
        )
        return None, DeliveryFailure(notification.id, channel, error)

    async def process_notifications(self, session: Session, notifications: Sequence[BaseNotification]):
        """
        Persiste cada notificación y luego hace el fan-out del lote.
        Errores de persistencia se propagan; el llamador decide el rollback.
        """
        created = []
        for n in notifications:
            stored = create_notification(session, n)
            if stored is None:
                logger.warning("[fanout] insert sin filas para user %s (%s)", n.userId, n.type)
                continue
            created.append(stored)

        report = await self.send_notifications(session, created)
        return created, report
