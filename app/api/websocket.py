# app/api/websocket.py
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/notifications/{user_id}")
async def websocket_notifications(websocket: WebSocket, user_id: str):
    """
    WebSocket para notificaciones en tiempo real.
    El frontend debe conectarse con:
      ws://localhost:8001/ws/notifications/<userId>
    Cada conexión tiene su propia suscripción Redis; se libera al
    desconectar el cliente o si falla el envío.
    """
    await websocket.accept()
    pubsub = websocket.app.state.pubsub

    async with pubsub.subscribe(user_id) as notifications:

        async def forward():
            async for n in notifications:
                await websocket.send_text(n.model_dump_json())

        forward_task = asyncio.create_task(forward())
        try:
            # mantener la conexión viva hasta que el cliente se vaya
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("[ws] cliente %s desconectado", user_id)
        finally:
            forward_task.cancel()
            try:
                await forward_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("[ws] error reenviando notificaciones a %s", user_id)
