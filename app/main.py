# app/main.py
from dotenv import load_dotenv

# 1) cargar variables de entorno del .env
load_dotenv()

import asyncio
import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.notifications import router as notifications_router
from app.api.websocket import router as ws_router
from app.infra.db import create_db_engine, create_session_factory
from app.infra.pubsub import NotificationPubSub, create_redis_client
from app.infra.senders import build_senders
from app.infra.servicebus_consumer import NotificationConsumer
from app.logging_setup import setup_logging
from app.services.notification_handler import NotificationDispatcher

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Notification Service")

# 2) CORS (puedes limitar orígenes en prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3) Rutas REST
app.include_router(notifications_router)
# 4) Ruta WebSocket
app.include_router(ws_router)


@app.on_event("startup")
async def startup_event():
    # 5) clientes explícitos: DB, Redis, HTTP; se cierran en shutdown
    state = app.state
    state.engine = create_db_engine()
    state.session_factory = create_session_factory(state.engine)
    state.redis = create_redis_client()
    state.http = httpx.AsyncClient(timeout=10)

    state.pubsub = NotificationPubSub(state.redis)
    push, sms, email = build_senders(state.http)
    state.dispatcher = NotificationDispatcher(state.pubsub, push, sms, email)

    # 6) lanzar el consumer de Service Bus en background
    state.consumer = NotificationConsumer(state.session_factory, state.dispatcher)
    state.consumer_task = asyncio.create_task(state.consumer.run())
    logger.info("[startup] Notification Service listo")


@app.on_event("shutdown")
async def shutdown_event():
    state = app.state
    state.consumer_task.cancel()
    try:
        await state.consumer_task
    except asyncio.CancelledError:
        pass

    await state.http.aclose()
    await state.redis.aclose()
    state.engine.dispose()
    logger.info("[shutdown] clientes cerrados")
