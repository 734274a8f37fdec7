# app/infra/db.py
import os

from sqlalchemy import Boolean, Column, ForeignKey, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./notifications.db")

Base = declarative_base()


class UserRecord(Base):
    """
    Usuario de la app. Sólo leemos phone/email para decidir
    si aplican los canales SMS/WhatsApp y email.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    devices = relationship("DeviceRecord", back_populates="user")


class DeviceRecord(Base):
    __tablename__ = "devices"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expo_push_token = Column(String, nullable=False, unique=True)

    user = relationship("UserRecord", back_populates="devices")


class NotificationRecord(Base):
    """
    Tabla única para todas las variantes; las columnas que no aplican
    a una variante quedan en NULL.
    """
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(String(32), nullable=False, index=True)  # ISO-8601 UTC
    order_id = Column(String, nullable=True)
    order_type = Column(String, nullable=True)
    inquiry_id = Column(String, nullable=True)
    quote_id = Column(String, nullable=True)


def create_db_engine(url: str = DATABASE_URL, **engine_kwargs) -> Engine:
    if url.startswith("sqlite"):
        # la sesión se abre en el threadpool de FastAPI y se usa en el loop
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
