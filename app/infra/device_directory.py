# app/infra/device_directory.py
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.infra.db import DeviceRecord, UserRecord


@dataclass
class DeliveryTargets:
    push_tokens: List[str] = field(default_factory=list)
    phone: Optional[str] = None
    email: Optional[str] = None


def get_delivery_targets(session: Session, user_ids: Iterable[str]) -> Dict[str, DeliveryTargets]:
    """
    Resuelve en UNA consulta los destinos de cada usuario:
      - todos sus push tokens (en orden de device id)
      - un teléfono y un email: gana el primer valor no vacío visto
    Usuarios que no existen en la tabla no aparecen en el resultado.
    """
    ids = set(user_ids)
    if not ids:
        return {}

    stmt = (
        select(UserRecord.id, UserRecord.phone, UserRecord.email, DeviceRecord.expo_push_token)
        .outerjoin(DeviceRecord, DeviceRecord.user_id == UserRecord.id)
        .where(UserRecord.id.in_(ids))
        .order_by(UserRecord.id, DeviceRecord.id)
    )

    targets: Dict[str, DeliveryTargets] = {}
    for user_id, phone, email, token in session.execute(stmt):
        t = targets.setdefault(user_id, DeliveryTargets())
        if token:
            t.push_tokens.append(token)
        if not t.phone and phone:
            t.phone = phone
        if not t.email and email:
            t.email = email
    return targets


def delete_devices_by_token(session: Session, tokens: Iterable[str]) -> int:
    tokens = set(tokens)
    if not tokens:
        return 0
    result = session.execute(
        delete(DeviceRecord).where(DeviceRecord.expo_push_token.in_(tokens))
    )
    return result.rowcount
