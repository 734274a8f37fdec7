# app/infra/expo_push.py
import logging
import os
from typing import List, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
# límite de mensajes por request de la API de Expo
EXPO_CHUNK_SIZE = 100


class ExpoPushSender:
    """
    Push vía Expo. Devuelve los tokens con ticket DeviceNotRegistered
    para que el fan-out borre esos devices.
    """

    def __init__(self, http_client: httpx.AsyncClient, access_token: Optional[str] = None, url: str = EXPO_PUSH_URL):
        self.http = http_client
        self.access_token = access_token
        self.url = url

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def send(self, tokens: Sequence[str], title: str, body: str) -> List[str]:
        """
        Cada chunk falla por separado: un error HTTP se loguea y se sigue,
        así no se pierden los tokens inválidos que reportaron los otros.
        Si fallan TODOS los chunks se relanza el último error (el fan-out
        lo registra como fallo del intento).
        """
        invalid = []
        failed, last_error = 0, None
        chunks = [list(tokens[i:i + EXPO_CHUNK_SIZE]) for i in range(0, len(tokens), EXPO_CHUNK_SIZE)]
        for chunk in chunks:
            try:
                invalid.extend(await self._send_chunk(chunk, title, body))
            except httpx.HTTPError as e:
                failed, last_error = failed + 1, e
                logger.error("[push] ❗ chunk de %d tokens falló: %s", len(chunk), e)

        if chunks and failed == len(chunks):
            raise last_error
        return invalid

    async def _send_chunk(self, chunk: List[str], title: str, body: str) -> List[str]:
        messages = [
            {"to": token, "title": title, "body": body, "sound": "default"}
            for token in chunk
        ]
        resp = await self.http.post(self.url, json=messages, headers=self._headers())
        resp.raise_for_status()

        invalid = []
        # los tickets vienen en el mismo orden que los mensajes
        tickets = resp.json().get("data", [])
        for token, ticket in zip(chunk, tickets):
            if ticket.get("status") != "error":
                continue
            error = (ticket.get("details") or {}).get("error")
            if error == "DeviceNotRegistered":
                invalid.append(token)
            else:
                logger.warning("[push] ticket con error para %s…: %s", token[:20], ticket.get("message"))
        return invalid
