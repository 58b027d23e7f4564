from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from src.models.notification import DeliveryMode, DeliveryResult
from src.notifications.credentials import ServiceAccountCredential
from src.notifications.exceptions import DeliveryError
from src.notifications.message import for_token, for_topic
from src.notifications.oauth import CredentialExchanger
from src.notifications.resolver import Destinations
from src.storage.repository import DeviceTokenRepository

logger = logging.getLogger(__name__)

TOKEN_PREVIEW_LENGTH = 20
INVALID_TOKEN_STATUSES = {404, 410}
INVALID_TOKEN_MARKERS = ("UNREGISTERED", "INVALID_REGISTRATION", "NOT_FOUND")


def token_preview(token: str) -> str:
    return token[:TOKEN_PREVIEW_LENGTH]


def is_invalid_token_response(status: int, body: str) -> bool:
    return status in INVALID_TOKEN_STATUSES or any(marker in body for marker in INVALID_TOKEN_MARKERS)


def batched(tokens: list[str], size: int) -> Iterator[list[str]]:
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    for start in range(0, len(tokens), size):
        yield tokens[start : start + size]


class BaseNotifier(ABC):
    mode: DeliveryMode
    message: str

    @abstractmethod
    async def deliver(self, destinations: Destinations | None, message: dict[str, Any]) -> list[DeliveryResult]:
        raise NotImplementedError


class SimulatedNotifier(BaseNotifier):
    mode = "simulation"
    message = "Simulated notification - Firebase credentials not found"

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds

    async def deliver(self, destinations: Destinations | None, message: dict[str, Any]) -> list[DeliveryResult]:
        # Destinations are never resolved without credentials; one simulated send is reported.
        _ = destinations, message
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        logger.info("Simulated delivery")
        return [DeliveryResult(success=True)]


class FCMNotifier(BaseNotifier):
    mode = "production"
    message = "Notification sent using Firebase FCM"

    def __init__(
        self,
        credential: ServiceAccountCredential,
        client: httpx.AsyncClient,
        repository: DeviceTokenRepository,
        token_url: str,
        base_url: str = "https://fcm.googleapis.com",
        batch_size: int = 10,
    ) -> None:
        self.credential = credential
        self.client = client
        self.repository = repository
        self.exchanger = CredentialExchanger(credential, client, token_url)
        self.send_url = f"{base_url.rstrip('/')}/v1/projects/{credential.project_id}/messages:send"
        self.batch_size = batch_size
        self._store_lock = asyncio.Lock()

    async def deliver(self, destinations: Destinations, message: dict[str, Any]) -> list[DeliveryResult]:
        access_token = await self.exchanger.get_access_token()
        if destinations.topic:
            return [await self.send_to_topic(destinations.topic, message, access_token)]
        return await self.send_to_tokens(destinations.tokens, message, access_token)

    async def send_to_tokens(self, tokens: list[str], message: dict[str, Any], access_token: str) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        for batch in batched(tokens, self.batch_size):
            results.extend(await asyncio.gather(*(self.send_to_token(t, message, access_token) for t in batch)))
        return results

    async def send_to_token(self, token: str, message: dict[str, Any], access_token: str) -> DeliveryResult:
        preview = token_preview(token)
        try:
            await self._post(for_token(message, token), access_token)
        except DeliveryError as exc:
            logger.warning(
                "FCM delivery to token failed",
                extra={"token_preview": preview, "status": exc.status, "body": exc.body},
            )
            if exc.status is not None and is_invalid_token_response(exc.status, exc.body):
                await self._deactivate(token)
            return DeliveryResult(success=False, error=str(exc), status=exc.status, token_preview=preview)
        return DeliveryResult(success=True)

    async def send_to_topic(self, topic: str, message: dict[str, Any], access_token: str) -> DeliveryResult:
        try:
            await self._post(for_topic(message, topic), access_token)
        except DeliveryError as exc:
            logger.warning(
                "FCM delivery to topic failed",
                extra={"topic": topic, "status": exc.status, "body": exc.body},
            )
            return DeliveryResult(success=False, error=str(exc), status=exc.status)
        logger.info("FCM delivery to topic succeeded", extra={"topic": topic})
        return DeliveryResult(success=True)

    async def _post(self, payload: dict[str, Any], access_token: str) -> None:
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        try:
            resp = await self.client.post(self.send_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"FCM request failed: {exc}") from exc
        if not resp.is_success:
            raise DeliveryError(resp.text, status=resp.status_code, body=resp.text)

    async def _deactivate(self, token: str) -> None:
        preview = token_preview(token)
        # The session is shared by the whole batch; one store call at a time.
        async with self._store_lock:
            try:
                updated = await run_in_threadpool(self.repository.deactivate, token)
            except SQLAlchemyError:
                await run_in_threadpool(self.repository.db.rollback)
                logger.exception("Failed to deactivate device token", extra={"token_preview": preview})
                return
        logger.info("Device token marked inactive", extra={"token_preview": preview, "updated": updated})
