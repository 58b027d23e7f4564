from __future__ import annotations

import logging

import httpx
from starlette.concurrency import run_in_threadpool

from src.config import Settings, get_settings
from src.models.notification import DeliveryResult, DeliverySummary, NotificationRequest, NotificationResponse
from src.notifications.credentials import credential_presence, load_service_account
from src.notifications.exceptions import ConfigurationError
from src.notifications.message import build_message
from src.notifications.providers import BaseNotifier, FCMNotifier, SimulatedNotifier
from src.notifications.resolver import resolve_destinations
from src.storage.repository import DeviceTokenRepository

logger = logging.getLogger(__name__)


def summarize(results: list[DeliveryResult]) -> DeliverySummary:
    successful = sum(1 for result in results if result.success)
    return DeliverySummary(successful=successful, failed=len(results) - successful, details=results)


class NotificationService:
    def __init__(
        self,
        repository: DeviceTokenRepository,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or get_settings()
        self.transport = transport

    async def send(self, request: NotificationRequest) -> NotificationResponse:
        logger.info("Push request received", extra={"title": request.title})
        message = build_message(request.title, request.message, request.data)
        try:
            credential = load_service_account(self.settings)
        except ConfigurationError as exc:
            logger.warning("Simulation mode: Firebase credentials incomplete", extra={"missing": exc.missing})
            notifier = SimulatedNotifier(delay_seconds=self.settings.simulation_delay_seconds)
            results = await notifier.deliver(None, message)
            return self._respond(notifier, results, debug=credential_presence(self.settings))

        destinations = await run_in_threadpool(resolve_destinations, request, self.repository)

        async with httpx.AsyncClient(transport=self.transport, timeout=self.settings.http_timeout_seconds) as client:
            notifier = FCMNotifier(
                credential=credential,
                client=client,
                repository=self.repository,
                token_url=self.settings.oauth_token_url,
                base_url=self.settings.fcm_base_url,
                batch_size=self.settings.fcm_batch_size,
            )
            results = await notifier.deliver(destinations, message)
        return self._respond(notifier, results)

    def _respond(
        self,
        notifier: BaseNotifier,
        results: list[DeliveryResult],
        debug: dict[str, bool] | None = None,
    ) -> NotificationResponse:
        summary = summarize(results)
        logger.info(
            "Push request completed",
            extra={"mode": notifier.mode, "successful": summary.successful, "failed": summary.failed},
        )
        return NotificationResponse(mode=notifier.mode, message=notifier.message, results=summary, debug=debug)
