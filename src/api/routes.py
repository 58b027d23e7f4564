from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.integrations.supabase_auth import SupabaseAuthClient
from src.models.db import get_db_session
from src.models.notification import NotificationRequest
from src.notifications.exceptions import AuthenticationError, InvalidRequestError
from src.notifications.service import NotificationService
from src.storage.repository import DeviceTokenRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions/v1", tags=["push-notifications"])


def get_http_transport() -> httpx.AsyncBaseTransport | None:
    return None


async def _parse_request(request: Request) -> NotificationRequest:
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidRequestError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    if not body.get("title") or not body.get("message"):
        raise InvalidRequestError("Title and message are required")
    try:
        return NotificationRequest.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid request body: {exc.errors()[0]['msg']}") from exc


@router.api_route(
    "/send-push-notification",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def send_push_notification(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db_session),
    transport: httpx.AsyncBaseTransport | None = Depends(get_http_transport),
):
    if request.method == "OPTIONS":
        return Response(status_code=200)

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise AuthenticationError("No authorization header")

    auth_client = SupabaseAuthClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        transport=transport,
        timeout=settings.http_timeout_seconds,
    )
    await auth_client.get_user(authorization)

    payload = await _parse_request(request)
    service = NotificationService(DeviceTokenRepository(db), settings=settings, transport=transport)
    response = await service.send(payload)
    return response.model_dump(exclude_none=True)
