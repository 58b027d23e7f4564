from __future__ import annotations

import logging

import httpx

from src.notifications.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class SupabaseAuthClient:
    """Validates a caller's bearer token against the Supabase auth API."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.user_url = f"{url.rstrip('/')}/auth/v1/user"
        self.anon_key = anon_key
        self.transport = transport
        self.timeout = timeout

    async def get_user(self, authorization: str | None) -> dict:
        if not authorization:
            raise AuthenticationError("No authorization header")

        headers = {"Authorization": authorization, "apikey": self.anon_key}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.get(self.user_url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Auth service unreachable", extra={"error": str(exc)})
            raise AuthenticationError("User not authenticated") from exc

        if not resp.is_success:
            logger.warning("Caller token rejected", extra={"status": resp.status_code})
            raise AuthenticationError("User not authenticated")

        try:
            user = resp.json()
        except ValueError as exc:
            raise AuthenticationError("User not authenticated") from exc
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError("User not authenticated")

        logger.info("Caller authenticated", extra={"user_id": user["id"]})
        return user
