from __future__ import annotations

import logging
from enum import Enum

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from src.notifications.credentials import ServiceAccountCredential
from src.notifications.exceptions import TokenExchangeError
from src.utils.time import utc_now

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


class ExchangeState(str, Enum):
    UNSTARTED = "UNSTARTED"
    ASSERTION_BUILT = "ASSERTION_BUILT"
    SIGNED = "SIGNED"
    EXCHANGED = "EXCHANGED"
    DONE = "DONE"
    FAILED = "FAILED"


def build_claims(credential: ServiceAccountCredential, audience: str, now: int | None = None) -> dict:
    issued_at = int(utc_now().timestamp()) if now is None else now
    return {
        "iss": credential.client_email,
        "scope": FCM_SCOPE,
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
    }


def sign_assertion(claims: dict, private_key: str) -> str:
    return jwt.encode(claims, private_key, algorithm="RS256", headers={"typ": "JWT"})


class CredentialExchanger:
    """Trades a service-account credential for a short-lived bearer token.

    One instance serves one inbound request; the token is not cached.
    """

    def __init__(self, credential: ServiceAccountCredential, client: httpx.AsyncClient, token_url: str) -> None:
        self.credential = credential
        self.client = client
        self.token_url = token_url
        self.state = ExchangeState.UNSTARTED

    def build_assertion(self, now: int | None = None) -> str:
        claims = build_claims(self.credential, self.token_url, now=now)
        self.state = ExchangeState.ASSERTION_BUILT
        try:
            assertion = sign_assertion(claims, self.credential.private_key)
        except (JOSEError, ValueError) as exc:
            self.state = ExchangeState.FAILED
            logger.error("Signing the OAuth2 assertion failed", extra={"client_email": self.credential.client_email})
            raise TokenExchangeError(f"Failed to sign OAuth2 assertion: {exc}") from exc
        self.state = ExchangeState.SIGNED
        return assertion

    async def exchange_assertion(self, assertion: str) -> str:
        form = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}
        try:
            resp = await self.client.post(self.token_url, data=form)
        except httpx.HTTPError as exc:
            self.state = ExchangeState.FAILED
            logger.error("OAuth2 token endpoint unreachable", extra={"error": str(exc)})
            raise TokenExchangeError(f"Failed to get access token: {exc}") from exc

        if not resp.is_success:
            self.state = ExchangeState.FAILED
            logger.error(
                "OAuth2 token exchange rejected",
                extra={"status": resp.status_code, "body": resp.text},
            )
            raise TokenExchangeError(f"Failed to get access token: {resp.text}", status=resp.status_code, body=resp.text)

        self.state = ExchangeState.EXCHANGED
        try:
            access_token = resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            self.state = ExchangeState.FAILED
            raise TokenExchangeError("Token endpoint response has no access_token", status=resp.status_code) from exc

        self.state = ExchangeState.DONE
        logger.info("Access token obtained")
        return access_token

    async def get_access_token(self) -> str:
        return await self.exchange_assertion(self.build_assertion())
