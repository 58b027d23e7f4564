from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from src.models.notification import NotificationRequest
from src.notifications.exceptions import InvalidRequestError, NoDestinationError, TokenLookupError
from src.storage.repository import DeviceTokenRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Destinations:
    tokens: list[str] = field(default_factory=list)
    topic: str | None = None

    def __len__(self) -> int:
        return 1 if self.topic else len(self.tokens)


def resolve_destinations(request: NotificationRequest, repository: DeviceTokenRepository) -> Destinations:
    """Pick the delivery targets for ``request``.

    Explicit tokens win over ``user_id``, which wins over ``topic``. A topic
    is only used for delivery when no token path was taken.
    """
    if request.tokens:
        logger.info("Using tokens supplied by caller", extra={"token_count": len(request.tokens)})
        return Destinations(tokens=list(request.tokens))

    if request.user_id:
        try:
            tokens = repository.list_active_tokens(request.user_id)
        except SQLAlchemyError as exc:
            logger.exception("Device token lookup failed", extra={"user_id": request.user_id})
            raise TokenLookupError("Failed to fetch FCM tokens") from exc
        logger.info("Loaded active device tokens", extra={"user_id": request.user_id, "token_count": len(tokens)})
        if tokens:
            return Destinations(tokens=tokens)
        if request.topic:
            return Destinations(topic=request.topic)
        raise NoDestinationError(f"No active device tokens found for user {request.user_id}")

    if request.topic:
        return Destinations(topic=request.topic)

    raise InvalidRequestError("Provide user_id, tokens, or topic")
