from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.models.tables import UserFcmToken


class DeviceTokenRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_active_tokens(self, user_id: str) -> list[str]:
        stmt = (
            select(UserFcmToken.fcm_token)
            .where(UserFcmToken.user_id == user_id, UserFcmToken.is_active.is_(True))
            .order_by(UserFcmToken.id)
        )
        return list(self.db.scalars(stmt).all())

    def deactivate(self, token: str) -> int:
        stmt = (
            update(UserFcmToken)
            .where(UserFcmToken.fcm_token == token, UserFcmToken.is_active.is_(True))
            .values(is_active=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount or 0
