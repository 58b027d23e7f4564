from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


DeliveryMode = Literal["production", "simulation"]


class NotificationRequest(BaseModel):
    user_id: Optional[str] = None
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    data: Optional[dict[str, Any]] = None
    topic: Optional[str] = None
    tokens: Optional[list[str]] = None


class DeliveryResult(BaseModel):
    success: bool
    error: Optional[str] = None
    status: Optional[int] = None
    token_preview: Optional[str] = None


class DeliverySummary(BaseModel):
    successful: int
    failed: int
    details: list[DeliveryResult] = []


class NotificationResponse(BaseModel):
    success: bool = True
    mode: DeliveryMode
    message: str
    results: DeliverySummary
    debug: Optional[dict[str, bool]] = None
