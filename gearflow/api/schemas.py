"""Request bodies and the response envelope for the HTTP API."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def envelope(data: Any = None, error: Optional[str] = None) -> dict[str, Any]:
    return {"data": data, "error": error}


# ---------------- Requests ----------------

class RequestItem(BaseModel):
    gear_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class CreateRequestBody(BaseModel):
    items: list[RequestItem] = Field(min_length=1)
    reason: str = Field(min_length=1)
    expected_duration: str = "1 week"
    destination: Optional[str] = None


class RejectRequestBody(BaseModel):
    reason: str = ""


# ---------------- Notifications ----------------

class NotificationUpdateBody(BaseModel):
    is_read: bool = True


class NotificationCreateBody(BaseModel):
    user_id: str
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "system"
    link: Optional[str] = None


# ---------------- Check-ins ----------------

class CheckinCreateBody(BaseModel):
    gear_id: str
    condition: Literal["Good", "Damaged"] = "Good"
    notes: str = ""
    request_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class CheckinRejectBody(BaseModel):
    reason: str = ""
