"""Meta (Messenger / Instagram) webhook payloads and the normalized inbound event."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.conversation import Platform


class MetaMessagingEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    sender: dict | None = None
    recipient: dict | None = None
    timestamp: int | None = None
    message: dict | None = None
    postback: dict | None = None
    delivery: dict | None = None
    read: dict | None = None


class MetaEntry(BaseModel):
    """One page entry; messaging items are validated one at a time."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    time: int | None = None
    messaging: list[Any] | None = None
    changes: list[Any] | None = None


class MetaWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: str | None = None
    entry: list[Any] = Field(default_factory=list)


class InboundEvent(BaseModel):
    """One customer message, independent of the platform payload shape."""

    model_config = ConfigDict(frozen=True)

    conversation_key: str
    platform: Platform
    page_id: str
    customer_id: str
    customer_name: str
    customer_profile_pic: str | None = None
    text: str = ""
    media_urls: list[str] = Field(default_factory=list)
    platform_timestamp: datetime
    platform_message_id: str | None = None
    idempotency_key: str
