from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from app.models.api_integration import IntegrationPlatform
from app.models.conversation import ConversationEventType, DeliveryStatus, Platform
from app.models.message import MediaType, Sender, SenderRole
from app.models.saved_template import TemplateScope, TemplateType


class ConversationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: str
    platform: Platform
    page_id: str
    customer_id: str
    customer_name: str | None = None
    customer_profile_pic: str | None = None
    seller_id: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    locked_at: datetime | None = None
    delivery_status: DeliveryStatus
    last_message_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ConversationEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: str
    event_type: ConversationEventType
    seller_id: str | None = None
    actor: str | None = None
    from_status: DeliveryStatus | None = None
    to_status: DeliveryStatus | None = None
    created_at: datetime


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: str
    customer_name: str | None = None
    customer_profile_pic: str | None = None
    sender: Sender
    sender_role: SenderRole
    sender_name: str | None = None
    message: str
    media_urls: list[str] | None = None
    media_type: MediaType | None = None
    platform: Platform
    page_id: str
    platform_message_id: str | None = None
    timestamp: datetime
    created_at: datetime


class AssignRequest(BaseModel):
    seller_id: str = Field(min_length=1, max_length=64)
    assigned_by: str | None = Field(default=None, max_length=64)
    expected_seller_id: str | None = Field(default=None, max_length=64)


class ReleaseRequest(BaseModel):
    expected_seller_id: str | None = Field(default=None, max_length=64)
    released_by: str | None = Field(default=None, max_length=64)


class StatusRequest(BaseModel):
    delivery_status: DeliveryStatus
    changed_by: str | None = Field(default=None, max_length=64)


class MediaAttachment(BaseModel):
    url: str = Field(min_length=1)
    type: MediaType = MediaType.image


class ManualReplyRequest(BaseModel):
    conversation_id: str = Field(min_length=1, max_length=128)
    text: str
    sender_role: SenderRole = SenderRole.seller
    sender_name: str | None = Field(default=None, max_length=255)


class ManualMediaReplyRequest(BaseModel):
    conversation_id: str = Field(min_length=1, max_length=128)
    media: list[MediaAttachment]
    sender_role: SenderRole = SenderRole.seller
    sender_name: str | None = Field(default=None, max_length=255)


class TemplateSendRequest(BaseModel):
    conversation_id: str = Field(min_length=1, max_length=128)
    sender_role: SenderRole = SenderRole.seller
    sender_name: str | None = Field(default=None, max_length=255)
    seller_id: str | None = Field(default=None, max_length=64)


class SendResult(BaseModel):
    conversation_id: str
    platform_message_ids: list[str | None] = Field(default_factory=list)
    message_ids: list[int] = Field(default_factory=list)


class SavedTemplateBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scope: TemplateScope = TemplateScope.seller
    seller_id: str | None = Field(default=None, max_length=64)
    title: str = Field(default="", max_length=255)
    type: TemplateType
    text: str | None = None
    media_urls: list[str] | None = None

    @model_validator(mode="after")
    def _check_content(self):
        if self.scope == TemplateScope.seller and not self.seller_id:
            raise ValueError("seller_id is required for seller templates")
        if self.type == TemplateType.text and not (self.text or "").strip():
            raise ValueError("text templates need text")
        if self.type == TemplateType.media and not self.media_urls:
            raise ValueError("media templates need at least one media URL")
        return self


class SavedTemplateCreate(SavedTemplateBase):
    pass


class SavedTemplateUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    text: str | None = None
    media_urls: list[str] | None = None


class SavedTemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    scope: TemplateScope
    seller_id: str | None = None
    title: str
    type: TemplateType
    text: str | None = None
    media_urls: list[str] | None = None
    created_at: datetime
    updated_at: datetime


class ApiIntegrationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    platform: IntegrationPlatform
    page_id: str
    page_token: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @field_serializer("page_token")
    def _mask_page_token(self, value: str | None):
        if not value:
            return value
        suffix = value[-4:]
        return f"{'*' * max(len(value) - 4, 4)}{suffix}"


class ApiIntegrationUpsert(BaseModel):
    platform: IntegrationPlatform
    page_id: str = Field(min_length=1, max_length=128)
    page_token: str = Field(min_length=1)
    is_active: bool = True
