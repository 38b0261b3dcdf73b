from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_graph_client
from app.models.api_integration import IntegrationPlatform
from app.models.conversation import DeliveryStatus
from app.models.saved_template import TemplateType
from app.schemas.common import ListResponse
from app.schemas.social_inbox import (
    ApiIntegrationRead,
    ApiIntegrationUpsert,
    AssignRequest,
    ConversationEventRead,
    ConversationRead,
    ManualMediaReplyRequest,
    ManualReplyRequest,
    MessageRead,
    ReleaseRequest,
    SavedTemplateCreate,
    SavedTemplateRead,
    SavedTemplateUpdate,
    SendResult,
    StatusRequest,
    TemplateSendRequest,
)
from app.services import dispatch as dispatch_service
from app.services.conversation_locks import conversation_locks
from app.services.integrations import integrations
from app.services.messages import messages
from app.services.meta_messaging import MetaGraphClient
from app.services.templates import saved_templates

router = APIRouter()


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


@router.get(
    "/conversations",
    response_model=ListResponse[ConversationRead],
    tags=["conversations"],
)
async def list_conversations(
    seller_id: str | None = None,
    delivery_status: DeliveryStatus | None = None,
    unassigned: bool | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await conversation_locks.list_response(
        db, seller_id, delivery_status, unassigned, limit, offset
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationRead,
    tags=["conversations"],
)
async def get_conversation(conversation_id: str, db: AsyncSession = Depends(get_db)):
    return await conversation_locks.get(db, conversation_id)


@router.get(
    "/conversations/{conversation_id}/events",
    response_model=list[ConversationEventRead],
    tags=["conversations"],
)
async def list_conversation_events(conversation_id: str, db: AsyncSession = Depends(get_db)):
    await conversation_locks.get(db, conversation_id)
    return await conversation_locks.history(db, conversation_id)


@router.post(
    "/conversations/{conversation_id}/assign",
    response_model=ConversationRead,
    tags=["conversations"],
)
async def assign_conversation(
    conversation_id: str, payload: AssignRequest, db: AsyncSession = Depends(get_db)
):
    return await conversation_locks.assign(
        db,
        conversation_id,
        payload.seller_id,
        assigned_by=payload.assigned_by,
        expected_seller_id=payload.expected_seller_id,
    )


@router.post(
    "/conversations/{conversation_id}/release",
    response_model=ConversationRead,
    tags=["conversations"],
)
async def release_conversation(
    conversation_id: str, payload: ReleaseRequest, db: AsyncSession = Depends(get_db)
):
    return await conversation_locks.release(
        db,
        conversation_id,
        expected_seller_id=payload.expected_seller_id,
        released_by=payload.released_by,
    )


@router.post(
    "/conversations/{conversation_id}/status",
    response_model=ConversationRead,
    tags=["conversations"],
)
async def set_conversation_status(
    conversation_id: str, payload: StatusRequest, db: AsyncSession = Depends(get_db)
):
    return await conversation_locks.set_status(
        db, conversation_id, payload.delivery_status, changed_by=payload.changed_by
    )


# ---------------------------------------------------------------------------
# Messages and replies
# ---------------------------------------------------------------------------


@router.get(
    "/messages/{conversation_id}",
    response_model=ListResponse[MessageRead],
    tags=["messages"],
)
async def list_messages(
    conversation_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    await conversation_locks.get(db, conversation_id)
    return await messages.list_response(db, conversation_id, limit, offset)


@router.post("/manual-reply", response_model=SendResult, tags=["messages"])
async def manual_reply(
    payload: ManualReplyRequest,
    db: AsyncSession = Depends(get_db),
    graph: MetaGraphClient = Depends(get_graph_client),
):
    return await dispatch_service.send_reply(
        db,
        graph,
        payload.conversation_id,
        sender_role=payload.sender_role,
        sender_name=payload.sender_name,
        text=payload.text,
    )


@router.post("/manual-media-reply", response_model=SendResult, tags=["messages"])
async def manual_media_reply(
    payload: ManualMediaReplyRequest,
    db: AsyncSession = Depends(get_db),
    graph: MetaGraphClient = Depends(get_graph_client),
):
    return await dispatch_service.send_reply(
        db,
        graph,
        payload.conversation_id,
        sender_role=payload.sender_role,
        sender_name=payload.sender_name,
        media=payload.media,
    )


# ---------------------------------------------------------------------------
# Saved templates
# ---------------------------------------------------------------------------


@router.post(
    "/templates",
    response_model=SavedTemplateRead,
    status_code=status.HTTP_201_CREATED,
    tags=["templates"],
)
async def create_template(payload: SavedTemplateCreate, db: AsyncSession = Depends(get_db)):
    return await saved_templates.create(db, payload)


@router.get(
    "/templates",
    response_model=ListResponse[SavedTemplateRead],
    tags=["templates"],
)
async def list_templates(
    seller_id: str | None = None,
    template_type: TemplateType | None = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await saved_templates.list_response(db, seller_id, template_type, limit, offset)


@router.get(
    "/templates/{template_id}",
    response_model=SavedTemplateRead,
    tags=["templates"],
)
async def get_template(
    template_id: int,
    seller_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await saved_templates.get(db, template_id, seller_id=seller_id)


@router.patch(
    "/templates/{template_id}",
    response_model=SavedTemplateRead,
    tags=["templates"],
)
async def update_template(
    template_id: int,
    payload: SavedTemplateUpdate,
    seller_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await saved_templates.update(db, template_id, payload, seller_id=seller_id)


@router.delete(
    "/templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["templates"],
)
async def delete_template(
    template_id: int,
    seller_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    await saved_templates.delete(db, template_id, seller_id=seller_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/templates/{template_id}/send", response_model=SendResult, tags=["templates"])
async def send_template(
    template_id: int,
    payload: TemplateSendRequest,
    db: AsyncSession = Depends(get_db),
    graph: MetaGraphClient = Depends(get_graph_client),
):
    return await dispatch_service.send_template(
        db,
        graph,
        payload.conversation_id,
        template_id,
        sender_role=payload.sender_role,
        sender_name=payload.sender_name,
        seller_id=payload.seller_id,
    )


# ---------------------------------------------------------------------------
# Page integrations
# ---------------------------------------------------------------------------


@router.get(
    "/integrations",
    response_model=ListResponse[ApiIntegrationRead],
    tags=["integrations"],
)
async def list_integrations(
    platform: IntegrationPlatform | None = None,
    is_active: bool | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await integrations.list_response(db, platform, is_active, limit, offset)


@router.put("/integrations", response_model=ApiIntegrationRead, tags=["integrations"])
async def upsert_integration(payload: ApiIntegrationUpsert, db: AsyncSession = Depends(get_db)):
    return await integrations.upsert(
        db,
        payload.platform,
        payload.page_id,
        payload.page_token,
        is_active=payload.is_active,
    )


@router.delete(
    "/integrations/{platform}/{page_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["integrations"],
)
async def deactivate_integration(
    platform: IntegrationPlatform, page_id: str, db: AsyncSession = Depends(get_db)
):
    await integrations.deactivate(db, platform, page_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
