from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.logging import get_logger
from app.models.saved_template import SavedTemplate, TemplateScope, TemplateType
from app.schemas.social_inbox import SavedTemplateCreate, SavedTemplateUpdate
from app.services.common import apply_pagination, commit, execute
from app.services.exceptions import InvalidReply, TemplateNotFound
from app.services.response import ListResponseMixin

logger = get_logger(__name__)


class SavedTemplates(ListResponseMixin):
    @staticmethod
    async def create(db: AsyncSession, payload: SavedTemplateCreate) -> SavedTemplate:
        data = payload.model_dump()
        if payload.scope == TemplateScope.global_:
            data["seller_id"] = None
        template = SavedTemplate(**data)
        db.add(template)
        await commit(db, "saved template")
        await db.refresh(template)
        logger.info(
            "saved_template_created id=%s scope=%s seller_id=%s",
            template.id,
            template.scope.value,
            template.seller_id,
        )
        return template

    @staticmethod
    async def get(
        db: AsyncSession, template_id: int, seller_id: str | None = None
    ) -> SavedTemplate:
        """Fetch a template; with ``seller_id`` other sellers' templates are hidden."""
        template = await db.get(SavedTemplate, template_id)
        if not template:
            raise TemplateNotFound()
        if (
            seller_id is not None
            and template.scope == TemplateScope.seller
            and template.seller_id != seller_id
        ):
            raise TemplateNotFound()
        return template

    @staticmethod
    async def list(
        db: AsyncSession,
        seller_id: str | None = None,
        template_type: TemplateType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SavedTemplate]:
        """Global templates plus, when given, the seller's own."""
        stmt = select(SavedTemplate)
        if seller_id:
            stmt = stmt.where(
                or_(
                    SavedTemplate.scope == TemplateScope.global_,
                    SavedTemplate.seller_id == seller_id,
                )
            )
        else:
            stmt = stmt.where(SavedTemplate.scope == TemplateScope.global_)
        if template_type is not None:
            stmt = stmt.where(SavedTemplate.type == template_type)
        stmt = stmt.order_by(SavedTemplate.updated_at.desc(), SavedTemplate.id.desc())
        result = await execute(db, apply_pagination(stmt, limit, offset), "template query")
        return list(result.scalars().all())

    @staticmethod
    async def update(
        db: AsyncSession,
        template_id: int,
        payload: SavedTemplateUpdate,
        seller_id: str | None = None,
    ) -> SavedTemplate:
        template = await SavedTemplates.get(db, template_id, seller_id=seller_id)
        data = payload.model_dump(exclude_unset=True)
        text = data.get("text", template.text)
        media_urls = data.get("media_urls", template.media_urls)
        if template.type == TemplateType.text and not (text or "").strip():
            raise InvalidReply("text templates need text")
        if template.type == TemplateType.media and not media_urls:
            raise InvalidReply("media templates need at least one media URL")
        for key, value in data.items():
            setattr(template, key, value)
        await commit(db, "saved template")
        await db.refresh(template)
        return template

    @staticmethod
    async def delete(db: AsyncSession, template_id: int, seller_id: str | None = None) -> None:
        template = await SavedTemplates.get(db, template_id, seller_id=seller_id)
        await db.delete(template)
        await commit(db, "saved template")


saved_templates = SavedTemplates()
