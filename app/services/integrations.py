"""Integration registry: page tokens for outbound sends.

Tokens are looked up by ``(platform, page_id)`` and only active rows count.
Resolved tokens may be served from a short in-process cache; writes made
through this module drop the cached entry immediately, and a deactivation
made elsewhere is picked up once the entry ages past
``INTEGRATION_TOKEN_CACHE_TTL`` seconds.
"""

from __future__ import annotations

from threading import Lock
from time import monotonic

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.logging import get_logger
from app.models.api_integration import ApiIntegration, IntegrationPlatform
from app.services.common import (
    apply_pagination,
    commit,
    execute,
    insert_or_ignore,
    validate_enum,
)
from app.services.exceptions import NoIntegration
from app.services.response import ListResponseMixin

logger = get_logger(__name__)


class TokenCache:
    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[tuple[str, str], tuple[str, float]] = {}
        self._lock = Lock()

    def get(self, platform: str, page_id: str) -> str | None:
        if self.ttl_seconds <= 0:
            return None
        with self._lock:
            entry = self._entries.get((platform, page_id))
            if entry is None:
                return None
            token, cached_at = entry
            if monotonic() - cached_at > self.ttl_seconds:
                del self._entries[(platform, page_id)]
                return None
            return token

    def set(self, platform: str, page_id: str, token: str) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[(platform, page_id)] = (token, monotonic())

    def invalidate(self, platform: str | None = None, page_id: str | None = None) -> None:
        with self._lock:
            if platform is None:
                self._entries.clear()
            else:
                self._entries.pop((platform, page_id or ""), None)


_token_cache = TokenCache(settings.integration_token_cache_ttl)


def _platform(value) -> IntegrationPlatform:
    return validate_enum(value, IntegrationPlatform, "platform")


class Integrations(ListResponseMixin):
    cache = _token_cache

    @staticmethod
    async def resolve_token(db: AsyncSession, platform, page_id: str) -> str:
        """Return the active page token for ``(platform, page_id)``.

        Fails closed: zero matches, an empty token, or more than one active
        row all raise ``NoIntegration``.
        """
        platform_enum = _platform(platform)
        cached = _token_cache.get(platform_enum.value, page_id)
        if cached is not None:
            return cached

        result = await execute(
            db,
            select(ApiIntegration)
            .where(ApiIntegration.platform == platform_enum)
            .where(ApiIntegration.page_id == page_id)
            .where(ApiIntegration.is_active.is_(True))
            .limit(2)
            .execution_options(populate_existing=True),
            "integration lookup",
        )
        rows = list(result.scalars().all())
        if len(rows) != 1 or not rows[0].page_token:
            if len(rows) > 1:
                logger.error(
                    "integration_ambiguous platform=%s page_id=%s", platform_enum.value, page_id
                )
            else:
                logger.warning(
                    "integration_missing platform=%s page_id=%s", platform_enum.value, page_id
                )
            raise NoIntegration(platform_enum.value, page_id)

        token = rows[0].page_token
        _token_cache.set(platform_enum.value, page_id, token)
        return token

    @staticmethod
    async def get(db: AsyncSession, platform, page_id: str) -> ApiIntegration | None:
        result = await execute(
            db,
            select(ApiIntegration)
            .where(ApiIntegration.platform == _platform(platform))
            .where(ApiIntegration.page_id == page_id),
            "integration lookup",
        )
        return result.scalars().first()

    @staticmethod
    async def upsert(
        db: AsyncSession,
        platform,
        page_id: str,
        page_token: str,
        is_active: bool = True,
    ) -> ApiIntegration:
        """Store the token for a page, creating the row on first connect."""
        platform_enum = _platform(platform)
        created = await insert_or_ignore(
            db,
            ApiIntegration,
            {
                "platform": platform_enum,
                "page_id": page_id,
                "page_token": page_token,
                "is_active": is_active,
            },
            conflict_columns=["platform", "page_id"],
            returning=ApiIntegration.id,
            operation="integration",
        )
        if created is None:
            await execute(
                db,
                update(ApiIntegration)
                .where(ApiIntegration.platform == platform_enum)
                .where(ApiIntegration.page_id == page_id)
                .values(page_token=page_token, is_active=is_active)
                .execution_options(synchronize_session=False),
                "integration",
            )
        await commit(db, "integration")
        _token_cache.invalidate(platform_enum.value, page_id)
        logger.info(
            "integration_saved platform=%s page_id=%s active=%s created=%s",
            platform_enum.value,
            page_id,
            is_active,
            created is not None,
        )
        integration = await Integrations.get(db, platform_enum, page_id)
        await db.refresh(integration)
        return integration

    @staticmethod
    async def deactivate(db: AsyncSession, platform, page_id: str) -> bool:
        platform_enum = _platform(platform)
        result = await execute(
            db,
            update(ApiIntegration)
            .where(ApiIntegration.platform == platform_enum)
            .where(ApiIntegration.page_id == page_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False),
            "integration",
        )
        await commit(db, "integration")
        _token_cache.invalidate(platform_enum.value, page_id)
        logger.info(
            "integration_deactivated platform=%s page_id=%s", platform_enum.value, page_id
        )
        return result.rowcount > 0

    @staticmethod
    async def list(
        db: AsyncSession,
        platform=None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ApiIntegration]:
        stmt = select(ApiIntegration)
        if platform is not None:
            stmt = stmt.where(ApiIntegration.platform == _platform(platform))
        if is_active is not None:
            stmt = stmt.where(ApiIntegration.is_active == is_active)
        stmt = stmt.order_by(ApiIntegration.id.asc())
        result = await execute(db, apply_pagination(stmt, limit, offset), "integration query")
        return list(result.scalars().all())


integrations = Integrations()
