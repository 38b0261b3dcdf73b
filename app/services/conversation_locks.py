"""Conversation ownership and delivery status.

Assignment is optimistic: every ownership change is one conditional UPDATE
that only matches while the row still has the owner the caller saw. An
affected-row count of zero means another agent got there first and the caller
receives ``AssignmentConflict``. Nothing here retries.

Delivery status is independent of ownership; any status may follow any other
regardless of who holds the conversation.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.logging import get_logger
from app.metrics import ASSIGNMENT_CONFLICTS
from app.models.conversation import (
    Conversation,
    ConversationEvent,
    ConversationEventType,
    DeliveryStatus,
)
from app.models.types import utcnow
from app.schemas.meta import InboundEvent
from app.services.common import (
    apply_pagination,
    commit,
    execute,
    insert_or_ignore,
    validate_enum,
)
from app.services.exceptions import AssignmentConflict, ConversationNotFound
from app.services.response import ListResponseMixin

logger = get_logger(__name__)


def _owner_is(expected_seller_id: str | None):
    if expected_seller_id is None:
        return Conversation.seller_id.is_(None)
    return Conversation.seller_id == expected_seller_id


class ConversationLocks(ListResponseMixin):
    @staticmethod
    async def ensure_for_event(db: AsyncSession, event: InboundEvent) -> bool:
        """Create the conversation row for an inbound event if it is new.

        Runs inside the caller's transaction. Returns True when the row was
        created by this call.
        """
        created = await insert_or_ignore(
            db,
            Conversation,
            {
                "conversation_id": event.conversation_key,
                "platform": event.platform,
                "page_id": event.page_id,
                "customer_id": event.customer_id,
                "customer_name": event.customer_name,
                "customer_profile_pic": event.customer_profile_pic,
                "delivery_status": DeliveryStatus.confirmed,
                "last_message_at": event.platform_timestamp,
            },
            conflict_columns=["conversation_id"],
            returning=Conversation.conversation_id,
            operation="conversation",
        )
        return created is not None

    @staticmethod
    async def touch(
        db: AsyncSession,
        conversation_id: str,
        at: datetime,
        customer_name: str | None = None,
        customer_profile_pic: str | None = None,
    ) -> None:
        """Advance ``last_message_at`` (never backwards) and refresh customer details."""
        await execute(
            db,
            update(Conversation)
            .where(Conversation.conversation_id == conversation_id)
            .where(or_(Conversation.last_message_at.is_(None), Conversation.last_message_at < at))
            .values(last_message_at=at, updated_at=utcnow())
            .execution_options(synchronize_session=False),
            "conversation recency",
        )
        details = {}
        if customer_name:
            details["customer_name"] = customer_name
        if customer_profile_pic:
            details["customer_profile_pic"] = customer_profile_pic
        if details:
            await execute(
                db,
                update(Conversation)
                .where(Conversation.conversation_id == conversation_id)
                .values(**details)
                .execution_options(synchronize_session=False),
                "conversation details",
            )

    @staticmethod
    async def get(db: AsyncSession, conversation_id: str) -> Conversation:
        conversation = await db.get(Conversation, conversation_id, populate_existing=True)
        if not conversation:
            raise ConversationNotFound(conversation_id)
        return conversation

    @staticmethod
    async def list(
        db: AsyncSession,
        seller_id: str | None = None,
        delivery_status: DeliveryStatus | str | None = None,
        unassigned: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Conversation]:
        """Conversations, most recent activity first."""
        stmt = select(Conversation)
        if seller_id:
            stmt = stmt.where(Conversation.seller_id == seller_id)
        status = validate_enum(delivery_status, DeliveryStatus, "delivery_status")
        if status:
            stmt = stmt.where(Conversation.delivery_status == status)
        if unassigned is True:
            stmt = stmt.where(Conversation.seller_id.is_(None))
        elif unassigned is False:
            stmt = stmt.where(Conversation.seller_id.is_not(None))
        stmt = stmt.order_by(
            Conversation.last_message_at.desc(), Conversation.conversation_id.asc()
        ).execution_options(populate_existing=True)
        result = await execute(db, apply_pagination(stmt, limit, offset), "conversation query")
        return list(result.scalars().all())

    @staticmethod
    async def _current_owner(db: AsyncSession, conversation_id: str) -> str | None:
        result = await execute(
            db,
            select(Conversation.seller_id).where(
                Conversation.conversation_id == conversation_id
            ),
            "conversation owner",
        )
        row = result.first()
        if row is None:
            raise ConversationNotFound(conversation_id)
        return row[0]

    @staticmethod
    async def assign(
        db: AsyncSession,
        conversation_id: str,
        seller_id: str,
        assigned_by: str | None = None,
        expected_seller_id: str | None = None,
    ) -> Conversation:
        """Hand the conversation to ``seller_id``.

        Args:
            db: Database session
            conversation_id: Conversation key
            seller_id: Agent taking ownership
            assigned_by: Who performed the assignment (defaults to seller_id)
            expected_seller_id: Owner the caller last saw; None claims an
                unassigned conversation, a seller id overrides that owner

        Returns:
            The updated conversation

        Raises:
            ConversationNotFound: If the conversation does not exist
            AssignmentConflict: If the owner changed since the caller looked
        """
        now = utcnow()
        actor = assigned_by or seller_id
        result = await execute(
            db,
            update(Conversation)
            .where(Conversation.conversation_id == conversation_id)
            .where(_owner_is(expected_seller_id))
            .values(
                seller_id=seller_id,
                assigned_by=actor,
                assigned_at=now,
                locked_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False),
            "assignment",
        )
        if result.rowcount != 1:
            current = await ConversationLocks._current_owner(db, conversation_id)
            await commit(db, "assignment")
            ASSIGNMENT_CONFLICTS.inc()
            logger.info(
                "conversation_assign_conflict conversation_id=%s seller_id=%s expected=%s current=%s",
                conversation_id,
                seller_id,
                expected_seller_id,
                current,
            )
            raise AssignmentConflict(conversation_id, current)

        db.add(
            ConversationEvent(
                conversation_id=conversation_id,
                event_type=ConversationEventType.assigned,
                seller_id=seller_id,
                actor=actor,
                created_at=now,
            )
        )
        await commit(db, "assignment")
        logger.info(
            "conversation_assigned conversation_id=%s seller_id=%s assigned_by=%s",
            conversation_id,
            seller_id,
            actor,
        )
        return await ConversationLocks.get(db, conversation_id)

    @staticmethod
    async def release(
        db: AsyncSession,
        conversation_id: str,
        expected_seller_id: str | None = None,
        released_by: str | None = None,
    ) -> Conversation:
        """Return the conversation to the unassigned pool.

        With ``expected_seller_id`` the release only applies while that seller
        still owns the conversation.
        """
        stmt = update(Conversation).where(Conversation.conversation_id == conversation_id)
        if expected_seller_id is not None:
            stmt = stmt.where(_owner_is(expected_seller_id))
        now = utcnow()
        result = await execute(
            db,
            stmt.values(seller_id=None, locked_at=None, updated_at=now).execution_options(
                synchronize_session=False
            ),
            "release",
        )
        if result.rowcount != 1:
            current = await ConversationLocks._current_owner(db, conversation_id)
            await commit(db, "release")
            ASSIGNMENT_CONFLICTS.inc()
            raise AssignmentConflict(conversation_id, current)

        db.add(
            ConversationEvent(
                conversation_id=conversation_id,
                event_type=ConversationEventType.released,
                seller_id=expected_seller_id,
                actor=released_by,
                created_at=now,
            )
        )
        await commit(db, "release")
        logger.info("conversation_released conversation_id=%s", conversation_id)
        return await ConversationLocks.get(db, conversation_id)

    @staticmethod
    async def set_status(
        db: AsyncSession,
        conversation_id: str,
        status: DeliveryStatus | str,
        changed_by: str | None = None,
    ) -> Conversation:
        """Set the delivery status; legal from any status and any assignment state."""
        new_status = validate_enum(status, DeliveryStatus, "delivery_status")
        result = await execute(
            db,
            select(Conversation.delivery_status)
            .where(Conversation.conversation_id == conversation_id)
            .with_for_update(),
            "conversation status",
        )
        row = result.first()
        if row is None:
            raise ConversationNotFound(conversation_id)
        previous = row[0]

        now = utcnow()
        await execute(
            db,
            update(Conversation)
            .where(Conversation.conversation_id == conversation_id)
            .values(delivery_status=new_status, updated_at=now)
            .execution_options(synchronize_session=False),
            "status change",
        )
        db.add(
            ConversationEvent(
                conversation_id=conversation_id,
                event_type=ConversationEventType.status_changed,
                actor=changed_by,
                from_status=previous,
                to_status=new_status,
                created_at=now,
            )
        )
        await commit(db, "status change")
        logger.info(
            "conversation_status_changed conversation_id=%s from=%s to=%s",
            conversation_id,
            previous.value if previous else None,
            new_status.value,
        )
        return await ConversationLocks.get(db, conversation_id)

    @staticmethod
    async def history(db: AsyncSession, conversation_id: str) -> list[ConversationEvent]:
        result = await execute(
            db,
            select(ConversationEvent)
            .where(ConversationEvent.conversation_id == conversation_id)
            .order_by(ConversationEvent.id.asc()),
            "conversation history",
        )
        return list(result.scalars().all())


conversation_locks = ConversationLocks()
