"""Tests for conversation assignment and delivery status."""

import asyncio
from datetime import UTC, datetime

import pytest

from app.models.conversation import ConversationEventType, DeliveryStatus
from app.services.conversation_locks import conversation_locks
from app.services.exceptions import AssignmentConflict, ConversationNotFound
from app.services.ingestion import ingest
from tests.mocks import make_event


# =============================================================================
# Assignment
# =============================================================================


@pytest.mark.asyncio
async def test_assign_unassigned_conversation(db_session, conversation):
    updated = await conversation_locks.assign(
        db_session, conversation.conversation_id, "sellerA", assigned_by="admin1"
    )

    assert updated.seller_id == "sellerA"
    assert updated.assigned_by == "admin1"
    assert updated.assigned_at is not None
    assert updated.locked_at is not None
    history = await conversation_locks.history(db_session, conversation.conversation_id)
    assert [e.event_type for e in history] == [ConversationEventType.assigned]
    assert history[0].seller_id == "sellerA"
    assert history[0].actor == "admin1"


@pytest.mark.asyncio
async def test_assign_already_owned_conflicts(db_session, conversation):
    await conversation_locks.assign(db_session, "fb:123:456", "sellerA")

    with pytest.raises(AssignmentConflict) as exc_info:
        await conversation_locks.assign(db_session, "fb:123:456", "sellerB")

    assert exc_info.value.current_seller_id == "sellerA"
    assert exc_info.value.details == {"current_seller_id": "sellerA"}
    assert conversation.conversation_id == "fb:123:456"
    current = await conversation_locks.get(db_session, "fb:123:456")
    assert current.seller_id == "sellerA"


@pytest.mark.asyncio
async def test_concurrent_assign_has_single_winner(session_factory):
    async with session_factory() as session:
        await ingest(session, make_event(mid="m1"))

    async def claim(seller_id):
        async with session_factory() as session:
            try:
                await conversation_locks.assign(session, "fb:123:456", seller_id)
            except AssignmentConflict as exc:
                return ("conflict", exc.current_seller_id)
            return ("assigned", seller_id)

    outcomes = await asyncio.gather(claim("sellerA"), claim("sellerB"))

    winners = [seller for status, seller in outcomes if status == "assigned"]
    conflicts = [owner for status, owner in outcomes if status == "conflict"]
    assert len(winners) == 1
    assert conflicts == winners
    async with session_factory() as session:
        stored = await conversation_locks.get(session, "fb:123:456")
        assert stored.seller_id == winners[0]
        history = await conversation_locks.history(session, "fb:123:456")
        assert len(history) == 1


@pytest.mark.asyncio
async def test_reassign_with_observed_owner(db_session, conversation):
    cid = conversation.conversation_id
    await conversation_locks.assign(db_session, cid, "sellerA")

    updated = await conversation_locks.assign(
        db_session, cid, "sellerB", assigned_by="admin1", expected_seller_id="sellerA"
    )

    assert updated.seller_id == "sellerB"


@pytest.mark.asyncio
async def test_reassign_with_stale_owner_conflicts(db_session, conversation):
    cid = conversation.conversation_id
    await conversation_locks.assign(db_session, cid, "sellerA")
    await conversation_locks.assign(db_session, cid, "sellerB", expected_seller_id="sellerA")

    with pytest.raises(AssignmentConflict):
        await conversation_locks.assign(
            db_session, cid, "sellerC", expected_seller_id="sellerA"
        )


@pytest.mark.asyncio
async def test_assign_missing_conversation(db_session):
    with pytest.raises(ConversationNotFound):
        await conversation_locks.assign(db_session, "fb:nobody:456", "sellerA")


# =============================================================================
# Release
# =============================================================================


@pytest.mark.asyncio
async def test_release_returns_conversation_to_pool(db_session, conversation):
    cid = conversation.conversation_id
    await conversation_locks.assign(db_session, cid, "sellerA")

    released = await conversation_locks.release(
        db_session, cid, expected_seller_id="sellerA", released_by="sellerA"
    )

    assert released.seller_id is None
    assert released.locked_at is None
    again = await conversation_locks.assign(db_session, cid, "sellerB")
    assert again.seller_id == "sellerB"


@pytest.mark.asyncio
async def test_release_by_non_owner_conflicts(db_session, conversation):
    cid = conversation.conversation_id
    await conversation_locks.assign(db_session, cid, "sellerA")

    with pytest.raises(AssignmentConflict):
        await conversation_locks.release(db_session, cid, expected_seller_id="sellerB")

    assert conversation.customer_id == "123"
    current = await conversation_locks.get(db_session, cid)
    assert current.seller_id == "sellerA"


@pytest.mark.asyncio
async def test_release_missing_conversation(db_session):
    with pytest.raises(ConversationNotFound):
        await conversation_locks.release(db_session, "fb:nobody:456")


# =============================================================================
# Delivery status
# =============================================================================


@pytest.mark.asyncio
async def test_status_transitions_are_recorded(db_session, conversation):
    cid = conversation.conversation_id

    await conversation_locks.set_status(db_session, cid, DeliveryStatus.hold, changed_by="s1")
    final = await conversation_locks.set_status(db_session, cid, "delivered", changed_by="s1")

    assert final.delivery_status == DeliveryStatus.delivered
    history = await conversation_locks.history(db_session, cid)
    transitions = [(e.from_status, e.to_status) for e in history]
    assert transitions == [
        (DeliveryStatus.confirmed, DeliveryStatus.hold),
        (DeliveryStatus.hold, DeliveryStatus.delivered),
    ]


@pytest.mark.asyncio
async def test_status_history_uses_committed_previous_status(session_factory):
    async with session_factory() as session:
        await ingest(session, make_event(mid="m1"))

    async with session_factory() as other:
        await conversation_locks.set_status(other, "fb:123:456", DeliveryStatus.hold)

    async with session_factory() as session:
        await conversation_locks.set_status(session, "fb:123:456", DeliveryStatus.delivered)
        history = await conversation_locks.history(session, "fb:123:456")

    assert history[-1].from_status == DeliveryStatus.hold
    assert history[-1].to_status == DeliveryStatus.delivered


@pytest.mark.asyncio
async def test_status_is_independent_of_assignment(db_session, conversation):
    cid = conversation.conversation_id
    await conversation_locks.set_status(db_session, cid, DeliveryStatus.cancel)

    assigned = await conversation_locks.assign(db_session, cid, "sellerA")
    status_when_assigned = assigned.delivery_status
    await conversation_locks.set_status(db_session, cid, DeliveryStatus.confirmed)
    current = await conversation_locks.get(db_session, cid)

    assert status_when_assigned == DeliveryStatus.cancel
    assert current.seller_id == "sellerA"
    assert current.delivery_status == DeliveryStatus.confirmed


@pytest.mark.asyncio
async def test_status_missing_conversation(db_session):
    with pytest.raises(ConversationNotFound):
        await conversation_locks.set_status(db_session, "fb:nobody:456", DeliveryStatus.hold)


# =============================================================================
# Listing
# =============================================================================


@pytest.mark.asyncio
async def test_list_filters_and_orders_by_recent_activity(db_session):
    await ingest(
        db_session,
        make_event(mid="a", customer_id="1", timestamp=datetime(2026, 1, 1, tzinfo=UTC)),
    )
    await ingest(
        db_session,
        make_event(mid="b", customer_id="2", timestamp=datetime(2026, 1, 3, tzinfo=UTC)),
    )
    await ingest(
        db_session,
        make_event(mid="c", customer_id="3", timestamp=datetime(2026, 1, 2, tzinfo=UTC)),
    )
    await conversation_locks.assign(db_session, "fb:3:456", "sellerA")

    everything = await conversation_locks.list(db_session)
    mine = await conversation_locks.list(db_session, seller_id="sellerA")
    pool = await conversation_locks.list(db_session, unassigned=True)

    assert [c.conversation_id for c in everything] == ["fb:2:456", "fb:3:456", "fb:1:456"]
    assert [c.conversation_id for c in mine] == ["fb:3:456"]
    assert [c.conversation_id for c in pool] == ["fb:2:456", "fb:1:456"]


@pytest.mark.asyncio
async def test_list_response_shape(db_session, conversation):
    response = await conversation_locks.list_response(db_session, None, None, None, 10, 0)

    assert response["count"] == 1
    assert response["limit"] == 10
    assert response["offset"] == 0
    assert response["items"][0].conversation_id == conversation.conversation_id
