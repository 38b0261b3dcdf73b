"""Webhook ingestion pipeline.

Each inbound event is stored in one transaction: the conversation row is
created if missing, then the message is inserted unless its idempotency key
already exists. Meta redelivers webhooks until it gets a 200, so a repeated
key is the normal duplicate path and is reported, not raised.

Ingestion never calls out to the network and ``ingest_payload`` never raises,
so the webhook route can always answer 200 promptly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from app.logging import get_logger
from app.metrics import observe_webhook_event
from app.schemas.meta import InboundEvent
from app.services.common import commit
from app.services.conversation_locks import conversation_locks
from app.services.exceptions import MalformedEvent
from app.services.messages import messages
from app.services.meta_events import normalize_webhook

logger = get_logger(__name__)


@dataclass
class IngestResult:
    accepted: bool
    deduplicated: bool
    message_id: int | None = None
    conversation_created: bool = False


@dataclass
class IngestSummary:
    received: int = 0
    accepted: int = 0
    deduplicated: int = 0
    failed: int = 0
    malformed: bool = False
    message_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "received": self.received,
            "accepted": self.accepted,
            "deduplicated": self.deduplicated,
            "failed": self.failed,
            "malformed": self.malformed,
        }


async def ingest(db: AsyncSession, event: InboundEvent) -> IngestResult:
    """Store one inbound event exactly once.

    Raises:
        StoreFailure: If the database rejected the write
    """
    created = await conversation_locks.ensure_for_event(db, event)
    message_id = await messages.append_inbound(db, event)
    if message_id is None:
        await commit(db, "inbound message")
        observe_webhook_event(event.platform.value, "deduplicated")
        logger.info(
            "inbound_message_duplicate conversation_id=%s key=%s",
            event.conversation_key,
            event.idempotency_key,
        )
        return IngestResult(accepted=False, deduplicated=True)

    if not created:
        await conversation_locks.touch(
            db,
            event.conversation_key,
            event.platform_timestamp,
            customer_name=event.customer_name,
            customer_profile_pic=event.customer_profile_pic,
        )
    await commit(db, "inbound message")
    observe_webhook_event(event.platform.value, "accepted")
    logger.info(
        "inbound_message_stored conversation_id=%s message_id=%s new_conversation=%s",
        event.conversation_key,
        message_id,
        created,
    )
    return IngestResult(
        accepted=True,
        deduplicated=False,
        message_id=message_id,
        conversation_created=created,
    )


async def ingest_payload(
    db: AsyncSession,
    payload: dict | bytes | str,
    platform_hint: str = "facebook",
) -> IngestSummary:
    """Normalize a webhook body and ingest every event in it.

    Failures are logged and counted; nothing propagates to the caller.
    """
    summary = IngestSummary()
    try:
        events = normalize_webhook(payload, platform_hint)
    except MalformedEvent as exc:
        observe_webhook_event(platform_hint, "malformed")
        logger.warning("meta_webhook_malformed error=%s", exc.message)
        summary.malformed = True
        return summary

    summary.received = len(events)
    for event in events:
        try:
            result = await ingest(db, event)
        except Exception:
            await db.rollback()
            observe_webhook_event(event.platform.value, "failed")
            logger.exception(
                "inbound_message_failed conversation_id=%s key=%s",
                event.conversation_key,
                event.idempotency_key,
            )
            summary.failed += 1
            continue
        if result.deduplicated:
            summary.deduplicated += 1
        else:
            summary.accepted += 1
            summary.message_ids.append(result.message_id)
    return summary
