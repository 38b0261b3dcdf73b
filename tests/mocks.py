"""Test doubles and payload builders for Meta webhooks and the Graph API."""

import json
from datetime import UTC, datetime

import httpx

from app.models.conversation import Platform
from app.schemas.meta import InboundEvent
from app.services.meta_events import conversation_key, idempotency_key

GRAPH_BASE = "https://graph.test/v21.0"


class GraphRecorder:
    """Records Graph API requests and answers from a queue of responses.

    Queued items may be ``httpx.Response`` objects or exceptions to raise.
    With an empty queue every send succeeds with a fresh message id.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = httpx.Response(
                200, json={"recipient_id": "r", "message_id": f"m_out_{len(self.requests)}"}
            )
        if isinstance(response, Exception):
            raise response
        return response


def make_event(
    mid: str | None = "m1",
    customer_id: str = "123",
    page_id: str = "456",
    text: str = "hi",
    platform: Platform = Platform.facebook,
    timestamp: datetime | None = None,
    media_urls: list[str] | None = None,
    customer_name: str = "Ada",
) -> InboundEvent:
    timestamp = timestamp or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    key = conversation_key(platform, customer_id, page_id)
    urls = media_urls or []
    return InboundEvent(
        conversation_key=key,
        platform=platform,
        page_id=page_id,
        customer_id=customer_id,
        customer_name=customer_name,
        text=text,
        media_urls=urls,
        platform_timestamp=timestamp,
        platform_message_id=mid,
        idempotency_key=idempotency_key(platform, mid, key, timestamp, text, urls),
    )


def text_event(
    mid: str | None = "m1",
    sender_id: str = "123",
    page_id: str = "456",
    text: str = "hello",
    timestamp: int = 1767225600000,
) -> dict:
    message = {"text": text}
    if mid is not None:
        message["mid"] = mid
    return {
        "sender": {"id": sender_id},
        "recipient": {"id": page_id},
        "timestamp": timestamp,
        "message": message,
    }


def messenger_payload(*messaging, page_id: str = "456", obj: str = "page") -> dict:
    return {
        "object": obj,
        "entry": [{"id": page_id, "time": 1767225600000, "messaging": list(messaging)}],
    }
