"""Meta messaging client for sending Facebook/Instagram messages.

Handles outbound messaging via Facebook Messenger and Instagram DMs. Each
call makes exactly one request: a send that timed out may still have been
delivered, so nothing here retries.
"""

from __future__ import annotations

import time

import httpx

from app.config import settings
from app.logging import get_logger
from app.metrics import observe_send
from app.models.conversation import Platform
from app.models.message import MediaType
from app.services.exceptions import PlatformSendFailure

logger = get_logger(__name__)


def _remote_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text or f"HTTP {response.status_code}"


class MetaGraphClient:
    """Thin Graph API sender sharing one ``httpx.AsyncClient``.

    One instance lives for the whole process (created in the app lifespan)
    so connections are pooled across requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.meta_graph_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.meta_send_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self.timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def build_text_payload(platform: Platform, recipient_id: str, text: str) -> dict:
        payload = {
            "recipient": {"id": recipient_id},
            "message": {"text": text},
        }
        if platform == Platform.facebook:
            payload["messaging_type"] = "RESPONSE"
        return payload

    @staticmethod
    def build_attachment_payload(
        platform: Platform,
        recipient_id: str,
        url: str,
        media_type: MediaType,
    ) -> dict:
        payload = {
            "recipient": {"id": recipient_id},
            "message": {
                "attachment": {
                    "type": media_type.value,
                    "payload": {"url": url, "is_reusable": True},
                }
            },
        }
        if platform == Platform.facebook:
            payload["messaging_type"] = "RESPONSE"
        return payload

    async def send_text(
        self,
        platform: Platform,
        page_id: str,
        recipient_id: str,
        text: str,
        access_token: str,
    ) -> str | None:
        """Send a text message; returns the platform message id."""
        payload = self.build_text_payload(platform, recipient_id, text)
        return await self._send(platform, page_id, recipient_id, payload, access_token, "text")

    async def send_attachment(
        self,
        platform: Platform,
        page_id: str,
        recipient_id: str,
        url: str,
        media_type: MediaType,
        access_token: str,
    ) -> str | None:
        """Send one media attachment by public URL; returns the platform message id."""
        payload = self.build_attachment_payload(platform, recipient_id, url, media_type)
        return await self._send(platform, page_id, recipient_id, payload, access_token, "media")

    async def _send(
        self,
        platform: Platform,
        page_id: str,
        recipient_id: str,
        payload: dict,
        access_token: str,
        kind: str,
    ) -> str | None:
        started = time.perf_counter()
        try:
            response = await self._client.post(
                f"{self.base_url}/{page_id}/messages",
                params={"access_token": access_token},
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            observe_send(platform.value, kind, "timeout", time.perf_counter() - started)
            logger.error(
                "meta_message_send_timeout platform=%s page_id=%s recipient=%s timeout=%s",
                platform.value,
                page_id,
                recipient_id[:8],
                self.timeout,
            )
            raise PlatformSendFailure(
                f"{platform.value} send timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            observe_send(platform.value, kind, "error", time.perf_counter() - started)
            logger.error(
                "meta_message_send_transport_error platform=%s page_id=%s error=%s",
                platform.value,
                page_id,
                exc,
            )
            raise PlatformSendFailure(f"{platform.value} send failed: {exc}") from exc

        duration = time.perf_counter() - started
        if response.status_code >= 400:
            observe_send(platform.value, kind, "rejected", duration)
            logger.error(
                "meta_message_send_failed platform=%s page_id=%s recipient=%s status=%s body=%s",
                platform.value,
                page_id,
                recipient_id[:8],
                response.status_code,
                response.text,
            )
            raise PlatformSendFailure(
                _remote_error_message(response), remote_status=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        observe_send(platform.value, kind, "sent", duration)
        logger.info(
            "meta_message_sent platform=%s page_id=%s recipient=%s... message_id=%s",
            platform.value,
            page_id,
            recipient_id[:8],
            data.get("message_id"),
        )
        return data.get("message_id")
