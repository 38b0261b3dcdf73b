"""Meta webhook endpoints for Facebook Messenger and Instagram DMs.

Meta retries a delivery until it receives a 200, so once the signature is
accepted the POST handler always answers 200 and reports what it stored.
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.config import settings
from app.logging import get_logger
from app.services.ingestion import ingest_payload
from app.services.meta_events import verify_subscription, verify_webhook_signature

logger = get_logger(__name__)

router = APIRouter(prefix="/facebook", tags=["meta-webhooks"])


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_meta_webhook(
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
):
    challenge = verify_subscription(
        hub_mode, hub_verify_token, hub_challenge, settings.meta_webhook_verify_token
    )
    if challenge is None:
        return PlainTextResponse("Verification failed", status_code=403)
    logger.info("meta_webhook_verified")
    return PlainTextResponse(challenge)


@router.post("/webhook")
async def receive_meta_webhook(
    request: Request,
    platform: str = Query(default="facebook", pattern="^(facebook|instagram)$"),
    db: AsyncSession = Depends(get_db),
):
    body = await request.body()
    if settings.meta_app_secret:
        signature = request.headers.get("X-Hub-Signature-256")
        if not verify_webhook_signature(body, signature, settings.meta_app_secret):
            return JSONResponse(
                status_code=403,
                content={"status": "forbidden", "message": "Invalid signature"},
            )

    summary = await ingest_payload(db, body, platform_hint=platform)
    logger.info(
        "meta_webhook_processed received=%s accepted=%s deduplicated=%s failed=%s",
        summary.received,
        summary.accepted,
        summary.deduplicated,
        summary.failed,
    )
    return {"status": "ok", **summary.as_dict()}
