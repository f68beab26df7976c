"""Gmail push webhook route.

Pub/Sub redelivers any push that is not acknowledged with a 2xx, so this
route answers 200 for everything the intake can parse, including
duplicates, test pings, unknown users and processing failures. Only a body
that cannot be parsed at all answers 500.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from networking_hub.core.errors import PushPayloadError
from networking_hub.core.logging import get_logger
from networking_hub.engine.push_intake import PushIntake
from networking_hub.gmail.push import WEBHOOK_PATH
from networking_hub.web.dependencies import get_push_intake

logger = get_logger(__name__)

webhook_router = APIRouter(tags=["webhook"])


@webhook_router.post(WEBHOOK_PATH)
async def gmail_push(
    request: Request,
    intake: PushIntake = Depends(get_push_intake),  # noqa: B008
):
    """Receive one Gmail push notification."""
    raw_body = await request.body()

    try:
        outcome = await intake.handle(raw_body)
    except PushPayloadError as e:
        logger.error("push_payload_rejected", error=str(e), size=len(raw_body))
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Error processing notification"},
        )

    return {"success": True, "status": outcome.status, "notificationId": outcome.notification_id}
