"""
Webhook routes

- POST /api/webhooks/github - Receive a GitHub event (X-GitHub-Event header)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ...core import GameDeploy
from ...webhooks import verify_signature
from ..dependencies import get_services
from ..models.webhook import WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/github", response_model=WebhookResponse, status_code=status.HTTP_202_ACCEPTED)
async def github_webhook(
    request: Request,
    x_github_event: str = Header(..., description="GitHub event type"),
    x_hub_signature_256: Optional[str] = Header(None),
    services: GameDeploy = Depends(get_services)
):
    """
    Handle a GitHub webhook delivery

    Always answers 202 once the signature checks out; the outcome says whether
    a deployment was queued, the event ignored, or the payload rejected.
    """
    body = await request.body()

    secret = services.settings.webhook_secret
    if secret and not verify_signature(secret, body, x_hub_signature_256):
        logger.warning(f"Rejected {x_github_event} webhook with bad signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    outcome = await services.webhooks.dispatch(x_github_event, body)
    return WebhookResponse(**outcome.to_dict())
