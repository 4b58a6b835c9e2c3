"""Webhook response model"""

from typing import Optional

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    event_type: str
    action: str = Field(..., description="queued, ignored, forwarded or error")
    detail: str
    job_id: Optional[str] = Field(None, description="Background job running the deployment")
