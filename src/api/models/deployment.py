"""Deployment request/response models"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class DeploymentRequest(BaseModel):
    """
    Deploy a server

    ``config`` is validated by ServerConfig.from_dict so that invalid fields
    and unknown providers produce the same ErrorResponse as every other
    validation failure.
    """

    owner: str = Field(..., min_length=1, description="Owner identity (GitHub login)")
    config: Dict[str, Any] = Field(
        ...,
        description="Server configuration",
        json_schema_extra={
            "example": {
                "name": "my-server",
                "game_type": "forsaken-rpg",
                "max_players": 20,
                "region": "us-east-1",
                "provider": "self_hosted",
            }
        },
    )
    timeout: Optional[float] = Field(None, gt=0, description="Seconds to wait for the provider")


class DeploymentResponse(BaseModel):
    success: bool
    server_id: str
    ip_address: str
    port: int
    status: str
    domain: Optional[str] = None
    error_message: Optional[str] = None
