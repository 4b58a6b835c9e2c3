"""
Deployment routes

- POST /api/deployments - Deploy a server and wait for the provider outcome
"""

import logging

from fastapi import APIRouter, Depends

from ...core import GameDeploy
from ...models import ServerConfig
from ..dependencies import get_services
from ..models.common import ErrorResponse
from ..models.deployment import DeploymentRequest, DeploymentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deployments", tags=["Deployments"])


@router.post(
    "",
    response_model=DeploymentResponse,
    response_model_exclude_none=True,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Same server already deploying"},
        422: {"model": ErrorResponse, "description": "Invalid server configuration"},
        502: {"model": ErrorResponse, "description": "Authentication or provider failure"},
        504: {"model": ErrorResponse, "description": "Provider did not answer in time"},
    },
)
async def create_deployment(
    request: DeploymentRequest,
    services: GameDeploy = Depends(get_services)
):
    """
    Deploy a server

    Providers that are not implemented yet answer with success=false and an
    error_message rather than an error status.
    """
    config = ServerConfig.from_dict(request.config)
    logger.info(f"Deployment requested: {config.name} on {config.provider.value} for {request.owner}")

    result = await services.deploy(config, request.owner, timeout=request.timeout)
    return DeploymentResponse(**result.to_dict())
