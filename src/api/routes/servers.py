"""
Server routes

- GET /api/servers?owner=... - List an owner's servers, oldest first
- GET /api/servers/{server_id} - Get server details
- POST /api/servers/{server_id}/stop - Stop at the provider
- POST /api/servers/{server_id}/refresh - Re-read status from the provider
- DELETE /api/servers/{server_id} - Remove a stopped record
"""

import logging

from fastapi import APIRouter, Depends, Query

from ...core import GameDeploy
from ...models import ServerRecord
from ..dependencies import get_services
from ..models.common import ErrorResponse, MessageResponse
from ..models.server import ServerInfo, ServerListResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/servers", tags=["Servers"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Server not found"}}


def _record_to_info(record: ServerRecord) -> ServerInfo:
    """Convert a ServerRecord to the API projection"""
    config = record.config
    return ServerInfo(
        id=record.id,
        owner=record.owner,
        name=record.name,
        status=record.status.value,
        provider=record.provider.value,
        game_type=config.game_type,
        region=config.region,
        max_players=config.max_players,
        port=record.port,
        ip_address=record.ip_address,
        domain=config.domain,
        provider_server_id=record.provider_server_id,
        error_message=record.error_message,
        created_at=record.created_at,
        last_active=record.last_active,
        current_players=record.current_players,
        total_sessions=record.total_sessions,
        uptime_hours=record.uptime_hours,
        cpu_usage=record.cpu_usage,
        ram_usage=record.ram_usage,
    )


@router.get("", response_model=ServerListResponse)
async def list_servers(
    owner: str = Query(..., min_length=1, description="Owner identity"),
    services: GameDeploy = Depends(get_services)
):
    servers = [_record_to_info(r) for r in services.list_servers(owner)]
    return ServerListResponse(servers=servers, total=len(servers))


@router.get("/{server_id}", response_model=ServerInfo, responses=NOT_FOUND)
async def get_server(server_id: str, services: GameDeploy = Depends(get_services)):
    return _record_to_info(services.get_server(server_id))


@router.post(
    "/{server_id}/stop",
    response_model=ServerInfo,
    responses={**NOT_FOUND, 502: {"model": ErrorResponse, "description": "Provider could not stop the server"}},
)
async def stop_server(server_id: str, services: GameDeploy = Depends(get_services)):
    """
    Stop a server at its provider

    On provider failure the record keeps its previous status.
    """
    record = await services.stop_server(server_id)
    logger.info(f"Server {server_id} stopped via API")
    return _record_to_info(record)


@router.post("/{server_id}/refresh", response_model=ServerInfo, responses=NOT_FOUND)
async def refresh_server(server_id: str, services: GameDeploy = Depends(get_services)):
    return _record_to_info(await services.refresh_status(server_id))


@router.delete(
    "/{server_id}",
    response_model=MessageResponse,
    responses={**NOT_FOUND, 409: {"model": ErrorResponse, "description": "Server still active"}},
)
async def delete_server(server_id: str, services: GameDeploy = Depends(get_services)):
    services.delete_server(server_id)
    return MessageResponse(message=f"Server {server_id} deleted")
