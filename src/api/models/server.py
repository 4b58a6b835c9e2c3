"""Server record models"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ServerInfo(BaseModel):
    """Projection of a ServerRecord"""

    id: str
    owner: str
    name: str
    status: str
    provider: str
    game_type: str
    region: str
    max_players: int
    port: Optional[int] = None
    ip_address: Optional[str] = None
    domain: Optional[str] = None
    provider_server_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    last_active: datetime

    # Usage written by the telemetry updater
    current_players: int = 0
    total_sessions: int = 0
    uptime_hours: float = 0.0
    cpu_usage: float = 0.0
    ram_usage: float = 0.0


class ServerListResponse(BaseModel):
    servers: List[ServerInfo]
    total: int
