"""Game Server Deploy - GitHub-driven game server provisioning"""

# Configure logging at module level
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Public API imports
from .core import GameDeploy
from .models import DeploymentResult, HostingProvider, ServerConfig, ServerRecord, ServerStatus
from .orchestrator import DeploymentOrchestrator

# Version info
__version__ = "0.1.0"

# Public exports
__all__ = [
    "GameDeploy",
    "DeploymentOrchestrator",
    "DeploymentResult",
    "HostingProvider",
    "ServerConfig",
    "ServerRecord",
    "ServerStatus",
]
