"""
FastAPI application for Game Server Deploy

Routers:
- /api/deployments - deploy servers
- /api/servers - server records and lifecycle
- /api/webhooks - GitHub webhook receiver
- /api/jobs - background job status
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    AuthError,
    ConflictError,
    DeployError,
    DeploymentTimeoutError,
    NotFoundError,
    PayloadError,
    ProviderError,
    ValidationError,
)
from ..integrations.github import GitHubError
from .background import lifespan
from .models.common import ErrorResponse
from .routes import deployments, jobs, servers, webhooks

logger = logging.getLogger(__name__)

# DeployError subclass -> HTTP status
STATUS_CODES = {
    ValidationError: 422,
    PayloadError: 400,
    AuthError: 502,
    ProviderError: 502,
    ConflictError: 409,
    NotFoundError: 404,
    DeploymentTimeoutError: 504,
}


def status_code_for(error: DeployError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def _error_details(error: DeployError) -> Optional[dict]:
    if isinstance(error, ValidationError) and error.field:
        return {"field": error.field}
    if isinstance(error, ProviderError):
        return {"provider": error.provider, "kind": error.kind}
    if isinstance(error, AuthError):
        return {"stage": error.stage}
    if isinstance(error, DeploymentTimeoutError):
        return {"timeout": error.timeout, "server_id": error.server_id}
    return None


app = FastAPI(
    title="Game Server Deploy API",
    description="Provision game servers from GitHub events and track them across hosting providers",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeployError)
async def deploy_error_handler(request: Request, exc: DeployError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    body = ErrorResponse(error=str(exc), code=exc.code, details=_error_details(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(GitHubError)
async def github_error_handler(request: Request, exc: GitHubError) -> JSONResponse:
    logger.error(f"GitHub API error on {request.url.path}: {exc}")
    body = ErrorResponse(error=str(exc), code="GITHUB_ERROR", details={"status_code": exc.status_code})
    return JSONResponse(status_code=502, content=body.model_dump())


app.include_router(deployments.router)
app.include_router(servers.router)
app.include_router(webhooks.router)
app.include_router(jobs.router)


@app.get("/", tags=["System"])
async def root():
    return {"name": app.title, "version": app.version, "docs": "/docs"}


@app.get("/health", tags=["System"])
async def health():
    return {"status": "healthy"}
