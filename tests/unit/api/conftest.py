"""Fixtures for API route tests"""

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_services, reset_services
from src.api.server import app


@pytest.fixture
def services(monkeypatch, temp_config_dir, broker_mock, github_mock):
    """GameDeploy singleton in a temp directory with GitHub doubled out"""
    for name in ("GAMEDEPLOY_WEBHOOK_SECRET", "GAMEDEPLOY_DEFAULT_PROVIDER",
                 "GAMEDEPLOY_DEPLOY_TIMEOUT", "GAMEDEPLOY_DIGITALOCEAN_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GAMEDEPLOY_CONFIG_DIR", str(temp_config_dir))
    reset_services()

    services = get_services()
    for component in (services.orchestrator, services.webhooks):
        component.broker = broker_mock
        component.github = github_mock

    yield services
    reset_services()


@pytest.fixture
def client(services):
    """TestClient running the app lifespan, so jobs share one event loop"""
    with TestClient(app) as test_client:
        yield test_client
