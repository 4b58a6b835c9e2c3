"""Shared fixtures for tests"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, Mock
import sys
import os

# Add repository root to path so tests import the package as `src`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.config import Settings
from src.integrations.github import GitHubClient
from src.models import Credential, HostingProvider, ServerConfig, utcnow
from src.orchestrator import DeploymentOrchestrator
from src.providers import (
    AWSProvider,
    AzureProvider,
    GCPProvider,
    LinodeProvider,
    ProviderRegistry,
    SelfHostedProvider,
    VultrProvider,
)
from src.registry import ServerRegistry


@pytest.fixture(scope="session")
def rsa_key_pair():
    """RSA key pair (private PEM, public key) for signing app assertions"""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return pem, key.public_key()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary directory for test configuration"""
    config_dir = tmp_path / ".gamedeploy_test"
    config_dir.mkdir(exist_ok=True)
    return config_dir


@pytest.fixture
def settings(temp_config_dir, rsa_key_pair):
    """Settings with a configured GitHub App"""
    return Settings(
        config_dir=temp_config_dir,
        github_app_id="12345",
        github_installation_id="67890",
        github_private_key=rsa_key_pair[0],
        deployments_repo="artemis/deployments",
    )


@pytest.fixture
def credential():
    now = utcnow()
    return Credential(token="ghs_test_token", issued_at=now, expires_at=now + timedelta(hours=1))


@pytest.fixture
def broker_mock(credential):
    """CredentialBroker double that always hands out the same token"""
    broker = Mock()
    broker.get_token = AsyncMock(return_value=credential)
    return broker


@pytest.fixture
def github_mock():
    """GitHubClient double"""
    github = Mock(spec=GitHubClient)
    github.create_deployment = AsyncMock(return_value=4242)
    github.create_deployment_status = AsyncMock(return_value={})
    github.create_issue_comment = AsyncMock(return_value={})
    github.create_installation_token = AsyncMock()
    return github


@pytest.fixture
def do_adapter_mock():
    """DigitalOcean adapter double"""
    adapter = Mock()
    adapter.provider = HostingProvider.DIGITALOCEAN
    adapter.label = "DigitalOcean"
    adapter.provision = AsyncMock()
    adapter.terminate = AsyncMock(return_value=True)
    adapter.fetch_status = AsyncMock(return_value=None)
    return adapter


@pytest.fixture
def providers(do_adapter_mock):
    registry = ProviderRegistry()
    for cls in (SelfHostedProvider, AWSProvider, GCPProvider, AzureProvider, LinodeProvider, VultrProvider):
        registry.register(cls())
    registry.register(do_adapter_mock)
    return registry


@pytest.fixture
def registry(temp_config_dir):
    """ServerRegistry persisting to a temp directory"""
    server_registry = ServerRegistry(temp_config_dir)
    server_registry.init()
    return server_registry


@pytest.fixture
def orchestrator(broker_mock, providers, registry, github_mock):
    return DeploymentOrchestrator(
        broker=broker_mock,
        providers=providers,
        registry=registry,
        github=github_mock,
        deployments_repo="artemis/deployments",
    )


@pytest.fixture
def make_config():
    """Factory for valid ServerConfigs"""
    def _make(**overrides):
        values = {
            "name": "test-server",
            "game_type": "forsaken-rpg",
            "max_players": 20,
            "region": "us-east-1",
            "provider": HostingProvider.SELF_HOSTED,
        }
        values.update(overrides)
        return ServerConfig(**values)
    return _make
