"""
Unit tests for API models
"""

import pytest
from pydantic import ValidationError

from src.api.models.common import ErrorResponse, MessageResponse
from src.api.models.deployment import DeploymentRequest, DeploymentResponse
from src.api.models.webhook import WebhookResponse


class TestErrorResponse:
    """Test ErrorResponse model"""

    def test_error_response_minimal(self):
        # Arrange & Act
        response = ErrorResponse(error="Something went wrong")

        # Assert
        assert response.error == "Something went wrong"
        assert response.code is None
        assert response.details is None

    def test_error_response_full(self):
        response = ErrorResponse(
            error="Unknown provider 'hetzner'",
            code="VALIDATION_ERROR",
            details={"field": "provider"}
        )

        assert response.model_dump() == {
            "error": "Unknown provider 'hetzner'",
            "code": "VALIDATION_ERROR",
            "details": {"field": "provider"},
        }

    def test_error_response_requires_error(self):
        with pytest.raises(ValidationError):
            ErrorResponse()


class TestMessageResponse:
    def test_message_response(self):
        assert MessageResponse(message="Server srv_1 deleted").message == "Server srv_1 deleted"


class TestDeploymentRequest:
    """Test DeploymentRequest model"""

    def test_valid_request(self):
        request = DeploymentRequest(owner="alice", config={"name": "x"})

        assert request.owner == "alice"
        assert request.timeout is None

    def test_empty_owner_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentRequest(owner="", config={})

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentRequest(owner="alice", config={}, timeout=0)


class TestResponses:
    def test_deployment_response_optional_fields(self):
        response = DeploymentResponse(
            success=True, server_id="self-hosted", ip_address="YOUR_SERVER_IP",
            port=25565, status="manual-setup-required"
        )

        assert response.domain is None
        assert response.error_message is None

    def test_webhook_response_job_optional(self):
        response = WebhookResponse(event_type="ping", action="ignored", detail="Unsupported event 'ping'")

        assert response.job_id is None
