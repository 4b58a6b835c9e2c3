"""
Unit tests for server routes

Tests for:
- GET /api/servers?owner=... - List servers
- GET /api/servers/{server_id} - Get server details
- POST /api/servers/{server_id}/stop - Stop server
- POST /api/servers/{server_id}/refresh - Refresh status
- DELETE /api/servers/{server_id} - Delete stopped server
"""

import pytest

from src.models import HostingProvider, ServerConfig, ServerRecord, ServerStatus


def _deploy(client, name="my-server", owner="alice"):
    response = client.post("/api/deployments", json={
        "owner": owner,
        "config": {
            "name": name,
            "game_type": "forsaken-rpg",
            "max_players": 20,
            "region": "us-east-1",
            "provider": "self_hosted",
        },
    })
    assert response.status_code == 200
    return response


@pytest.fixture
def server_id(client, services):
    _deploy(client)
    return services.list_servers("alice")[0].id


class TestListServersEndpoint:
    """Test GET /api/servers"""

    def test_list_empty(self, client):
        response = client.get("/api/servers", params={"owner": "nobody"})

        assert response.status_code == 200
        assert response.json() == {"servers": [], "total": 0}

    def test_list_owner_servers_in_creation_order(self, client):
        # Arrange
        _deploy(client, name="first")
        _deploy(client, name="second")
        _deploy(client, name="bobs", owner="bob")

        # Act
        response = client.get("/api/servers", params={"owner": "alice"})

        # Assert
        data = response.json()
        assert data["total"] == 2
        assert [s["name"] for s in data["servers"]] == ["first", "second"]

    def test_owner_required(self, client):
        response = client.get("/api/servers")

        assert response.status_code == 422


class TestGetServerEndpoint:
    """Test GET /api/servers/{server_id}"""

    def test_get_server(self, client, server_id):
        # Act
        response = client.get(f"/api/servers/{server_id}")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == server_id
        assert data["owner"] == "alice"
        assert data["provider"] == "self_hosted"
        assert data["status"] == "manual-setup-required"
        assert data["ip_address"] == "YOUR_SERVER_IP"
        assert data["port"] == 25565
        assert data["current_players"] == 0

    def test_get_unknown_server(self, client):
        response = client.get("/api/servers/srv_missing")

        assert response.status_code == 404


class TestStopServerEndpoint:
    """Test POST /api/servers/{server_id}/stop"""

    def test_stop_server(self, client, server_id):
        response = client.post(f"/api/servers/{server_id}/stop")

        assert response.status_code == 200
        assert response.json()["status"] == "stopped"

    def test_stop_unknown_server(self, client):
        response = client.post("/api/servers/srv_missing/stop")

        assert response.status_code == 404

    def test_stop_unsupported_provider_keeps_status(self, client, services):
        # Arrange
        config = ServerConfig(name="cloud", game_type="forsaken-rpg", max_players=10,
                              region="us-east-1", provider=HostingProvider.GCP)
        services.registry.create(ServerRecord(
            id="srv_gcp", owner="alice", name="cloud", status=ServerStatus.RUNNING,
            config=config, provider_server_id="gcp-1",
        ))

        # Act
        response = client.post("/api/servers/srv_gcp/stop")

        # Assert
        assert response.status_code == 502
        assert response.json()["details"]["kind"] == "not_implemented"
        assert services.get_server("srv_gcp").status == ServerStatus.RUNNING


class TestRefreshServerEndpoint:
    def test_refresh_without_provider_status(self, client, server_id):
        response = client.post(f"/api/servers/{server_id}/refresh")

        assert response.status_code == 200
        assert response.json()["status"] == "manual-setup-required"


class TestDeleteServerEndpoint:
    """Test DELETE /api/servers/{server_id}"""

    def test_delete_running_server_conflicts(self, client, server_id):
        response = client.delete(f"/api/servers/{server_id}")

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_delete_after_stop(self, client, services, server_id):
        # Arrange
        client.post(f"/api/servers/{server_id}/stop")

        # Act
        response = client.delete(f"/api/servers/{server_id}")

        # Assert
        assert response.status_code == 200
        assert server_id in response.json()["message"]
        assert services.list_servers("alice") == []

    def test_delete_unknown_server(self, client):
        response = client.delete("/api/servers/srv_missing")

        assert response.status_code == 404
