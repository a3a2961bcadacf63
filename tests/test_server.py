"""
Test Control Server

HTTP routes exercised through FastAPI's TestClient.
"""

import json

import pytest
from fastapi.testclient import TestClient

from neurontainer.config import AppConfig
from neurontainer.core.context import AppContext
from neurontainer.core.errors import DockerAPIError
from neurontainer.server import ControlServer

from conftest import FakeClientFactory, FakeDocker


class TestControlServer:
    """Tests for ControlServer routes"""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        config = AppConfig()
        config.paths.config_path = str(tmp_path / "config.json")
        config.paths.changelog_path = str(tmp_path / "CHANGELOG.md")
        config.docker.host = f"unix://{tmp_path / 'docker.sock'}"
        config.neuro.websocket_url = "ws://neuro:8000"

        self.tmp_path = tmp_path
        self.docker = FakeDocker(
            containers=[{"Id": "abc123def4567890", "Names": ["/web"], "Image": "nginx", "State": "running", "Status": "Up 2 hours"}],
            images=[{"Id": "sha256:1", "RepoTags": ["nginx:latest"], "Size": 100, "Created": 1700000000}],
        )
        self.factory = FakeClientFactory()
        self.context = AppContext(config, client_factory=self.factory, docker_factory=lambda host: self.docker)
        self.server = ControlServer(self.context)
        self.client = TestClient(self.server.app)

    def test_root(self):
        response = self.client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "running", "neuro_connected": False, "game_name": "neurontainer"}

    def test_ping(self):
        assert self.client.get("/api/ping").json() == {"success": True, "message": "pong"}

    def test_status(self):
        body = self.client.get("/api/status").json()

        assert body["docker"] == "disconnected"
        assert body["neuro"] == "disconnected"
        assert body["docker_socket_exists"] is False
        assert body["last_neuro_event"] is None

    def test_get_config_creates_defaults(self):
        body = self.client.get("/api/config").json()

        assert body["success"] is True
        assert body["config"] == {
            "list_containers": "OFF",
            "start_container": "OFF",
            "stop_container": "OFF",
            "restart_container": "OFF",
            "remove_container": "OFF",
            "list_images": "OFF",
            "get_cookie": "AUTOPILOT",
        }
        assert (self.tmp_path / "config.json").exists()

    def test_put_config_wrapped(self):
        response = self.client.put("/api/config", json={"config": {"list_containers": "FORCE"}})

        assert response.status_code == 200
        assert response.json()["config"]["list_containers"] == "FORCE"
        disk = json.loads((self.tmp_path / "config.json").read_text())
        assert disk["permissions"]["list_containers"] == "FORCE"

    def test_put_config_bare_mapping(self):
        response = self.client.put("/api/config", json={"get_cookie": "OFF"})

        assert response.status_code == 200
        assert response.json()["config"]["get_cookie"] == "OFF"

    def test_put_config_unknown_action(self):
        response = self.client.put("/api/config", json={"config": {"format_disk": "AUTOPILOT"}})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Unknown action: format_disk"}

    def test_put_config_bad_shape(self):
        response = self.client.put("/api/config", json=["list_containers"])

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid config format"

    def test_actions(self):
        actions = self.client.get("/api/actions").json()["actions"]

        cookie = next(a for a in actions if a["name"] == "get_cookie")
        assert cookie["permission"] == "AUTOPILOT"
        assert "handler" not in cookie

    def test_list_containers(self):
        body = self.client.get("/api/containers").json()

        assert body == {
            "success": True,
            "data": [{"id": "abc123def4567890", "name": "web", "image": "nginx", "state": "running", "status": "Up 2 hours"}],
        }

    def test_list_images(self):
        body = self.client.get("/api/images").json()

        assert body["data"] == [{"id": "sha256:1", "tags": ["nginx:latest"], "size": 100, "created": 1700000000}]

    @pytest.mark.parametrize("method, path, call", [
        ("post", "/api/containers/web/start", ("start", "web")),
        ("post", "/api/containers/web/stop", ("stop", "web")),
        ("post", "/api/containers/web/restart", ("restart", "web")),
        ("delete", "/api/containers/web", ("delete", "web", True)),
    ])
    def test_container_operations(self, method, path, call):
        response = getattr(self.client, method)(path)

        assert response.json() == {"success": True}
        assert self.docker.calls == [call]

    def test_container_operation_error(self):
        async def failing_start(container):
            raise DockerAPIError(404, "No such container: ghost")

        self.docker.container_start = failing_start

        response = self.client.post("/api/containers/ghost/start")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Docker API error 404: No such container: ghost"}

    def test_docker_unavailable(self):
        self.docker.alive = False

        response = self.client.get("/api/containers")

        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_reconnect_with_url(self):
        response = self.client.post("/api/reconnect/neuro", json={"websocketUrl": "ws://192.168.1.9:8000"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "NeuroClient connected to ws://192.168.1.9:8000",
            "websocketUrl": "ws://192.168.1.9:8000",
        }
        assert self.factory.clients[-1].url == "ws://192.168.1.9:8000"

    def test_reconnect_defaults_to_configured_url(self):
        response = self.client.post("/api/reconnect/neuro")

        assert response.json()["websocketUrl"] == "ws://neuro:8000"

    def test_reconnect_timeout(self):
        self.factory.auto_open = False
        self.context.connection.connect_timeout_ms = 20

        response = self.client.post("/api/reconnect/neuro", json={})

        assert response.status_code == 500
        assert "Timed out after 20ms" in response.json()["error"]

    def test_changelog(self):
        (self.tmp_path / "CHANGELOG.md").write_text("# Changelog\n\n## 0.3.0\n\n- Levels\n\n## 0.2.0\n\n- Old\n")

        body = self.client.get("/api/changelog").json()

        assert body == {"success": True, "markdown": "## 0.3.0\n\n- Levels", "version": "0.3.0"}

    def test_changelog_missing(self):
        response = self.client.get("/api/changelog")

        assert response.status_code == 404
        assert response.json()["success"] is False
