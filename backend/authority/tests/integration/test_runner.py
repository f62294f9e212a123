"""Tests for running the authority on a background thread."""

import httpx
import pytest

from authority.server.runner import AuthorityServer


@pytest.fixture
def server(server_settings, auth_settings):
    server = AuthorityServer.from_settings(server_settings, auth_settings)
    yield server
    server.stop()


class TestAuthorityServer:
    def test_serves_requests_on_background_thread(self, server):
        server.start()

        assert server.is_running
        assert server.bound_port
        response = httpx.post(f"{server.url}/create_client", json={"client_secret": "s"})
        assert response.status_code == 200
        assert server.authority.registry.contains(response.json()["client_id"])

    def test_stop_shuts_down(self, server):
        server.start()
        url = server.url

        server.stop()

        assert not server.is_running
        with pytest.raises(httpx.ConnectError):
            httpx.get(f"{url}/health", timeout=1)

    def test_start_is_idempotent_while_running(self, server):
        server.start()
        port = server.bound_port

        server.start()

        assert server.bound_port == port

    def test_port_in_use_fails_startup(self, server, server_settings, auth_settings):
        server.start()
        taken = server_settings.model_copy(update={"port": server.bound_port})
        second = AuthorityServer.from_settings(taken, auth_settings)

        with pytest.raises(RuntimeError, match="exited during startup"):
            second.start()
