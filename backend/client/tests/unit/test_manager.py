"""Tests for the client connection state machine."""

import asyncio
import threading
import time

import pytest

from client.manager import ClientState, ConnectionTaskManager
from client.settings import ClientSettings
from client.prefs import AuthPrefs, AuthPrefsStore
from client.tasks import IoTaskPool
from shared.auth.connect_token import ConnectToken, issue_connect_token
from shared.auth.protocol import TokenResponse

KEY = b"\x05" * 32
PROTOCOL_ID = 7


def _token_response(client_id: int = 42, protocol_id: int = PROTOCOL_ID) -> TokenResponse:
    token = issue_connect_token([("127.0.0.1", 5000)], protocol_id, client_id, KEY)
    return TokenResponse.from_token_bytes(client_id, token.to_bytes())


class FakeBackend:
    """Stands in for AuthBackendClient. Replies with `result` once `release` is set."""

    def __init__(self, result: TokenResponse | None = None) -> None:
        self.result = result
        self.release = threading.Event()
        self.release.set()
        self.calls: list[tuple[str, int | None]] = []

    async def fetch_token(self, secret: str, client_id: int | None = None) -> TokenResponse | None:
        self.calls.append((secret, client_id))
        while not self.release.is_set():
            await asyncio.sleep(0.005)
        return self.result


class FakeTransport:
    def __init__(self) -> None:
        self.connected_tokens: list[ConnectToken] = []
        self.disconnects = 0

    def connect(self, token: ConnectToken) -> None:
        self.connected_tokens.append(token)

    def disconnect(self) -> None:
        self.disconnects += 1


@pytest.fixture
def pool():
    with IoTaskPool() as pool:
        yield pool


@pytest.fixture
def store(tmp_path):
    return AuthPrefsStore(tmp_path / "prefs.json")


@pytest.fixture
def transport():
    return FakeTransport()


def _manager(backend, transport, store, pool, **kwargs) -> ConnectionTaskManager:
    return ConnectionTaskManager(backend, transport, store, pool, **kwargs)


def _run_frames_until_settled(manager: ConnectionTaskManager, timeout: float = 2.0) -> None:
    """Call update() like a frame loop until the pending request resolves."""
    deadline = time.monotonic() + timeout
    while manager.has_pending_task:
        assert time.monotonic() < deadline, "request did not resolve in time"
        manager.update()
        time.sleep(0.005)


class TestConnectAction:
    def test_new_client_requests_with_empty_secret(self, transport, store, pool):
        backend = FakeBackend(_token_response())
        manager = _manager(backend, transport, store, pool)

        assert manager.connect_action()

        assert manager.state is ClientState.REQUESTING
        assert manager.has_pending_task
        _run_frames_until_settled(manager)
        assert backend.calls == [("", None)]

    def test_returning_client_reauthenticates_with_stored_identity(self, transport, store, pool):
        store.save(AuthPrefs(secret="s3cret", last_token=_token_response(client_id=9)))
        backend = FakeBackend(_token_response(client_id=9))
        manager = _manager(backend, transport, store, pool)

        manager.connect_action()
        _run_frames_until_settled(manager)

        assert backend.calls == [("s3cret", 9)]

    def test_ignored_while_request_pending(self, transport, store, pool):
        backend = FakeBackend(_token_response())
        backend.release.clear()
        manager = _manager(backend, transport, store, pool)
        manager.connect_action()

        assert not manager.connect_action()
        manager.update()
        assert not manager.connect_action()

        backend.release.set()
        _run_frames_until_settled(manager)
        assert len(backend.calls) == 1

    def test_ignored_while_connected(self, transport, store, pool):
        manager = _manager(FakeBackend(_token_response()), transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)
        manager.on_transport_connected()

        assert not manager.connect_action()
        assert manager.state is ClientState.CONNECTED


class TestUpdate:
    def test_no_pending_task_is_noop(self, transport, store, pool):
        manager = _manager(FakeBackend(), transport, store, pool)

        manager.update()

        assert manager.state is ClientState.IDLE

    def test_stays_requesting_until_result_arrives(self, transport, store, pool):
        backend = FakeBackend(_token_response())
        backend.release.clear()
        manager = _manager(backend, transport, store, pool)
        manager.connect_action()

        manager.update()

        assert manager.state is ClientState.REQUESTING
        assert transport.connected_tokens == []
        backend.release.set()
        _run_frames_until_settled(manager)
        assert manager.state is ClientState.CONNECTING

    def test_token_starts_transport_connection(self, transport, store, pool):
        response = _token_response(client_id=42)
        manager = _manager(FakeBackend(response), transport, store, pool)
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert manager.state is ClientState.CONNECTING
        assert transport.connected_tokens == [ConnectToken.from_bytes(response.token_bytes)]
        assert manager.client_id == 42

    def test_no_token_returns_to_idle_and_clears_prefs(self, transport, store, pool):
        store.save(AuthPrefs(secret="s", last_token=_token_response(client_id=9)))
        manager = _manager(FakeBackend(None), transport, store, pool)
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert manager.state is ClientState.IDLE
        assert manager.prefs == AuthPrefs()
        assert store.load() == AuthPrefs()
        assert transport.connected_tokens == []

    def test_unparseable_token_returns_to_idle_and_clears_prefs(self, transport, store, pool):
        store.save(AuthPrefs(secret="s", last_token=_token_response(client_id=9)))
        garbage = TokenResponse(token=[1, 2, 3], client_id=9)
        manager = _manager(FakeBackend(garbage), transport, store, pool)
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert manager.state is ClientState.IDLE
        assert store.load() == AuthPrefs()
        assert transport.connected_tokens == []

    def test_protocol_mismatch_returns_to_idle(self, transport, store, pool):
        manager = _manager(
            FakeBackend(_token_response(protocol_id=99)), transport, store, pool, protocol_id=PROTOCOL_ID
        )
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert manager.state is ClientState.IDLE
        assert transport.connected_tokens == []

    def test_crashed_request_returns_to_idle(self, transport, store, pool):
        class CrashingBackend(FakeBackend):
            async def fetch_token(self, secret, client_id=None):
                raise RuntimeError("unexpected")

        manager = _manager(CrashingBackend(), transport, store, pool)
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert manager.state is ClientState.IDLE
        assert not manager.has_pending_task

    def test_closed_pool_returns_to_idle_and_keeps_prefs(self, transport, store):
        store.save(AuthPrefs(secret="s", last_token=_token_response(client_id=9)))
        backend = FakeBackend(_token_response(client_id=9))
        backend.release.clear()
        own_pool = IoTaskPool()
        manager = _manager(backend, transport, store, own_pool)
        manager.connect_action()

        own_pool.close()
        manager.update()

        assert manager.state is ClientState.IDLE
        assert not manager.has_pending_task
        assert manager.prefs.can_reauthenticate
        assert store.load().client_id == 9
        assert transport.connected_tokens == []

    def test_failed_request_clears_store(self, transport, tmp_path, pool):
        class CountingStore(AuthPrefsStore):
            clears = 0

            def clear(self):
                self.clears += 1
                super().clear()

        store = CountingStore(tmp_path / "prefs.json")
        store.save(AuthPrefs(secret="s", last_token=_token_response(client_id=9)))
        manager = _manager(FakeBackend(None), transport, store, pool)
        manager.connect_action()

        _run_frames_until_settled(manager)

        assert store.clears == 1
        assert store.load() == AuthPrefs()

    def test_can_retry_after_failure(self, transport, store, pool):
        backend = FakeBackend(None)
        manager = _manager(backend, transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)

        backend.result = _token_response()
        assert manager.connect_action()
        _run_frames_until_settled(manager)

        assert manager.state is ClientState.CONNECTING
        assert backend.calls == [("", None), ("", None)]


class TestTransportEvents:
    def test_connected_saves_prefs(self, transport, store, pool):
        response = _token_response(client_id=42)
        manager = _manager(FakeBackend(response), transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)

        manager.on_transport_connected()

        assert manager.state is ClientState.CONNECTED
        expected = AuthPrefs(secret="", last_token=response)
        assert manager.prefs == expected
        assert store.load() == expected

    def test_connected_outside_connecting_is_ignored(self, transport, store, pool):
        manager = _manager(FakeBackend(), transport, store, pool)

        manager.on_transport_connected()

        assert manager.state is ClientState.IDLE
        assert not store.path.exists()

    def test_transport_disconnect_keeps_prefs(self, transport, store, pool):
        manager = _manager(FakeBackend(_token_response()), transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)
        manager.on_transport_connected()
        saved = store.load()

        manager.on_transport_disconnected()

        assert manager.state is ClientState.IDLE
        assert store.load() == saved
        assert manager.prefs.can_reauthenticate

    def test_reconnect_after_drop_reauthenticates(self, transport, store, pool):
        backend = FakeBackend(_token_response(client_id=42))
        manager = _manager(backend, transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)
        manager.on_transport_connected()
        manager.on_transport_disconnected()

        manager.connect_action()
        _run_frames_until_settled(manager)

        assert backend.calls == [("", None), ("", 42)]


class TestDisconnectAction:
    def test_from_connected_disconnects_transport(self, transport, store, pool):
        manager = _manager(FakeBackend(_token_response()), transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)
        manager.on_transport_connected()

        manager.disconnect_action()

        assert manager.state is ClientState.IDLE
        assert transport.disconnects == 1
        assert store.load().can_reauthenticate

    def test_from_connecting_disconnects_transport(self, transport, store, pool):
        manager = _manager(FakeBackend(_token_response()), transport, store, pool)
        manager.connect_action()
        _run_frames_until_settled(manager)

        manager.disconnect_action()

        assert manager.state is ClientState.IDLE
        assert transport.disconnects == 1

    def test_from_requesting_drops_pending_task(self, transport, store, pool):
        backend = FakeBackend(_token_response())
        backend.release.clear()
        manager = _manager(backend, transport, store, pool)
        manager.connect_action()

        manager.disconnect_action()

        assert manager.state is ClientState.IDLE
        assert not manager.has_pending_task
        assert transport.disconnects == 0

        # The abandoned request's result is never applied.
        backend.release.set()
        time.sleep(0.05)
        manager.update()
        assert manager.state is ClientState.IDLE
        assert transport.connected_tokens == []

    def test_from_idle_is_noop(self, transport, store, pool):
        manager = _manager(FakeBackend(), transport, store, pool)

        manager.disconnect_action()

        assert manager.state is ClientState.IDLE
        assert transport.disconnects == 0


class TestFromSettings:
    def test_loads_prefs_from_configured_path(self, tmp_path, transport, pool):
        prefs_path = tmp_path / "prefs.json"
        AuthPrefsStore(prefs_path).save(AuthPrefs(secret="s", last_token=_token_response(client_id=9)))
        settings = ClientSettings(auth_backend_url="http://127.0.0.1:1", prefs_path=prefs_path)

        manager = ConnectionTaskManager.from_settings(settings, transport, pool)

        assert manager.state is ClientState.IDLE
        assert manager.client_id == 9
        assert manager.prefs.can_reauthenticate
