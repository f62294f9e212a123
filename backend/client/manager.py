"""Client-side connection state machine driven once per frame.

    IDLE --connect_action--> REQUESTING --update: token--> CONNECTING
    REQUESTING --update: no token--> IDLE (preferences cleared)
    REQUESTING --update: request cancelled--> IDLE (preferences kept)
    CONNECTING --on_transport_connected--> CONNECTED (preferences saved)
    any --disconnect_action--> IDLE (pending request dropped)
    CONNECTING/CONNECTED --on_transport_disconnected--> IDLE

At most one token request is in flight. The frame loop calls update(),
which polls that request without blocking.
"""

from __future__ import annotations

from concurrent.futures import CancelledError
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from client.backend import AuthBackendClient
from client.prefs import AuthPrefs, AuthPrefsStore
from client.tasks import NOT_READY
from shared.auth.connect_token import ConnectToken, InvalidConnectTokenError

if TYPE_CHECKING:
    from client.settings import ClientSettings
    from client.tasks import IoTaskPool, PendingTask
    from client.transport import GameTransport
    from shared.auth.protocol import TokenResponse

logger = structlog.get_logger()

# Secret used when the client has never obtained an identity.
NEW_CLIENT_SECRET = ""


class ClientState(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionTaskManager:
    def __init__(
        self,
        backend: AuthBackendClient,
        transport: GameTransport,
        prefs_store: AuthPrefsStore,
        task_pool: IoTaskPool,
        *,
        protocol_id: int | None = None,
    ) -> None:
        self._backend = backend
        self._transport = transport
        self._prefs_store = prefs_store
        self._task_pool = task_pool
        self._protocol_id = protocol_id

        self._prefs = prefs_store.load()
        self._state = ClientState.IDLE
        self._task: PendingTask[TokenResponse | None] | None = None
        self._request_secret: str | None = None
        self._token: TokenResponse | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        transport: GameTransport,
        task_pool: IoTaskPool,
        *,
        protocol_id: int | None = None,
    ) -> ConnectionTaskManager:
        backend = AuthBackendClient(settings.auth_backend_url, timeout=settings.request_timeout)
        return cls(backend, transport, AuthPrefsStore(settings.prefs_path), task_pool, protocol_id=protocol_id)

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def prefs(self) -> AuthPrefs:
        return self._prefs.model_copy()

    @property
    def has_pending_task(self) -> bool:
        return self._task is not None

    @property
    def client_id(self) -> int | None:
        """Identity of the current connection attempt, else the remembered one."""
        if self._token is not None:
            return self._token.client_id
        return self._prefs.client_id

    def connect_action(self) -> bool:
        """Start a token request. Return False (and do nothing) unless IDLE with no request in flight."""
        if self._task is not None or self._state is not ClientState.IDLE:
            logger.debug("connect ignored", state=self._state)
            return False

        if self._prefs.can_reauthenticate:
            secret = self._prefs.secret or NEW_CLIENT_SECRET
            client_id = self._prefs.client_id
            logger.info("requesting connect token for existing client", client_id=client_id)
        else:
            secret = NEW_CLIENT_SECRET
            client_id = None
            logger.info("requesting connect token for new client")

        self._request_secret = secret
        self._task = self._task_pool.spawn(self._backend.fetch_token(secret, client_id))
        self._state = ClientState.REQUESTING
        return True

    def disconnect_action(self) -> None:
        if self._task is not None:
            # The request keeps running on the pool; its result is never read.
            logger.info("dropping pending connect token request")
            self._task = None
        if self._state in {ClientState.CONNECTING, ClientState.CONNECTED}:
            logger.info("disconnecting from server", client_id=self.client_id)
            self._transport.disconnect()
        self._reset_to_idle()

    def update(self) -> None:
        """Poll the pending request once. Call every frame."""
        if self._task is None:
            return

        try:
            result = self._task.try_take_result()
        except CancelledError:
            logger.info("connect token request cancelled by task pool shutdown")
            self._task = None
            self._reset_to_idle()
            return
        except Exception:
            logger.exception("connect token request crashed")
            self._task = None
            self._fail_request()
            return

        if result is NOT_READY:
            return
        self._task = None

        token_response = result.value
        if token_response is None:
            logger.warning("no connect token obtained")
            self._fail_request()
            return

        try:
            token = ConnectToken.from_bytes(token_response.token_bytes)
        except InvalidConnectTokenError:
            logger.exception("failed to parse connect token from credential authority")
            self._fail_request()
            return

        if self._protocol_id is not None and token.protocol_id != self._protocol_id:
            logger.error("connect token protocol id mismatch", expected=self._protocol_id, got=token.protocol_id)
            self._fail_request()
            return

        self._token = token_response
        self._state = ClientState.CONNECTING
        logger.info("received connect token, starting connection", client_id=token_response.client_id)
        self._transport.connect(token)

    def on_transport_connected(self) -> None:
        if self._state is not ClientState.CONNECTING:
            logger.warning("unexpected connected event", state=self._state)
            return
        self._state = ClientState.CONNECTED
        self._prefs = AuthPrefs(secret=self._request_secret, last_token=self._token)
        self._persist_prefs()
        logger.info("connected to game server", client_id=self.client_id)

    def on_transport_disconnected(self) -> None:
        if self._state not in {ClientState.CONNECTING, ClientState.CONNECTED}:
            return
        logger.info("connection to game server closed", client_id=self.client_id, state=self._state)
        self._reset_to_idle()

    # -- private helpers --

    def _fail_request(self) -> None:
        """Any failure to obtain a token invalidates the stored identity."""
        self._reset_to_idle()
        self._prefs = AuthPrefs()
        try:
            self._prefs_store.clear()
        except OSError:
            logger.exception("failed to clear auth preferences", path=str(self._prefs_store.path))

    def _reset_to_idle(self) -> None:
        self._state = ClientState.IDLE
        self._request_secret = None
        self._token = None

    def _persist_prefs(self) -> None:
        try:
            self._prefs_store.save(self._prefs)
        except OSError:
            logger.exception("failed to save auth preferences", path=str(self._prefs_store.path))
