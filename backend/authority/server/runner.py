"""Run the credential authority on a background thread next to the game loop.

The game server's simulation loop owns the main thread. The authority gets
its own thread with its own asyncio event loop (uvicorn), so HTTP traffic is
scheduled independently of simulation ticks. The identity registry is the
only state shared between the two, and it is lock-protected.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import structlog
import uvicorn

from authority.server.app import create_app

if TYPE_CHECKING:
    from starlette.applications import Starlette

    from authority.server.settings import AuthorityServerSettings
    from authority.service import CredentialAuthority
    from shared.auth.settings import AuthSettings

logger = structlog.get_logger()

_STARTUP_POLL_SECONDS = 0.01
DEFAULT_STARTUP_TIMEOUT_SECONDS = 5.0
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 5.0


class AuthorityServer:
    """Owns the uvicorn server and the thread it runs on."""

    def __init__(self, app: Starlette, *, host: str, port: int) -> None:
        self._app = app
        self._host = host
        # log_config=None keeps uvicorn from replacing our structlog handlers
        config = uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="off")
        self._server = uvicorn.Server(config)
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: AuthorityServerSettings, auth_settings: AuthSettings) -> AuthorityServer:
        app = create_app(settings=settings, auth_settings=auth_settings)
        return cls(app, host=settings.host, port=settings.port)

    @property
    def authority(self) -> CredentialAuthority:
        return self._app.state.authority

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self._server.started

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, which differs from the configured one when it was 0."""
        # uvicorn only sets .servers once startup begins
        for server in getattr(self._server, "servers", []):
            for sock in server.sockets:
                return sock.getsockname()[1]
        return None

    @property
    def url(self) -> str:
        host = "127.0.0.1" if self._host in {"0.0.0.0", ""} else self._host  # noqa: S104
        return f"http://{host}:{self.bound_port}"

    def start(self, timeout: float = DEFAULT_STARTUP_TIMEOUT_SECONDS) -> None:
        """Start serving and block until the socket is bound.

        Raises RuntimeError if the server thread dies during startup (for
        example, the port is taken) and TimeoutError if it does not come up
        within timeout seconds.
        """
        if self._thread is not None and self._thread.is_alive():
            return

        self._server.should_exit = False
        self._server.started = False
        self._thread = threading.Thread(target=self._server.run, name="credential-authority", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise RuntimeError("Credential authority server exited during startup")
            if time.monotonic() > deadline:
                self.stop()
                raise TimeoutError(f"Credential authority server did not start within {timeout}s")
            time.sleep(_STARTUP_POLL_SECONDS)

        logger.info("credential authority listening", url=self.url)

    def stop(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS) -> None:
        if self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("credential authority thread did not stop in time")
        else:
            logger.info("credential authority stopped")
        self._thread = None
