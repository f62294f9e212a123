"""Seam to the realtime transport that consumes connect tokens."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from shared.auth.connect_token import ConnectToken


class GameTransport(Protocol):
    """Realtime session layer.

    connect() starts an asynchronous connection attempt; the transport later
    reports the outcome through ConnectionTaskManager.on_transport_connected
    or on_transport_disconnected.
    """

    def connect(self, token: ConnectToken) -> None: ...

    def disconnect(self) -> None: ...
