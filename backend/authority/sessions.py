"""Game-server bookkeeping of which issued identities currently hold a session."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from authority.registry.repository import IdentityRegistry

logger = structlog.get_logger()


class ConnectedClients:
    """Track connected client ids and gate sessions on the authority's identity space.

    Called from the game loop when the transport reports a peer connected or
    disconnected. Disconnecting only leaves the connected set; the identity
    stays in the registry so the client can reauthenticate later.
    """

    def __init__(self, registry: IdentityRegistry) -> None:
        self._registry = registry
        self._connected: set[int] = set()

    def on_connect(self, client_id: int | None) -> bool:
        """Record a new session. Return False if the caller must disconnect the peer.

        client_id is None when the peer did not authenticate with a connect
        token at all.
        """
        if client_id is None:
            logger.warning("client connected without a netcode identity, disconnecting")
            return False
        if not self._registry.contains(client_id):
            logger.warning("client connected with an identity this authority never issued", client_id=client_id)
            return False

        self._connected.add(client_id)
        logger.info("client connected", client_id=client_id, connected=len(self._connected))
        return True

    def on_disconnect(self, client_id: int) -> None:
        self._connected.discard(client_id)
        logger.info("client disconnected", client_id=client_id, connected=len(self._connected))

    def is_connected(self, client_id: int) -> bool:
        return client_id in self._connected

    @property
    def connected_ids(self) -> frozenset[int]:
        return frozenset(self._connected)
