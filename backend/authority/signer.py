"""Connect token signer bound to the authority's resolved configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.auth.connect_token import DEFAULT_EXPIRE_SECONDS, DEFAULT_TIMEOUT_SECONDS, issue_connect_token

if TYPE_CHECKING:
    from shared.auth.connect_token import SocketAddr

logger = structlog.get_logger()


class CredentialSigner:
    """Issue serialized connect tokens for the configured game server.

    The constructor signs a throwaway token so that a configuration which
    cannot produce a valid token (bad address, oversized user data, wrong
    key length) raises ConnectTokenError at startup instead of on the first
    request.
    """

    def __init__(
        self,
        game_server_addr: SocketAddr,
        protocol_id: int,
        private_key: bytes,
        *,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._game_server_addr = game_server_addr
        self._protocol_id = protocol_id
        self._private_key = private_key
        self._expire_seconds = expire_seconds
        self._timeout_seconds = timeout_seconds
        self.issue(0)
        logger.info(
            "credential signer ready",
            game_server=f"{game_server_addr[0]}:{game_server_addr[1]}",
            protocol_id=protocol_id,
            expire_seconds=expire_seconds,
        )

    @property
    def protocol_id(self) -> int:
        return self._protocol_id

    def issue(self, client_id: int) -> bytes:
        token = issue_connect_token(
            [self._game_server_addr],
            self._protocol_id,
            client_id,
            self._private_key,
            expire_seconds=self._expire_seconds,
            timeout_seconds=self._timeout_seconds,
        )
        return token.to_bytes()
