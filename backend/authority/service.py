"""Credential authority: create identities and reauthenticate returning clients."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from enum import StrEnum
from http import HTTPStatus
from typing import TYPE_CHECKING

import structlog

from shared.auth.connect_token import ConnectTokenError

if TYPE_CHECKING:
    from authority.registry.repository import IdentityRegistry
    from authority.signer import CredentialSigner

logger = structlog.get_logger()


class AuthErrorKind(StrEnum):
    MISSING_CREDENTIALS = "missing_credentials"
    WRONG_CREDENTIALS = "wrong_credentials"
    TOKEN_CREATION = "token_creation"
    INVALID_TOKEN = "invalid_token"  # reserved, no code path raises it yet


_ERROR_RESPONSES: dict[AuthErrorKind, tuple[HTTPStatus, str]] = {
    AuthErrorKind.MISSING_CREDENTIALS: (HTTPStatus.BAD_REQUEST, "Missing credentials"),
    AuthErrorKind.WRONG_CREDENTIALS: (HTTPStatus.UNAUTHORIZED, "Wrong credentials"),
    AuthErrorKind.TOKEN_CREATION: (HTTPStatus.INTERNAL_SERVER_ERROR, "Token creation error"),
    AuthErrorKind.INVALID_TOKEN: (HTTPStatus.BAD_REQUEST, "Invalid token"),
}


class AuthError(Exception):
    """Authentication failure with the HTTP status and message it maps to."""

    def __init__(self, kind: AuthErrorKind) -> None:
        self.kind = kind
        self.status_code, self.message = _ERROR_RESPONSES[kind]
        super().__init__(self.message)


@dataclass(frozen=True)
class IssuedCredential:
    client_id: int
    token: bytes


class CredentialAuthority:
    """Coordinate identity allocation, secret checks, and token issuance.

    Thread-safe as long as the registry is: request handlers call into it
    from a thread pool.
    """

    def __init__(self, registry: IdentityRegistry, signer: CredentialSigner) -> None:
        self._registry = registry
        self._signer = signer

    @property
    def registry(self) -> IdentityRegistry:
        return self._registry

    def create_identity(self, secret: str) -> IssuedCredential:
        """Allocate a new identity bound to secret and issue a token for it."""
        client_id = self._registry.allocate_identity()
        self._registry.record_secret(client_id, secret)
        logger.info("created client identity", client_id=client_id)
        return IssuedCredential(client_id=client_id, token=self._issue(client_id))

    def reauthenticate(self, client_id: int, secret: str) -> IssuedCredential:
        """Issue a fresh token for an existing identity if secret matches the one on file.

        An unknown identity is reported as TOKEN_CREATION, which is what
        clients see after the authority restarts and forgets everyone.
        """
        stored = self._registry.lookup_secret(client_id)
        if stored is None:
            logger.info("reauthentication for unknown client", client_id=client_id)
            raise AuthError(AuthErrorKind.TOKEN_CREATION)

        # TODO: store a hash of the secret instead of the secret itself
        if not hmac.compare_digest(stored.encode(), secret.encode()):
            logger.info("reauthentication with wrong secret", client_id=client_id)
            raise AuthError(AuthErrorKind.WRONG_CREDENTIALS)

        logger.info("reauthenticated client", client_id=client_id)
        return IssuedCredential(client_id=client_id, token=self._issue(client_id))

    def _issue(self, client_id: int) -> bytes:
        try:
            return self._signer.issue(client_id)
        except ConnectTokenError as e:
            logger.exception("failed to issue connect token", client_id=client_id)
            raise AuthError(AuthErrorKind.TOKEN_CREATION) from e
