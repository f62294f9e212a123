"""Credential primitives shared between the authority, the game server, and clients."""

from shared.auth.connect_token import (
    CONNECT_TOKEN_BYTES,
    ConnectToken,
    ConnectTokenError,
    InvalidConnectTokenError,
    PrivateConnectData,
    issue_connect_token,
    open_private_data,
)
from shared.auth.keys import INSECURE_DEFAULT_KEY, PRIVATE_KEY_BYTES, PrivateKeyError, load_private_key
from shared.auth.protocol import AuthPayload, ErrorResponse, NewClientPayload, TokenResponse
from shared.auth.settings import AuthSettings

__all__ = [
    "CONNECT_TOKEN_BYTES",
    "INSECURE_DEFAULT_KEY",
    "PRIVATE_KEY_BYTES",
    "AuthPayload",
    "AuthSettings",
    "ConnectToken",
    "ConnectTokenError",
    "ErrorResponse",
    "InvalidConnectTokenError",
    "NewClientPayload",
    "PrivateConnectData",
    "PrivateKeyError",
    "TokenResponse",
    "issue_connect_token",
    "load_private_key",
    "open_private_data",
]
