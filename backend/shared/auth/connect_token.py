"""Signed connect tokens handed to clients by the credential authority.

A connect token is a fixed-size binary blob. Its public part tells the client
which game server(s) to contact and which session keys to use; its private
part is sealed with ChaCha20-Poly1305 under the key shared by the authority
and the game server, so only the game server can read the client id inside.

Layout (little-endian, zero-padded to CONNECT_TOKEN_BYTES):
    version info | protocol id u64 | create ts u64 | expire ts u64 | nonce
    | sealed private data | timeout i32 | addresses | c2s key | s2c key

Sealed private data (zero-padded before sealing):
    client id u64 | timeout i32 | addresses | c2s key | s2c key | user data

The version info, protocol id and expire timestamp are bound to the seal as
associated data.
"""

from __future__ import annotations

import ipaddress
import secrets
import struct
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Self

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from shared.auth.keys import PRIVATE_KEY_BYTES

VERSION_INFO = b"CONNECT 1.02\x00"

CONNECT_TOKEN_BYTES = 2048
PRIVATE_DATA_BYTES = 1024
MAC_BYTES = 16
NONCE_BYTES = 12
SESSION_KEY_BYTES = 32
USER_DATA_BYTES = 256
MAX_SERVERS = 32

DEFAULT_EXPIRE_SECONDS = 30
DEFAULT_TIMEOUT_SECONDS = 15

_U64_MAX = 2**64 - 1

_ADDRESS_IPV4 = 1
_ADDRESS_IPV6 = 2
_PACKED_ADDRESS_BYTES = {_ADDRESS_IPV4: 4, _ADDRESS_IPV6: 16}

SocketAddr = tuple[str, int]


class ConnectTokenError(Exception):
    """A connect token could not be built or serialized."""


class InvalidConnectTokenError(ConnectTokenError):
    """A connect token failed to parse, decrypt, or is expired."""


@dataclass(frozen=True)
class PrivateConnectData:
    """The part of a connect token only the game server can read."""

    client_id: int
    timeout_seconds: int
    server_addrs: tuple[SocketAddr, ...]
    client_to_server_key: bytes
    server_to_client_key: bytes
    user_data: bytes = b""


@dataclass(frozen=True)
class ConnectToken:
    protocol_id: int
    create_timestamp: int
    expire_timestamp: int
    nonce: bytes
    private_data: bytes  # sealed PrivateConnectData
    timeout_seconds: int
    server_addrs: tuple[SocketAddr, ...]
    client_to_server_key: bytes
    server_to_client_key: bytes

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expire_timestamp

    def to_bytes(self) -> bytes:
        """Serialize to exactly CONNECT_TOKEN_BYTES bytes.

        Raises ConnectTokenError if the structure does not fit.
        """
        if len(self.nonce) != NONCE_BYTES:
            raise ConnectTokenError(f"Nonce must be {NONCE_BYTES} bytes")
        if len(self.private_data) != PRIVATE_DATA_BYTES:
            raise ConnectTokenError(f"Sealed private data must be {PRIVATE_DATA_BYTES} bytes")

        body = b"".join(
            [
                VERSION_INFO,
                _pack("<QQQ", self.protocol_id, self.create_timestamp, self.expire_timestamp),
                self.nonce,
                self.private_data,
                _pack("<i", self.timeout_seconds),
                _encode_addrs(self.server_addrs),
                self.client_to_server_key,
                self.server_to_client_key,
            ],
        )
        if len(body) > CONNECT_TOKEN_BYTES:
            raise ConnectTokenError(f"Connect token is {len(body)} bytes, limit is {CONNECT_TOKEN_BYTES}")
        return body.ljust(CONNECT_TOKEN_BYTES, b"\x00")

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        """Parse a serialized token. Raises InvalidConnectTokenError on any structural problem."""
        if len(data) != CONNECT_TOKEN_BYTES:
            raise InvalidConnectTokenError(f"Connect token must be {CONNECT_TOKEN_BYTES} bytes, got {len(data)}")

        reader = _Reader(data)
        if reader.read(len(VERSION_INFO)) != VERSION_INFO:
            raise InvalidConnectTokenError("Unknown connect token version")

        protocol_id = reader.u64()
        create_timestamp = reader.u64()
        expire_timestamp = reader.u64()
        if expire_timestamp < create_timestamp:
            raise InvalidConnectTokenError("Connect token expires before it was created")

        return cls(
            protocol_id=protocol_id,
            create_timestamp=create_timestamp,
            expire_timestamp=expire_timestamp,
            nonce=reader.read(NONCE_BYTES),
            private_data=reader.read(PRIVATE_DATA_BYTES),
            timeout_seconds=reader.i32(),
            server_addrs=_decode_addrs(reader),
            client_to_server_key=reader.read(SESSION_KEY_BYTES),
            server_to_client_key=reader.read(SESSION_KEY_BYTES),
        )


def issue_connect_token(
    server_addrs: Sequence[SocketAddr],
    protocol_id: int,
    client_id: int,
    private_key: bytes,
    *,
    expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    user_data: bytes = b"",
    now: float | None = None,
) -> ConnectToken:
    """Build a connect token for client_id, sealed with private_key.

    Every call draws a fresh nonce and fresh session keys, so two tokens for
    the same client are never byte-identical.
    """
    if len(private_key) != PRIVATE_KEY_BYTES:
        raise ConnectTokenError(f"Private key must be {PRIVATE_KEY_BYTES} bytes")
    if not 0 <= client_id <= _U64_MAX:
        raise ConnectTokenError(f"Client id {client_id} is not an unsigned 64-bit integer")
    if not 0 <= protocol_id <= _U64_MAX:
        raise ConnectTokenError(f"Protocol id {protocol_id} is not an unsigned 64-bit integer")

    create_timestamp = int(time.time() if now is None else now)
    expire_timestamp = create_timestamp + expire_seconds
    addrs = tuple(server_addrs)
    nonce = secrets.token_bytes(NONCE_BYTES)

    private = PrivateConnectData(
        client_id=client_id,
        timeout_seconds=timeout_seconds,
        server_addrs=addrs,
        client_to_server_key=secrets.token_bytes(SESSION_KEY_BYTES),
        server_to_client_key=secrets.token_bytes(SESSION_KEY_BYTES),
        user_data=user_data,
    )
    sealed = ChaCha20Poly1305(private_key).encrypt(
        nonce,
        _encode_private_data(private),
        _associated_data(protocol_id, expire_timestamp),
    )

    return ConnectToken(
        protocol_id=protocol_id,
        create_timestamp=create_timestamp,
        expire_timestamp=expire_timestamp,
        nonce=nonce,
        private_data=sealed,
        timeout_seconds=timeout_seconds,
        server_addrs=addrs,
        client_to_server_key=private.client_to_server_key,
        server_to_client_key=private.server_to_client_key,
    )


def open_private_data(token: ConnectToken, private_key: bytes, *, now: float | None = None) -> PrivateConnectData:
    """Decrypt and check the private part of a token, as the game server does on connect."""
    if token.is_expired(now):
        raise InvalidConnectTokenError("Connect token expired")

    try:
        plaintext = ChaCha20Poly1305(private_key).decrypt(
            token.nonce,
            token.private_data,
            _associated_data(token.protocol_id, token.expire_timestamp),
        )
    except (InvalidTag, ValueError) as exc:
        raise InvalidConnectTokenError("Connect token private data failed verification") from exc

    reader = _Reader(plaintext)
    return PrivateConnectData(
        client_id=reader.u64(),
        timeout_seconds=reader.i32(),
        server_addrs=_decode_addrs(reader),
        client_to_server_key=reader.read(SESSION_KEY_BYTES),
        server_to_client_key=reader.read(SESSION_KEY_BYTES),
        user_data=reader.read(USER_DATA_BYTES).rstrip(b"\x00"),
    )


def _associated_data(protocol_id: int, expire_timestamp: int) -> bytes:
    return VERSION_INFO + _pack("<QQ", protocol_id, expire_timestamp)


def _encode_private_data(data: PrivateConnectData) -> bytes:
    if len(data.user_data) > USER_DATA_BYTES:
        raise ConnectTokenError(f"User data is {len(data.user_data)} bytes, limit is {USER_DATA_BYTES}")

    body = b"".join(
        [
            _pack("<Qi", data.client_id, data.timeout_seconds),
            _encode_addrs(data.server_addrs),
            data.client_to_server_key,
            data.server_to_client_key,
            data.user_data.ljust(USER_DATA_BYTES, b"\x00"),
        ],
    )
    limit = PRIVATE_DATA_BYTES - MAC_BYTES
    if len(body) > limit:
        raise ConnectTokenError(f"Private data is {len(body)} bytes, limit is {limit}")
    return body.ljust(limit, b"\x00")


def _encode_addrs(addrs: Sequence[SocketAddr]) -> bytes:
    if not 1 <= len(addrs) <= MAX_SERVERS:
        raise ConnectTokenError(f"Connect token needs 1 to {MAX_SERVERS} server addresses, got {len(addrs)}")

    parts = [_pack("<I", len(addrs))]
    for host, port in addrs:
        try:
            ip = ipaddress.ip_address(host)
        except ValueError as exc:
            raise ConnectTokenError(f"Server address {host!r} is not an IP address") from exc
        kind = _ADDRESS_IPV4 if ip.version == 4 else _ADDRESS_IPV6  # noqa: PLR2004
        parts.append(_pack("<B", kind) + ip.packed + _pack("<H", port))
    return b"".join(parts)


def _decode_addrs(reader: _Reader) -> tuple[SocketAddr, ...]:
    count = reader.u32()
    if not 1 <= count <= MAX_SERVERS:
        raise InvalidConnectTokenError(f"Invalid server address count {count}")

    addrs: list[SocketAddr] = []
    for _ in range(count):
        kind = reader.u8()
        size = _PACKED_ADDRESS_BYTES.get(kind)
        if size is None:
            raise InvalidConnectTokenError(f"Unknown address type {kind}")
        host = str(ipaddress.ip_address(reader.read(size)))
        addrs.append((host, reader.u16()))
    return tuple(addrs)


def _pack(fmt: str, *values: int) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ConnectTokenError(f"Value out of range for connect token field: {values}") from exc


class _Reader:
    """Sequential little-endian reader that raises InvalidConnectTokenError on truncation."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def read(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise InvalidConnectTokenError("Connect token truncated")
        chunk = self._data[self._offset : end]
        self._offset = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return self._unpack("<B")

    def u16(self) -> int:
        return self._unpack("<H")

    def u32(self) -> int:
        return self._unpack("<I")

    def i32(self) -> int:
        return self._unpack("<i")

    def u64(self) -> int:
        return self._unpack("<Q")
