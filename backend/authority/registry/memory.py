"""In-memory identity registry.

Identities and secrets live only as long as the process: after a restart
every client has to create a new identity. Clients handle this by falling
back from reauthentication to creation.
"""

import secrets
from typing import Protocol

import structlog

from authority.registry.locks import ReadWriteLock
from authority.registry.repository import IdentityRegistry

logger = structlog.get_logger()

IDENTITY_BITS = 64


class RandomSource(Protocol):
    def getrandbits(self, k: int, /) -> int: ...


class InMemoryIdentityRegistry(IdentityRegistry):
    """Registry backed by a set and a dict, each behind its own reader/writer lock.

    Locks are held only for the set/dict operation itself, never while a
    caller signs a token with the result.
    """

    def __init__(self, rng: RandomSource | None = None) -> None:
        self._rng: RandomSource = rng if rng is not None else secrets.SystemRandom()
        self._client_ids: set[int] = set()
        self._client_secrets: dict[int, str] = {}
        self._ids_lock = ReadWriteLock()
        self._secrets_lock = ReadWriteLock()

    def allocate_identity(self) -> int:
        collisions = 0
        while True:
            candidate = self._rng.getrandbits(IDENTITY_BITS)
            with self._ids_lock.write():
                if candidate not in self._client_ids:
                    self._client_ids.add(candidate)
                    break
            collisions += 1

        if collisions:
            logger.warning("client id collision while allocating", attempts=collisions + 1)
        return candidate

    def record_secret(self, client_id: int, secret: str) -> None:
        with self._secrets_lock.write():
            self._client_secrets[client_id] = secret

    def lookup_secret(self, client_id: int) -> str | None:
        with self._secrets_lock.read():
            return self._client_secrets.get(client_id)

    def contains(self, client_id: int) -> bool:
        with self._ids_lock.read():
            return client_id in self._client_ids

    @property
    def identity_count(self) -> int:
        with self._ids_lock.read():
            return len(self._client_ids)
