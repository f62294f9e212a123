"""Abstract interface for client identity and secret storage."""

from abc import ABC, abstractmethod


class IdentityRegistry(ABC):
    """Allocates client identities and stores the secret each client proves ownership with.

    Identities are never removed by normal operation: a client that
    disconnects can come back and reauthenticate with the same id.
    Implementations can keep state in memory, a key-value store, etc.
    """

    @abstractmethod
    def allocate_identity(self) -> int:
        """Return a fresh 64-bit identity not currently allocated, and mark it allocated."""

    @abstractmethod
    def record_secret(self, client_id: int, secret: str) -> None:
        """Store secret for client_id, replacing any previous one."""

    @abstractmethod
    def lookup_secret(self, client_id: int) -> str | None: ...

    @abstractmethod
    def contains(self, client_id: int) -> bool: ...

    @property
    @abstractmethod
    def identity_count(self) -> int: ...
