from authority.registry.locks import ReadWriteLock
from authority.registry.memory import InMemoryIdentityRegistry
from authority.registry.repository import IdentityRegistry

__all__ = ["IdentityRegistry", "InMemoryIdentityRegistry", "ReadWriteLock"]
