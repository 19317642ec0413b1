"""Record stores -- abstract interface, in-memory adapter and row schemas."""

from trust_ledger.store.base import Store
from trust_ledger.store.memory import InMemoryStore

__all__ = ["InMemoryStore", "Store"]
