"""Storage collaborator interface and the in-memory reference implementation."""

from vendor_ledger.storage.memory import InMemoryLedgerRepository
from vendor_ledger.storage.repository import CascadeImpact, LedgerRepository

__all__ = ["CascadeImpact", "InMemoryLedgerRepository", "LedgerRepository"]
