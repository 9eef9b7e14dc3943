"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Registrar schedule metadata
- Auctions (bids, reveals) and claim records
- In-memory ledger snapshots
"""

from namebid.core.storage.sqlite_adapter import SQLiteAdapter
from namebid.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
