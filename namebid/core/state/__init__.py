"""Runtime interface and in-memory reference ledger"""
from namebid.core.state.ledger import (
    Runtime,
    InMemoryLedger,
    LedgerError,
    TransferRecord,
    EntityRecord,
)

__all__ = [
    "Runtime",
    "InMemoryLedger",
    "LedgerError",
    "TransferRecord",
    "EntityRecord",
]
