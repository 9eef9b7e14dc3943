"""
Ledger - The runtime the registrar runs against.

Conceptual Background:
---------------------
The registrar never holds or moves value itself. Everything it needs from
the surrounding chain goes through a small runtime interface:

1. **Clock**: ``current_time()``, a non-decreasing block counter
2. **Call context**: ``caller()`` and ``attached_value()`` of the current call
3. **Value movement**: ``transfer(party, amount)`` out of contract custody and
   ``burn(amount)`` to take custody out of circulation
4. **Naming**: ``create_named_entity(name, public_key)``, irreversible

``InMemoryLedger`` is a complete reference implementation used by the tests,
the CLI and the demo. It keeps party balances plus one custody balance for
the registrar, so conservation can be checked at any point:

    minted == sum(balances) + custody + burned
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol, runtime_checkable

from namebid.crypto import bytes_to_hex
from namebid.utils.logger import get_logger
from namebid.utils.validation import validate_party

logger = get_logger("ledger")


# =============================================================================
# Errors
# =============================================================================


class LedgerError(Exception):
    """Ledger-level fault: insufficient funds, clock regression, duplicate name."""


# =============================================================================
# Runtime Interface
# =============================================================================


@runtime_checkable
class Runtime(Protocol):
    """What the registrar requires from the chain it runs on."""

    def current_time(self) -> int: ...

    def caller(self) -> str: ...

    def attached_value(self) -> int: ...

    def transfer(self, party: str, amount: int) -> None: ...

    def create_named_entity(self, name: str, public_key: bytes) -> None: ...

    def burn(self, amount: int) -> None: ...


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class TransferRecord:
    """One value movement out of custody."""
    tick: int
    party: str
    amount: int


@dataclass(frozen=True)
class EntityRecord:
    """A named account created by the ledger."""
    name: str
    public_key: bytes
    created_at: int

    def __repr__(self) -> str:
        return f"EntityRecord(name={self.name!r}, key={bytes_to_hex(self.public_key)[:12]}...)"


@dataclass(frozen=True)
class CallContext:
    caller: str
    attached: int


# =============================================================================
# In-Memory Ledger
# =============================================================================


class InMemoryLedger:
    """
    Reference runtime with balances, custody and a manual block clock.

    Usage:
        ledger = InMemoryLedger()
        ledger.fund("alice", 5000)
        with ledger.call("alice", attached=1000):
            registrar.reveal("name", 1000, "salt")
    """

    def __init__(self, start_time: int = 0):
        if start_time < 0:
            raise LedgerError(f"start_time must be >= 0, got {start_time}")

        self.block_height = start_time
        self.balances: Dict[str, int] = {}
        self.custody = 0
        self.burned = 0
        self.minted = 0
        self.entities: Dict[str, EntityRecord] = {}
        self.transfers: List[TransferRecord] = []

        self._lock = threading.RLock()
        self._context = threading.local()

    # =========================================================================
    # Clock
    # =========================================================================

    def current_time(self) -> int:
        return self.block_height

    def advance(self, blocks: int = 1) -> int:
        """Move the clock forward. Returns the new tick."""
        if blocks < 0:
            raise LedgerError(f"Cannot move clock backwards by {-blocks} blocks")
        with self._lock:
            self.block_height += blocks
            return self.block_height

    def set_time(self, tick: int) -> None:
        """Jump the clock to ``tick`` (must not be in the past)."""
        with self._lock:
            if tick < self.block_height:
                raise LedgerError(f"Clock regression: {tick} < {self.block_height}")
            self.block_height = tick

    # =========================================================================
    # Call Context
    # =========================================================================

    def _current_context(self) -> Optional[CallContext]:
        return getattr(self._context, "current", None)

    @contextmanager
    def call(self, caller: str, attached: int = 0) -> Iterator["InMemoryLedger"]:
        """
        Run a block of code as a call from ``caller`` carrying ``attached``.

        The attached value is debited from the caller and credited to custody
        before the call body runs. If the body raises, the call is aborted and
        the attached value goes back to the caller.
        """
        valid, err = validate_party(caller)
        if not valid:
            raise LedgerError(err)
        if attached < 0:
            raise LedgerError(f"Attached value must be >= 0, got {attached}")

        with self._lock:
            available = self.balances.get(caller, 0)
            if available < attached:
                raise LedgerError(
                    f"Insufficient balance for {caller}: have {available}, attach {attached}"
                )
            self.balances[caller] = available - attached
            self.custody += attached

        previous = self._current_context()
        self._context.current = CallContext(caller=caller, attached=attached)
        try:
            yield self
        except BaseException:
            with self._lock:
                self.custody -= attached
                self.balances[caller] = self.balances.get(caller, 0) + attached
            logger.debug(f"Call from {caller} aborted, returned attached {attached}")
            raise
        finally:
            self._context.current = previous

    def caller(self) -> str:
        ctx = self._current_context()
        if ctx is None:
            raise LedgerError("No active call")
        return ctx.caller

    def attached_value(self) -> int:
        ctx = self._current_context()
        if ctx is None:
            raise LedgerError("No active call")
        return ctx.attached

    # =========================================================================
    # Value Movement
    # =========================================================================

    def fund(self, party: str, amount: int) -> None:
        """Mint ``amount`` into a party's balance (test/demo genesis)."""
        valid, err = validate_party(party)
        if not valid:
            raise LedgerError(err)
        if amount < 0:
            raise LedgerError(f"Cannot fund a negative amount: {amount}")
        with self._lock:
            self.balances[party] = self.balances.get(party, 0) + amount
            self.minted += amount
        logger.debug(f"Funded {party} with {amount}")

    def transfer(self, party: str, amount: int) -> None:
        """Move ``amount`` out of custody to ``party``."""
        if amount < 0:
            raise LedgerError(f"Cannot transfer a negative amount: {amount}")
        with self._lock:
            if amount > self.custody:
                raise LedgerError(f"Transfer of {amount} exceeds custody {self.custody}")
            self.custody -= amount
            self.balances[party] = self.balances.get(party, 0) + amount
            self.transfers.append(TransferRecord(self.block_height, party, amount))
        logger.debug(f"Transferred {amount} to {party}")

    def burn(self, amount: int) -> None:
        """Remove ``amount`` of custody from circulation."""
        if amount < 0:
            raise LedgerError(f"Cannot burn a negative amount: {amount}")
        with self._lock:
            if amount > self.custody:
                raise LedgerError(f"Burn of {amount} exceeds custody {self.custody}")
            self.custody -= amount
            self.burned += amount
        logger.info(f"Burned {amount}")

    # =========================================================================
    # Naming
    # =========================================================================

    def create_named_entity(self, name: str, public_key: bytes) -> None:
        """Create account ``name`` and attach ``public_key`` as its full-access key."""
        with self._lock:
            if name in self.entities:
                raise LedgerError(f"Entity already exists: {name}")
            self.entities[name] = EntityRecord(
                name=name,
                public_key=bytes(public_key),
                created_at=self.block_height,
            )
        logger.info(f"Created entity {name}")

    def has_entity(self, name: str) -> bool:
        return name in self.entities

    # =========================================================================
    # Queries
    # =========================================================================

    def get_balance(self, party: str) -> int:
        return self.balances.get(party, 0)

    def transferred_to(self, party: str) -> int:
        """Total value transferred out of custody to ``party``."""
        return sum(t.amount for t in self.transfers if t.party == party)

    def is_conserved(self) -> bool:
        """minted == circulating + custody + burned"""
        return self.minted == sum(self.balances.values()) + self.custody + self.burned

    def __repr__(self) -> str:
        return (f"InMemoryLedger(height={self.block_height}, custody={self.custody}, "
                f"burned={self.burned}, entities={len(self.entities)})")

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "block_height": self.block_height,
            "parties": len(self.balances),
            "circulating": sum(self.balances.values()),
            "custody": self.custody,
            "burned": self.burned,
            "minted": self.minted,
            "entities": len(self.entities),
            "transfers": len(self.transfers),
        }
