"""
Sealed-Bid Auction - Per-identifier auction state.

An auction holds:
1. Bids: one hidden commitment per bidding party
2. Reveals: the amounts parties proved (and deposited) during the reveal phase
3. The start tick, fixed at the first bid

The phase is never stored. It is derived on demand from the current tick
and the bid/reveal counts by ``phase()``:

    BIDDING     elapsed < bid_period
    REVEALING   bid_period <= elapsed < bid_period + reveal_period
    SETTLEABLE  elapsed >= bid_period + reveal_period, or
                elapsed >= bid_period and every bidder has revealed
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List

from namebid.crypto import bytes_to_hex


# =============================================================================
# Enums
# =============================================================================


class Phase(IntEnum):
    """Phase of an identifier's auction."""
    NOT_OPEN = 0     # No auction record (never bid on)
    BIDDING = 1      # Accepting commitments
    REVEALING = 2    # Accepting reveals
    SETTLEABLE = 3   # Withdrawals and claim accepted
    CLAIMED = 4      # Name created, auction settled


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class Bid:
    """
    A party's bid in one auction.

    ``amount`` is 0 until the reveal succeeds. After that it is both the
    revealed value and the party's refundable custody balance.
    """
    commitment: bytes
    amount: int = 0

    def __repr__(self) -> str:
        return f"Bid(amount={self.amount}, commitment={bytes_to_hex(self.commitment)[:12]}...)"


@dataclass
class Auction:
    """
    State of a single identifier's auction.

    Invariants:
        - every key in ``reveals`` is also in ``bids``
        - ``reveals[p]`` equalled ``bids[p].amount`` when ``p`` revealed
        - ``len(reveals) <= len(bids)``
    """
    start_tick: int
    bids: Dict[str, Bid] = field(default_factory=dict)
    reveals: Dict[str, int] = field(default_factory=dict)

    def elapsed(self, now: int) -> int:
        """Ticks since the first bid."""
        return now - self.start_tick

    def has_bid(self, party: str) -> bool:
        return party in self.bids

    def has_revealed(self, party: str) -> bool:
        return party in self.reveals

    def all_revealed(self) -> bool:
        """Every bidder has revealed."""
        return len(self.reveals) == len(self.bids)

    def get_unrevealed(self) -> List[str]:
        """Parties who bid but never revealed."""
        return sorted(set(self.bids) - set(self.reveals))

    def custody(self) -> int:
        """Total amount currently held for this auction's bidders."""
        return sum(bid.amount for bid in self.bids.values())

    def check_invariants(self) -> None:
        """Raise AssertionError if the reveal/bid relationship is broken."""
        assert len(self.reveals) <= len(self.bids), "more reveals than bids"
        for party in self.reveals:
            assert party in self.bids, f"reveal without bid: {party}"


# =============================================================================
# Phase Computation
# =============================================================================


def phase(auction: Auction, now: int, bid_period: int, reveal_period: int) -> Phase:
    """
    Compute the phase of an auction at tick ``now``.

    Args:
        auction: The auction
        now: Current tick
        bid_period: Length of the bidding phase
        reveal_period: Length of the reveal phase

    Returns:
        BIDDING, REVEALING or SETTLEABLE
    """
    elapsed = auction.elapsed(now)

    if elapsed < bid_period:
        return Phase.BIDDING

    if elapsed >= bid_period + reveal_period:
        return Phase.SETTLEABLE

    # Inside the reveal window: settles early once nobody is left to reveal
    if auction.all_revealed():
        return Phase.SETTLEABLE

    return Phase.REVEALING


__all__ = [
    "Phase",
    "Bid",
    "Auction",
    "phase",
]
