"""
namebid Auction Module.

This module provides the per-identifier auction:
- Bid and auction state
- Phase computation from the block clock
- Second-price winner selection
"""

from namebid.core.auction.auction import (
    Auction,
    Bid,
    Phase,
    phase,
)

from namebid.core.auction.settlement import (
    Settlement,
    select_winner,
)

__all__ = [
    # State
    "Auction",
    "Bid",
    "Phase",
    "phase",
    # Settlement
    "Settlement",
    "select_winner",
]
