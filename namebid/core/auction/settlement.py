"""
Second-Price Settlement - Winner and price determination.

Only revealed amounts take part; unrevealed bids are forfeit from the
auction (their bidders can still withdraw, they just cannot win).

Selection is a single streaming pass keeping the two largest values:

    highest, second = first value, 0
    for each further value v:
        v > highest  -> second = highest, highest = v, winner = party
        v > second   -> second = v

Parties are visited in sorted order and only a strictly greater value
replaces the winner, so among equal top amounts the lexicographically
smallest party id wins. The price is the second-largest revealed value;
when two parties tie at the top the price equals their common amount.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from namebid.utils.logger import get_logger

logger = get_logger("settlement")


@dataclass(frozen=True)
class Settlement:
    """Outcome of winner determination for one auction."""
    winner: str
    highest: int
    price: int

    @property
    def is_valid(self) -> bool:
        """A settlement needs a positive second price."""
        return self.price > 0

    @property
    def surplus(self) -> int:
        """Amount of the winner's deposit above the price."""
        return self.highest - self.price


def select_winner(reveals: Dict[str, int]) -> Optional[Settlement]:
    """
    Select the highest revealed bidder and the second-highest price.

    Args:
        reveals: party -> revealed amount

    Returns:
        Settlement, or None if nobody revealed
    """
    winner: Optional[str] = None
    highest = 0
    second = 0

    for party in sorted(reveals):
        value = reveals[party]
        if winner is None:
            winner, highest = party, value
            continue

        if value > highest:
            second = highest
            highest = value
            winner = party
        elif value > second:
            second = value

    if winner is None:
        return None

    logger.debug(f"Selected winner={winner} highest={highest} price={second} "
                 f"from {len(reveals)} reveals")
    return Settlement(winner=winner, highest=highest, price=second)


__all__ = ["Settlement", "select_winner"]
