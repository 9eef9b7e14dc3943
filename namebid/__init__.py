"""
namebid

Sealed-bid second-price name auctions:
- Scheduled release of identifiers in 52 cohorts
- Commit-reveal bidding with deposits locked at reveal
- Vickrey settlement: the highest bidder pays the second price
- Pluggable ledger runtime with an in-memory reference implementation
"""

__version__ = "0.1.0"
