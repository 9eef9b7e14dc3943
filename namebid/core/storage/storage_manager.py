from pathlib import Path
from typing import Dict, List, Optional, Tuple

from namebid.core.auction import Auction, Bid
from namebid.core.registrar import ClaimRecord
from namebid.core.state.ledger import EntityRecord, InMemoryLedger, TransferRecord
from namebid.core.storage.sqlite_adapter import SQLiteAdapter
from namebid.utils.logger import get_logger

logger = get_logger("storage.manager")

SCHEDULE_KEYS = ("launch_tick", "bid_period", "reveal_period", "eligibility_modulus")
LEDGER_KEYS = ("block_height", "custody", "burned", "minted")


class StorageManager:
    """
    Manages persistent storage for the registrar and its ledger.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Schedule metadata (launch tick, periods, modulus)
    - Auction state (bids, reveals) and claim records
    - In-memory ledger snapshots
    """

    def __init__(self, data_dir: Path, db_name: str = "namebid.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Schedule (Metadata)
    # =========================================================================

    def save_schedule(
        self,
        launch_tick: int,
        bid_period: int,
        reveal_period: int,
        eligibility_modulus: int,
    ):
        """Save the registrar's schedule. Written once, on first start."""
        values = (launch_tick, bid_period, reveal_period, eligibility_modulus)
        for key, value in zip(SCHEDULE_KEYS, values):
            self.adapter.set_meta(key, str(value))

    def load_schedule(self) -> Optional[Tuple[int, int, int, int]]:
        """Get (launch_tick, bid_period, reveal_period, eligibility_modulus)."""
        values = [self.adapter.get_meta(key) for key in SCHEDULE_KEYS]
        if any(v is None for v in values):
            return None
        launch, bid, reveal, modulus = (int(v) for v in values)
        return launch, bid, reveal, modulus

    # =========================================================================
    # Auctions & Claims
    # =========================================================================

    def persist_auction(self, identifier: str, auction: Auction):
        """Replace the stored state of one auction."""
        self.adapter.save_auction(
            identifier,
            auction.start_tick,
            [(party, bid.commitment, bid.amount) for party, bid in auction.bids.items()],
            list(auction.reveals.items()),
        )

    def delete_auction(self, identifier: str):
        self.adapter.delete_auction(identifier)

    def persist_claim(self, record: ClaimRecord):
        """Store a claim; the settled auction's rows go in the same transaction."""
        self.adapter.save_claim(
            record.identifier,
            record.winner,
            record.price,
            record.public_key,
            record.claimed_at,
        )

    def load_auctions(self) -> Dict[str, Auction]:
        """Rebuild every open or unclaimed auction."""
        auctions = {
            identifier: Auction(start_tick=start_tick)
            for identifier, start_tick in self.adapter.get_auctions()
        }

        for identifier, party, commitment, amount in self.adapter.get_bids():
            auction = auctions.get(identifier)
            if auction is None:
                logger.warning(f"Orphan bid row for {identifier!r} from {party}")
                continue
            auction.bids[party] = Bid(commitment=commitment, amount=amount)

        for identifier, party, amount in self.adapter.get_reveals():
            auction = auctions.get(identifier)
            if auction is None:
                logger.warning(f"Orphan reveal row for {identifier!r} from {party}")
                continue
            auction.reveals[party] = amount

        return auctions

    def load_claims(self) -> List[ClaimRecord]:
        return [
            ClaimRecord(
                identifier=identifier,
                winner=winner,
                price=price,
                public_key=public_key,
                claimed_at=claimed_at,
            )
            for identifier, winner, price, public_key, claimed_at in self.adapter.get_claims()
        ]

    # =========================================================================
    # Ledger Support
    # =========================================================================

    def save_ledger(self, ledger: InMemoryLedger):
        """Atomically snapshot an in-memory ledger."""
        meta = [
            ("block_height", str(ledger.block_height)),
            ("custody", str(ledger.custody)),
            ("burned", str(ledger.burned)),
            ("minted", str(ledger.minted)),
        ]
        self.adapter.save_ledger_state(
            meta,
            list(ledger.balances.items()),
            [(e.name, e.public_key, e.created_at) for e in ledger.entities.values()],
            [(t.tick, t.party, t.amount) for t in ledger.transfers],
        )

    def load_ledger(self) -> Optional[InMemoryLedger]:
        """
        Load the ledger snapshot.

        Returns:
            InMemoryLedger, or None if no snapshot was ever saved
        """
        values = [self.adapter.get_meta(key) for key in LEDGER_KEYS]
        if any(v is None for v in values):
            return None
        block_height, custody, burned, minted = (int(v) for v in values)

        ledger = InMemoryLedger(start_time=block_height)
        ledger.custody = custody
        ledger.burned = burned
        ledger.minted = minted
        ledger.balances = dict(self.adapter.get_balances())
        ledger.entities = {
            name: EntityRecord(name=name, public_key=public_key, created_at=created_at)
            for name, public_key, created_at in self.adapter.get_entities()
        }
        ledger.transfers = [
            TransferRecord(tick, party, amount)
            for tick, party, amount in self.adapter.get_transfers()
        ]

        if not ledger.is_conserved():
            logger.warning(f"Loaded ledger is not conserved: {ledger.stats()}")
        return ledger

    def close(self):
        self.adapter.close()
