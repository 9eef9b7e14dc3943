"""
Unit tests for SQLite storage.
"""

import pytest

from namebid.core.auction import Auction, Bid
from namebid.core.registrar import ClaimRecord
from namebid.core.state import InMemoryLedger
from namebid.core.storage import SQLiteAdapter, StorageManager
from namebid.crypto import compute_commitment
from namebid.utils.validation import MAX_AMOUNT


@pytest.fixture
def storage(tmp_path):
    return StorageManager(tmp_path / "data")


def make_auction():
    auction = Auction(
        start_tick=300,
        bids={
            "alice": Bid(commitment=compute_commitment(1000, "a"), amount=1000),
            "bob": Bid(commitment=compute_commitment(1005, "b")),
        },
    )
    auction.reveals["alice"] = 1000
    return auction


class TestSQLiteAdapter:
    """Tests for the raw adapter."""

    def test_creates_parent_dir(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        SQLiteAdapter(db_path)
        assert db_path.exists()

    def test_meta(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "test.db")
        assert adapter.get_meta("missing") is None
        adapter.set_meta("key", "v1")
        adapter.set_meta("key", "v2")
        assert adapter.get_meta("key") == "v2"

    def test_large_amounts_survive(self, tmp_path):
        """Amounts above 2**63 are stored as text."""
        adapter = SQLiteAdapter(tmp_path / "test.db")
        adapter.save_auction("big", 1, [("p", b"\x01", MAX_AMOUNT)], [("p", MAX_AMOUNT)])
        assert adapter.get_bids() == [("big", "p", b"\x01", MAX_AMOUNT)]
        assert adapter.get_reveals() == [("big", "p", MAX_AMOUNT)]

    def test_close_and_reopen(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "test.db")
        adapter.set_meta("k", "v")
        adapter.close()
        assert adapter.get_meta("k") == "v"


class TestStorageManager:
    """Tests for domain-level persistence."""

    def test_schedule(self, storage):
        assert storage.load_schedule() is None
        storage.save_schedule(10, 100, 50, 52)
        assert storage.load_schedule() == (10, 100, 50, 52)

    def test_auction_roundtrip(self, storage):
        storage.persist_auction("example", make_auction())
        loaded = storage.load_auctions()["example"]
        assert loaded.start_tick == 300
        assert loaded.bids["alice"].amount == 1000
        assert loaded.bids["bob"].amount == 0
        assert loaded.bids["bob"].commitment == compute_commitment(1005, "b")
        assert loaded.reveals == {"alice": 1000}

    def test_persist_replaces_rows(self, storage):
        auction = make_auction()
        storage.persist_auction("example", auction)
        auction.bids["alice"].amount = 0
        del auction.bids["bob"]
        storage.persist_auction("example", auction)
        loaded = storage.load_auctions()["example"]
        assert set(loaded.bids) == {"alice"}
        assert loaded.bids["alice"].amount == 0

    def test_delete_auction(self, storage):
        storage.persist_auction("example", make_auction())
        storage.delete_auction("example")
        assert storage.load_auctions() == {}

    def test_claim_replaces_auction(self, storage):
        storage.persist_auction("example", make_auction())
        record = ClaimRecord("example", "bob", 1000, b"\x04" * 64, 450)
        storage.persist_claim(record)
        assert storage.load_auctions() == {}
        assert storage.load_claims() == [record]
        assert storage.adapter.get_bids() == []

    def test_auction_replaces_claim(self, storage):
        """Writing the auction back over a claim removes the claim."""
        auction = make_auction()
        storage.persist_claim(ClaimRecord("example", "bob", 1000, b"\x04" * 64, 450))
        storage.persist_auction("example", auction)
        assert storage.load_claims() == []
        assert storage.load_auctions()["example"].bids == auction.bids

    def test_ledger_absent(self, storage):
        assert storage.load_ledger() is None

    def test_ledger_roundtrip(self, storage):
        ledger = InMemoryLedger(start_time=5)
        ledger.fund("alice", 2000)
        with ledger.call("alice", attached=1500):
            ledger.transfer("alice", 200)
            ledger.burn(300)
        ledger.create_named_entity("example", b"\x04" * 64)
        ledger.advance(10)

        storage.save_ledger(ledger)
        loaded = storage.load_ledger()

        assert loaded.current_time() == 15
        assert loaded.balances == ledger.balances
        assert loaded.custody == 1000
        assert loaded.burned == 300
        assert loaded.minted == 2000
        assert loaded.entities == ledger.entities
        assert loaded.transfers == ledger.transfers
        assert loaded.is_conserved()

    def test_ledger_save_overwrites(self, storage):
        ledger = InMemoryLedger()
        ledger.fund("alice", 1)
        storage.save_ledger(ledger)
        ledger.fund("bob", 2)
        storage.save_ledger(ledger)
        assert storage.load_ledger().balances == {"alice": 1, "bob": 2}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
