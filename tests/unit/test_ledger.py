"""
Unit tests for the runtime interface and the in-memory ledger.

Tests cover:
1. Block clock
2. Call context and attached value
3. Transfers, burns and conservation
4. Named entity creation
"""

import threading

import pytest

from namebid.core.state import (
    InMemoryLedger,
    LedgerError,
    Runtime,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def ledger():
    """Create an empty ledger at block 0."""
    return InMemoryLedger()


@pytest.fixture
def funded_ledger():
    """Create a ledger with two funded parties."""
    ledger = InMemoryLedger()
    ledger.fund("alice", 1000)
    ledger.fund("bob", 500)
    return ledger


# =============================================================================
# Clock Tests
# =============================================================================


class TestClock:
    """Tests for the block clock."""

    def test_satisfies_runtime_protocol(self, ledger):
        assert isinstance(ledger, Runtime)

    def test_advance(self, ledger):
        assert ledger.advance(10) == 10
        assert ledger.current_time() == 10

    def test_advance_negative_rejected(self, ledger):
        with pytest.raises(LedgerError):
            ledger.advance(-1)

    def test_set_time_forward(self, ledger):
        ledger.set_time(500)
        assert ledger.current_time() == 500
        ledger.set_time(500)
        assert ledger.current_time() == 500

    def test_set_time_backwards_rejected(self):
        ledger = InMemoryLedger(start_time=100)
        with pytest.raises(LedgerError):
            ledger.set_time(99)

    def test_negative_start_rejected(self):
        with pytest.raises(LedgerError):
            InMemoryLedger(start_time=-1)


# =============================================================================
# Call Context Tests
# =============================================================================


class TestCallContext:
    """Tests for caller and attached value."""

    def test_no_active_call(self, ledger):
        with pytest.raises(LedgerError):
            ledger.caller()
        with pytest.raises(LedgerError):
            ledger.attached_value()

    def test_call_moves_attached_into_custody(self, funded_ledger):
        with funded_ledger.call("alice", attached=300) as rt:
            assert rt.caller() == "alice"
            assert rt.attached_value() == 300
            assert funded_ledger.custody == 300
        assert funded_ledger.get_balance("alice") == 700
        assert funded_ledger.custody == 300
        assert funded_ledger.is_conserved()

    def test_insufficient_balance(self, funded_ledger):
        with pytest.raises(LedgerError):
            with funded_ledger.call("bob", attached=501):
                pass
        assert funded_ledger.get_balance("bob") == 500
        assert funded_ledger.custody == 0

    def test_invalid_caller(self, funded_ledger):
        with pytest.raises(LedgerError):
            with funded_ledger.call(""):
                pass

    def test_aborted_call_returns_attached(self, funded_ledger):
        """An exception inside the call reverts the deposit."""
        with pytest.raises(RuntimeError):
            with funded_ledger.call("alice", attached=400):
                raise RuntimeError("boom")
        assert funded_ledger.get_balance("alice") == 1000
        assert funded_ledger.custody == 0
        assert funded_ledger.is_conserved()

    def test_nested_calls_restore_context(self, funded_ledger):
        with funded_ledger.call("alice"):
            with funded_ledger.call("bob"):
                assert funded_ledger.caller() == "bob"
            assert funded_ledger.caller() == "alice"

    def test_context_is_per_thread(self, funded_ledger):
        seen = {}
        barrier = threading.Barrier(2)

        def worker(party):
            with funded_ledger.call(party):
                barrier.wait()
                seen[party] = funded_ledger.caller()

        threads = [threading.Thread(target=worker, args=(p,)) for p in ("alice", "bob")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen == {"alice": "alice", "bob": "bob"}


# =============================================================================
# Value Movement Tests
# =============================================================================


class TestValueMovement:
    """Tests for transfers and burns."""

    def test_transfer_out_of_custody(self, funded_ledger):
        with funded_ledger.call("alice", attached=300):
            funded_ledger.transfer("bob", 100)
        assert funded_ledger.get_balance("bob") == 600
        assert funded_ledger.custody == 200
        assert funded_ledger.transferred_to("bob") == 100
        assert funded_ledger.is_conserved()

    def test_transfer_exceeding_custody(self, funded_ledger):
        with pytest.raises(LedgerError):
            funded_ledger.transfer("bob", 1)

    def test_negative_transfer(self, funded_ledger):
        with pytest.raises(LedgerError):
            funded_ledger.transfer("bob", -1)

    def test_burn(self, funded_ledger):
        with funded_ledger.call("alice", attached=300):
            funded_ledger.burn(250)
        assert funded_ledger.burned == 250
        assert funded_ledger.custody == 50
        assert funded_ledger.is_conserved()

    def test_burn_exceeding_custody(self, funded_ledger):
        with pytest.raises(LedgerError):
            funded_ledger.burn(1)

    def test_fund_negative(self, ledger):
        with pytest.raises(LedgerError):
            ledger.fund("alice", -5)

    def test_stats(self, funded_ledger):
        stats = funded_ledger.stats()
        assert stats["minted"] == 1500
        assert stats["circulating"] == 1500
        assert stats["parties"] == 2


# =============================================================================
# Entity Tests
# =============================================================================


class TestEntities:
    """Tests for named entity creation."""

    def test_create_entity(self, ledger):
        ledger.set_time(42)
        ledger.create_named_entity("example", b"\x02" * 64)
        assert ledger.has_entity("example")
        record = ledger.entities["example"]
        assert record.public_key == b"\x02" * 64
        assert record.created_at == 42

    def test_duplicate_entity(self, ledger):
        ledger.create_named_entity("example", b"\x02" * 64)
        with pytest.raises(LedgerError):
            ledger.create_named_entity("example", b"\x03" * 64)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
