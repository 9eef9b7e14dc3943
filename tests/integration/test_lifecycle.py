"""
Integration tests for full auction lifecycles.

Drives the registrar against the in-memory ledger through complete
scenarios and checks that value is conserved at every step.
"""

import random

import pytest

from namebid.core.auction import Phase
from namebid.core.registrar import Registrar
from namebid.core.state import InMemoryLedger
from namebid.crypto import compute_commitment, generate_keypair, generate_salt


BID_PERIOD = 60
REVEAL_PERIOD = 40


class Bidder:
    """A party with a hidden bid it can later reveal."""

    def __init__(self, name: str, amount: int):
        self.name = name
        self.amount = amount
        self.salt = generate_salt()

    @property
    def commitment(self) -> bytes:
        return compute_commitment(self.amount, self.salt)


@pytest.fixture
def world():
    ledger = InMemoryLedger(start_time=1_000)
    registrar = Registrar(ledger, bid_period=BID_PERIOD, reveal_period=REVEAL_PERIOD)
    return ledger, registrar


def check(ledger, registrar):
    assert ledger.is_conserved()
    assert ledger.custody == registrar.custody_total()


def open_time(registrar, identifier):
    return registrar.launch_tick + registrar.eligibility_slot(identifier) * registrar.bid_period


class TestFullAuction:
    """Complete bid / reveal / claim / withdraw runs."""

    def test_many_bidders(self, world):
        ledger, registrar = world
        bidders = [Bidder(f"party-{i}", amount) for i, amount in
                   enumerate([120, 950, 400, 950, 10, 700])]
        for b in bidders:
            ledger.fund(b.name, 1_000)

        ledger.set_time(open_time(registrar, "shared"))
        for b in bidders:
            with ledger.call(b.name):
                assert registrar.bid("shared", b.commitment)
        check(ledger, registrar)

        ledger.advance(BID_PERIOD)
        for b in bidders[:-1]:
            with ledger.call(b.name, attached=b.amount):
                assert registrar.reveal("shared", b.amount, b.salt)
            check(ledger, registrar)
        assert registrar.phase_of("shared") == Phase.REVEALING

        ledger.advance(REVEAL_PERIOD)
        assert registrar.phase_of("shared") == Phase.SETTLEABLE

        # party-1 and party-3 tie at 950; party-1 sorts first
        with ledger.call("party-3"):
            assert not registrar.claim("shared", generate_keypair().public_key)
        with ledger.call("party-1"):
            assert registrar.claim("shared", generate_keypair().public_key)
        check(ledger, registrar)

        assert ledger.burned == 950
        assert ledger.get_balance("party-1") == 50
        for b in bidders:
            if b.name != "party-1":
                assert ledger.get_balance(b.name) == 1_000

    def test_abandoned_auction(self, world):
        """Nobody reveals: the auction settles, withdrawals return nothing."""
        ledger, registrar = world
        ledger.fund("alice", 100)
        ledger.set_time(open_time(registrar, "ghost"))
        with ledger.call("alice"):
            assert registrar.bid("ghost", compute_commitment(50, "s"))

        ledger.advance(BID_PERIOD + REVEAL_PERIOD)
        with ledger.call("alice"):
            assert not registrar.claim("ghost", generate_keypair().public_key)
            assert registrar.withdraw("ghost")

        assert registrar.prune() == ["ghost"]
        assert ledger.get_balance("alice") == 100
        check(ledger, registrar)

    def test_reveal_window_closes(self, world):
        ledger, registrar = world
        a, b = Bidder("a", 10), Bidder("b", 20)
        for bidder in (a, b):
            ledger.fund(bidder.name, 100)

        ledger.set_time(open_time(registrar, "late"))
        for bidder in (a, b):
            with ledger.call(bidder.name):
                registrar.bid("late", bidder.commitment)

        ledger.advance(BID_PERIOD + REVEAL_PERIOD - 1)
        with ledger.call("a", attached=10):
            assert registrar.reveal("late", 10, a.salt)
        ledger.advance(1)
        with ledger.call("b", attached=20):
            assert not registrar.reveal("late", 20, b.salt)

        assert ledger.get_balance("b") == 100
        check(ledger, registrar)


class TestRandomizedConservation:
    """Random operation sequences never create or lose value."""

    @pytest.mark.parametrize("seed", range(5))
    def test_random_sequences(self, world, seed):
        ledger, registrar = world
        rng = random.Random(seed)
        identifier = "fuzz"
        parties = [f"p{i}" for i in range(6)]
        amounts = {p: rng.randint(0, 400) for p in parties}
        salts = {p: f"salt-{p}" for p in parties}
        for p in parties:
            ledger.fund(p, 1_000)

        start = open_time(registrar, identifier)
        ledger.set_time(start)

        for _ in range(60):
            party = rng.choice(parties)
            op = rng.choice(["bid", "reveal", "bad_reveal", "withdraw", "claim", "tick"])
            if op == "bid":
                with ledger.call(party, attached=rng.choice([0, 5])):
                    registrar.bid(identifier, compute_commitment(amounts[party], salts[party]))
            elif op == "reveal":
                with ledger.call(party, attached=amounts[party]):
                    registrar.reveal(identifier, amounts[party], salts[party])
            elif op == "bad_reveal":
                with ledger.call(party, attached=amounts[party] + 1):
                    registrar.reveal(identifier, amounts[party] + 1, salts[party])
            elif op == "withdraw":
                with ledger.call(party):
                    registrar.withdraw(identifier)
            elif op == "claim":
                with ledger.call(party):
                    registrar.claim(identifier, b"\x04" * 64)
            else:
                ledger.advance(rng.randint(1, 15))

            check(ledger, registrar)
            auction = registrar.get_auction(identifier)
            if auction is not None:
                auction.check_invariants()
                for p, value in auction.reveals.items():
                    assert auction.bids[p].amount in (0, value)

        # Settle whatever is left
        ledger.advance(BID_PERIOD + REVEAL_PERIOD)
        for p in parties:
            with ledger.call(p):
                registrar.withdraw(identifier)
        assert registrar.custody_total() == 0
        assert ledger.custody == 0
        total = sum(ledger.balances.values()) + ledger.burned
        assert total == 6 * 1_000


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
