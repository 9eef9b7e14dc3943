"""
Registrar - Sealed-bid second-price auctions for named identifiers.

Lifecycle of one identifier:
1. Eligibility: the identifier opens in exactly one period,
   ``stable_hash(identifier) % 52 == (now - launch_tick) // bid_period``
2. Bid: parties submit commitments, no value attached
3. Reveal: parties open their commitment and attach exactly the amount
4. Settle: the highest revealer claims the name and pays the second price,
   everyone else is refunded; or, without a valid claim, everyone withdraws

Every public operation returns a bool. Rejections never change state;
their reason is logged and kept in ``last_rejection`` for the calling
thread. The only exceptions raised are ``AmountOverflowError`` for amounts
outside the balance domain, ``LedgerError`` from the runtime, and storage
errors; an operation that raises leaves the registrar as it was.

Operations work on a copy of the identifier's auction. The copy is stored,
its ledger effects run, and only then does it replace the installed auction.
Installed auctions are never mutated, so queries can read them without
taking identifier locks.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import IntEnum
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from namebid.core.auction import Auction, Bid, Phase, phase, select_winner
from namebid.core.config import ELIGIBILITY_MODULUS, RegistrarConfig
from namebid.core.state.ledger import Runtime
from namebid.crypto import bytes_to_hex, stable_hash, verify_commitment
from namebid.utils.logger import get_logger
from namebid.utils.validation import (
    validate_amount,
    validate_commitment,
    validate_identifier,
    validate_period,
    validate_public_key,
    validate_salt,
    validate_tick,
)

logger = get_logger("registrar")


# =============================================================================
# Errors and Results
# =============================================================================


class AmountOverflowError(ValueError):
    """A revealed amount lies outside the ledger's balance domain."""


class Rejection(IntEnum):
    """Why an operation returned False."""
    NONE = 0
    PHASE = 1           # Outside the operation's time window
    AUTHORIZATION = 2   # Caller is not the eligible bidder/revealer/winner
    INTEGRITY = 3       # Commitment mismatch, duplicate, missing record


@dataclass(frozen=True)
class ClaimRecord:
    """A settled auction: the name exists and the price was burned."""
    identifier: str
    winner: str
    price: int
    public_key: bytes
    claimed_at: int

    def __repr__(self) -> str:
        return (f"ClaimRecord({self.identifier!r}, winner={self.winner!r}, "
                f"price={self.price}, key={bytes_to_hex(self.public_key)[:12]}...)")


@dataclass
class _IdentifierLock:
    """Lock for one identifier and the number of threads holding or awaiting it."""
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


@dataclass
class _Change:
    """Next state of one identifier and the ledger calls that go with it."""
    auction: Optional[Auction]
    record: Optional[ClaimRecord] = None
    effects: List[Callable[[], None]] = field(default_factory=list)


# =============================================================================
# Registrar
# =============================================================================


class Registrar:
    """
    Owns every identifier's auction and performs all fund movement.

    Attributes:
        runtime: Ledger providing time, caller, deposits and transfers
        launch_tick: Tick the eligibility schedule counts from
        bid_period: Length of the bidding phase (and of a release period)
        reveal_period: Length of the reveal phase
        auctions: identifier -> open or unclaimed Auction
        claims: identifier -> ClaimRecord for settled names
    """

    def __init__(
        self,
        runtime: Runtime,
        bid_period: int,
        reveal_period: int,
        launch_tick: Optional[int] = None,
        eligibility_modulus: int = ELIGIBILITY_MODULUS,
        storage_manager=None,
    ):
        """
        Initialize the registrar.

        Args:
            runtime: Ledger the registrar runs against
            bid_period: Bidding phase length in ticks
            reveal_period: Reveal phase length in ticks
            launch_tick: Schedule origin. None = runtime's current tick
            eligibility_modulus: Number of release cohorts
            storage_manager: Persistence manager. None = in-memory only.
        """
        for value, name in (
            (bid_period, "bid_period"),
            (reveal_period, "reveal_period"),
            (eligibility_modulus, "eligibility_modulus"),
        ):
            valid, err = validate_period(value, name)
            if not valid:
                raise ValueError(err)

        if launch_tick is None:
            launch_tick = runtime.current_time()
        valid, err = validate_tick(launch_tick)
        if not valid:
            raise ValueError(err)

        self.runtime = runtime
        self.launch_tick = launch_tick
        self.bid_period = bid_period
        self.reveal_period = reveal_period
        self.eligibility_modulus = eligibility_modulus

        self.auctions: Dict[str, Auction] = {}
        self.claims: Dict[str, ClaimRecord] = {}

        # One lock per identifier in use. The guard protects the lock table
        # and every insert into or removal from auctions/claims.
        self._guard = threading.Lock()
        self._locks: Dict[str, _IdentifierLock] = {}
        self._local = threading.local()

        self.storage_manager = storage_manager
        if storage_manager:
            self._load_from_storage()

    @classmethod
    def from_config(
        cls,
        runtime: Runtime,
        config: RegistrarConfig,
        storage_manager=None,
    ) -> "Registrar":
        """Build a registrar from a RegistrarConfig."""
        return cls(
            runtime,
            bid_period=config.bid_period,
            reveal_period=config.reveal_period,
            launch_tick=config.launch_tick,
            eligibility_modulus=config.eligibility_modulus,
            storage_manager=storage_manager,
        )

    # =========================================================================
    # Schedule
    # =========================================================================

    def eligibility_slot(self, identifier: str) -> int:
        """Release period (within the cycle) in which ``identifier`` opens."""
        return stable_hash(identifier) % self.eligibility_modulus

    def current_period(self, now: Optional[int] = None) -> int:
        """Whole bid periods elapsed since launch. Negative before launch."""
        if now is None:
            now = self.runtime.current_time()
        return (now - self.launch_tick) // self.bid_period

    def is_eligible(self, identifier: str, now: Optional[int] = None) -> bool:
        """Whether a first bid on ``identifier`` would pass the schedule gate."""
        return self.eligibility_slot(identifier) == self.current_period(now)

    def phase_of(self, identifier: str, now: Optional[int] = None) -> Phase:
        """Phase of ``identifier``, including NOT_OPEN and CLAIMED."""
        with self._guard:
            if identifier in self.claims:
                return Phase.CLAIMED
            auction = self.auctions.get(identifier)
        if auction is None:
            return Phase.NOT_OPEN
        if now is None:
            now = self.runtime.current_time()
        return phase(auction, now, self.bid_period, self.reveal_period)

    def _phase(self, auction: Auction, now: int) -> Phase:
        return phase(auction, now, self.bid_period, self.reveal_period)

    # =========================================================================
    # Rejections and Locking
    # =========================================================================

    @property
    def last_rejection(self) -> Tuple[Rejection, str]:
        """(kind, message) of the calling thread's last rejected operation."""
        return getattr(self._local, "rejection", (Rejection.NONE, ""))

    def _reject(self, op: str, identifier: str, kind: Rejection, message: str) -> bool:
        self._local.rejection = (kind, message)
        logger.debug(f"{op}({identifier!r}) rejected [{kind.name}]: {message}")
        return False

    def _accept(self) -> bool:
        self._local.rejection = (Rejection.NONE, "")
        return True

    @contextmanager
    def _exclusive(self, identifier: str) -> Iterator[None]:
        """Hold the identifier's lock for the duration of one operation."""
        with self._guard:
            entry = self._locks.get(identifier)
            if entry is None:
                entry = self._locks[identifier] = _IdentifierLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[identifier]

    def _return_attached(self, caller: str) -> None:
        """Send any value attached to the current call back to the caller."""
        attached = self.runtime.attached_value()
        if attached > 0:
            self.runtime.transfer(caller, attached)
            logger.debug(f"Returned attached {attached} to {caller}")

    # =========================================================================
    # Staged Updates
    # =========================================================================

    def _run(self, identifier: str, apply: Callable[..., bool], *args) -> bool:
        """
        Run one operation against a working copy of the identifier's auction.

        ``apply`` validates and fills in a _Change. An accepted change is
        stored, its ledger effects run, and it is installed last. If storing
        fails nothing has moved; if an effect fails the stored state is put
        back. Either way the installed state is untouched.

        Must be called while holding the identifier's lock.
        """
        change = _Change(auction=copy.deepcopy(self.auctions.get(identifier)))
        if not apply(identifier, change, *args):
            return False

        self._persist(identifier, change)
        try:
            for effect in change.effects:
                effect()
        except Exception:
            logger.error(f"Ledger call failed while settling {identifier!r}, "
                         "restoring stored auction")
            self._restore_stored(identifier)
            raise

        self._install(identifier, change)
        return True

    def _install(self, identifier: str, change: _Change) -> None:
        with self._guard:
            if change.record is not None:
                self.claims[identifier] = change.record
                del self.auctions[identifier]
            else:
                self.auctions[identifier] = change.auction

    # =========================================================================
    # Bid
    # =========================================================================

    def bid(self, identifier: str, commitment: bytes) -> bool:
        """
        Submit a sealed bid.

        Opens a new auction if the identifier has none and its release period
        is the current one. Value attached to a bid is returned.

        Args:
            identifier: Name being bid on
            commitment: ``compute_commitment(amount, salt)`` chosen by the caller

        Returns:
            True if the bid was recorded
        """
        caller = self.runtime.caller()
        with self._exclusive(identifier):
            accepted = self._run(identifier, self._apply_bid, caller, commitment)
        self._return_attached(caller)
        return accepted

    def _apply_bid(self, identifier: str, change: _Change, caller: str, commitment: bytes) -> bool:
        valid, err = validate_identifier(identifier)
        if not valid:
            return self._reject("bid", identifier, Rejection.INTEGRITY, err)

        valid, err = validate_commitment(commitment)
        if not valid:
            return self._reject("bid", identifier, Rejection.INTEGRITY, err)

        if identifier in self.claims:
            return self._reject("bid", identifier, Rejection.PHASE, "Identifier already claimed")

        now = self.runtime.current_time()
        auction = change.auction

        if auction is not None:
            current = self._phase(auction, now)
            if current != Phase.BIDDING:
                return self._reject(
                    "bid", identifier, Rejection.PHASE,
                    f"Not in bidding phase (phase: {current.name})",
                )

            if auction.has_bid(caller):
                return self._reject("bid", identifier, Rejection.INTEGRITY, "Caller already bid")

            auction.bids[caller] = Bid(commitment=bytes(commitment))
            logger.debug(f"Bid from {caller} on {identifier!r} ({len(auction.bids)} bids)")
            return self._accept()

        # First bid: schedule gate
        period = self.current_period(now)
        slot = self.eligibility_slot(identifier)
        if slot != period:
            return self._reject(
                "bid", identifier, Rejection.PHASE,
                f"Identifier opens in period {slot}, current period is {period}",
            )

        change.auction = Auction(
            start_tick=now,
            bids={caller: Bid(commitment=bytes(commitment))},
        )
        logger.info(f"Auction opened for {identifier!r} at tick {now}: "
                    f"reveal from {now + self.bid_period}, "
                    f"settle by {now + self.bid_period + self.reveal_period}")
        return self._accept()

    # =========================================================================
    # Reveal
    # =========================================================================

    def reveal(self, identifier: str, masked_amount: int, salt: str) -> bool:
        """
        Open a commitment and lock the deposit.

        The call must carry exactly ``masked_amount``. On rejection the
        attached value is returned.

        Args:
            identifier: Name bid on
            masked_amount: Amount committed to
            salt: Salt used for the commitment

        Returns:
            True if the reveal was recorded

        Raises:
            AmountOverflowError: masked_amount is not a valid balance
        """
        valid, err = validate_amount(masked_amount)
        if not valid:
            raise AmountOverflowError(err)

        caller = self.runtime.caller()
        with self._exclusive(identifier):
            accepted = self._run(identifier, self._apply_reveal, caller, masked_amount, salt)
        if not accepted:
            self._return_attached(caller)
        return accepted

    def _apply_reveal(
        self,
        identifier: str,
        change: _Change,
        caller: str,
        masked_amount: int,
        salt: str,
    ) -> bool:
        attached = self.runtime.attached_value()
        if attached != masked_amount:
            return self._reject(
                "reveal", identifier, Rejection.INTEGRITY,
                f"Attached {attached} does not match revealed amount {masked_amount}",
            )

        auction = change.auction
        if auction is None:
            return self._reject("reveal", identifier, Rejection.INTEGRITY, "No auction for identifier")

        current = self._phase(auction, self.runtime.current_time())
        if current != Phase.REVEALING:
            return self._reject(
                "reveal", identifier, Rejection.PHASE,
                f"Not in reveal phase (phase: {current.name})",
            )

        bid = auction.bids.get(caller)
        if bid is None:
            return self._reject("reveal", identifier, Rejection.AUTHORIZATION, "No bid from caller")

        valid, err = validate_salt(salt)
        if not valid:
            return self._reject("reveal", identifier, Rejection.INTEGRITY, err)

        if not verify_commitment(bid.commitment, masked_amount, salt):
            logger.warning(f"Reveal mismatch from {caller} on {identifier!r}")
            return self._reject(
                "reveal", identifier, Rejection.INTEGRITY, "Reveal does not match commitment"
            )

        if auction.has_revealed(caller):
            return self._reject("reveal", identifier, Rejection.INTEGRITY, "Already revealed")

        bid.amount = masked_amount
        auction.reveals[caller] = masked_amount

        logger.debug(f"Reveal from {caller} on {identifier!r}: amount={masked_amount} "
                     f"({len(auction.reveals)}/{len(auction.bids)} revealed)")
        return self._accept()

    # =========================================================================
    # Withdraw
    # =========================================================================

    def withdraw(self, identifier: str) -> bool:
        """
        Recover the caller's locked amount once the auction is settleable.

        The balance is zeroed before the transfer, so repeated calls move
        value once and then succeed as no-ops.

        Returns:
            True if the caller's balance (possibly 0) was released
        """
        caller = self.runtime.caller()
        with self._exclusive(identifier):
            accepted = self._run(identifier, self._apply_withdraw, caller)
        self._return_attached(caller)
        return accepted

    def _apply_withdraw(self, identifier: str, change: _Change, caller: str) -> bool:
        auction = change.auction
        if auction is None:
            return self._reject("withdraw", identifier, Rejection.INTEGRITY, "No auction for identifier")

        current = self._phase(auction, self.runtime.current_time())
        if current != Phase.SETTLEABLE:
            return self._reject(
                "withdraw", identifier, Rejection.PHASE,
                f"Auction not settleable (phase: {current.name})",
            )

        bid = auction.bids.get(caller)
        if bid is None:
            return self._reject("withdraw", identifier, Rejection.AUTHORIZATION, "No bid from caller")

        amount = bid.amount
        bid.amount = 0
        if amount > 0:
            change.effects.append(partial(self.runtime.transfer, caller, amount))
            logger.info(f"Withdrawing {amount} for {caller} from {identifier!r}")

        return self._accept()

    # =========================================================================
    # Claim
    # =========================================================================

    def claim(self, identifier: str, public_key: bytes) -> bool:
        """
        Settle the auction in the winner's favour.

        Creates the named entity bound to ``public_key``, refunds every other
        bidder, burns the second price and returns the winner's surplus.

        Args:
            identifier: Name to claim
            public_key: 64-byte key to attach to the new name

        Returns:
            True if the caller won and the name was created
        """
        caller = self.runtime.caller()
        with self._exclusive(identifier):
            accepted = self._run(identifier, self._apply_claim, caller, public_key)
        self._return_attached(caller)
        return accepted

    def _apply_claim(self, identifier: str, change: _Change, caller: str, public_key: bytes) -> bool:
        if identifier in self.claims:
            return self._reject("claim", identifier, Rejection.PHASE, "Identifier already claimed")

        auction = change.auction
        if auction is None:
            return self._reject("claim", identifier, Rejection.INTEGRITY, "No auction for identifier")

        now = self.runtime.current_time()
        current = self._phase(auction, now)
        if current != Phase.SETTLEABLE:
            return self._reject(
                "claim", identifier, Rejection.PHASE,
                f"Auction not settleable (phase: {current.name})",
            )

        valid, err = validate_public_key(public_key)
        if not valid:
            return self._reject("claim", identifier, Rejection.INTEGRITY, err)

        settlement = select_winner(auction.reveals)
        if settlement is None or not settlement.is_valid:
            return self._reject(
                "claim", identifier, Rejection.INTEGRITY, "No valid second price"
            )

        if caller != settlement.winner:
            return self._reject("claim", identifier, Rejection.AUTHORIZATION, "Caller is not the winner")

        winner_bid = auction.bids[settlement.winner]
        if winner_bid.amount < settlement.price:
            return self._reject(
                "claim", identifier, Rejection.INTEGRITY,
                f"Winner custody {winner_bid.amount} below price {settlement.price}",
            )

        # Account creation first: if the ledger refuses, nothing has moved
        change.effects.append(
            partial(self.runtime.create_named_entity, identifier, bytes(public_key))
        )

        refunded = 0
        for party in sorted(auction.bids):
            amount = auction.bids[party].amount
            if party != settlement.winner and amount > 0:
                change.effects.append(partial(self.runtime.transfer, party, amount))
                refunded += 1

        surplus = winner_bid.amount - settlement.price
        change.effects.append(partial(self.runtime.burn, settlement.price))
        if surplus > 0:
            change.effects.append(partial(self.runtime.transfer, settlement.winner, surplus))

        change.record = ClaimRecord(
            identifier=identifier,
            winner=settlement.winner,
            price=settlement.price,
            public_key=bytes(public_key),
            claimed_at=now,
        )
        change.auction = None

        logger.info(f"{identifier!r} claimed by {caller}: price={settlement.price}, "
                    f"surplus returned={surplus}, {refunded} bidders refunded")
        return self._accept()

    # =========================================================================
    # Maintenance
    # =========================================================================

    def prune(self) -> List[str]:
        """
        Drop settleable auctions that hold no funds.

        Such an auction can never be claimed (the winner's custody is below
        any positive price) and has nothing left to withdraw.

        Returns:
            Identifiers removed
        """
        now = self.runtime.current_time()
        with self._guard:
            identifiers = sorted(self.auctions)

        removed = []
        for identifier in identifiers:
            with self._exclusive(identifier):
                auction = self.auctions.get(identifier)
                if auction is None:
                    continue
                if self._phase(auction, now) != Phase.SETTLEABLE or auction.custody() > 0:
                    continue
                if self.storage_manager:
                    self.storage_manager.delete_auction(identifier)
                with self._guard:
                    del self.auctions[identifier]
                removed.append(identifier)

        if removed:
            logger.info(f"Pruned {len(removed)} settled auctions")
        return removed

    # =========================================================================
    # Queries
    # =========================================================================

    def get_auction(self, identifier: str) -> Optional[Auction]:
        return self.auctions.get(identifier)

    def get_claim(self, identifier: str) -> Optional[ClaimRecord]:
        return self.claims.get(identifier)

    def _snapshot(self) -> Tuple[List[Auction], List[ClaimRecord]]:
        with self._guard:
            return list(self.auctions.values()), list(self.claims.values())

    def custody_total(self) -> int:
        """Sum of every bidder's locked amount (the registrar's liabilities)."""
        auctions, _ = self._snapshot()
        return sum(auction.custody() for auction in auctions)

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(self, identifier: str, change: _Change) -> None:
        if not self.storage_manager:
            return
        if change.record is not None:
            self.storage_manager.persist_claim(change.record)
        else:
            self.storage_manager.persist_auction(identifier, change.auction)

    def _restore_stored(self, identifier: str) -> None:
        """Write the installed auction back over a change whose effects failed."""
        if not self.storage_manager:
            return
        # Only withdraw and claim carry effects, and both start from an auction
        self.storage_manager.persist_auction(identifier, self.auctions[identifier])

    def _load_from_storage(self) -> None:
        """Load schedule and auction state from the storage manager."""
        schedule = self.storage_manager.load_schedule()
        if schedule is None:
            self.storage_manager.save_schedule(
                self.launch_tick, self.bid_period, self.reveal_period, self.eligibility_modulus
            )
        else:
            (self.launch_tick, self.bid_period,
             self.reveal_period, self.eligibility_modulus) = schedule

        self.auctions = self.storage_manager.load_auctions()
        self.claims = {
            record.identifier: record for record in self.storage_manager.load_claims()
        }
        logger.info(f"Loaded registrar: {len(self.auctions)} auctions, {len(self.claims)} claims")

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return (f"Registrar(launch={self.launch_tick}, bid_period={self.bid_period}, "
                f"reveal_period={self.reveal_period}, auctions={len(self.auctions)}, "
                f"claims={len(self.claims)})")

    def stats(self) -> dict:
        """Get registrar statistics."""
        now = self.runtime.current_time()
        auctions, claims = self._snapshot()
        phases = {p.name: 0 for p in (Phase.BIDDING, Phase.REVEALING, Phase.SETTLEABLE)}
        for auction in auctions:
            phases[self._phase(auction, now).name] += 1
        return {
            "current_period": self.current_period(now),
            "auctions": len(auctions),
            "claims": len(claims),
            "custody": sum(auction.custody() for auction in auctions),
            "burned": sum(record.price for record in claims),
            **{name.lower(): count for name, count in phases.items()},
        }
