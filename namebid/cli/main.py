"""
namebid CLI - Command Line Interface for the name auction registrar

Drives a persisted simulation: an in-memory ledger and a registrar whose
state is stored in ``<data-dir>/namebid.db`` between invocations.
"""

import click
from pathlib import Path
from typing import Callable, Optional

from namebid import __version__
from namebid.utils.logger import bind_clock, setup_logging, get_logger

logger = get_logger("cli")

DB_NAME = "namebid.db"


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.namebid", help="Data directory")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, data_dir):
    """namebid - Sealed-bid second-price name auctions"""
    import logging

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level)

    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


# =============================================================================
# Helpers
# =============================================================================


def _open_state(ctx):
    """
    Load the persisted ledger and registrar.

    Returns:
        (storage, ledger, registrar); exits if the data dir was never initialized
    """
    from namebid.core.registrar import Registrar
    from namebid.core.storage import StorageManager

    storage = StorageManager(ctx.obj["data_dir"], db_name=DB_NAME)
    schedule = storage.load_schedule()
    ledger = storage.load_ledger()
    if schedule is None or ledger is None:
        click.echo("❌ Registrar not initialized")
        click.echo("   Create with: namebid init")
        ctx.exit(1)

    bind_clock(ledger.current_time)
    launch_tick, bid_period, reveal_period, modulus = schedule
    registrar = Registrar(
        ledger,
        bid_period=bid_period,
        reveal_period=reveal_period,
        launch_tick=launch_tick,
        eligibility_modulus=modulus,
        storage_manager=storage,
    )
    return storage, ledger, registrar


def _run_call(ctx, party: str, attached: int, label: str, operation: Callable) -> None:
    """Run one registrar operation as a call from ``party`` and save the ledger."""
    from namebid.core.registrar import AmountOverflowError
    from namebid.core.state import LedgerError

    storage, ledger, registrar = _open_state(ctx)
    logger.debug(f"{label} call from {party} with {attached} attached")
    try:
        with ledger.call(party, attached=attached):
            accepted = operation(registrar)
    except (LedgerError, AmountOverflowError) as e:
        click.echo(f"❌ {label} failed: {e}")
        ctx.exit(1)

    storage.save_ledger(ledger)

    if accepted:
        click.echo(f"✓ {label} accepted")
        return

    kind, message = registrar.last_rejection
    click.echo(f"❌ {label} rejected [{kind.name}]: {message}")
    ctx.exit(1)


def _parse_hex(ctx, value: str, name: str) -> bytes:
    from namebid.crypto import hex_to_bytes

    try:
        return hex_to_bytes(value)
    except ValueError:
        click.echo(f"❌ {name} is not valid hex: {value}")
        ctx.exit(1)


# =============================================================================
# Setup Commands
# =============================================================================


@cli.command("init")
@click.option("--config", "config_path", default=None, help="JSON config file")
@click.option("--env-file", default=None, help=".env file to load first")
@click.option("--bid-period", type=int, default=None, help="Bidding phase length in blocks")
@click.option("--reveal-period", type=int, default=None, help="Reveal phase length in blocks")
@click.option("--launch-tick", type=int, default=None, help="Schedule origin (default: current block)")
@click.option("--start-time", type=int, default=0, help="Initial block height of the ledger")
@click.pass_context
def init(ctx, config_path, env_file, bid_period, reveal_period, launch_tick, start_time):
    """Create a new ledger and registrar in the data directory"""
    from dataclasses import replace

    from namebid.core.config import load_config
    from namebid.core.registrar import Registrar
    from namebid.core.state import InMemoryLedger, LedgerError
    from namebid.core.storage import StorageManager

    storage = StorageManager(ctx.obj["data_dir"], db_name=DB_NAME)
    if storage.load_schedule() is not None:
        click.echo(f"❌ Already initialized: {storage.db_path}")
        ctx.exit(1)

    overrides = {
        key: value for key, value in (
            ("bid_period", bid_period),
            ("reveal_period", reveal_period),
            ("launch_tick", launch_tick),
        ) if value is not None
    }
    try:
        config = load_config(config_path, env_file=env_file)
        if overrides:
            config = replace(config, **overrides)
        ledger = InMemoryLedger(start_time=start_time)
        registrar = Registrar.from_config(ledger, config, storage_manager=storage)
    except (ValueError, LedgerError) as e:
        click.echo(f"❌ Invalid configuration: {e}")
        ctx.exit(1)

    storage.save_ledger(ledger)

    click.echo(f"✓ Registrar initialized at {storage.db_path}")
    click.echo(f"  Launch tick: {registrar.launch_tick}")
    click.echo(f"  Bid period: {registrar.bid_period} blocks")
    click.echo(f"  Reveal period: {registrar.reveal_period} blocks")


@cli.command("fund")
@click.argument("party")
@click.argument("amount", type=int)
@click.pass_context
def fund(ctx, party, amount):
    """Mint AMOUNT into PARTY's balance"""
    from namebid.core.state import LedgerError

    storage, ledger, _ = _open_state(ctx)
    try:
        ledger.fund(party, amount)
    except LedgerError as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)
    storage.save_ledger(ledger)
    click.echo(f"✓ {party}: {ledger.get_balance(party)}")


@cli.command("advance")
@click.argument("blocks", type=int, default=1)
@click.option("--to", "to_tick", type=int, default=None, help="Jump to an absolute block height")
@click.pass_context
def advance(ctx, blocks, to_tick):
    """Move the ledger clock forward"""
    from namebid.core.state import LedgerError

    storage, ledger, _ = _open_state(ctx)
    try:
        if to_tick is not None:
            ledger.set_time(to_tick)
        else:
            ledger.advance(blocks)
    except LedgerError as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)
    storage.save_ledger(ledger)
    click.echo(f"✓ Block height: {ledger.current_time()}")


# =============================================================================
# Helper Commands
# =============================================================================


@cli.command("commitment")
@click.argument("amount", type=int)
@click.option("--salt", default=None, help="Salt (random if omitted)")
def commitment(amount, salt):
    """Compute the sealed-bid commitment for AMOUNT"""
    from namebid.crypto import compute_commitment, generate_salt, bytes_to_hex

    if amount < 0:
        raise click.BadParameter("amount must be non-negative", param_hint="AMOUNT")
    if salt is None:
        salt = generate_salt()

    click.echo(f"Amount: {amount}")
    click.echo(f"Salt: {salt}")
    click.echo(f"Commitment: {bytes_to_hex(compute_commitment(amount, salt))}")


@cli.command("slot")
@click.argument("identifier")
@click.pass_context
def slot(ctx, identifier):
    """Show when IDENTIFIER opens for bidding"""
    _, ledger, registrar = _open_state(ctx)

    slot_index = registrar.eligibility_slot(identifier)
    period = registrar.current_period()
    opens_at = registrar.launch_tick + slot_index * registrar.bid_period

    click.echo(f"Identifier: {identifier}")
    click.echo(f"  Slot: {slot_index} (of {registrar.eligibility_modulus})")
    click.echo(f"  Current period: {period}")
    click.echo(f"  Opens at block: {opens_at}")
    click.echo(f"  Eligible now: {'yes' if registrar.is_eligible(identifier) else 'no'}")


@cli.command("keygen")
def keygen():
    """Generate a secp256k1 key pair for a claimed name"""
    from namebid.crypto import generate_keypair, bytes_to_hex

    kp = generate_keypair()
    click.echo(f"Private key: {bytes_to_hex(kp.private_key)}")
    click.echo(f"Public key: {bytes_to_hex(kp.public_key)}")
    click.echo(f"Fingerprint: {kp.fingerprint}")


# =============================================================================
# Auction Commands
# =============================================================================


@cli.command("bid")
@click.argument("identifier")
@click.option("--party", required=True, help="Bidding party")
@click.option("--commitment", "commitment_hex", required=True, help="Commitment (0x...)")
@click.pass_context
def bid(ctx, identifier, party, commitment_hex):
    """Submit a sealed bid on IDENTIFIER"""
    commitment_bytes = _parse_hex(ctx, commitment_hex, "Commitment")
    _run_call(ctx, party, 0, "Bid", lambda r: r.bid(identifier, commitment_bytes))


@cli.command("reveal")
@click.argument("identifier")
@click.option("--party", required=True, help="Revealing party")
@click.option("--amount", required=True, type=int, help="Committed amount (attached as deposit)")
@click.option("--salt", required=True, help="Salt used for the commitment")
@click.pass_context
def reveal(ctx, identifier, party, amount, salt):
    """Reveal a bid on IDENTIFIER and lock its deposit"""
    if amount < 0:
        raise click.BadParameter("amount must be non-negative", param_hint="--amount")
    _run_call(ctx, party, amount, "Reveal", lambda r: r.reveal(identifier, amount, salt))


@cli.command("withdraw")
@click.argument("identifier")
@click.option("--party", required=True, help="Withdrawing party")
@click.pass_context
def withdraw(ctx, identifier, party):
    """Recover PARTY's locked amount from a settled auction"""
    _run_call(ctx, party, 0, "Withdraw", lambda r: r.withdraw(identifier))


@cli.command("claim")
@click.argument("identifier")
@click.option("--party", required=True, help="Claiming party (the winner)")
@click.option("--public-key", required=True, help="64-byte public key (0x...)")
@click.pass_context
def claim(ctx, identifier, party, public_key):
    """Claim IDENTIFIER as the auction winner"""
    key_bytes = _parse_hex(ctx, public_key, "Public key")
    _run_call(ctx, party, 0, "Claim", lambda r: r.claim(identifier, key_bytes))


# =============================================================================
# Inspection Commands
# =============================================================================


@cli.command("status")
@click.argument("identifier", required=False)
@click.pass_context
def status(ctx, identifier: Optional[str]):
    """Show registrar status, or one identifier's auction"""
    from namebid.crypto import bytes_to_hex

    _, ledger, registrar = _open_state(ctx)

    if identifier is None:
        click.echo("Registrar Status")
        click.echo("-" * 40)
        click.echo(f"  Block height: {ledger.current_time()}")
        for key, value in registrar.stats().items():
            click.echo(f"  {key}: {value}")
        return

    click.echo(f"Identifier: {identifier}")
    click.echo(f"  Phase: {registrar.phase_of(identifier).name}")

    record = registrar.get_claim(identifier)
    if record is not None:
        click.echo(f"  Winner: {record.winner}")
        click.echo(f"  Price: {record.price}")
        click.echo(f"  Public key: {bytes_to_hex(record.public_key)[:18]}...")
        click.echo(f"  Claimed at: {record.claimed_at}")
        return

    auction = registrar.get_auction(identifier)
    if auction is None:
        click.echo(f"  Opens at block: "
                   f"{registrar.launch_tick + registrar.eligibility_slot(identifier) * registrar.bid_period}")
        return

    click.echo(f"  Started at: {auction.start_tick}")
    click.echo(f"  Reveal from: {auction.start_tick + registrar.bid_period}")
    click.echo(f"  Settleable by: {auction.start_tick + registrar.bid_period + registrar.reveal_period}")
    click.echo(f"  Bids: {len(auction.bids)}, revealed: {len(auction.reveals)}")
    for party in sorted(auction.bids):
        revealed = "revealed" if auction.has_revealed(party) else "sealed"
        click.echo(f"    {party}: {auction.bids[party].amount} ({revealed})")


@cli.command("balances")
@click.pass_context
def balances(ctx):
    """Show ledger balances, custody and burned total"""
    _, ledger, _ = _open_state(ctx)

    click.echo("Ledger Balances")
    click.echo("-" * 40)
    for party in sorted(ledger.balances):
        click.echo(f"  {party}: {ledger.balances[party]}")
    click.echo(f"  (custody): {ledger.custody}")
    click.echo(f"  (burned): {ledger.burned}")
    click.echo(f"  Conserved: {'yes' if ledger.is_conserved() else 'NO'}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--identifier", default="example", help="Name to auction")
@click.option("--period", default=100, type=int, help="Bid and reveal period in blocks")
def demo(identifier, period):
    """Run a two-bidder second-price auction in memory"""
    from namebid.crypto import compute_commitment, generate_keypair, generate_salt
    from namebid.core.registrar import Registrar
    from namebid.core.state import InMemoryLedger

    click.echo("=" * 60)
    click.echo("  NAMEBID - SECOND-PRICE AUCTION DEMO")
    click.echo("=" * 60)
    click.echo()

    ledger = InMemoryLedger()
    registrar = Registrar(ledger, bid_period=period, reveal_period=period)
    bind_clock(ledger.current_time)
    ledger.fund("alice", 2000)
    ledger.fund("bob", 2000)

    slot_index = registrar.eligibility_slot(identifier)
    ledger.set_time(registrar.launch_tick + slot_index * period)
    click.echo(f"📅 {identifier!r} opens in period {slot_index} (block {ledger.current_time()})")
    click.echo()

    bids = {"alice": 1000, "bob": 1005}
    salts = {party: generate_salt() for party in bids}

    click.echo("🔒 Sealed bids...")
    for party, amount in bids.items():
        with ledger.call(party):
            ok = registrar.bid(identifier, compute_commitment(amount, salts[party]))
        click.echo(f"  {'✓' if ok else '❌'} {party} bids (hidden)")
    click.echo()

    ledger.advance(period)
    click.echo("🔓 Reveals...")
    for party, amount in bids.items():
        with ledger.call(party, attached=amount):
            ok = registrar.reveal(identifier, amount, salts[party])
        click.echo(f"  {'✓' if ok else '❌'} {party} reveals {amount}")
    click.echo(f"  Phase: {registrar.phase_of(identifier).name}")
    click.echo()

    click.echo("⚖️  Settlement...")
    with ledger.call("alice"):
        ok = registrar.claim(identifier, generate_keypair().public_key)
    click.echo(f"  {'✓' if ok else '❌'} alice claims (not the winner)")

    with ledger.call("bob"):
        ok = registrar.claim(identifier, generate_keypair().public_key)
    record = registrar.get_claim(identifier)
    click.echo(f"  {'✓' if ok else '❌'} bob claims, pays {record.price if record else 0}")
    click.echo()

    click.echo("📊 Final balances:")
    click.echo(f"  alice: {ledger.get_balance('alice')}")
    click.echo(f"  bob: {ledger.get_balance('bob')}")
    click.echo(f"  burned: {ledger.burned}")
    click.echo(f"  conserved: {'yes' if ledger.is_conserved() else 'NO'}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
