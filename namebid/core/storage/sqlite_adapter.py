import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from namebid.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Registrar state: schedule metadata, auctions, bids, reveals, claims.
    2. Ledger state: balances, created entities, transfer log.

    Amounts are stored as decimal TEXT because balances are 128-bit and
    SQLite integers are 64-bit.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Metadata (schedule, ledger counters)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            # 2. Auctions and their bids/reveals
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    identifier TEXT PRIMARY KEY,
                    start_tick INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    identifier TEXT NOT NULL,
                    party TEXT NOT NULL,
                    commitment BLOB NOT NULL,
                    amount TEXT NOT NULL,
                    PRIMARY KEY (identifier, party)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reveals (
                    identifier TEXT NOT NULL,
                    party TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    PRIMARY KEY (identifier, party)
                )
            """)

            # 3. Settled names
            conn.execute("""
                CREATE TABLE IF NOT EXISTS claims (
                    identifier TEXT PRIMARY KEY,
                    winner TEXT NOT NULL,
                    price TEXT NOT NULL,
                    public_key BLOB NOT NULL,
                    claimed_at INTEGER NOT NULL
                )
            """)

            # 4. Ledger
            conn.execute("""
                CREATE TABLE IF NOT EXISTS balances (
                    party TEXT PRIMARY KEY,
                    amount TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    name TEXT PRIMARY KEY,
                    public_key BLOB NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transfers (
                    seq INTEGER PRIMARY KEY,
                    tick INTEGER NOT NULL,
                    party TEXT NOT NULL,
                    amount TEXT NOT NULL
                )
            """)
        logger.debug(f"Schema ready at {self.db_path}")

    # =========================================================================
    # Metadata
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    # =========================================================================
    # Registrar State
    # =========================================================================

    def save_auction(
        self,
        identifier: str,
        start_tick: int,
        bids: Iterable[Tuple[str, bytes, int]],
        reveals: Iterable[Tuple[str, int]],
    ):
        """
        Atomically replace one auction's rows.

        An identifier is stored either as an auction or as a claim, so any
        claim row for it is dropped in the same transaction.

        Args:
            identifier: Auctioned name
            start_tick: Tick of the first bid
            bids: (party, commitment, amount)
            reveals: (party, amount)
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO auctions (identifier, start_tick) VALUES (?, ?)",
                (identifier, start_tick)
            )
            conn.execute("DELETE FROM bids WHERE identifier = ?", (identifier,))
            conn.execute("DELETE FROM reveals WHERE identifier = ?", (identifier,))
            conn.execute("DELETE FROM claims WHERE identifier = ?", (identifier,))
            conn.executemany(
                "INSERT INTO bids (identifier, party, commitment, amount) VALUES (?, ?, ?, ?)",
                [(identifier, party, commitment, str(amount)) for party, commitment, amount in bids]
            )
            conn.executemany(
                "INSERT INTO reveals (identifier, party, amount) VALUES (?, ?, ?)",
                [(identifier, party, str(amount)) for party, amount in reveals]
            )

    def delete_auction(self, identifier: str):
        conn = self._get_conn()
        with conn:
            self._delete_auction_rows(conn, identifier)

    def _delete_auction_rows(self, conn: sqlite3.Connection, identifier: str):
        conn.execute("DELETE FROM auctions WHERE identifier = ?", (identifier,))
        conn.execute("DELETE FROM bids WHERE identifier = ?", (identifier,))
        conn.execute("DELETE FROM reveals WHERE identifier = ?", (identifier,))

    def save_claim(
        self,
        identifier: str,
        winner: str,
        price: int,
        public_key: bytes,
        claimed_at: int,
    ):
        """Record a claim and drop the auction it settled, in one transaction."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO claims (identifier, winner, price, public_key, claimed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (identifier, winner, str(price), public_key, claimed_at)
            )
            self._delete_auction_rows(conn, identifier)

    def get_auctions(self) -> List[Tuple[str, int]]:
        """Get all (identifier, start_tick)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT identifier, start_tick FROM auctions")
        return [(row['identifier'], row['start_tick']) for row in cursor]

    def get_bids(self) -> List[Tuple[str, str, bytes, int]]:
        """Get all (identifier, party, commitment, amount)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT identifier, party, commitment, amount FROM bids")
        return [
            (row['identifier'], row['party'], bytes(row['commitment']), int(row['amount']))
            for row in cursor
        ]

    def get_reveals(self) -> List[Tuple[str, str, int]]:
        """Get all (identifier, party, amount)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT identifier, party, amount FROM reveals")
        return [(row['identifier'], row['party'], int(row['amount'])) for row in cursor]

    def get_claims(self) -> List[Tuple[str, str, int, bytes, int]]:
        """Get all (identifier, winner, price, public_key, claimed_at)."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT identifier, winner, price, public_key, claimed_at FROM claims"
        )
        return [
            (row['identifier'], row['winner'], int(row['price']),
             bytes(row['public_key']), row['claimed_at'])
            for row in cursor
        ]

    # =========================================================================
    # Ledger State
    # =========================================================================

    def save_ledger_state(
        self,
        meta: List[Tuple[str, str]],
        balances: List[Tuple[str, int]],
        entities: List[Tuple[str, bytes, int]],
        transfers: List[Tuple[int, str, int]],
    ):
        """
        Atomically replace the ledger tables.

        Args:
            meta: (key, value) counters
            balances: (party, amount)
            entities: (name, public_key, created_at)
            transfers: (tick, party, amount) in order
        """
        conn = self._get_conn()
        with conn:
            conn.executemany("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", meta)
            conn.execute("DELETE FROM balances")
            conn.executemany(
                "INSERT INTO balances (party, amount) VALUES (?, ?)",
                [(party, str(amount)) for party, amount in balances]
            )
            conn.execute("DELETE FROM entities")
            conn.executemany(
                "INSERT INTO entities (name, public_key, created_at) VALUES (?, ?, ?)",
                entities
            )
            conn.execute("DELETE FROM transfers")
            conn.executemany(
                "INSERT INTO transfers (seq, tick, party, amount) VALUES (?, ?, ?, ?)",
                [(i, tick, party, str(amount)) for i, (tick, party, amount) in enumerate(transfers)]
            )

    def get_balances(self) -> List[Tuple[str, int]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT party, amount FROM balances")
        return [(row['party'], int(row['amount'])) for row in cursor]

    def get_entities(self) -> List[Tuple[str, bytes, int]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT name, public_key, created_at FROM entities")
        return [(row['name'], bytes(row['public_key']), row['created_at']) for row in cursor]

    def get_transfers(self) -> List[Tuple[int, str, int]]:
        """Get the transfer log in insertion order."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT tick, party, amount FROM transfers ORDER BY seq ASC")
        return [(row['tick'], row['party'], int(row['amount'])) for row in cursor]

    def close(self):
        """Close this thread's connection."""
        conn: Any = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn
