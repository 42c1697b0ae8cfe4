"""SQLite-backed persistent trade store.

Tables::

    trades(seq INTEGER PRIMARY KEY AUTOINCREMENT, trade_id TEXT UNIQUE,
           owner TEXT, symbol TEXT, side TEXT, quantity INTEGER,
           price TEXT, executed_at TEXT)
    ledgers(owner TEXT PRIMARY KEY, version INTEGER,
            cached_cash TEXT, cached_version INTEGER)
    watchlists(owner TEXT, symbol TEXT, seq INTEGER, PRIMARY KEY(owner, symbol))

``seq`` is the store-assigned insertion sequence that breaks ``executed_at``
ties during replay.  Prices are stored as Decimal strings so nothing passes
through float.  Every insert/delete bumps ``ledgers.version`` in the same
transaction; the cached cash figure is trusted only while its
``cached_version`` equals ``version``.

All ``sqlite3.Error`` failures surface as :class:`StoreUnavailable`.  The
connection is opened lazily on first use.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional, Protocol, Union

from .ledger.errors import DataIntegrityViolation, StoreUnavailable
from .ledger.records import TradeDraft, TradeRecord

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class TradeStore(Protocol):
    """Protocol for durable, owner-scoped trade storage."""

    def list_trades(self, owner: str) -> list[TradeRecord]:
        """All trades for *owner* in ``(executed_at, seq)`` order."""
        ...

    def insert_trade(self, draft: TradeDraft) -> TradeRecord:
        """Persist *draft* atomically and return the stored record."""
        ...

    def delete_trade(self, owner: str, trade_id: str) -> bool:
        """Delete one of *owner*'s trades; False when no such trade exists."""
        ...

    def ledger_version(self, owner: str) -> int:
        ...

    def load_cached_cash(self, owner: str) -> Optional[tuple[Decimal, int]]:
        ...

    def save_cached_cash(self, owner: str, cash: Decimal, version: int) -> None:
        ...


class SqliteTradeStore:
    """Trade store on a single SQLite database file (or ``:memory:``).

    Thread-safety: a single connection guarded by a lock; safe to share
    between request threads.
    """

    def __init__(self, db_path: Union[str, Path] = MEMORY_DB) -> None:
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                if self.db_path != MEMORY_DB:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                if self.db_path != MEMORY_DB:
                    conn.execute("PRAGMA journal_mode=WAL")
                _init_schema(conn)
            except (sqlite3.Error, OSError) as exc:
                raise StoreUnavailable(f"cannot open trade store {self.db_path}: {exc}") from exc
            self._conn = conn
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    yield conn
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"trade store error: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def list_trades(self, owner: str) -> list[TradeRecord]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM trades WHERE owner = ? ORDER BY executed_at, seq",
                (owner,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get_trade(self, owner: str, trade_id: str) -> Optional[TradeRecord]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM trades WHERE owner = ? AND trade_id = ?",
                (owner, trade_id),
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def insert_trade(self, draft: TradeDraft) -> TradeRecord:
        trade_id = uuid.uuid4().hex
        executed_at = _as_utc(draft.executed_at)
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO trades (trade_id, owner, symbol, side, quantity, price, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trade_id,
                    draft.owner,
                    draft.symbol,
                    draft.side,
                    draft.quantity,
                    str(draft.price),
                    executed_at.isoformat(),
                ),
            )
            seq = int(cur.lastrowid)
            _bump_version(conn, draft.owner)
        logger.debug("Inserted trade %s (seq=%d) for %s", trade_id, seq, draft.owner)
        return TradeRecord(
            trade_id=trade_id,
            owner=draft.owner,
            symbol=draft.symbol,
            side=draft.side,
            quantity=draft.quantity,
            price=draft.price,
            executed_at=executed_at,
            seq=seq,
        )

    def delete_trade(self, owner: str, trade_id: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM trades WHERE owner = ? AND trade_id = ?",
                (owner, trade_id),
            )
            if cur.rowcount == 0:
                return False
            _bump_version(conn, owner)
        logger.debug("Deleted trade %s for %s", trade_id, owner)
        return True

    # ------------------------------------------------------------------
    # Ledger version + cached cash
    # ------------------------------------------------------------------

    def ledger_version(self, owner: str) -> int:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT version FROM ledgers WHERE owner = ?", (owner,)
            ).fetchone()
        return int(row["version"]) if row is not None else 0

    def load_cached_cash(self, owner: str) -> Optional[tuple[Decimal, int]]:
        """Return ``(cash, cached_version)`` or None when nothing is cached."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT cached_cash, cached_version FROM ledgers WHERE owner = ?",
                (owner,),
            ).fetchone()
        if row is None or row["cached_cash"] is None:
            return None
        return Decimal(row["cached_cash"]), int(row["cached_version"])

    def save_cached_cash(self, owner: str, cash: Decimal, version: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO ledgers (owner, version, cached_cash, cached_version)
                VALUES (?, 0, ?, ?)
                ON CONFLICT(owner) DO UPDATE SET
                    cached_cash = excluded.cached_cash,
                    cached_version = excluded.cached_version
                """,
                (owner, str(cash), version),
            )

    # ------------------------------------------------------------------
    # Watchlists
    # ------------------------------------------------------------------

    def list_watchlist(self, owner: str) -> list[str]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT symbol FROM watchlists WHERE owner = ? ORDER BY seq",
                (owner,),
            ).fetchall()
        return [row["symbol"] for row in rows]

    def add_watchlist_symbol(self, owner: str, symbol: str) -> bool:
        """Insert *symbol*; False when it was already present."""
        with self._transaction() as conn:
            next_seq = conn.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM watchlists WHERE owner = ?",
                (owner,),
            ).fetchone()[0]
            cur = conn.execute(
                "INSERT OR IGNORE INTO watchlists (owner, symbol, seq) VALUES (?, ?, ?)",
                (owner, symbol, next_seq),
            )
        return cur.rowcount > 0

    def remove_watchlist_symbol(self, owner: str, symbol: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM watchlists WHERE owner = ? AND symbol = ?",
                (owner, symbol),
            )
        return cur.rowcount > 0


def _init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS trades (
            seq          INTEGER PRIMARY KEY AUTOINCREMENT,
            trade_id     TEXT NOT NULL UNIQUE,
            owner        TEXT NOT NULL,
            symbol       TEXT NOT NULL,
            side         TEXT NOT NULL,
            quantity     INTEGER NOT NULL,
            price        TEXT NOT NULL,
            executed_at  TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_trades_owner ON trades(owner, executed_at, seq);

        CREATE TABLE IF NOT EXISTS ledgers (
            owner          TEXT PRIMARY KEY,
            version        INTEGER NOT NULL DEFAULT 0,
            cached_cash    TEXT,
            cached_version INTEGER
        );

        CREATE TABLE IF NOT EXISTS watchlists (
            owner   TEXT NOT NULL,
            symbol  TEXT NOT NULL,
            seq     INTEGER NOT NULL,
            PRIMARY KEY (owner, symbol)
        );
    """)


def _bump_version(conn: sqlite3.Connection, owner: str) -> None:
    conn.execute(
        """
        INSERT INTO ledgers (owner, version) VALUES (?, 1)
        ON CONFLICT(owner) DO UPDATE SET version = version + 1
        """,
        (owner,),
    )


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _row_to_record(row: sqlite3.Row) -> TradeRecord:
    trade_id = row["trade_id"]
    try:
        price = Decimal(row["price"])
    except (InvalidOperation, TypeError) as exc:
        raise DataIntegrityViolation(trade_id, f"unparseable price {row['price']!r}") from exc
    try:
        executed_at = _as_utc(datetime.fromisoformat(row["executed_at"]))
    except (ValueError, TypeError) as exc:
        raise DataIntegrityViolation(
            trade_id, f"unparseable executed_at {row['executed_at']!r}"
        ) from exc
    return TradeRecord(
        trade_id=trade_id,
        owner=row["owner"],
        symbol=row["symbol"],
        side=row["side"],
        quantity=row["quantity"],
        price=price,
        executed_at=executed_at,
        seq=int(row["seq"]),
    )
