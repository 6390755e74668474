"""
Stocktwits Storage.

SQLite-backed storage for everything the pipeline keeps between runs:
- Watchlists: named lists of stocks whose symbols drive each run
- Messages: insert-only stream of accepted messages, keyed by (symbol, body)
- Profiles: latest temperature snapshot per symbol, replaced every run
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .feed import Cursor, Message, SymbolInfo
from .ingest import ActivitySnapshot
from .temperature import Temperature

logger = logging.getLogger("stocktemp.store")


@dataclass
class Stock:
    """A stock on a watchlist."""
    symbol: str
    company_name: str = ""


@dataclass
class Watchlist:
    """A named list of stocks to poll."""
    name: str
    description: str = ""
    user: str = ""
    stocks: list[Stock] = field(default_factory=list)

    @property
    def symbols(self) -> list[str]:
        return [stock.symbol for stock in self.stocks]


def unique_symbols(watchlists: Iterable[Watchlist]) -> list[str]:
    """Upper-cased symbols across all watchlists, first occurrence order."""
    seen: dict[str, None] = {}
    for watchlist in watchlists:
        for symbol in watchlist.symbols:
            normalized = symbol.strip().upper()
            if normalized:
                seen.setdefault(normalized, None)
    return list(seen)


class StocktwitsStore:
    """
    SQLite storage for watchlists, messages and temperature profiles.

    Each call opens its own connection, so one instance can be shared across
    asyncio tasks running in the same thread.
    """

    def __init__(self, db_path: str = "stocktwits.db"):
        self.db_path = db_path
        self._init_db()
        logger.info(f"StocktwitsStore initialized with database: {db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS watchlists (
                    name TEXT PRIMARY KEY,
                    description TEXT NOT NULL DEFAULT '',
                    user TEXT NOT NULL DEFAULT ''
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS watchlist_stocks (
                    watchlist TEXT NOT NULL REFERENCES watchlists(name) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    symbol TEXT NOT NULL,
                    company_name TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (watchlist, position)
                )
            """)

            # Body is the dedup key; the unique constraint makes inserts of a
            # body already stored for the symbol a no-op
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    body TEXT NOT NULL,
                    message_id INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    user TEXT NOT NULL,
                    source TEXT NOT NULL,
                    symbols TEXT NOT NULL,
                    stored_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(symbol, body)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_symbol
                ON messages(symbol)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    symbol TEXT PRIMARY KEY,
                    response_status INTEGER NOT NULL,
                    symbol_info TEXT,
                    cursor TEXT NOT NULL,
                    temperature TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            conn.commit()

    # ------------------------------------------------------------------
    # Watchlists
    # ------------------------------------------------------------------

    def save_watchlist(self, watchlist: Watchlist) -> None:
        """Insert or replace a watchlist and its stocks."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO watchlists (name, description, user)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    description = excluded.description,
                    user = excluded.user
                """,
                (watchlist.name, watchlist.description, watchlist.user),
            )
            conn.execute("DELETE FROM watchlist_stocks WHERE watchlist = ?", (watchlist.name,))
            conn.executemany(
                """
                INSERT INTO watchlist_stocks (watchlist, position, symbol, company_name)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (watchlist.name, position, stock.symbol, stock.company_name)
                    for position, stock in enumerate(watchlist.stocks)
                ],
            )
            conn.commit()
        logger.debug(f"Saved watchlist '{watchlist.name}' with {len(watchlist.stocks)} stocks")

    def sync_watchlists(self, watchlists: Iterable[Watchlist]) -> int:
        """Save every configured watchlist. Returns the number saved."""
        count = 0
        for watchlist in watchlists:
            self.save_watchlist(watchlist)
            count += 1
        if count:
            logger.info(f"Synced {count} watchlists from configuration")
        return count

    def get_watchlists(self) -> list[Watchlist]:
        """Return all stored watchlists, ordered by name."""
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            list_rows = conn.execute(
                "SELECT name, description, user FROM watchlists ORDER BY name"
            ).fetchall()
            stock_rows = conn.execute(
                """
                SELECT watchlist, symbol, company_name
                FROM watchlist_stocks
                ORDER BY watchlist, position
                """
            ).fetchall()

        stocks_by_list: dict[str, list[Stock]] = {}
        for row in stock_rows:
            stocks_by_list.setdefault(row['watchlist'], []).append(
                Stock(symbol=row['symbol'], company_name=row['company_name'])
            )

        return [
            Watchlist(
                name=row['name'],
                description=row['description'],
                user=row['user'],
                stocks=stocks_by_list.get(row['name'], []),
            )
            for row in list_rows
        ]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def known_bodies(self, symbol: str) -> frozenset[str]:
        """Return every stored message body for a symbol."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM messages WHERE symbol = ?",
                (symbol.upper(),),
            ).fetchall()
        return frozenset(row[0] for row in rows)

    def insert_messages(self, symbol: str, messages: Iterable[Message]) -> int:
        """
        Store accepted messages for a symbol.

        Inserts only; a body already stored for the symbol (including one
        earlier in the same call) is ignored.

        Returns:
            Number of rows actually inserted.
        """
        symbol = symbol.upper()
        inserted = 0

        with self._connect() as conn:
            for message in messages:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO messages
                    (symbol, body, message_id, created_at, user, source, symbols)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        symbol,
                        message.body,
                        message.id,
                        message.created_at.isoformat(),
                        json.dumps(message.user.to_dict()),
                        json.dumps(message.source.to_dict()),
                        json.dumps([s.to_dict() for s in message.symbols]),
                    )
                )
                inserted += cursor.rowcount
            conn.commit()

        logger.debug(f"Inserted {inserted} messages for {symbol}")
        return inserted

    def count_messages(self, symbol: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE symbol = ?",
                (symbol.upper(),),
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def upsert_profile(self, snapshot: ActivitySnapshot) -> None:
        """Replace the stored profile for the snapshot's symbol."""
        updated_at = snapshot.computed_at or datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO profiles
                (symbol, response_status, symbol_info, cursor, temperature, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.symbol.upper(),
                    snapshot.response_status,
                    json.dumps(snapshot.symbol_info.to_dict()) if snapshot.symbol_info else None,
                    json.dumps(snapshot.cursor.to_dict()),
                    json.dumps(snapshot.temperature.to_dict()),
                    updated_at.isoformat(),
                )
            )
            conn.commit()
        logger.debug(f"Upserted profile for {snapshot.symbol}")

    def get_profile(self, symbol: str) -> Optional[ActivitySnapshot]:
        """Return the stored profile for a symbol, or None."""
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM profiles WHERE symbol = ?",
                (symbol.upper(),),
            ).fetchone()

        if row is None:
            return None

        return ActivitySnapshot(
            symbol=row['symbol'],
            temperature=Temperature.from_dict(json.loads(row['temperature'])),
            cursor=Cursor.from_api(json.loads(row['cursor'])),
            symbol_info=SymbolInfo.from_api(json.loads(row['symbol_info'])) if row['symbol_info'] else None,
            response_status=row['response_status'],
            computed_at=datetime.fromisoformat(row['updated_at']),
        )
