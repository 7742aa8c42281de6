"""SQLite storage adapter.

Implements the subscription store, the notification ledger and the key/value
blob store on a single SQLite database. Every mutating statement is an
idempotent upsert, insert-or-ignore or delete, so replaying work after a crash
is always safe.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
import sqlite3
from typing import Iterator, List, Optional, Tuple

from core.models import SearchQuery, Subscription, SubscriptionKey

LOGGER = logging.getLogger(__name__)

_SUBSCRIPTION_COLUMNS = """
    subscriptions.query_hash AS query_hash,
    subscriptions.chat_id AS chat_id,
    search_queries.text AS text
"""


def _entry_from_row(row: sqlite3.Row) -> Tuple[Subscription, SearchQuery]:
    subscription = Subscription(query_hash=int(row["query_hash"]), chat_id=int(row["chat_id"]))
    return subscription, SearchQuery(text=row["text"], hash=int(row["query_hash"]))


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the storage and ledger ports."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - search_queries: normalized query text by hash
        - subscriptions: (chat_id, query_hash) pairs, also the scheduler order
        - items: last time an item was returned by any search
        - notifications: proof that a chat received an item notification
        - key_values: opaque blobs, e.g. the Vinted token pair
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS search_queries (
                    hash INTEGER PRIMARY KEY,
                    text TEXT NOT NULL
                )
                """
            )
            # The primary key order matches the scheduler traversal order.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS subscriptions (
                    chat_id INTEGER NOT NULL,
                    query_hash INTEGER NOT NULL,
                    PRIMARY KEY (chat_id, query_hash)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    id TEXT PRIMARY KEY,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            # Append-only: rows are never updated or deleted.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    item_id TEXT NOT NULL,
                    chat_id INTEGER NOT NULL,
                    PRIMARY KEY (item_id, chat_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS key_values (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
                """
            )
        LOGGER.info("Database is ready at %s", self._db_path)

    # Search queries

    def upsert_search_query(self, query: SearchQuery) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO search_queries (hash, text) VALUES (?, ?)
                ON CONFLICT(hash) DO UPDATE SET text = excluded.text
                """,
                (query.hash, query.text),
            )

    def get_search_query(self, query_hash: int) -> Optional[SearchQuery]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT hash, text FROM search_queries WHERE hash = ?",
                (query_hash,),
            ).fetchone()
        return SearchQuery(text=row["text"], hash=int(row["hash"])) if row else None

    # Subscriptions

    def subscribe(self, subscription: Subscription) -> None:
        """Insert a subscription; subscribing twice is a no-op."""

        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO subscriptions (chat_id, query_hash) VALUES (?, ?)",
                (subscription.chat_id, subscription.query_hash),
            )

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM subscriptions WHERE chat_id = ? AND query_hash = ?",
                (subscription.chat_id, subscription.query_hash),
            )

    def count_subscriptions(self, chat_id: int, query_hash: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM subscriptions WHERE chat_id = ? AND query_hash = ?",
                (chat_id, query_hash),
            ).fetchone()
        return int(row["n"])

    def subscriptions_of(self, chat_id: int) -> List[Tuple[Subscription, SearchQuery]]:
        """Return the chat's subscriptions ordered by query text."""

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions
                JOIN search_queries ON search_queries.hash = subscriptions.query_hash
                WHERE subscriptions.chat_id = ?
                ORDER BY search_queries.text
                """,
                (chat_id,),
            ).fetchall()
        return [_entry_from_row(row) for row in rows]

    def first_subscription(self) -> Optional[Tuple[Subscription, SearchQuery]]:
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions
                JOIN search_queries ON search_queries.hash = subscriptions.query_hash
                ORDER BY subscriptions.chat_id, subscriptions.query_hash
                LIMIT 1
                """
            ).fetchone()
        return _entry_from_row(row) if row else None

    def next_subscription(self, after: SubscriptionKey) -> Optional[Tuple[Subscription, SearchQuery]]:
        """Return the subscription right after `after`, or None past the last one."""

        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions
                JOIN search_queries ON search_queries.hash = subscriptions.query_hash
                WHERE (subscriptions.chat_id, subscriptions.query_hash) > (?, ?)
                ORDER BY subscriptions.chat_id, subscriptions.query_hash
                LIMIT 1
                """,
                (after.chat_id, after.query_hash),
            ).fetchone()
        return _entry_from_row(row) if row else None

    # Notification ledger

    def item_seen(self, item_id: str) -> None:
        """Upsert the item's last-seen timestamp."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO items (id, updated_at) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
                """,
                (item_id, now.isoformat()),
            )

    def already_notified(self, item_id: str, chat_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM notifications WHERE item_id = ? AND chat_id = ?",
                (item_id, chat_id),
            ).fetchone()
        return row is not None

    def record_notified(self, item_id: str, chat_id: int) -> None:
        """Insert the notification proof if it does not exist."""

        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO notifications (item_id, chat_id) VALUES (?, ?)",
                (item_id, chat_id),
            )

    # Key/value blobs

    def get_value(self, key: str) -> Optional[bytes]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM key_values WHERE key = ?", (key,)).fetchone()
        return bytes(row["value"]) if row else None

    def put_value(self, key: str, value: bytes) -> None:
        """Overwrite the blob in a single statement."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO key_values (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
