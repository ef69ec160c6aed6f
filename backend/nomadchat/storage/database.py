"""DuckDB connection and schema shared by every storage service.

The service implements the singleton pattern to ensure only one database
connection exists at a time.

Database Schema:
    users               - identity records (username, email, picture)
    chat_rooms          - shared room and private pair rooms (soft delete)
    chat_room_users     - room participants
    chat_messages       - messages, content encrypted at rest (soft delete)
    chat_notifications  - per (username, room) unread counters (soft delete)
    push_subscriptions  - browser push endpoint + keys, one per username

Thread Safety:
    The DuckDB connection is NOT thread-safe. Every statement runs under a
    lock, and :meth:`Database.run` moves blocking work into the default
    executor so a slow query never stalls the event loop.

Usage:
    db = Database.get_instance()
    rows = await db.run(db.execute, "SELECT * FROM users")
"""
import asyncio
import functools
import logging
import threading
from typing import Any, Callable, List, Optional, Sequence, TypeVar

import duckdb

from nomadchat.exceptions import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id              VARCHAR PRIMARY KEY,
        username        VARCHAR NOT NULL,
        email           VARCHAR,
        profile_picture VARCHAR,
        status          VARCHAR
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_username ON users(username)",
    """
    CREATE TABLE IF NOT EXISTS chat_rooms (
        id         VARCHAR PRIMARY KEY,
        room_name  VARCHAR NOT NULL,
        is_deleted BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_rooms_name ON chat_rooms(room_name)",
    """
    CREATE TABLE IF NOT EXISTS chat_room_users (
        room_id  VARCHAR NOT NULL,
        username VARCHAR NOT NULL,
        PRIMARY KEY (room_id, username)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id           VARCHAR PRIMARY KEY,
        chat_room_id VARCHAR,
        sender       VARCHAR NOT NULL,
        recipient    VARCHAR,
        content      VARCHAR NOT NULL,
        picture      VARCHAR,
        created      TIMESTAMP NOT NULL,
        unread       BOOLEAN NOT NULL,
        is_deleted   BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_room ON chat_messages(chat_room_id)",
    """
    CREATE TABLE IF NOT EXISTS chat_notifications (
        id              VARCHAR PRIMARY KEY,
        username        VARCHAR NOT NULL,
        chat_room_id    VARCHAR NOT NULL,
        unread_messages INTEGER NOT NULL,
        is_deleted      BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_notifications_user ON chat_notifications(username)",
    # one counter row per (username, room), soft-deleted rows included
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_chat_notifications_user_room
    ON chat_notifications(username, chat_room_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS push_subscriptions (
        id       VARCHAR PRIMARY KEY,
        username VARCHAR NOT NULL,
        endpoint VARCHAR NOT NULL,
        p256dh   VARCHAR NOT NULL,
        auth     VARCHAR NOT NULL
    )
    """,
)


class Database:
    """Singleton owner of the DuckDB connection.

    Attributes:
        _instance: Singleton instance.
        _db_path: Path to the DuckDB database file (``":memory:"`` allowed).
    """

    _instance: Optional["Database"] = None
    _db_path: str = "nomadchat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._initialize_db()
        logger.info("[Database] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "Database":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and forget the instance (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @property
    def path(self) -> str:
        return self._db_path

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create tables and indexes. Safe to call multiple times."""
        for statement in _SCHEMA:
            self.execute(statement)

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        """Run one statement and return all result rows.

        Raises:
            PersistenceError: If DuckDB rejects the statement.
        """
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except duckdb.Error as exc:
                logger.error("[Database] Statement failed: %s", exc)
                raise PersistenceError(
                    "Database operation failed", {"error": str(exc)}
                ) from exc

    def fetchone(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[tuple]:
        rows = self.execute(sql, params)
        return rows[0] if rows else None

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking storage function in the default executor."""
        return await asyncio.get_event_loop().run_in_executor(
            None, functools.partial(fn, *args, **kwargs)
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
