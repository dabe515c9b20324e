"""SQLite-backed chat store: chats, immutable messages and their wide part rows."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from chatvault.errors import ChatNotFoundError, DuplicateIDError, StorageError
from chatvault.ids import make_id
from chatvault.models.config import StoreConfig
from chatvault.models.message import Chat, Message, UIMessage
from chatvault.store.codec import PART_COLUMNS, PartRow, encode_parts
from chatvault.store.pool import open_connection
from chatvault.store.reconstruct import JoinedRow, reconstruct_messages

if TYPE_CHECKING:
    from chatvault.store.pool import ConnectionPool

_STORABLE_ROLES = frozenset({"user", "assistant"})

_PART_INSERT_SQL = "INSERT INTO parts ({columns}) VALUES ({placeholders})".format(
    columns=", ".join(f'"{c}"' for c in PART_COLUMNS),
    placeholders=", ".join("?" for _ in PART_COLUMNS),
)

_JOINED_SELECT_SQL = """
    SELECT m.id AS message_id, m.role AS role, m.created_at AS created_at,
           m.rowid AS seq, {part_columns}
    FROM messages m
    LEFT JOIN parts p ON p.message_id = m.id
    WHERE m.chat_id = ?
    ORDER BY m.created_at, m.rowid, p."order"
""".format(part_columns=", ".join(f'p."{c}" AS "p_{c}"' for c in PART_COLUMNS))


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatStore:
    """
    Chat persistence on SQLite.

    Messages are never updated once written; a chat only ever gains messages
    and has its ``updated_at`` bumped. Every multi-row write runs in a single
    transaction under the write lock, and reads take the same lock, so a chat
    is never visible with some of its messages or a message with some of its
    parts.

    When a ``ConnectionPool`` is supplied the store borrows the pool's shared
    connection and write lock, and ``close()`` leaves the connection open.

    Usage::

        store = ChatStore(StoreConfig(db_path="/tmp/chats.db"))
        await store.initialize()
        try:
            chat, _ = await store.create_chat(chat_id, "user-1", [first_message])
            history = await store.get_messages(chat.id)
        finally:
            await store.close()
    """

    def __init__(self, config: StoreConfig, pool: ConnectionPool | None = None) -> None:
        self._config = config
        self._db_path = str(Path(config.db_path).expanduser())
        self._pool = pool
        self._conn: aiosqlite.Connection | None = None
        self._lock: asyncio.Lock | None = None
        self._logger = structlog.get_logger("chatvault.store")

    async def initialize(self) -> None:
        """
        Open (or borrow) a connection and apply ``schema.sql``.

        The schema is idempotent, so any number of stores may initialise
        against the same file.

        Raises:
            aiosqlite.Error: If the database cannot be opened or the schema fails.
        """
        if self._pool is not None:
            conn = await self._pool.acquire(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
            lock = self._pool.write_lock(self._db_path)
        else:
            conn = await open_connection(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
            lock = asyncio.Lock()

        schema = (Path(__file__).parent / "schema.sql").read_text()
        async with lock:
            await conn.executescript(schema)
            await conn.commit()

        self._conn = conn
        self._lock = lock
        self._logger.info("store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """Release the connection. Pooled connections are left to the pool."""
        if self._conn is None:
            return
        if self._pool is None:
            await self._conn.close()
        self._conn = None
        self._lock = None

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Store is not initialized. Call initialize() first.")
        return self._conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the write lock for one transaction; commit on success, roll back on error."""
        conn = self._conn_or_raise()
        assert self._lock is not None
        async with self._lock:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the write lock for a read so it never sees another store's open transaction."""
        conn = self._conn_or_raise()
        assert self._lock is not None
        async with self._lock:
            yield conn

    # ── Chat Methods ───────────────────────────────────────────────────────────

    async def chat_exists(self, chat_id: str) -> bool:
        try:
            async with self._read() as conn, conn.execute(
                "SELECT 1 FROM chats WHERE id = ?", (chat_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to look up chat {chat_id!r}: {exc}") from exc
        return row is not None

    async def get_chat(self, chat_id: str) -> Chat:
        """
        Fetch a chat row by ID.

        Raises:
            ChatNotFoundError: If no chat with this ID exists.
        """
        try:
            async with self._read() as conn, conn.execute(
                "SELECT * FROM chats WHERE id = ?", (chat_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read chat {chat_id!r}: {exc}") from exc
        if row is None:
            raise ChatNotFoundError(chat_id)
        return self._row_to_chat(row)

    async def create_chat(
        self,
        chat_id: str,
        user_id: str,
        messages: Sequence[UIMessage],
        *,
        message_ids: Sequence[str] | None = None,
    ) -> tuple[Chat, list[Message]]:
        """
        Insert a chat together with its initial messages and parts.

        Everything is written in one transaction: on any failure nothing is
        left behind.

        Args:
            chat_id: Caller-supplied chat ID.
            user_id: Owner of the chat.
            messages: Initial ``user``/``assistant`` messages, oldest first.
            message_ids: Stored IDs for ``messages``. Generated when omitted.

        Returns:
            The chat row and the stored message rows.

        Raises:
            DuplicateIDError: If the chat (or a message ID) already exists.
            StorageError: On any other database failure.
        """
        ids = self._resolve_message_ids(messages, message_ids)
        now = _now_ms()
        record_id = chat_id
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    "INSERT INTO chats (id, user_id, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (chat_id, user_id, now, now),
                )
                stored: list[Message] = []
                for message_id, message in zip(ids, messages, strict=True):
                    record_id = message_id
                    stored.append(
                        await self._insert_message(conn, chat_id, message_id, message, now)
                    )
        except aiosqlite.IntegrityError as exc:
            raise DuplicateIDError(record_id) from exc
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to create chat {chat_id!r}: {exc}") from exc

        self._logger.info(
            "chat_created", chat_id=chat_id, user_id=user_id, message_count=len(stored)
        )
        chat = Chat(id=chat_id, user_id=user_id, created_at=now, updated_at=now)
        return chat, stored

    async def append_messages(
        self,
        chat_id: str,
        messages: Sequence[UIMessage],
        *,
        message_ids: Sequence[str] | None = None,
    ) -> list[Message]:
        """
        Append messages to an existing chat and bump its ``updated_at``.

        Raises:
            ChatNotFoundError: If the chat does not exist.
            DuplicateIDError: If a message ID is already stored.
            StorageError: On any other database failure.
        """
        ids = self._resolve_message_ids(messages, message_ids)
        now = _now_ms()
        record_id = chat_id
        try:
            async with self._transaction() as conn:
                cursor = await conn.execute(
                    "UPDATE chats SET updated_at = MAX(updated_at, ?) WHERE id = ?",
                    (now, chat_id),
                )
                if cursor.rowcount == 0:
                    raise ChatNotFoundError(chat_id)
                stored: list[Message] = []
                for message_id, message in zip(ids, messages, strict=True):
                    record_id = message_id
                    stored.append(
                        await self._insert_message(conn, chat_id, message_id, message, now)
                    )
        except aiosqlite.IntegrityError as exc:
            raise DuplicateIDError(record_id) from exc
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to append to chat {chat_id!r}: {exc}") from exc

        for message in stored:
            self._logger.debug(
                "message_appended", chat_id=chat_id, message_id=message.id, role=message.role
            )
        return stored

    async def list_chats(
        self,
        user_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Chat]:
        """List a user's chats, most recently updated first."""
        try:
            async with self._read() as conn, conn.execute(
                "SELECT * FROM chats WHERE user_id = ?"
                " ORDER BY updated_at DESC, id DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to list chats for {user_id!r}: {exc}") from exc
        return [self._row_to_chat(r) for r in rows]

    # ── Message Methods ────────────────────────────────────────────────────────

    async def get_joined_rows(self, chat_id: str) -> list[JoinedRow]:
        """
        Return the flat ``messages LEFT JOIN parts`` rows for a chat.

        A message without parts yields one row with ``part=None``.
        """
        try:
            async with self._read() as conn, conn.execute(
                _JOINED_SELECT_SQL, (chat_id,)
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read messages of chat {chat_id!r}: {exc}") from exc
        return [self._row_to_joined(r) for r in rows]

    async def get_messages(self, chat_id: str) -> list[UIMessage]:
        """
        Reconstruct the ordered messages of a chat.

        Raises:
            ChatNotFoundError: If the chat does not exist.
            CodecError: If a stored part row is corrupt.
        """
        if not await self.chat_exists(chat_id):
            raise ChatNotFoundError(chat_id)
        return reconstruct_messages(await self.get_joined_rows(chat_id))

    # ── Helpers ────────────────────────────────────────────────────────────────

    @staticmethod
    def _resolve_message_ids(
        messages: Sequence[UIMessage], message_ids: Sequence[str] | None
    ) -> list[str]:
        for message in messages:
            if message.role not in _STORABLE_ROLES:
                raise StorageError(f"Cannot store message with role {message.role!r}")
        if message_ids is None:
            return [make_id("msg") for _ in messages]
        if len(message_ids) != len(messages):
            raise ValueError(
                f"Got {len(message_ids)} message IDs for {len(messages)} messages"
            )
        return list(message_ids)

    @staticmethod
    async def _insert_message(
        conn: aiosqlite.Connection,
        chat_id: str,
        message_id: str,
        message: UIMessage,
        created_at: int,
    ) -> Message:
        await conn.execute(
            "INSERT INTO messages (id, chat_id, role, created_at) VALUES (?, ?, ?, ?)",
            (message_id, chat_id, message.role, created_at),
        )
        rows = encode_parts(message.parts, message_id, created_at=created_at)
        if rows:
            await conn.executemany(_PART_INSERT_SQL, [row.values() for row in rows])
        return Message(
            id=message_id,
            chat_id=chat_id,
            role=message.role,  # type: ignore[arg-type]
            created_at=created_at,
        )

    @staticmethod
    def _row_to_chat(row: Any) -> Chat:
        return Chat(
            id=row["id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_joined(row: Any) -> JoinedRow:
        part = PartRow.from_mapping(row, prefix="p_") if row["p_id"] is not None else None
        return JoinedRow(
            message_id=row["message_id"],
            role=row["role"],
            created_at=row["created_at"],
            seq=row["seq"],
            part=part,
        )
