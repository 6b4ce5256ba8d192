"""SQLite storage adapter.

Implements the core PersistencePort, HistoryProvider, GroupPolicyPort and
AccountLookupPort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.models import AccountRecord, ChatMessage

DEFAULT_SESSION_ID = "local-chat"


class SQLiteChatStore:
    """Thin SQLite wrapper that satisfies the storage-side port contracts."""

    def __init__(self, db_path: str, default_session_id: str = DEFAULT_SESSION_ID) -> None:
        self._db_path = db_path
        self._default_session_id = default_session_id

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - chat_messages: append-only chat log, queried per account + session
        - ignored_groups: groups whose traffic an account drops
        - accounts: per-account settings used by the relay processors
        """

        with self._connect() as conn:
            # chat_messages mirrors ChatMessage. session_id is never NULL so
            # local chat can be queried with a plain equality.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    sender_name TEXT NOT NULL,
                    message TEXT NOT NULL,
                    chat_type TEXT NOT NULL,
                    channel INTEGER NOT NULL DEFAULT 0,
                    timestamp TIMESTAMP NOT NULL,
                    sender_id TEXT,
                    target_id TEXT,
                    session_id TEXT NOT NULL,
                    session_name TEXT,
                    region_name TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_chat_messages_session
                ON chat_messages (account_id, session_id, timestamp)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ignored_groups (
                    account_id TEXT NOT NULL,
                    group_id TEXT NOT NULL,
                    PRIMARY KEY (account_id, group_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    account_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL DEFAULT '',
                    avatar_relay_uuid TEXT
                )
                """
            )

    def save(self, message: ChatMessage) -> None:
        """Append a message to the chat log."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (
                    id,
                    account_id,
                    sender_name,
                    message,
                    chat_type,
                    channel,
                    timestamp,
                    sender_id,
                    target_id,
                    session_id,
                    session_name,
                    region_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    message.account_id,
                    message.sender_name,
                    message.message or "",
                    message.chat_type,
                    message.channel,
                    _to_utc(message.timestamp).isoformat(),
                    message.sender_id,
                    message.target_id,
                    message.session_id or self._default_session_id,
                    message.session_name,
                    message.region_name,
                ),
            )

    def get_recent_history(self, account_id: str, session_id: str, limit: int) -> list[ChatMessage]:
        """Return the newest ``limit`` messages of a session, oldest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM chat_messages
                WHERE account_id = ? AND session_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
                """,
                (account_id, session_id, limit),
            ).fetchall()
        return [_row_to_message(row) for row in reversed(rows)]

    def list_sessions(self, account_id: str) -> list[str]:
        """Return the session ids that have messages for an account."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT session_id FROM chat_messages WHERE account_id = ? ORDER BY session_id",
                (account_id,),
            ).fetchall()
        return [row["session_id"] for row in rows]

    def cleanup_old_messages(self, ttl_days: int) -> int:
        """Delete messages older than the TTL and return the number removed."""

        cutoff = datetime.now(timezone.utc) - timedelta(days=ttl_days)
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM chat_messages WHERE timestamp < ?",
                (cutoff.isoformat(),),
            )
            return cur.rowcount

    def is_ignored(self, account_id: str, group_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM ignored_groups WHERE account_id = ? AND lower(group_id) = lower(?)",
                (account_id, group_id),
            ).fetchone()
        return row is not None

    def set_group_ignored(self, account_id: str, group_id: str, ignored: bool = True) -> None:
        with self._connect() as conn:
            if ignored:
                conn.execute(
                    "INSERT OR IGNORE INTO ignored_groups (account_id, group_id) VALUES (?, ?)",
                    (account_id, group_id),
                )
            else:
                conn.execute(
                    "DELETE FROM ignored_groups WHERE account_id = ? AND lower(group_id) = lower(?)",
                    (account_id, group_id),
                )

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT account_id, display_name, avatar_relay_uuid FROM accounts WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        if row is None:
            return None
        return AccountRecord(
            account_id=row["account_id"],
            display_name=row["display_name"],
            avatar_relay_uuid=row["avatar_relay_uuid"],
        )

    def upsert_account(self, account: AccountRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO accounts (account_id, display_name, avatar_relay_uuid)
                VALUES (?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    avatar_relay_uuid = excluded.avatar_relay_uuid
                """,
                (account.account_id, account.display_name, account.avatar_relay_uuid),
            )


def _to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    return ChatMessage(
        sender_name=row["sender_name"],
        message=row["message"],
        chat_type=row["chat_type"],
        channel=int(row["channel"]),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        account_id=row["account_id"],
        sender_id=row["sender_id"],
        target_id=row["target_id"],
        session_id=row["session_id"],
        session_name=row["session_name"],
        region_name=row["region_name"],
    )
