"""SQLite-based store for users, conversations, messages and memories.

Every lookup that targets a specific row is filtered by ``user_id`` so a row
owned by someone else behaves exactly like a missing one.
"""

import sqlite3
import uuid
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Iterable

from .models import User, Conversation, ConversationMessage, Memory

logger = logging.getLogger(__name__)

# Distinguishes "leave unchanged" from an explicit None (clear the title)
UNSET = object()


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_ts(value: Optional[str]) -> datetime:
    return datetime.fromisoformat(value) if value else datetime.now()


class SQLiteMemoryStore:
    """SQLite-based persistent store."""

    def __init__(self, db_path: str = "data/tutor.db"):
        """
        Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory and cascading deletes."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT,
                email TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
                content TEXT NOT NULL,
                speech_content TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        # Indexes
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, updated_at)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_user ON memories(user_id, updated_at)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    # -- users ---------------------------------------------------------------

    def ensure_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None
    ) -> User:
        """Create the user row if it does not exist yet and return it."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "INSERT OR IGNORE INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user_id, name, email, datetime.now().isoformat())
        )
        conn.commit()

        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        conn.close()

        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            created_at=_parse_ts(row["created_at"])
        )

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; conversations, messages and memories cascade."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM users WHERE id = ?", (user_id,))
        deleted = cursor.rowcount > 0

        conn.commit()
        conn.close()

        if deleted:
            logger.info(f"Deleted user {user_id} and all owned records")
        return deleted

    # -- conversations -------------------------------------------------------

    def create_conversation(self, user_id: str, title: Optional[str] = None) -> Conversation:
        """
        Create a new conversation.

        Args:
            user_id: Owner
            title: Optional title; blank titles get "New chat HH:MM:SS"

        Returns:
            Created Conversation object
        """
        self.ensure_user(user_id)

        now = datetime.now()
        title = (title or "").strip() or f"New chat {now.strftime('%H:%M:%S')}"
        conversation_id = _new_id()

        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO conversations (id, user_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (conversation_id, user_id, title, now.isoformat(), now.isoformat())
        )
        conn.commit()
        conn.close()

        return Conversation(
            id=conversation_id,
            user_id=user_id,
            title=title,
            created_at=now,
            updated_at=now
        )

    def get_conversation(
        self,
        conversation_id: str,
        user_id: str,
        include_messages: bool = False
    ) -> Optional[Conversation]:
        """
        Get a conversation owned by ``user_id``.

        Returns:
            Conversation object or None if missing or owned by someone else
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id)
        )
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None

        conversation = self._row_to_conversation(row)
        if include_messages:
            conversation.messages = self.list_messages(conversation_id)
        return conversation

    def list_conversations(self, user_id: str, limit: int = 100) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            SELECT * FROM conversations
            WHERE user_id = ?
            ORDER BY updated_at DESC, rowid DESC
            LIMIT ?
            """,
            (user_id, limit)
        )
        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_conversation(row) for row in rows]

    def rename_conversation(self, conversation_id: str, user_id: str, title: str) -> bool:
        """Rename a conversation owned by ``user_id``. Returns False if not found."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (title, datetime.now().isoformat(), conversation_id, user_id)
        )
        updated = cursor.rowcount > 0

        conn.commit()
        conn.close()
        return updated

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a conversation (and its messages). Returns False if not found."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "DELETE FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id)
        )
        deleted = cursor.rowcount > 0

        conn.commit()
        conn.close()
        return deleted

    # -- messages ------------------------------------------------------------

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        speech_content: Optional[str] = None
    ) -> ConversationMessage:
        """
        Append a message to a conversation and bump its updated_at.

        Callers check ownership of ``conversation_id`` first.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        now = datetime.now()
        message_id = _new_id()

        cursor.execute(
            """
            INSERT INTO messages (id, conversation_id, role, content, speech_content, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (message_id, conversation_id, role, content, speech_content or None, now.isoformat())
        )

        cursor.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (now.isoformat(), conversation_id)
        )

        conn.commit()
        conn.close()

        return ConversationMessage(
            id=message_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            speech_content=speech_content or None,
            created_at=now
        )

    def list_messages(self, conversation_id: str) -> List[ConversationMessage]:
        """Messages of a conversation in chronological order."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            SELECT * FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at, rowid
            """,
            (conversation_id,)
        )
        rows = cursor.fetchall()
        conn.close()

        return [
            ConversationMessage(
                id=row["id"],
                conversation_id=row["conversation_id"],
                role=row["role"],
                content=row["content"],
                speech_content=row["speech_content"],
                created_at=_parse_ts(row["created_at"])
            )
            for row in rows
        ]

    def count_messages(self, conversation_id: str) -> int:
        """Number of persisted messages in a conversation."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
            (conversation_id,)
        )
        result = cursor.fetchone()
        conn.close()

        return result[0] if result else 0

    def count_messages_through_last_reply(self, conversation_id: str) -> int:
        """
        Number of messages up to and including the latest assistant message.

        Returns 0 when the conversation has no assistant message yet.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            SELECT COUNT(*) FROM messages
            WHERE conversation_id = ?
              AND rowid <= (
                  SELECT MAX(rowid) FROM messages
                  WHERE conversation_id = ? AND role = 'assistant'
              )
            """,
            (conversation_id, conversation_id)
        )
        result = cursor.fetchone()
        conn.close()

        return result[0] if result else 0

    # -- memories ------------------------------------------------------------

    def create_memory(self, user_id: str, content: str, title: Optional[str] = None) -> Memory:
        """Store a new memory for ``user_id``."""
        self.ensure_user(user_id)

        now = datetime.now()
        memory_id = _new_id()

        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO memories (id, user_id, title, content, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (memory_id, user_id, title or None, content, now.isoformat(), now.isoformat())
        )
        conn.commit()
        conn.close()

        logger.info(f"Saved memory {memory_id} for user {user_id}")
        return Memory(
            id=memory_id,
            user_id=user_id,
            title=title or None,
            content=content,
            created_at=now,
            updated_at=now
        )

    def get_memory(self, memory_id: str, user_id: str) -> Optional[Memory]:
        """Get a memory owned by ``user_id``."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT * FROM memories WHERE id = ? AND user_id = ?",
            (memory_id, user_id)
        )
        row = cursor.fetchone()
        conn.close()

        return self._row_to_memory(row) if row else None

    def list_memories(self, user_id: str) -> List[Memory]:
        """A user's memories, most recently updated first."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            SELECT * FROM memories
            WHERE user_id = ?
            ORDER BY updated_at DESC, rowid DESC
            """,
            (user_id,)
        )
        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_memory(row) for row in rows]

    def update_memory(
        self,
        memory_id: str,
        user_id: str,
        content: Optional[str] = None,
        title=UNSET
    ) -> Optional[Memory]:
        """
        Update content and/or title of a memory owned by ``user_id``.

        Args:
            memory_id: Memory to update
            user_id: Owner
            content: New content; None leaves it unchanged
            title: New title; None clears it, UNSET leaves it unchanged

        Returns:
            Updated Memory or None if not found
        """
        existing = self.get_memory(memory_id, user_id)
        if not existing:
            return None

        new_content = content if content is not None else existing.content
        new_title = existing.title if title is UNSET else (title or None)
        now = datetime.now()

        conn = self._get_connection()
        conn.execute(
            """
            UPDATE memories SET content = ?, title = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
            """,
            (new_content, new_title, now.isoformat(), memory_id, user_id)
        )
        conn.commit()
        conn.close()

        return existing.model_copy(update={
            "content": new_content,
            "title": new_title,
            "updated_at": now
        })

    def delete_memory(self, memory_id: str, user_id: str) -> bool:
        """Delete a memory owned by ``user_id``. Returns False if not found."""
        return self.delete_memories(user_id, [memory_id]) > 0

    def delete_memories(self, user_id: str, memory_ids: Iterable[str]) -> int:
        """Delete several memories owned by ``user_id``; returns how many went."""
        ids = list(memory_ids)
        if not ids:
            return 0

        conn = self._get_connection()
        cursor = conn.cursor()

        placeholders = ", ".join("?" for _ in ids)
        cursor.execute(
            f"DELETE FROM memories WHERE user_id = ? AND id IN ({placeholders})",
            (user_id, *ids)
        )
        deleted = cursor.rowcount

        conn.commit()
        conn.close()
        return deleted

    # -- row mapping ---------------------------------------------------------

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"])
        )

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"])
        )
