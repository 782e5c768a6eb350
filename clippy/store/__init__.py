"""Conversation storage with SQLite and in-memory backends."""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path

import aiosqlite

from clippy.config import Config, get_config
from clippy.exceptions import ConversationNotFoundError
from clippy.logging import get_logger
from clippy.models import Conversation

log = get_logger(__name__)


class ConversationStore(ABC):
    """Persistence collaborator for conversations."""

    @abstractmethod
    async def create(self, conversation: Conversation) -> None:
        """Persist a new conversation."""

    @abstractmethod
    async def load(self, conversation_id: str) -> Conversation:
        """Load a conversation.

        Raises:
            ConversationNotFoundError if the id is unknown
        """

    @abstractmethod
    async def update(self, conversation: Conversation) -> None:
        """Overwrite an existing conversation.

        Raises:
            ConversationNotFoundError if the id is unknown
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryConversationStore(ConversationStore):
    """Keeps conversations in a dictionary; contents are lost on exit."""

    def __init__(self):
        self._conversations: dict[str, dict] = {}

    async def create(self, conversation: Conversation) -> None:
        if conversation.id in self._conversations:
            raise ValueError(f"Conversation already exists: {conversation.id}")
        self._conversations[conversation.id] = conversation.to_dict()

    async def load(self, conversation_id: str) -> Conversation:
        data = self._conversations.get(conversation_id)
        if data is None:
            raise ConversationNotFoundError(conversation_id)
        return Conversation.from_dict(data)

    async def update(self, conversation: Conversation) -> None:
        if conversation.id not in self._conversations:
            raise ConversationNotFoundError(conversation.id)
        self._conversations[conversation.id] = conversation.to_dict()

    def __len__(self) -> int:
        return len(self._conversations)


class SQLiteConversationStore(ConversationStore):
    """Stores each conversation as one row with its messages as JSON."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Open the connection and schema once, even under concurrent first calls."""
        if self._db is not None:
            return self._db
        async with self._init_lock:
            if self._db is None:
                self._db = await self._open()
        return self._db

    async def _open(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(str(self.db_path))
        await db.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                messages TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_updated_at ON conversations(updated_at)"
        )
        await db.commit()
        log.debug("Opened conversation database", path=str(self.db_path))
        return db

    @staticmethod
    def _row_values(conversation: Conversation) -> tuple[str, str, str, str, str]:
        data = conversation.to_dict()
        return (
            data["id"],
            data["title"],
            json.dumps(data["messages"]),
            data["created_at"],
            data["updated_at"],
        )

    async def create(self, conversation: Conversation) -> None:
        db = await self._ensure_db()
        try:
            await db.execute(
                """
                INSERT INTO conversations (id, title, messages, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                self._row_values(conversation),
            )
        except aiosqlite.IntegrityError as e:
            raise ValueError(f"Conversation already exists: {conversation.id}") from e
        await db.commit()
        log.info("Created conversation", conversation_id=conversation.id)

    async def load(self, conversation_id: str) -> Conversation:
        db = await self._ensure_db()
        async with db.execute(
            "SELECT id, title, messages, created_at, updated_at FROM conversations WHERE id = ?",
            (conversation_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            raise ConversationNotFoundError(conversation_id)

        return Conversation.from_dict({
            "id": row[0],
            "title": row[1],
            "messages": json.loads(row[2]),
            "created_at": row[3],
            "updated_at": row[4],
        })

    async def update(self, conversation: Conversation) -> None:
        db = await self._ensure_db()
        conversation_id, title, messages, _, updated_at = self._row_values(conversation)
        cursor = await db.execute(
            "UPDATE conversations SET title = ?, messages = ?, updated_at = ? WHERE id = ?",
            (title, messages, updated_at, conversation_id),
        )
        await db.commit()
        if cursor.rowcount == 0:
            raise ConversationNotFoundError(conversation_id)

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None


def create_store(config: Config | None = None) -> ConversationStore:
    """Build the configured conversation store."""
    cfg = config or get_config()
    if cfg.storage.backend == "memory":
        return InMemoryConversationStore()
    return SQLiteConversationStore(cfg.storage.path)
