"""Conversation and message records."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
TOOL_ROLE = "tool"
SYSTEM_ROLE = "system"

DEFAULT_TITLE = "Untitled conversation"


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Message:
    """A single utterance in a conversation."""

    role: str
    content: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content", ""),
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
        )


@dataclass
class Conversation:
    """A persisted chat: title plus an append-only list of messages."""

    id: str = field(default_factory=_new_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    @classmethod
    def start(cls, content: str) -> "Conversation":
        """Create a conversation holding a single user message."""
        conversation = cls()
        conversation.messages.append(
            Message(
                role=USER_ROLE,
                content=content,
                created_at=conversation.created_at,
                updated_at=conversation.created_at,
            )
        )
        return conversation

    def add_message(self, role: str, content: str) -> Message:
        """Append a message and bump the update timestamp."""
        message = Message(role=role, content=content)
        self.messages.append(message)
        self.updated_at = message.created_at
        return message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data.get("title") or DEFAULT_TITLE,
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
        )
