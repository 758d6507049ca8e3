from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(UTC)


class DraftKey:
    """Key of the single client-only conversation that has no server id yet."""

    _instance: DraftKey | None = None

    def __new__(cls) -> DraftKey:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def is_draft(self) -> bool:
        return True

    @property
    def chat_id(self) -> None:
        return None

    def __repr__(self) -> str:
        return "DRAFT"


DRAFT = DraftKey()


@dataclass(frozen=True)
class ChatKey:
    chat_id: str

    def __post_init__(self) -> None:
        if not self.chat_id:
            raise ValueError("ChatKey requires a non-empty chat id")

    @property
    def is_draft(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.chat_id


ConversationKey = DraftKey | ChatKey


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"

    @classmethod
    def normalize(cls, value: str | None) -> MessageRole:
        lowered = (value or "").strip().lower()
        for role in cls:
            if role.value == lowered:
                return role
        return cls.ASSISTANT


class MessageStatus(StrEnum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def in_flight(self) -> bool:
        return self is not MessageStatus.COMPLETE


_STATUS_ORDER = [MessageStatus.PENDING, MessageStatus.STREAMING, MessageStatus.COMPLETE]


@dataclass(frozen=True)
class Message:
    id: str
    role: MessageRole
    content: str
    timestamp: datetime | None
    status: MessageStatus = MessageStatus.COMPLETE


@dataclass
class Conversation:
    key: ConversationKey
    title: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    history: list[Message] = field(default_factory=list)
    pending_placeholder_id: str | None = None

    def find(self, message_id: str) -> int | None:
        for index, message in enumerate(self.history):
            if message.id == message_id:
                return index
        return None


@dataclass(frozen=True)
class StreamEvent:
    chat_id: str | None = None
    delta: str | None = None
    done: bool = False
    answer: str | None = None
    error: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StreamEvent:
        return cls(
            chat_id=_optional_str(payload.get("chatId")),
            delta=_optional_str(payload.get("delta")),
            done=payload.get("done") is True,
            answer=_optional_str(payload.get("answer")),
            error=_optional_str(payload.get("error")),
        )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    name: str


@dataclass(frozen=True)
class ChatRecord:
    chat_id: str
    title: str | None
    created_at: str
