from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StoredUser:
    id: str
    name: str


@dataclass(frozen=True)
class StoredChat:
    id: str
    user_id: str
    title: str | None
    created_at: str


@dataclass(frozen=True)
class StoredMessage:
    id: str
    chat_id: str
    seq: int
    role: str
    content: str
    created_at: str
