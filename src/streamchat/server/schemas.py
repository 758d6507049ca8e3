from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from streamchat.server.records import StoredChat, StoredMessage, StoredUser


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class User(WireModel):
    user_id: str = Field(alias="userId")
    name: str

    @classmethod
    def from_record(cls, user: StoredUser) -> User:
        return cls(user_id=user.id, name=user.name)


class ChatSummary(WireModel):
    chat_id: str = Field(alias="chatId")
    title: str | None = None
    created_at: str = Field(alias="createdAt")

    @classmethod
    def from_record(cls, chat: StoredChat) -> ChatSummary:
        return cls(chat_id=chat.id, title=chat.title, created_at=chat.created_at)


class ChatMessageResponse(WireModel):
    role: str
    content: str
    timestamp: str

    @classmethod
    def from_record(cls, message: StoredMessage) -> ChatMessageResponse:
        return cls(role=message.role, content=message.content, timestamp=message.created_at)


class AnswerResponse(WireModel):
    chat_id: str = Field(alias="chatId")
    answer: str | None = None


class AnswerStreamEvent(WireModel):
    chat_id: str = Field(alias="chatId")
    delta: str | None = None
    answer: str | None = None
    done: bool = False
    error: str | None = None

    @classmethod
    def delta_event(cls, chat_id: str, chunk: str) -> AnswerStreamEvent:
        return cls(chat_id=chat_id, delta=chunk)

    @classmethod
    def completed(cls, chat_id: str, answer: str) -> AnswerStreamEvent:
        return cls(chat_id=chat_id, answer=answer, done=True)

    @classmethod
    def failed(cls, chat_id: str, message: str) -> AnswerStreamEvent:
        return cls(chat_id=chat_id, error=message)

    def to_ndjson(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"
