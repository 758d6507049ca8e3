from __future__ import annotations

from datetime import datetime

from loguru import logger

from streamchat.client.engine import AnswerSink, SendResult, SessionEngine
from streamchat.client.models import (
    DRAFT,
    ChatKey,
    ChatRecord,
    Message,
    MessageRole,
    MessageStatus,
    UserRecord,
)
from streamchat.client.session_store import SessionStore
from streamchat.client.transport import HttpAnswerTransport
from streamchat.errors import NoUserSelectedError, StreamChatError


class ChatService:
    """User, chat list and history management around a SessionEngine."""

    def __init__(self, store: SessionStore, transport: HttpAnswerTransport, engine: SessionEngine):
        self._store = store
        self._transport = transport
        self._engine = engine

    @property
    def store(self) -> SessionStore:
        return self._store

    async def load_users(self) -> list[UserRecord]:
        rows = await self._transport.fetch_users()
        self._store.users = [UserRecord(user_id=str(r["userId"]), name=str(r.get("name", ""))) for r in rows]
        return self._store.users

    async def load_chats(self, user_id: str) -> list[ChatRecord]:
        rows = await self._transport.fetch_chats(user_id)
        chats = [
            ChatRecord(
                chat_id=str(r["chatId"]),
                title=r.get("title"),
                created_at=str(r.get("createdAt", "")),
            )
            for r in rows
        ]
        self._store.chats = chats
        for chat in chats:
            key = ChatKey(chat.chat_id)
            if self._store.has(key):
                self._store.set_title(key, chat.title)
        return chats

    async def load_chat_history(self, chat_id: str, user_id: str) -> list[Message]:
        rows = await self._transport.fetch_chat_history(chat_id, user_id)
        messages = [
            Message(
                id=f"{chat_id}-{index}",
                role=MessageRole.normalize(row.get("role")),
                content=str(row.get("content", "")),
                timestamp=_parse_timestamp(row.get("timestamp")),
                status=MessageStatus.COMPLETE,
            )
            for index, row in enumerate(rows)
        ]
        self._store.set_history(ChatKey(chat_id), messages)
        return messages

    async def select_user(self, user_id: str) -> None:
        self._store.selected_user_id = user_id
        self._store.reset()
        await self.load_chats(user_id)

    def begin_new_chat(self) -> None:
        if not self._store.selected_user_id:
            return
        self._store.selected_key = None
        self._store.composing_new = True
        self._store.clear_placeholder(DRAFT)
        self._store.set_history(DRAFT, [])

    async def select_existing_chat(self, chat_id: str) -> None:
        user_id = self._store.selected_user_id
        if not user_id:
            raise NoUserSelectedError()

        key = ChatKey(chat_id)
        self._store.select(key)
        if not self._store.get_history(key):
            await self.load_chat_history(chat_id, user_id)

    def can_send(self) -> bool:
        return bool(self._store.selected_user_id and self._store.active_key() is not None)

    async def send_message(self, question: str, sink: AnswerSink | None = None) -> SendResult:
        result = await self._engine.send(question, sink)
        await self.refresh_active_chat_metadata()
        return result

    async def refresh_active_chat_metadata(self) -> None:
        user_id = self._store.selected_user_id
        if not user_id or self._store.selected_key is None:
            return
        try:
            await self.load_chats(user_id)
        except StreamChatError as ex:
            logger.warning(f"Failed to refresh chat metadata: {ex}")


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
