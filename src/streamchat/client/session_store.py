from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from loguru import logger

from streamchat.client.models import (
    DRAFT,
    ChatKey,
    ChatRecord,
    Conversation,
    ConversationKey,
    Message,
    MessageRole,
    MessageStatus,
    UserRecord,
    utc_now,
)
from streamchat.errors import PlaceholderConflictError, StatusRegressionError

_NOW = object()


class SessionStore:
    """In-memory conversation state for one client.

    Every method is synchronous and does no I/O, so callers on a single event
    loop never observe a half-applied update.
    """

    def __init__(self) -> None:
        self._conversations: dict[ConversationKey, Conversation] = {}
        self._sending: set[ConversationKey] = set()
        self.users: list[UserRecord] = []
        self.chats: list[ChatRecord] = []
        self.selected_user_id: str | None = None
        self.selected_key: ChatKey | None = None
        self.composing_new = False

    # -- selection -----------------------------------------------------------

    def active_key(self) -> ConversationKey | None:
        if self.selected_key is not None:
            return self.selected_key
        if self.composing_new:
            return DRAFT
        return None

    def select(self, key: ChatKey | None) -> None:
        self.selected_key = key
        self.composing_new = key is None and self.composing_new

    def is_sending(self, key: ConversationKey) -> bool:
        return key in self._sending

    def set_sending(self, key: ConversationKey, sending: bool) -> None:
        if sending:
            self._sending.add(key)
        else:
            self._sending.discard(key)

    def reset(self) -> None:
        self._conversations.clear()
        self._sending.clear()
        self.selected_key = None
        self.composing_new = True
        self._slot(DRAFT)

    # -- conversations -------------------------------------------------------

    def _slot(self, key: ConversationKey) -> Conversation:
        conversation = self._conversations.get(key)
        if conversation is None:
            conversation = Conversation(key=key)
            self._conversations[key] = conversation
        return conversation

    def has(self, key: ConversationKey) -> bool:
        return key in self._conversations

    def get_conversation(self, key: ConversationKey) -> Conversation | None:
        return self._conversations.get(key)

    def keys(self) -> list[ConversationKey]:
        return list(self._conversations)

    def get_history(self, key: ConversationKey) -> list[Message]:
        return list(self._slot(key).history)

    def set_history(self, key: ConversationKey, messages: list[Message]) -> None:
        conversation = self._slot(key)
        conversation.history = list(messages)
        conversation.pending_placeholder_id = None

    def set_title(self, key: ConversationKey, title: str | None) -> None:
        self._slot(key).title = title

    def discard(self, key: ConversationKey) -> None:
        self._conversations.pop(key, None)
        self._sending.discard(key)

    def pending_placeholder_id(self, key: ConversationKey) -> str | None:
        conversation = self._conversations.get(key)
        return conversation.pending_placeholder_id if conversation else None

    # -- messages ------------------------------------------------------------

    def append_message(
        self,
        key: ConversationKey,
        role: MessageRole,
        content: str,
        *,
        status: MessageStatus = MessageStatus.COMPLETE,
        timestamp: datetime | None | object = _NOW,
    ) -> Message:
        message = Message(
            id=uuid4().hex,
            role=role,
            content=content,
            timestamp=utc_now() if timestamp is _NOW else timestamp,
            status=status,
        )
        self._slot(key).history.append(message)
        return message

    def add_placeholder(self, key: ConversationKey) -> Message:
        conversation = self._slot(key)
        if conversation.pending_placeholder_id is not None:
            raise PlaceholderConflictError(f"A placeholder already exists for {key}")
        message = self.append_message(
            key,
            MessageRole.ASSISTANT,
            "",
            status=MessageStatus.PENDING,
            timestamp=None,
        )
        conversation.pending_placeholder_id = message.id
        return message

    def apply_delta(self, key: ConversationKey, text: str) -> None:
        conversation = self._conversations.get(key)
        if conversation is None or conversation.pending_placeholder_id is None:
            return
        index = conversation.find(conversation.pending_placeholder_id)
        if index is None:
            return

        entry = conversation.history[index]
        status = entry.status
        if text and status is MessageStatus.PENDING:
            status = MessageStatus.STREAMING
        conversation.history[index] = _advance(entry, status, content=entry.content + text)

    def resolve_placeholder(self, key: ConversationKey, final_text: str) -> bool:
        conversation = self._conversations.get(key)
        if conversation is None or conversation.pending_placeholder_id is None:
            return False

        index = conversation.find(conversation.pending_placeholder_id)
        if index is None:
            logger.debug(f"Placeholder {conversation.pending_placeholder_id} vanished from {key}")
            conversation.pending_placeholder_id = None
            return False

        entry = conversation.history[index]
        conversation.history[index] = _advance(
            entry,
            MessageStatus.COMPLETE,
            content=final_text,
            timestamp=utc_now(),
        )
        conversation.pending_placeholder_id = None
        return True

    def clear_placeholder(self, key: ConversationKey) -> None:
        conversation = self._conversations.get(key)
        if conversation is None or conversation.pending_placeholder_id is None:
            return
        index = conversation.find(conversation.pending_placeholder_id)
        if index is not None:
            del conversation.history[index]
        conversation.pending_placeholder_id = None

    # -- identity ------------------------------------------------------------

    def migrate(self, old_key: ConversationKey, new_key: ConversationKey | None) -> ConversationKey:
        """Re-key everything held under ``old_key`` to ``new_key``.

        The first real key assigned while composing a new conversation also
        becomes the selection. An existing selection is never replaced.
        """
        if new_key is None:
            return old_key
        if old_key == new_key:
            return new_key

        conversation = self._conversations.pop(old_key, None) or Conversation(key=old_key)
        conversation.key = new_key
        self._conversations[new_key] = conversation

        if old_key in self._sending:
            self._sending.discard(old_key)
            self._sending.add(new_key)

        if self.selected_key is None and isinstance(new_key, ChatKey):
            self.selected_key = new_key
            self.composing_new = False

        logger.debug(f"Migrated {old_key!r} to {new_key!r} ({len(conversation.history)} messages)")
        return new_key


def _advance(message: Message, status: MessageStatus, **changes: object) -> Message:
    if status.rank < message.status.rank:
        raise StatusRegressionError(
            f"Message {message.id} cannot go from {message.status} to {status}"
        )
    return replace(message, status=status, **changes)
