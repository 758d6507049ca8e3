from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass

from loguru import logger

from streamchat.errors import (
    BlankQuestionError,
    ChatNotFoundError,
    TitleDerivationFailure,
    UpstreamError,
    UserNotFoundError,
)
from streamchat.provider import LLMProvider
from streamchat.server.records import StoredChat
from streamchat.server.repository import ChatRepository, utc_now
from streamchat.server.schemas import AnswerResponse, AnswerStreamEvent
from streamchat.server.title import TitleDeriver

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer clearly and concisely. "
    "If information is missing, politely ask for clarification."
)

_GENERIC_FAILURE = "Unexpected error while contacting the assistant"


@dataclass
class AnswerSettings:
    model: str
    max_tokens: int = 4096
    temperature: float = 1.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_history_messages: int = 40


class AnswerService:
    def __init__(
        self,
        repository: ChatRepository,
        provider: LLMProvider,
        title_deriver: TitleDeriver,
        settings: AnswerSettings,
    ):
        self._repository = repository
        self._provider = provider
        self._title_deriver = title_deriver
        self._settings = settings

    def resolve_chat(self, user_id: str, chat_id: str | None) -> StoredChat:
        if not self._repository.user_exists(user_id):
            raise UserNotFoundError(user_id)
        if chat_id is None:
            chat = self._repository.create_chat(user_id)
            logger.debug(f"New chat created for user={user_id} chat={chat.id}")
            return chat

        logger.debug(f"Resolving existing chat={chat_id} for user={user_id}")
        chat = self._repository.find_chat(chat_id, user_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    async def ask(self, user_id: str, question: str, chat_id: str | None = None) -> AnswerResponse:
        logger.debug(f"Processing ask request for user={user_id} chat={chat_id}")
        question = _sanitize(question)
        chat = self.resolve_chat(user_id, chat_id)
        asked_at = utc_now()

        try:
            parts = [chunk async for chunk in self._model_stream(chat, question)]
        except Exception as ex:
            logger.error(f"Ask request failed for user={user_id} chat={chat.id}: {ex}")
            raise UpstreamError(str(ex) or _GENERIC_FAILURE) from ex

        answer = "".join(parts)
        await self._finalize(chat, question, asked_at, answer)
        return AnswerResponse(chat_id=chat.id, answer=answer or None)

    def open_stream(self, user_id: str, question: str, chat_id: str | None = None) -> AsyncIterator[AnswerStreamEvent]:
        """Validate the request and allocate the chat now, then return the event stream.

        Lookup errors surface here, before any event has been produced.
        """
        logger.debug(f"Processing streaming ask request for user={user_id} chat={chat_id}")
        question = _sanitize(question)
        chat = self.resolve_chat(user_id, chat_id)
        return self._stream(chat, question, utc_now())

    async def _stream(self, chat: StoredChat, question: str, asked_at: str) -> AsyncIterator[AnswerStreamEvent]:
        yield AnswerStreamEvent.delta_event(chat.id, "")

        parts: list[str] = []
        try:
            async with aclosing(self._model_stream(chat, question)) as chunks:
                async for chunk in chunks:
                    parts.append(chunk)
                    yield AnswerStreamEvent.delta_event(chat.id, chunk)
            answer = "".join(parts)
            await self._finalize(chat, question, asked_at, answer)
        except Exception as ex:
            logger.error(f"Streaming ask request failed for user={chat.user_id} chat={chat.id}: {ex}")
            yield AnswerStreamEvent.failed(chat.id, str(ex).strip() or _GENERIC_FAILURE)
            return

        yield AnswerStreamEvent.completed(chat.id, answer)

    async def _model_stream(self, chat: StoredChat, question: str) -> AsyncIterator[str]:
        history = self._repository.list_messages(chat.id, limit=self._settings.max_history_messages)
        messages = [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "user", "content": question})

        stream = self._provider.stream_text(
            self._settings.model,
            self._settings.max_tokens,
            self._settings.temperature,
            self._settings.system_prompt,
            messages,
        )
        async with aclosing(stream):
            async for chunk in stream:
                if chunk:
                    yield chunk

    async def _finalize(self, chat: StoredChat, question: str, asked_at: str, answer: str) -> None:
        self._repository.append(chat.id, "user", question, created_at=asked_at)
        self._repository.append(chat.id, "assistant", answer)

        if chat.title and chat.title.strip():
            return
        if not answer.strip():
            return

        logger.debug(f"Generating title for user={chat.user_id} chat={chat.id}")
        try:
            title = await self._title_deriver.derive(question, answer)
        except TitleDerivationFailure as ex:
            logger.warning(f"Failed to generate chat title via model. {ex}")
            return
        if title:
            self._repository.set_title(chat.id, title)


def _sanitize(question: str) -> str:
    trimmed = (question or "").strip()
    if not trimmed:
        raise BlankQuestionError()
    return trimmed
