from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from loguru import logger

from streamchat.client.decoder import decode_stream
from streamchat.client.models import ChatKey, ConversationKey, MessageRole
from streamchat.client.session_store import SessionStore
from streamchat.client.transport import AnswerTransport, with_idle_timeout
from streamchat.errors import (
    NoActiveConversationError,
    NoUserSelectedError,
    SendInProgressError,
    StreamChatError,
    StreamProtocolError,
    UpstreamError,
)


@runtime_checkable
class AnswerSink(Protocol):
    def on_delta(self, text: str) -> None: ...
    def on_complete(self, key: ConversationKey, answer: str) -> None: ...


class NullSink:
    def on_delta(self, text: str) -> None:
        pass

    def on_complete(self, key: ConversationKey, answer: str) -> None:
        pass


@dataclass(frozen=True)
class SendResult:
    key: ConversationKey
    answer: str


class SessionEngine:
    def __init__(
        self,
        store: SessionStore,
        transport: AnswerTransport,
        *,
        idle_timeout_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._idle_timeout_seconds = idle_timeout_seconds

    async def send(self, question: str, sink: AnswerSink | None = None) -> SendResult:
        """Send ``question`` on the active conversation and stream the answer into the store.

        Raises the precondition errors before touching the store. Any later
        failure removes the placeholder, records a system message and re-raises.
        """
        sink = sink or NullSink()
        user_id = self._store.selected_user_id
        if not user_id:
            raise NoUserSelectedError()
        active_key = self._store.active_key()
        if active_key is None:
            raise NoActiveConversationError()
        if self._store.is_sending(active_key):
            raise SendInProgressError(active_key)

        self._store.append_message(active_key, MessageRole.USER, question)
        self._store.add_placeholder(active_key)
        self._store.set_sending(active_key, True)

        working_key = active_key
        aggregated = ""
        result: SendResult | None = None
        try:
            chunks = self._transport.stream_answer(
                question=question,
                user_id=user_id,
                chat_id=active_key.chat_id,
            )
            async with aclosing(chunks):
                events = decode_stream(with_idle_timeout(chunks, self._idle_timeout_seconds))
                async with aclosing(events):
                    async for event in events:
                        if event.error is not None:
                            raise UpstreamError(event.error)

                        if event.chat_id and event.chat_id != working_key.chat_id:
                            working_key = self._store.migrate(working_key, ChatKey(event.chat_id))

                        if event.delta is not None:
                            aggregated += event.delta
                            self._store.apply_delta(working_key, event.delta)
                            sink.on_delta(aggregated)

                        if event.done:
                            answer = event.answer if event.answer is not None else aggregated
                            self._store.resolve_placeholder(working_key, answer)
                            result = SendResult(key=working_key, answer=answer)
                            break

            if result is None:
                raise StreamProtocolError("stream ended before completion")
        except asyncio.CancelledError:
            self._fail(working_key, "request cancelled")
            raise
        except StreamChatError as ex:
            self._fail(working_key, str(ex) or type(ex).__name__)
            raise
        except Exception as ex:
            logger.exception(f"Unexpected error while streaming answer for {working_key!r}")
            self._fail(working_key, f"{type(ex).__name__}: {ex}")
            raise
        finally:
            self._store.set_sending(working_key, False)

        # The answer is stored; sink errors from here on reach the caller as they are.
        logger.debug(f"Answer complete for {result.key!r} ({len(result.answer)} chars)")
        sink.on_complete(result.key, result.answer)
        return result

    def _fail(self, key: ConversationKey, description: str) -> None:
        logger.error(f"Stream failed for {key!r}: {description}")
        self._store.clear_placeholder(key)
        self._store.append_message(key, MessageRole.SYSTEM, f"Failed to send message: {description}")
