from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from tenacity import retry

from streamchat.errors import StreamIdleTimeout, TransportFailure
from streamchat.providers.common import default_retry_kwargs

USER_HEADER = "X-User-Id"
NDJSON_MEDIA_TYPE = "application/x-ndjson"


@runtime_checkable
class AnswerTransport(Protocol):
    def stream_answer(
        self,
        question: str,
        user_id: str,
        chat_id: str | None = None,
    ) -> AsyncIterator[bytes]:
        """Open the answer stream and yield raw NDJSON body chunks."""
        ...


class HttpAnswerTransport:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        # No read timeout on the stream itself; idle detection is done per chunk.
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds, read=None),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def stream_answer(
        self,
        question: str,
        user_id: str,
        chat_id: str | None = None,
    ) -> AsyncIterator[bytes]:
        params = {"question": question}
        if chat_id:
            params["chatId"] = chat_id
        headers = {"Accept": NDJSON_MEDIA_TYPE, USER_HEADER: user_id}

        logger.debug(f"Opening answer stream: user={user_id}, chat={chat_id or '-'}")
        try:
            async with self._client.stream("GET", "/ask/stream", params=params, headers=headers) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportFailure(_read_error(response), response.status_code)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as ex:
            raise TransportFailure(f"{type(ex).__name__}: {ex}") from ex

    async def fetch_users(self) -> list[dict]:
        return await self._get_json("/users")

    async def fetch_chats(self, user_id: str) -> list[dict]:
        return await self._get_json("/chats", headers={USER_HEADER: user_id})

    async def fetch_chat_history(self, chat_id: str, user_id: str) -> list[dict]:
        return await self._get_json(f"/chats/{chat_id}", headers={USER_HEADER: user_id})

    async def _get_json(self, path: str, *, headers: dict[str, str] | None = None) -> Any:
        try:
            response = await self._request_json(path, headers or {})
        except httpx.HTTPError as ex:
            raise TransportFailure(f"{type(ex).__name__}: {ex}") from ex
        if response.is_error:
            raise TransportFailure(_read_error(response), response.status_code)
        return response.json()

    @retry(**default_retry_kwargs((httpx.ConnectError, httpx.TimeoutException)))
    async def _request_json(self, path: str, headers: dict[str, str]) -> httpx.Response:
        return await self._client.get(path, headers={"Accept": "application/json", **headers})


def _read_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("message", "detail"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    return f"{response.status_code} {response.reason_phrase}".strip()


async def with_idle_timeout(chunks: AsyncIterable[bytes], seconds: float | None) -> AsyncIterator[bytes]:
    """Re-yield ``chunks``, failing if the gap between two chunks exceeds ``seconds``."""
    iterator = aiter(chunks)
    while True:
        try:
            if seconds and seconds > 0:
                async with asyncio.timeout(seconds):
                    chunk = await anext(iterator)
            else:
                chunk = await anext(iterator)
        except StopAsyncIteration:
            return
        except TimeoutError:
            raise StreamIdleTimeout(seconds or 0) from None
        yield chunk
