from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator

from loguru import logger

from streamchat.client.models import StreamEvent


async def decode_stream(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[StreamEvent]:
    """Turn a chunked NDJSON body into StreamEvents, one per line, in order.

    Partial lines are carried over to the next chunk. Lines that are not a JSON
    object are logged and skipped; they never end the stream.
    """
    utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in chunks:
        if isinstance(chunk, bytes):
            buffer += utf8.decode(chunk)
        else:
            buffer += chunk

        while True:
            newline_index = buffer.find("\n")
            if newline_index < 0:
                break
            line = buffer[:newline_index]
            buffer = buffer[newline_index + 1:]
            event = parse_line(line)
            if event is not None:
                yield event

    buffer += utf8.decode(b"", final=True)
    if buffer.strip():
        event = parse_line(buffer, final=True)
        if event is not None:
            yield event


def parse_line(line: str, *, final: bool = False) -> StreamEvent | None:
    trimmed = line.strip()
    if not trimmed:
        return None

    try:
        payload = json.loads(trimmed)
    except json.JSONDecodeError as ex:
        label = "final stream chunk" if final else "stream chunk"
        logger.warning(f"Failed to parse {label}: {ex} ({trimmed[:200]!r})")
        return None

    if not isinstance(payload, dict):
        logger.warning(f"Ignoring non-object stream record: {trimmed[:200]!r}")
        return None

    return StreamEvent.from_payload(payload)
