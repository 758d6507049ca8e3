import asyncio
import unittest

import httpx

from streamchat.client.transport import USER_HEADER, HttpAnswerTransport, with_idle_timeout
from streamchat.errors import StreamIdleTimeout, TransportFailure


def _transport(handler) -> HttpAnswerTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return HttpAnswerTransport("http://test", client=client)


async def _collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


class HttpAnswerTransportTests(unittest.TestCase):
    def test_stream_answer_sends_question_and_user(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b'{"chatId":"c1","done":true,"answer":"hi"}\n')

        transport = _transport(handler)
        body = asyncio.run(_collect(transport.stream_answer("What?", "u1")))

        self.assertIn(b'"answer":"hi"', body)
        request = seen[0]
        self.assertEqual("/ask/stream", request.url.path)
        self.assertEqual("What?", request.url.params["question"])
        self.assertNotIn("chatId", request.url.params)
        self.assertEqual("u1", request.headers[USER_HEADER])

    def test_stream_answer_includes_chat_id(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"")

        asyncio.run(_collect(_transport(handler).stream_answer("q", "u1", "c7")))
        self.assertEqual("c7", seen[0].url.params["chatId"])

    def test_error_status_uses_body_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"detail": "Chat c9 not found", "message": "Chat c9 not found"})

        with self.assertRaises(TransportFailure) as ctx:
            asyncio.run(_collect(_transport(handler).stream_answer("q", "u1", "c9")))
        self.assertEqual("Chat c9 not found", str(ctx.exception))
        self.assertEqual(404, ctx.exception.status_code)

    def test_error_status_without_body_uses_reason(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, content=b"")

        with self.assertRaises(TransportFailure) as ctx:
            asyncio.run(_collect(_transport(handler).stream_answer("q", "u1")))
        self.assertEqual("500 Internal Server Error", str(ctx.exception))

    def test_fetch_users(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"userId": "u1", "name": "Ada"}])

        users = asyncio.run(_transport(handler).fetch_users())
        self.assertEqual([{"userId": "u1", "name": "Ada"}], users)

    def test_fetch_chat_history_passes_user_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        asyncio.run(_transport(handler).fetch_chat_history("c1", "u1"))
        self.assertEqual("/chats/c1", seen[0].url.path)
        self.assertEqual("u1", seen[0].headers[USER_HEADER])

    def test_fetch_chats_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "User u9 not found"})

        with self.assertRaises(TransportFailure) as ctx:
            asyncio.run(_transport(handler).fetch_chats("u9"))
        self.assertEqual("User u9 not found", str(ctx.exception))


class IdleTimeoutTests(unittest.TestCase):
    def test_passes_chunks_through(self) -> None:
        async def chunks():
            yield b"a"
            yield b"b"

        self.assertEqual(b"ab", asyncio.run(_collect(with_idle_timeout(chunks(), 1.0))))

    def test_raises_when_stream_stalls(self) -> None:
        async def chunks():
            yield b"a"
            await asyncio.sleep(3600)

        with self.assertRaises(StreamIdleTimeout):
            asyncio.run(_collect(with_idle_timeout(chunks(), 0.05)))

    def test_reads_run_in_consumer_task(self) -> None:
        tasks: list[asyncio.Task | None] = []

        async def chunks():
            for part in (b"a", b"b"):
                tasks.append(asyncio.current_task())
                yield part
            tasks.append(asyncio.current_task())

        async def run() -> asyncio.Task | None:
            await _collect(with_idle_timeout(chunks(), 1.0))
            return asyncio.current_task()

        consumer = asyncio.run(run())
        self.assertEqual(3, len(tasks))
        self.assertTrue(all(task is consumer for task in tasks))

    def test_zero_disables_timeout(self) -> None:
        async def chunks():
            await asyncio.sleep(0.01)
            yield b"x"

        self.assertEqual(b"x", asyncio.run(_collect(with_idle_timeout(chunks(), 0))))


if __name__ == "__main__":
    unittest.main()
