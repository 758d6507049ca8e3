import asyncio
import unittest

from streamchat.client.decoder import decode_stream, parse_line


async def _chunks(*parts):
    for part in parts:
        yield part


def _decode(*parts):
    async def run():
        return [event async for event in decode_stream(_chunks(*parts))]

    return asyncio.run(run())


class DecodeStreamTests(unittest.TestCase):
    def test_line_split_across_chunks(self) -> None:
        events = _decode(b'{"delta":"He', b'llo"}\n{"done":true,"answer":"Hello"}\n')
        self.assertEqual(2, len(events))
        self.assertEqual("Hello", events[0].delta)
        self.assertTrue(events[1].done)
        self.assertEqual("Hello", events[1].answer)

    def test_chunking_does_not_change_events(self) -> None:
        body = b'{"chatId":"c1","delta":""}\n{"chatId":"c1","delta":"ab"}\n{"chatId":"c1","done":true,"answer":"ab"}\n'
        whole = _decode(body)
        bytewise = _decode(*[body[i:i + 1] for i in range(len(body))])
        self.assertEqual(whole, bytewise)
        self.assertEqual(3, len(whole))

    def test_invalid_line_is_skipped(self) -> None:
        events = _decode(b'{"delta":"a"}\nnot json\n{"delta":"b"}\n')
        self.assertEqual(["a", "b"], [e.delta for e in events])

    def test_blank_lines_are_ignored(self) -> None:
        events = _decode(b'\n\n   \n{"delta":"x"}\n\n')
        self.assertEqual(1, len(events))

    def test_non_object_record_is_skipped(self) -> None:
        events = _decode(b'[1,2]\n"text"\n{"delta":"ok"}\n')
        self.assertEqual(["ok"], [e.delta for e in events])

    def test_final_line_without_newline_is_flushed(self) -> None:
        events = _decode(b'{"delta":"a"}\n{"done":true,"answer":"a"}')
        self.assertEqual(2, len(events))
        self.assertTrue(events[-1].done)

    def test_invalid_final_line_is_dropped(self) -> None:
        events = _decode(b'{"delta":"a"}\n{"done":tr')
        self.assertEqual(1, len(events))

    def test_multibyte_character_split_across_chunks(self) -> None:
        body = '{"delta":"héllo ☃"}\n'.encode()
        split = body.index("☃".encode()) + 1
        events = _decode(body[:split], body[split:])
        self.assertEqual("héllo ☃", events[0].delta)

    def test_text_chunks_are_accepted(self) -> None:
        events = _decode('{"delta":"a"}\n', '{"delta":"b"}\n')
        self.assertEqual(["a", "b"], [e.delta for e in events])

    def test_empty_stream_yields_nothing(self) -> None:
        self.assertEqual([], _decode())


class ParseLineTests(unittest.TestCase):
    def test_reads_camel_case_chat_id(self) -> None:
        event = parse_line('{"chatId":"c9","delta":"x"}')
        self.assertEqual("c9", event.chat_id)

    def test_done_only_when_literally_true(self) -> None:
        self.assertFalse(parse_line('{"done":"true"}').done)
        self.assertFalse(parse_line('{"done":1}').done)
        self.assertTrue(parse_line('{"done":true}').done)

    def test_error_field(self) -> None:
        event = parse_line('{"chatId":"c1","error":"boom","done":false}')
        self.assertEqual("boom", event.error)
        self.assertFalse(event.done)

    def test_blank_returns_none(self) -> None:
        self.assertIsNone(parse_line("   "))


if __name__ == "__main__":
    unittest.main()
