import logging
import unittest

from loguru import logger

from streamchat.logging_config import InterceptHandler, setup_logging


class SetupLoggingTests(unittest.TestCase):
    def tearDown(self) -> None:
        setup_logging(level="WARNING")
        for name in ("uvicorn", "httpx"):
            logging.getLogger(name).handlers = []
            logging.getLogger(name).propagate = True

    def test_default_is_console_only(self) -> None:
        self.assertEqual(["console (stderr, INFO)"], setup_logging())

    def test_unknown_consumer_is_skipped(self) -> None:
        descriptions = setup_logging(consumers=[{"type": "carrier-pigeon"}, {"type": "console", "level": "DEBUG"}])
        self.assertEqual(["console (stderr, DEBUG)"], descriptions)

    def test_intercepts_stdlib_loggers(self) -> None:
        setup_logging(intercept_stdlib=True)
        handlers = logging.getLogger("uvicorn").handlers
        self.assertEqual(1, len(handlers))
        self.assertIsInstance(handlers[0], InterceptHandler)

    def test_stdlib_records_reach_loguru(self) -> None:
        setup_logging(consumers=[], intercept_stdlib=True)
        captured: list[str] = []
        sink_id = logger.add(lambda message: captured.append(message.record["message"]), level="INFO")
        try:
            logging.getLogger("httpx").info("HTTP Request: GET /users")
        finally:
            logger.remove(sink_id)
        self.assertEqual(["HTTP Request: GET /users"], captured)


if __name__ == "__main__":
    unittest.main()
