from __future__ import annotations

import sys
import threading
from itertools import cycle

from streamchat.client.models import ConversationKey

_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class Spinner:
    """Animates a waiting label on the current terminal line until stopped.

    Stopping leaves the cursor right after ``prefix`` so the answer can follow it.
    """

    def __init__(self, prefix: str = "", label: str = " Waiting for answer...", interval: float = 0.08):
        self._prefix = prefix
        self._label = label
        self._interval = interval
        self._halt = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._halt.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._animate, name="streamchat-spinner", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if not self.running:
            return
        self._halt.set()
        self._thread.join()
        blank = " " * (len(self._prefix) + 1 + len(self._label))
        sys.stdout.write(f"\r{blank}\r{self._prefix}")
        sys.stdout.flush()

    def _animate(self) -> None:
        try:
            for frame in cycle(_FRAMES):
                if self._halt.is_set():
                    return
                sys.stdout.write(f"\r{self._prefix}{frame}{self._label}")
                sys.stdout.flush()
                self._halt.wait(self._interval)
        except (UnicodeEncodeError, OSError):
            pass  # terminal cannot render the frames


class ConsoleSink:
    """Prints the answer as it grows, with a spinner until the first text arrives.

    The engine hands over the whole answer so far; only the unseen suffix is printed.
    """

    def __init__(self, prefix: str = "assistant> ", *, spinner: Spinner | None = None):
        self._spinner = spinner or Spinner(prefix=prefix)
        self._shown = ""
        self.completed_key: ConversationKey | None = None

    def start(self) -> None:
        self._spinner.start()

    def stop(self) -> None:
        self._spinner.stop()

    def on_delta(self, text: str) -> None:
        if not text:
            return
        self._spinner.stop()
        self._write(text)

    def on_complete(self, key: ConversationKey, answer: str) -> None:
        self._spinner.stop()
        self._write(answer)
        self.completed_key = key

    def _write(self, text: str) -> None:
        # A final answer that rewrites already printed text is left as printed.
        if text.startswith(self._shown):
            sys.stdout.write(text[len(self._shown):])
            self._shown = text
        sys.stdout.flush()
