from __future__ import annotations

from loguru import logger

from streamchat.errors import TitleDerivationFailure
from streamchat.provider import LLMProvider

MAX_TITLE_CHARACTERS = 60

SUMMARY_SYSTEM_PROMPT = (
    "Produce exactly one output: a single title in Title Case, up to 5 words, "
    "no punctuation, no additional sentences.\n"
    "Do not add explanations, descriptions, or commentary.\n"
    "Respond with title only."
)

SUMMARY_PROMPT = """User:
{question}

Assistant:
{answer}
"""


def abbreviate(text: str, max_chars: int = MAX_TITLE_CHARACTERS) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


class TitleDeriver:
    def __init__(self, provider: LLMProvider, model: str, *, max_tokens: int = 32, temperature: float = 0.2):
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def derive(self, question: str, answer: str) -> str | None:
        """Return a short title for the exchange, or None when the model gives nothing usable.

        Raises TitleDerivationFailure if the model call itself fails.
        """
        prompt = SUMMARY_PROMPT.format(question=question.strip(), answer=answer.strip())
        try:
            candidate = await self._provider.create_message(
                self._model,
                self._max_tokens,
                self._temperature,
                [{"role": "user", "content": prompt}],
                system_prompt=SUMMARY_SYSTEM_PROMPT,
            )
        except Exception as ex:
            raise TitleDerivationFailure(f"{type(ex).__name__}: {ex}") from ex

        candidate = " ".join((candidate or "").split())
        if not candidate:
            logger.debug("Title model returned a blank title")
            return None
        return abbreviate(candidate)
