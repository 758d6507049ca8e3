from collections.abc import AsyncIterator

import anthropic
from loguru import logger
from tenacity import retry

from streamchat.providers.common import default_retry_kwargs, to_text_messages

_RETRYABLE = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _open_stream(self, **kwargs):
        return await self._client.messages.create(stream=True, **kwargs)

    async def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        """Yield answer text fragments as the model produces them."""
        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, messages={len(messages)}"
        )
        stream = await self._open_stream(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=to_text_messages(messages),
        )
        text_len = 0
        stop_reason: str | None = None
        async with stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    text_len += len(event.delta.text)
                    yield event.delta.text
                elif event.type == "message_delta":
                    stop_reason = event.delta.stop_reason
        logger.debug(f"API response: stop_reason={stop_reason}, text_len={text_len}")

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> str:
        """Non-streaming message creation (used for title derivation)."""
        logger.debug(f"Title API request: model={model}, messages={len(messages)}")
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=to_text_messages(messages),
        )
        if system_prompt:
            kwargs["system"] = system_prompt
        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        logger.debug(
            f"Title API response: input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}"
        )
        return "".join(block.text for block in response.content if block.type == "text")
