"""OpenAI-compatible streaming provider (OpenRouter by default)."""

import logging
from typing import AsyncIterator

from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletionChunk

from simplechat.services.llm.base import BaseLLMProvider, CompletionStream, LLMMessage, StreamChunk, TokenUsage

logger = logging.getLogger(__name__)


class OpenAICompletionStream(CompletionStream):
    def __init__(self, stream: AsyncStream[ChatCompletionChunk]):
        self._stream = stream

    async def __aiter__(self) -> AsyncIterator[StreamChunk]:
        async for chunk in self._stream:
            delta = ""
            if chunk.choices:
                delta = chunk.choices[0].delta.content or ""

            usage = None
            if chunk.usage:
                usage = TokenUsage(
                    prompt_tokens=chunk.usage.prompt_tokens,
                    completion_tokens=chunk.usage.completion_tokens,
                    total_tokens=chunk.usage.total_tokens,
                )
            yield StreamChunk(delta=delta, usage=usage)

    async def abort(self) -> None:
        # Closing the HTTP response tears down the upstream request
        await self._stream.close()


class OpenAICompatibleProvider(BaseLLMProvider):
    def __init__(self, api_key: str, base_url: str, referer: str = "", app_title: str = ""):
        headers = {}
        if referer:
            headers["HTTP-Referer"] = referer
        if app_title:
            headers["X-Title"] = app_title
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, default_headers=headers)
        logger.info(f"OpenAI client initialized with base URL: {base_url}")

    async def stream(self, model: str, messages: list[LLMMessage]) -> CompletionStream:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[m.to_dict() for m in messages],
            stream=True,
            stream_options={"include_usage": True},
        )
        return OpenAICompletionStream(response)
