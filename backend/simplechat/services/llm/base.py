"""Abstract streaming LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator


@dataclass
class LLMMessage:
    role: str  # "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class StreamChunk:
    delta: str = ""
    usage: TokenUsage | None = None  # normally only on the final chunk


class CompletionStream(ABC):
    """One in-flight streaming completion.

    Stopping iteration does not stop the upstream request; call abort() for that.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        ...

    @abstractmethod
    async def abort(self) -> None:
        """Terminate the upstream network stream immediately."""
        ...


class BaseLLMProvider(ABC):
    @abstractmethod
    async def stream(self, model: str, messages: list[LLMMessage]) -> CompletionStream:
        """Open a streaming completion that reports token usage on its last chunk."""
        ...
