"""LLM provider factory."""

from simplechat.core.config import Settings
from simplechat.services.llm.base import BaseLLMProvider


def create_llm_provider(settings: Settings) -> BaseLLMProvider:
    """Build the streaming provider once at startup; the instance is injected where needed."""
    from simplechat.services.llm.openai_compat import OpenAICompatibleProvider

    return OpenAICompatibleProvider(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        referer=settings.cors_origins[0] if settings.cors_origins else "",
        app_title=settings.llm_app_title,
    )
