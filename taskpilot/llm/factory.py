from __future__ import annotations

from taskpilot.core.config import Settings
from taskpilot.llm.contracts import CompletionProvider
from taskpilot.llm.errors import LLMErrorCode, LLMProviderError
from taskpilot.llm.providers.openai_chat import OPENAI_PROVIDER_NAME, OpenAIChatAdapter


def create_llm_client(*, provider: str, settings: Settings) -> CompletionProvider:
    """
    Create a completion provider for the configured backend.

    Args:
        provider: The provider identifier (currently only "openai").
        settings: Application settings carrying credentials and model defaults.

    Raises:
        LLMProviderError: If the provider is not supported.
    """
    normalized_provider = provider.strip().lower()

    if normalized_provider == OPENAI_PROVIDER_NAME:
        return OpenAIChatAdapter(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout_s=settings.openai_timeout_s,
            default_model=settings.openai_model,
            default_max_tokens=settings.openai_max_tokens,
            default_temperature=settings.openai_temperature,
        )

    raise LLMProviderError(
        code=LLMErrorCode.UNSUPPORTED_PROVIDER,
        provider=provider,
        message=f"Unsupported LLM provider: {provider}.",
        retryable=False,
    )
