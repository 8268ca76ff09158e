from taskpilot.llm.providers.openai_chat import OPENAI_PROVIDER_NAME, OpenAIChatAdapter

__all__ = [
    "OPENAI_PROVIDER_NAME",
    "OpenAIChatAdapter",
]
