from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from taskpilot.core.config import Settings, get_settings
from taskpilot.llm import CompletionProvider, create_llm_client
from taskpilot.notifications import MailSender, create_mail_sender


def get_completion_provider(
    settings: Annotated[Settings, Depends(get_settings)],
) -> CompletionProvider:
    return create_llm_client(provider=settings.ai_provider, settings=settings)


def get_mail_sender(settings: Annotated[Settings, Depends(get_settings)]) -> MailSender:
    return create_mail_sender(settings)


ProviderDep = Annotated[CompletionProvider, Depends(get_completion_provider)]
MailSenderDep = Annotated[MailSender, Depends(get_mail_sender)]
