"""Completion service used by LLM prompt nodes.

The engine only depends on the ``CompletionService`` protocol: one awaited
call per prompt, returning text or raising ``ExternalCallError``. Timeouts
and retries belong to the service, never to the node executor.
"""

from __future__ import annotations

import sys
from typing import Protocol

from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from promptsandbox.config import Settings
from promptsandbox.domain.errors import ExternalCallError
from promptsandbox.domain.models import ModelParameters
from promptsandbox.library.credentials import Credential


class CompletionService(Protocol):
    async def complete(
        self,
        prompt: str,
        parameters: ModelParameters,
        credential: Credential,
    ) -> str:
        """Return the completion text for ``prompt``."""
        ...


def create_chat_model(
    parameters: ModelParameters,
    credential: Credential,
    settings: Settings | None = None,
) -> BaseChatModel:
    """Initialize a LangChain chat model for one call.

    Raises:
        ValueError: If the credential's provider is not supported.
    """
    settings = settings or Settings()

    if credential.provider == "openai":
        return ChatOpenAI(
            model=parameters.model or settings.default_model,
            temperature=parameters.temperature,
            max_tokens=parameters.max_tokens,
            top_p=parameters.top_p,
            frequency_penalty=parameters.frequency_penalty,
            presence_penalty=parameters.presence_penalty,
            stop=list(parameters.stop) or None,
            openai_api_key=credential.api_key.get_secret_value(),
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )

    raise ValueError(f"Unsupported provider: {credential.provider}")


class LangChainCompletionService:
    """``CompletionService`` backed by a LangChain chat model."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    async def complete(
        self,
        prompt: str,
        parameters: ModelParameters,
        credential: Credential,
    ) -> str:
        try:
            llm = create_chat_model(parameters, credential, self.settings)
            sys.stderr.write(f"[LLM] Calling {parameters.model} ({len(prompt)} chars)\n")
            sys.stderr.flush()
            message = await llm.ainvoke(prompt)
        except Exception as exc:  # noqa: BLE001 - surfaced as a node-level failure
            raise ExternalCallError(f"{type(exc).__name__}: {exc}") from exc

        content = message.content
        if not isinstance(content, str):
            raise ExternalCallError(f"Unexpected completion payload: {type(content).__name__}")
        if not content.strip():
            raise ExternalCallError("Completion returned an empty response")
        return content
