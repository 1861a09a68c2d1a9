"""OpenAI-compatible completion provider.

Covers OpenAI, Azure OpenAI, and vLLM endpoints, which all use the
same OpenAI Python client with different base URLs.
"""

from __future__ import annotations

from typing import Any

import openai
from openai import AsyncOpenAI

from calltest.providers.base import ChatMessage, Completion, CompletionProvider
from calltest.utils.errors import CompletionError


class OpenAICompletionProvider(CompletionProvider):
    """Completion provider for OpenAI-compatible APIs (OpenAI, Azure, vLLM)."""

    name = "openai"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._model = model
        kwargs: dict[str, Any] = {"api_key": api_key or None}
        if base_url:
            kwargs["base_url"] = base_url
        self._client = AsyncOpenAI(**kwargs)

    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        """Send the conversation to a chat-completions endpoint."""
        openai_messages: list[dict[str, Any]] = []
        if system_prompt:
            openai_messages.append({"role": "system", "content": system_prompt})
        openai_messages.extend(dict(m) for m in messages)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=openai_messages,
                max_tokens=max_output_tokens,
            )
        except openai.APIError as e:
            raise CompletionError(str(e), provider=self.name) from e

        text = response.choices[0].message.content if response.choices else None
        usage = response.usage
        return Completion(
            text=text or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
