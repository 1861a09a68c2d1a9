"""Anthropic completion provider.

Covers direct Anthropic API and Anthropic on Vertex AI.
Both use the anthropic Python SDK; Vertex uses the AnthropicVertex client.
"""

from __future__ import annotations

from typing import Any

import anthropic
from anthropic import AsyncAnthropic, AsyncAnthropicVertex

from calltest.providers.base import ChatMessage, Completion, CompletionProvider
from calltest.utils.errors import CompletionError

# The Messages API requires the first message to come from the user.
_CONNECT_CUE = "[Call connected.]"


class AnthropicCompletionProvider(CompletionProvider):
    """Completion provider for Anthropic Claude (direct API and Vertex AI)."""

    name = "anthropic"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        vertex_project_id: str | None = None,
        vertex_location: str = "us-central1",
    ) -> None:
        self._model = model
        self._client = self._create_client(api_key, vertex_project_id, vertex_location)

    @staticmethod
    def _create_client(
        api_key: str | None,
        vertex_project_id: str | None,
        vertex_location: str,
    ) -> AsyncAnthropic | AsyncAnthropicVertex:
        """Create an Anthropic async client."""
        if vertex_project_id:
            return AsyncAnthropicVertex(
                project_id=vertex_project_id,
                region=vertex_location,
            )
        return AsyncAnthropic(api_key=api_key or None)

    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        """Send the conversation to the Anthropic Messages API."""
        history: list[dict[str, Any]] = [dict(m) for m in messages]
        if not history or history[0]["role"] != "user":
            history.insert(0, {"role": "user", "content": _CONNECT_CUE})

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_output_tokens,
            "messages": history,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise CompletionError(str(e), provider=self.name) from e

        text_parts = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)

        return Completion(
            text="\n".join(text_parts),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
