"""Google GenAI completion provider.

Covers Google Gemini via API key and Google Gemini on Vertex AI.
Both use the google-genai SDK; Vertex uses vertexai=True with project/location
or, in Express mode, an API key.
"""

from __future__ import annotations

from google import genai
from google.genai import errors, types

from calltest.providers.base import ChatMessage, Completion, CompletionProvider
from calltest.utils.errors import CompletionError

_ROLE_MAP = {"user": "user", "assistant": "model"}


class GoogleCompletionProvider(CompletionProvider):
    """Completion provider for Google Gemini (API key and Vertex AI)."""

    name = "google"

    def __init__(
        self,
        model: str,
        api_key: str = "",
        vertex_project_id: str | None = None,
        vertex_location: str = "us-central1",
        use_vertex: bool = False,
    ) -> None:
        self._model = model
        if use_vertex:
            if api_key:
                # Vertex AI Express mode
                self._client = genai.Client(vertexai=True, api_key=api_key)
            elif vertex_project_id:
                self._client = genai.Client(
                    vertexai=True,
                    project=vertex_project_id,
                    location=vertex_location,
                )
            else:
                raise ValueError(
                    "google-vertex provider requires an API key or vertex_project_id"
                )
        else:
            self._client = genai.Client(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        """Send the conversation to the Google GenAI API."""
        contents = [
            types.Content(
                role=_ROLE_MAP[m["role"]],
                parts=[types.Part.from_text(text=m["content"])],
            )
            for m in messages
        ]
        config = types.GenerateContentConfig(max_output_tokens=max_output_tokens)
        if system_prompt:
            config.system_instruction = system_prompt

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )
        except errors.APIError as e:
            raise CompletionError(str(e), provider=self.name) from e

        usage = response.usage_metadata
        return Completion(
            text=response.text or "",
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
        )
