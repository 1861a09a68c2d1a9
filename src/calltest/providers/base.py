"""Base classes and dataclasses for the completion-service abstraction.

Defines the CompletionProvider ABC that each provider implements,
plus the normalized Completion returned by every call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, TypedDict


class ChatMessage(TypedDict):
    """A provider-neutral conversation message."""

    role: Literal["user", "assistant"]
    content: str


@dataclass
class Completion:
    """Normalized response from any completion provider."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class CompletionProvider(ABC):
    """Abstract base class for text-completion services.

    Implementations translate the neutral message list into their SDK's
    format and convert SDK failures into CompletionError, so callers only
    ever handle one error type.
    """

    name: str = "completion"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        """Generate the next assistant message.

        Args:
            system_prompt: System instructions for this context.
            messages: Ordered user/assistant history.
            max_output_tokens: Output token budget for this call.

        Returns:
            Completion with the generated text and token usage.

        Raises:
            CompletionError: On auth failure, rate limiting, overload or
                any other service error.
        """
