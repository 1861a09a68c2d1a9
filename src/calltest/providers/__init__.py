"""Completion-service abstraction used by the simulator and evaluator."""

from calltest.providers.base import ChatMessage, Completion, CompletionProvider
from calltest.providers.factory import create_judge_provider, create_simulation_provider

__all__ = [
    "ChatMessage",
    "Completion",
    "CompletionProvider",
    "create_judge_provider",
    "create_simulation_provider",
]
