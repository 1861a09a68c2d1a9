"""Factory functions for creating completion providers.

Dispatches on LLMProvider enum values to instantiate the correct
provider for conversation simulation or for transcript evaluation.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from calltest.config import LLMProvider
from calltest.utils.errors import ConfigurationError

if TYPE_CHECKING:
    from calltest.config import CallTestConfig
    from calltest.providers.base import CompletionProvider

logger = logging.getLogger(__name__)

# SDK environment variables consulted when no key is configured explicitly
_API_KEY_ENV = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.AZURE: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProvider.GOOGLE_GENAI: "GOOGLE_API_KEY",
}


def _has_credentials(provider: LLMProvider, api_key: str, config: CallTestConfig) -> bool:
    """Whether a provider can authenticate with the given settings."""
    if api_key:
        return True
    if provider in (LLMProvider.ANTHROPIC_VERTEX, LLMProvider.GOOGLE_VERTEX):
        return bool(config.vertex_project_id)
    if provider == LLMProvider.VLLM:
        return True
    env_var = _API_KEY_ENV.get(provider)
    return bool(env_var and os.environ.get(env_var))


def _build_provider(
    provider: LLMProvider,
    model: str,
    api_key: str,
    base_url: str | None,
    config: CallTestConfig,
) -> CompletionProvider:
    if provider in (LLMProvider.OPENAI, LLMProvider.VLLM, LLMProvider.AZURE):
        from calltest.providers.openai_provider import OpenAICompletionProvider

        if provider == LLMProvider.VLLM and not base_url:
            raise ConfigurationError("A base URL is required for the vLLM provider")
        return OpenAICompletionProvider(model=model, api_key=api_key, base_url=base_url)

    if provider in (LLMProvider.ANTHROPIC, LLMProvider.ANTHROPIC_VERTEX):
        from calltest.providers.anthropic_provider import AnthropicCompletionProvider

        if provider == LLMProvider.ANTHROPIC_VERTEX and not config.vertex_project_id:
            raise ConfigurationError(
                "vertex_project_id is required for anthropic-vertex provider"
            )
        return AnthropicCompletionProvider(
            model=model,
            api_key=api_key,
            vertex_project_id=(
                config.vertex_project_id if provider == LLMProvider.ANTHROPIC_VERTEX else None
            ),
            vertex_location=config.vertex_location,
        )

    if provider in (LLMProvider.GOOGLE_GENAI, LLMProvider.GOOGLE_VERTEX):
        from calltest.providers.google_provider import GoogleCompletionProvider

        try:
            return GoogleCompletionProvider(
                model=model,
                api_key=api_key,
                vertex_project_id=config.vertex_project_id,
                vertex_location=config.vertex_location,
                use_vertex=provider == LLMProvider.GOOGLE_VERTEX,
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    raise ConfigurationError(f"Unsupported LLM provider: {provider}")


def create_simulation_provider(config: CallTestConfig) -> CompletionProvider:
    """Create the provider that voices both caller and agent.

    Raises:
        ConfigurationError: If the provider is unsupported or has no credentials.
    """
    if not _has_credentials(config.llm_provider, config.llm_api_key, config):
        raise ConfigurationError(
            f"No credentials for simulation provider '{config.llm_provider.value}'. "
            "Set CALLTEST_LLM_API_KEY."
        )
    return _build_provider(
        config.llm_provider,
        config.llm_model,
        config.llm_api_key,
        config.llm_base_url,
        config,
    )


def create_judge_provider(config: CallTestConfig) -> CompletionProvider | None:
    """Create the provider that scores transcripts.

    Returns None when no credentials are available: evaluation is then
    skipped and every case finishes without a score.
    """
    if not _has_credentials(config.eval_provider, config.eval_api_key, config):
        logger.warning(
            f"No credentials for evaluation provider '{config.eval_provider.value}'; "
            "transcripts will not be scored"
        )
        return None
    return _build_provider(
        config.eval_provider,
        config.eval_model,
        config.eval_api_key,
        config.eval_base_url,
        config,
    )
