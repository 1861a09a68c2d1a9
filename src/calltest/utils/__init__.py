"""Utility functions and helpers for calltest."""

from calltest.utils.errors import (
    CallTestError,
    CompletionError,
    ConfigurationError,
    NotFoundError,
    RunStateError,
    SimulationTimeoutError,
    ValidationError,
)
from calltest.utils.json_output import parse_json_output, strip_code_fences

__all__ = [
    # Errors
    "CallTestError",
    "CompletionError",
    "ConfigurationError",
    "NotFoundError",
    "RunStateError",
    "SimulationTimeoutError",
    "ValidationError",
    # Model output parsing
    "parse_json_output",
    "strip_code_fences",
]
