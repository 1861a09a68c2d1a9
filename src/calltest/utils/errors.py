"""Exception hierarchy for calltest."""


class CallTestError(Exception):
    """Base error for all calltest failures."""

    pass


class CompletionError(CallTestError):
    """A completion-service call failed (network, auth, rate limit, overload)."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        if provider:
            message = f"{provider}: {message}"
        super().__init__(message)


class SimulationTimeoutError(CallTestError):
    """A conversation simulation exceeded its wall-clock budget."""

    def __init__(self, label: str, timeout_seconds: float) -> None:
        self.label = label
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timeout: {label} exceeded {int(timeout_seconds * 1000)}ms"
        )


class NotFoundError(CallTestError):
    """A run or result record does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")


class ValidationError(CallTestError):
    """Input data failed validation."""

    pass


class ConfigurationError(CallTestError):
    """Configuration is missing or inconsistent."""

    pass


class RunStateError(CallTestError):
    """A run is not in a state that allows the requested operation."""

    pass
