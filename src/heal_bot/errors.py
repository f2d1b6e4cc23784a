"""Error taxonomy for the session engine.

Only ``ValidationError`` and ``NotFound`` cross the engine boundary. Provider
errors are raised by the provider clients and absorbed by the response
generator's fallback chain.
"""


class HealError(Exception):
    """Base class for engine errors."""


class ValidationError(HealError):
    """The request is missing required content."""


class NotFound(HealError):
    """The session does not exist or belongs to another owner."""

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


class ProviderError(HealError):
    """An upstream AI or TTS provider failed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderTimeout(ProviderError):
    """An upstream provider did not answer in time."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f"timed out after {timeout:.1f}s")
        self.timeout = timeout
