"""Exceptions raised by the scoring pipeline."""


class EffectivenessError(Exception):
    """Base class for effectiveness scoring errors."""


class CollectionError(EffectivenessError):
    """No usable page data could be collected for a URL."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Data collection failed for {url}: {message}")


class TierExecutionError(EffectivenessError):
    """A tier's criterion batch could not be started."""

    def __init__(self, tier: int, message: str):
        self.tier = tier
        super().__init__(f"Tier {tier} failed: {message}")


class LLMError(EffectivenessError):
    """A call to an LLM provider failed."""

    def __init__(self, message: str, status_code: int | None = None, provider: str | None = None):
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)


class LLMTimeoutError(LLMError):
    """An LLM call exceeded its timeout."""


class InsightsValidationError(EffectivenessError):
    """An LLM insights payload failed schema validation."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(f"Invalid AI response: {', '.join(problems)}")


class ConfigError(EffectivenessError):
    """Scoring configuration could not be loaded or saved."""


class CircuitOpenError(EffectivenessError):
    """A service is skipped because its circuit breaker is open."""

    def __init__(self, service: str, retry_in: float):
        self.service = service
        self.retry_in = retry_in
        super().__init__(f"Service {service} is temporarily unavailable (circuit open, retry in {retry_in:.0f}s)")
