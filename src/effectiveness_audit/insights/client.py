"""LLM insights client with retries, validation and a deterministic fallback."""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from ..errors import InsightsValidationError, LLMError, LLMTimeoutError
from ..models import InsightsMetadata, InsightsResponse, KeyPattern
from .fallback import generate_fallback_insights
from .prompts import HEALTH_CHECK_PROMPT, PromptData, build_insights_prompt
from .providers import LLMProvider

logger = logging.getLogger(__name__)

HEALTHY_LATENCY_MS = 10000
MIN_RECOMMENDATIONS = 3
MAX_RECOMMENDATIONS = 4

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class AIClientConfig:
    """Retry and timeout policy. Times are in seconds."""
    max_retries: int = 3
    retry_delay: float = 1.0
    rate_limit_delay: float = 5.0
    enable_fallback: bool = True
    timeout: float = 30.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    INVALID_RESPONSE = "invalid_response"
    FATAL = "fatal"


def classify_error(error: BaseException) -> ErrorKind:
    """Decide how a failed attempt should be retried."""
    if isinstance(error, InsightsValidationError):
        return ErrorKind.INVALID_RESPONSE
    if isinstance(error, (LLMTimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TRANSIENT

    message = str(error).lower()
    status = getattr(error, "status_code", None)
    if status == 429 or "rate limit" in message:
        return ErrorKind.RATE_LIMIT
    if isinstance(error, httpx.TransportError):
        return ErrorKind.TRANSIENT
    if status is not None and status >= 500:
        return ErrorKind.TRANSIENT
    if any(word in message for word in ("timeout", "network", "temporary")):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def retry_delay(kind: ErrorKind, attempt: int, config: AIClientConfig) -> float | None:
    """Seconds to wait after a failed attempt, or None to stop retrying."""
    if kind is ErrorKind.RATE_LIMIT:
        return config.rate_limit_delay * attempt
    if kind is ErrorKind.TRANSIENT:
        return config.retry_delay * 2 ** (attempt - 1)
    if kind is ErrorKind.INVALID_RESPONSE:
        return config.retry_delay
    return None


def validate_insights_payload(data: Any) -> dict:
    """Check a decoded payload against the insights schema.

    Returns a normalized copy with recommendations truncated to four.
    """
    if not isinstance(data, dict):
        raise InsightsValidationError(["response is not a JSON object"])

    problems = []
    insight = data.get("insight")
    if not isinstance(insight, str) or not insight.strip():
        problems.append("missing insight")

    recommendations = data.get("recommendations")
    if not isinstance(recommendations, list) or not all(isinstance(r, str) and r.strip() for r in recommendations):
        problems.append("recommendations must be a list of strings")
    elif len(recommendations) < MIN_RECOMMENDATIONS:
        problems.append(f"expected at least {MIN_RECOMMENDATIONS} recommendations, got {len(recommendations)}")

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
        problems.append("confidence must be a number between 0 and 1")

    try:
        key_pattern = KeyPattern(data.get("key_pattern"))
    except ValueError:
        problems.append(f"unknown key_pattern {data.get('key_pattern')!r}")
        key_pattern = None

    if problems:
        raise InsightsValidationError(problems)

    return {
        "insight": insight.strip(),
        "recommendations": tuple(r.strip() for r in recommendations[:MAX_RECOMMENDATIONS]),
        "confidence": float(confidence),
        "key_pattern": key_pattern,
    }


def _degraded_decode(text: str) -> Any:
    cleaned = _FENCE_RE.sub("", text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise InsightsValidationError(["no JSON object found in response"])
    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise InsightsValidationError([f"invalid JSON: {e.msg}"])

    # Some models return nested fields as JSON strings
    if isinstance(data, dict):
        for key in ("recommendations", "confidence"):
            value = data.get(key)
            if isinstance(value, str):
                try:
                    data[key] = json.loads(value)
                except json.JSONDecodeError:
                    pass
    return data


def parse_insights_payload(text: str) -> tuple[dict, str]:
    """Parse LLM output, strictly first and then leniently.

    Returns the validated fields and the parse mode used.
    """
    try:
        return validate_insights_payload(json.loads(text)), "strict"
    except (json.JSONDecodeError, InsightsValidationError) as e:
        strict_error = e

    fields = validate_insights_payload(_degraded_decode(text))
    logger.warning("Insights response needed degraded parsing: %s", strict_error)
    return fields, "degraded"


@dataclass(frozen=True)
class HealthReport:
    status: str  # healthy | degraded | unhealthy
    latency_ms: int
    provider: str | None = None
    model: str | None = None
    error: str | None = None


class AIInsightsClient:
    """Generates insights for a scoring summary.

    Holds no per-run state, so one instance can serve many runs.
    """

    def __init__(
        self,
        provider: LLMProvider | None = None,
        config: AIClientConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self._config = config or AIClientConfig()
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> AIClientConfig:
        return self._config

    def update_config(self, **changes) -> AIClientConfig:
        self._config = replace(self._config, **changes)
        return self._config

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    def _fallback(self, data: PromptData, attempts: int, start: float) -> InsightsResponse:
        return generate_fallback_insights(data, attempts=attempts, elapsed_ms=self._elapsed_ms(start))

    async def generate_insights(self, data: PromptData) -> InsightsResponse:
        start = self._clock()
        config = self._config

        if self.provider is None or not self.provider.is_configured():
            if config.enable_fallback:
                logger.warning("No LLM provider configured, using fallback insights")
                return self._fallback(data, 0, start)
            raise LLMError("No LLM provider configured")

        prompt = build_insights_prompt(data)
        last_error: BaseException | None = None
        attempts = 0

        for attempt in range(1, config.max_retries + 1):
            attempts = attempt
            try:
                response = await asyncio.wait_for(self.provider.complete(prompt), timeout=config.timeout)
                fields, parse_mode = parse_insights_payload(response.text)
                logger.info("Insights generated by %s in %d attempt(s)", self.provider.name, attempt)
                return InsightsResponse(
                    **fields,
                    metadata=InsightsMetadata(
                        model=response.model,
                        response_time_ms=self._elapsed_ms(start),
                        attempts=attempt,
                        source="ai",
                        parse_mode=parse_mode,
                    ),
                )
            except asyncio.TimeoutError:
                last_error = LLMTimeoutError(
                    f"Insights request timed out after {config.timeout}s", provider=self.provider.name
                )
            except Exception as e:
                last_error = e

            kind = classify_error(last_error)
            logger.warning("Insights attempt %d/%d failed (%s): %s",
                           attempt, config.max_retries, kind.value, last_error)
            delay = retry_delay(kind, attempt, config)
            if delay is None:
                break
            if attempt < config.max_retries:
                await self._sleep(delay)

        if config.enable_fallback:
            logger.warning("Insights retries exhausted after %d attempt(s), using fallback", attempts)
            return self._fallback(data, attempts, start)
        if last_error is None:
            raise LLMError("No insights attempts were made", provider=self.provider.name)
        raise last_error

    def stream_insights(
        self,
        data: PromptData,
        on_chunk: Callable[[str], Any] | None = None,
    ) -> "InsightsStream":
        return InsightsStream(self, data, on_chunk)

    async def health_check(self) -> HealthReport:
        if self.provider is None or not self.provider.is_configured():
            return HealthReport(status="unhealthy", latency_ms=0, error="No LLM provider configured")

        start = self._clock()
        try:
            response = await asyncio.wait_for(
                self.provider.complete(HEALTH_CHECK_PROMPT, json_mode=False),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError:
            return HealthReport(status="unhealthy", latency_ms=self._elapsed_ms(start),
                                provider=self.provider.name, model=self.provider.model, error="timeout")
        except Exception as e:
            return HealthReport(status="unhealthy", latency_ms=self._elapsed_ms(start),
                                provider=self.provider.name, model=self.provider.model, error=str(e))

        latency = self._elapsed_ms(start)
        if "OK" not in response.text:
            status, error = "unhealthy", f"unexpected reply: {response.text[:50]!r}"
        elif latency > HEALTHY_LATENCY_MS:
            status, error = "degraded", None
        else:
            status, error = "healthy", None
        return HealthReport(status=status, latency_ms=latency, provider=self.provider.name,
                            model=response.model, error=error)


class InsightsStream:
    """Async iterator over insight text chunks.

    ``result`` is set once iteration finishes. The full text is only parsed
    at the end of the stream.
    """

    def __init__(self, client: AIInsightsClient, data: PromptData, on_chunk: Callable[[str], Any] | None = None):
        self._client = client
        self._data = data
        self._on_chunk = on_chunk
        self.result: InsightsResponse | None = None
        self.text = ""

    def __aiter__(self):
        return self._iterate()

    async def collect(self) -> InsightsResponse:
        async for _ in self:
            pass
        return self.result

    async def _iterate(self):
        client = self._client
        provider = client.provider
        start = client._clock()

        if provider is None or not provider.is_configured():
            self.result = await client.generate_insights(self._data)
            return

        chunks: list[str] = []
        try:
            async for chunk in provider.stream(build_insights_prompt(self._data)):
                chunks.append(chunk)
                if self._on_chunk is not None:
                    self._on_chunk(chunk)
                yield chunk
        except Exception as e:
            if not chunks:
                logger.warning("Insights stream failed before any output, retrying without streaming: %s", e)
                self.result = await client.generate_insights(self._data)
                return
            logger.warning("Insights stream broke after %d chunk(s), using fallback: %s", len(chunks), e)
            self.result = client._fallback(self._data, 1, start)
            return

        self.text = "".join(chunks)
        try:
            fields, parse_mode = parse_insights_payload(self.text)
        except InsightsValidationError as e:
            logger.warning("Streamed insights could not be parsed, using fallback: %s", e)
            self.result = client._fallback(self._data, 1, start)
            return

        self.result = InsightsResponse(
            **fields,
            metadata=InsightsMetadata(
                model=provider.model,
                response_time_ms=client._elapsed_ms(start),
                attempts=1,
                source="ai",
                parse_mode=parse_mode,
            ),
        )
