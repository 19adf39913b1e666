"""Scoring configuration and runtime settings."""

import asyncio
import copy
import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_BUZZWORDS = (
    "transformative",
    "revolutionary",
    "ai-driven",
    "cutting-edge",
    "innovative",
    "next-generation",
    "groundbreaking",
    "disruptive",
)


@dataclass(frozen=True)
class Thresholds:
    recent_months: int = 24
    hero_words: int = 22
    cta_dominance: float = 1.15
    proof_distance_px: int = 600
    lcp_limit: float = 3.0  # seconds
    cls_limit: float = 0.1


@dataclass(frozen=True)
class Viewport:
    width: int = 1440
    height: int = 900


@dataclass(frozen=True)
class ModelParams:
    model: str = "gpt-4o"
    temperature: float = 0.1
    max_tokens: int = 1000


@dataclass(frozen=True)
class ScoringConfig:
    """Versioned scoring configuration.

    Instances are never mutated. A refresh builds a new instance and swaps it
    into the provider's cache, so concurrent runs can share one safely.
    """
    buzzwords: tuple[str, ...] = DEFAULT_BUZZWORDS
    thresholds: Thresholds = field(default_factory=Thresholds)
    viewport: Viewport = field(default_factory=Viewport)
    model: ModelParams = field(default_factory=ModelParams)
    version: int = 0
    loaded_at: float = 0.0

    def with_overrides(self, overrides: Mapping[str, Any], version: int | None = None) -> "ScoringConfig":
        """Return a new config with overrides merged onto this one.

        Section mappings are merged key by key, lists and scalars replace the
        existing value, and unknown keys are ignored.
        """
        sections = {"thresholds": self.thresholds, "viewport": self.viewport, "model": self.model}
        changes: dict[str, Any] = {}

        for key, value in overrides.items():
            if key in sections:
                if not isinstance(value, Mapping):
                    raise ConfigError(f"Config section '{key}' must be an object")
                current = sections[key]
                known = {k: v for k, v in value.items() if k in asdict(current)}
                changes[key] = replace(current, **known)
            elif key == "buzzwords":
                changes[key] = tuple(str(w).lower() for w in value)
            else:
                logger.debug("Ignoring unknown config key %r", key)

        return replace(
            self,
            **changes,
            version=self.version + 1 if version is None else version,
            loaded_at=time.time(),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["buzzwords"] = list(self.buzzwords)
        return data


DEFAULT_SCORING_CONFIG = ScoringConfig()


class ConfigSource(Protocol):
    """Where configuration overrides are stored."""

    def load(self) -> Mapping[str, Any]: ...

    def save(self, key: str, value: Any) -> None: ...


class StaticConfigSource:
    """In-memory overrides, mostly for tests and embedding."""

    def __init__(self, overrides: Mapping[str, Any] | None = None):
        self._overrides = copy.deepcopy(dict(overrides or {}))

    def load(self) -> Mapping[str, Any]:
        return copy.deepcopy(self._overrides)

    def save(self, key: str, value: Any) -> None:
        self._overrides[key] = copy.deepcopy(value)


class JsonConfigSource:
    """Overrides stored as a JSON object in a file.

    A missing file means no overrides.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Mapping[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{self.path} must contain a JSON object")
        return data

    def save(self, key: str, value: Any) -> None:
        data = dict(self.load())
        data[key] = value
        try:
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot write {self.path}: {e}") from e


class ConfigProvider:
    """Serves the current ScoringConfig, refreshed on a TTL."""

    def __init__(
        self,
        source: ConfigSource | None = None,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source or StaticConfigSource()
        self.ttl = ttl
        self._clock = clock
        self._cached: ScoringConfig | None = None
        self._last_update = 0.0
        self._version = 0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._cached is not None and (self._clock() - self._last_update) < self.ttl

    async def get_config(self) -> ScoringConfig:
        if self._is_fresh():
            return self._cached

        async with self._lock:
            if self._is_fresh():
                return self._cached
            try:
                overrides = self.source.load()
                self._version += 1
                config = DEFAULT_SCORING_CONFIG.with_overrides(overrides, version=self._version)
            except Exception as e:
                logger.error("Failed to load scoring config, using %s: %s",
                             "last good config" if self._cached else "defaults", e)
                return self._cached or DEFAULT_SCORING_CONFIG

            self._cached = config
            self._last_update = self._clock()
            logger.info("Loaded scoring configuration v%d (%d override keys)",
                        config.version, len(overrides))
            return config

    def update_config(self, key: str, value: Any) -> None:
        """Persist an override and invalidate the cache."""
        self.source.save(key, value)
        self.clear_cache()
        logger.info("Updated scoring configuration key %r", key)

    def clear_cache(self) -> None:
        self._cached = None
        self._last_update = 0.0


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    """Process settings read from the environment."""
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    google_api_key: str | None = None
    pagespeed_api_key: str | None = None
    llm_provider: str = "openai"
    llm_model: str | None = None
    config_path: str | None = None
    config_ttl: float = 300.0
    log_level: str = "WARNING"
    insights_max_retries: int = 3
    insights_timeout: float = 30.0
    retry_delay: float = 1.0
    rate_limit_delay: float = 5.0
    enable_fallback: bool = True

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            google_api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
            pagespeed_api_key=os.getenv("PAGESPEED_API_KEY"),
            llm_provider=os.getenv("EFFECTIVENESS_LLM_PROVIDER", "openai").lower(),
            llm_model=os.getenv("EFFECTIVENESS_LLM_MODEL") or None,
            config_path=os.getenv("EFFECTIVENESS_CONFIG_PATH") or None,
            config_ttl=_env_float("EFFECTIVENESS_CONFIG_TTL", 300.0),
            log_level=os.getenv("EFFECTIVENESS_LOG_LEVEL", "WARNING").upper(),
            insights_max_retries=_env_int("EFFECTIVENESS_INSIGHTS_MAX_RETRIES", 3, minimum=1),
            insights_timeout=_env_float("EFFECTIVENESS_INSIGHTS_TIMEOUT", 30.0),
            retry_delay=_env_float("EFFECTIVENESS_RETRY_DELAY", 1.0),
            rate_limit_delay=_env_float("EFFECTIVENESS_RATE_LIMIT_DELAY", 5.0),
            enable_fallback=os.getenv("EFFECTIVENESS_INSIGHTS_FALLBACK", "1") not in ("0", "false", "no"),
        )

    def config_provider(self) -> ConfigProvider:
        source = JsonConfigSource(self.config_path) if self.config_path else StaticConfigSource()
        return ConfigProvider(source=source, ttl=self.config_ttl)
