"""Data models for effectiveness scoring runs."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping


class Criterion(str, Enum):
    """The eight fixed effectiveness dimensions."""
    UX = "ux"
    TRUST = "trust"
    ACCESSIBILITY = "accessibility"
    SEO = "seo"
    POSITIONING = "positioning"
    BRAND_STORY = "brand_story"
    CTAS = "ctas"
    SPEED = "speed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class KeyPattern(str, Enum):
    """Primary pattern an insight is classified under."""
    MESSAGING_UNCLEAR = "messaging_unclear"
    CREDIBILITY_GAP = "credibility_gap"
    TECHNICAL_ISSUES = "technical_issues"
    CONVERSION_BARRIERS = "conversion_barriers"
    STRONG_FOUNDATION = "strong_foundation"


class Phase(str, Enum):
    """Progress phases, in the order a run moves through them."""
    INITIALIZING = "initializing"
    CLIENT = "client"
    COMPETITORS = "competitors"
    INSIGHTS = "insights"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return list(Phase).index(self)


class Pace(str, Enum):
    FASTER = "faster"
    NORMAL = "normal"
    SLOWER = "slower"


class RunStatus(str, Enum):
    """Orchestrator run states."""
    STARTED = "started"
    COLLECTING_DATA = "collecting_data"
    EXECUTING_TIERS = "executing_tiers"
    GENERATING_INSIGHTS = "generating_insights"
    COMPLETED = "completed"
    FAILED = "failed"


# Data collection steps reported to the progress tracker, per entity
DATA_COLLECTION_STEPS = (
    "initial_html",
    "rendered_html",
    "screenshot",
    "full_page_screenshot",
    "web_vitals",
)


@dataclass(frozen=True)
class WebVitals:
    """Core web vitals. LCP in seconds, CLS unitless, FID in milliseconds."""
    lcp: float
    cls: float
    fid: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"lcp": self.lcp, "cls": self.cls, "fid": self.fid}


@dataclass(frozen=True)
class HtmlEvidence:
    """Evidence from DOM heuristics."""
    kind: ClassVar[str] = "html"
    description: str
    reasoning: str
    signals: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VisionEvidence:
    """Evidence from an AI or vision assisted classifier."""
    kind: ClassVar[str] = "vision"
    description: str
    reasoning: str
    findings: Mapping[str, str | None] = field(default_factory=dict)
    used_ai: bool = False
    used_screenshot: bool = False
    model: str | None = None
    confidence: float | None = None
    ai_error: str | None = None


@dataclass(frozen=True)
class ApiEvidence:
    """Evidence from an external performance API."""
    kind: ClassVar[str] = "api"
    description: str
    reasoning: str
    source: str  # pagespeed | collector | default
    api_status: str  # success | failed | skipped
    web_vitals: WebVitals | None = None
    performance_score: float | None = None


@dataclass(frozen=True)
class ErrorEvidence:
    """Placeholder evidence for a criterion that could not be analyzed."""
    kind: ClassVar[str] = "error"
    description: str
    reasoning: str
    error: str


Evidence = HtmlEvidence | VisionEvidence | ApiEvidence | ErrorEvidence


def evidence_to_dict(evidence: Evidence) -> dict[str, Any]:
    data = asdict(evidence)
    data["kind"] = evidence.kind
    if isinstance(evidence, ApiEvidence) and evidence.web_vitals:
        data["web_vitals"] = evidence.web_vitals.to_dict()
    return data


@dataclass(frozen=True)
class Passes:
    passed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


@dataclass(frozen=True)
class CriterionResult:
    """Score for a single criterion, produced by exactly one scorer."""
    criterion: Criterion
    score: float  # 0-10
    evidence: Evidence
    passes: Passes = field(default_factory=Passes)

    def __post_init__(self):
        if not 0 <= self.score <= 10:
            raise ValueError(f"{self.criterion.value} score out of range: {self.score}")

    @classmethod
    def failed(cls, criterion: Criterion, error: str) -> "CriterionResult":
        """Zero-score placeholder for a criterion whose analysis failed."""
        return cls(
            criterion=criterion,
            score=0.0,
            evidence=ErrorEvidence(
                description=f"Error analyzing {criterion.value}",
                reasoning=f"Failed to complete {criterion.label} analysis due to technical error",
                error=error,
            ),
            passes=Passes(failed=("analysis_failed",)),
        )

    @property
    def analysis_failed(self) -> bool:
        return "analysis_failed" in self.passes.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion.value,
            "score": self.score,
            "evidence": evidence_to_dict(self.evidence),
            "passes": {"passed": list(self.passes.passed), "failed": list(self.passes.failed)},
        }


@dataclass(frozen=True)
class ScoringContext:
    """Immutable snapshot of one site, created once per scoring run."""
    url: str
    html: str
    initial_html: str | None = None
    screenshot_url: str | None = None
    full_page_screenshot_url: str | None = None
    web_vitals: WebVitals | None = None
    screenshot_method: str | None = None
    collection_errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "collection_errors", MappingProxyType(dict(self.collection_errors)))

    @property
    def has_html(self) -> bool:
        return len(self.html or "") > 100 or len(self.initial_html or "") > 100

    @property
    def has_screenshot(self) -> bool:
        return bool(self.screenshot_url or self.full_page_screenshot_url)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero, so 2.25 becomes 2.3 rather than 2.2."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def mean_score(results) -> float:
    """Arithmetic mean of result scores, rounded half up to one decimal."""
    results = list(results)
    if not results:
        return 0.0
    return round_half_up(sum(r.score for r in results) / len(results), 1)


@dataclass(frozen=True)
class TierResult:
    tier: int
    name: str
    results: tuple[CriterionResult, ...]
    duration_ms: int
    partial_score: float
    completed_at: datetime
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "name": self.name,
            "results": [r.to_dict() for r in self.results],
            "duration_ms": self.duration_ms,
            "partial_score": self.partial_score,
            "completed_at": self.completed_at.isoformat(),
            "errors": list(self.errors),
        }


@dataclass
class ProgressiveResults:
    """Cumulative scoring output, available before the run finishes."""
    total_criteria: int
    tiers: list[TierResult] = field(default_factory=list)
    overall_score: float = 0.0
    completed_criteria: int = 0
    is_complete: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def results(self) -> list[CriterionResult]:
        return [r for tier in self.tiers for r in tier.results]

    def snapshot(self) -> "ProgressiveResults":
        return ProgressiveResults(
            total_criteria=self.total_criteria,
            tiers=list(self.tiers),
            overall_score=self.overall_score,
            completed_criteria=self.completed_criteria,
            is_complete=self.is_complete,
            errors=list(self.errors),
        )


@dataclass(frozen=True)
class ProgressState:
    overall_percent: int
    time_elapsed_ms: int
    time_remaining_ms: int
    phase: Phase
    current_entity: str
    current_operation: str
    steps_completed: int
    steps_total: int
    competitors_complete: int
    competitors_total: int
    message: str
    pace: Pace

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["pace"] = self.pace.value
        return data


@dataclass(frozen=True)
class InsightsMetadata:
    model: str
    response_time_ms: int
    attempts: int
    source: str  # ai | fallback
    parse_mode: str = "strict"  # strict | degraded


@dataclass(frozen=True)
class InsightsResponse:
    insight: str
    recommendations: tuple[str, ...]
    confidence: float
    key_pattern: KeyPattern
    fallback: bool = False
    metadata: InsightsMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "insight": self.insight,
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "key_pattern": self.key_pattern.value,
            "fallback": self.fallback,
            "metadata": asdict(self.metadata) if self.metadata else None,
        }


@dataclass
class EffectivenessResult:
    """Complete scoring result for one site."""
    url: str
    overall_score: float = 0.0
    criterion_results: list[CriterionResult] = field(default_factory=list)
    screenshot_url: str | None = None
    full_page_screenshot_url: str | None = None
    web_vitals: WebVitals | None = None
    collection_errors: dict[str, str] = field(default_factory=dict)
    tiers: list[TierResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    insights: InsightsResponse | None = None
    is_complete: bool = False

    @property
    def weakest(self) -> CriterionResult | None:
        if not self.criterion_results:
            return None
        return min(self.criterion_results, key=lambda r: r.score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "overall_score": self.overall_score,
            "criterion_results": [r.to_dict() for r in self.criterion_results],
            "screenshot_url": self.screenshot_url,
            "full_page_screenshot_url": self.full_page_screenshot_url,
            "web_vitals": self.web_vitals.to_dict() if self.web_vitals else None,
            "collection_errors": dict(self.collection_errors),
            "tiers": [
                {"tier": t.tier, "duration_ms": t.duration_ms, "partial_score": t.partial_score}
                for t in self.tiers
            ],
            "errors": list(self.errors),
            "insights": self.insights.to_dict() if self.insights else None,
            "is_complete": self.is_complete,
        }


@dataclass
class CompetitorOutcome:
    url: str
    result: EffectivenessResult | None = None
    error: str | None = None


@dataclass
class RunResult:
    """Outcome of a client run with optional competitors."""
    run_id: str
    status: RunStatus
    client: EffectivenessResult | None = None
    competitors: list[CompetitorOutcome] = field(default_factory=list)
    insights: InsightsResponse | None = None
    progress: ProgressState | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "client": self.client.to_dict() if self.client else None,
            "competitors": [
                {
                    "url": c.url,
                    "result": c.result.to_dict() if c.result else None,
                    "error": c.error,
                }
                for c in self.competitors
            ],
            "insights": self.insights.to_dict() if self.insights else None,
            "progress": self.progress.to_dict() if self.progress else None,
            "error": self.error,
        }
