"""Criterion scorers grouped into execution tiers."""

from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable

from ..config import ScoringConfig
from ..insights.providers import LLMProvider
from ..models import Criterion, CriterionResult, ScoringContext
from .accessibility import score_accessibility
from .brand_story import score_brand_story
from .ctas import score_ctas
from .positioning import score_positioning
from .seo import score_seo
from .speed import PageSpeedClient, score_speed
from .trust import score_trust
from .ux import score_ux

Scorer = Callable[[ScoringContext, ScoringConfig], Awaitable[CriterionResult]]

# Data a scorer needs for a full (non-degraded) analysis
REQUIRES_HTML = "html"
REQUIRES_AI = "ai"
REQUIRES_SCREENSHOT = "screenshot"
REQUIRES_PERFORMANCE_API = "performance_api"

REQUIREMENT_LABELS = {
    REQUIRES_HTML: "HTML",
    REQUIRES_AI: "AI provider",
    REQUIRES_SCREENSHOT: "screenshot",
    REQUIRES_PERFORMANCE_API: "performance API",
}


@dataclass(frozen=True)
class CriterionSpec:
    criterion: Criterion
    scorer: Scorer
    requires: tuple[str, ...] = (REQUIRES_HTML,)


@dataclass(frozen=True)
class TierDefinition:
    tier: int
    name: str
    description: str
    timeout: float  # seconds
    criteria: tuple[CriterionSpec, ...]


def build_tiers(
    llm: LLMProvider | None = None,
    pagespeed: PageSpeedClient | None = None,
) -> list[TierDefinition]:
    """The standard three tiers: HTML heuristics, AI analysis, external APIs."""
    return [
        TierDefinition(
            tier=1,
            name="Fast HTML Analysis",
            description="DOM heuristics on the collected HTML",
            timeout=20.0,
            criteria=(
                CriterionSpec(Criterion.UX, score_ux),
                CriterionSpec(Criterion.TRUST, score_trust),
                CriterionSpec(Criterion.ACCESSIBILITY, score_accessibility),
                CriterionSpec(Criterion.SEO, score_seo),
            ),
        ),
        TierDefinition(
            tier=2,
            name="AI-Powered Analysis",
            description="LLM classification of hero, story and calls to action",
            timeout=30.0,
            criteria=(
                CriterionSpec(Criterion.POSITIONING, partial(score_positioning, llm=llm),
                              (REQUIRES_HTML, REQUIRES_AI)),
                CriterionSpec(Criterion.BRAND_STORY, partial(score_brand_story, llm=llm),
                              (REQUIRES_HTML, REQUIRES_AI, REQUIRES_SCREENSHOT)),
                CriterionSpec(Criterion.CTAS, partial(score_ctas, llm=llm),
                              (REQUIRES_HTML, REQUIRES_AI)),
            ),
        ),
        TierDefinition(
            tier=3,
            name="External API Analysis",
            description="PageSpeed Insights performance data",
            timeout=60.0,
            criteria=(
                CriterionSpec(Criterion.SPEED, partial(score_speed, pagespeed=pagespeed),
                              (REQUIRES_PERFORMANCE_API,)),
            ),
        ),
    ]


__all__ = [
    "CriterionSpec",
    "PageSpeedClient",
    "REQUIREMENT_LABELS",
    "REQUIRES_AI",
    "REQUIRES_HTML",
    "REQUIRES_PERFORMANCE_API",
    "REQUIRES_SCREENSHOT",
    "Scorer",
    "TierDefinition",
    "build_tiers",
]
