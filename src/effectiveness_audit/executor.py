"""Tiered criterion execution with progressive results."""

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from .circuit import CircuitBreaker
from .config import ScoringConfig
from .criteria import (
    REQUIREMENT_LABELS,
    REQUIRES_AI,
    REQUIRES_HTML,
    REQUIRES_PERFORMANCE_API,
    REQUIRES_SCREENSHOT,
    CriterionSpec,
    PageSpeedClient,
    TierDefinition,
    build_tiers,
)
from .errors import TierExecutionError
from .insights.providers import LLMProvider
from .models import (
    ApiEvidence,
    CriterionResult,
    ProgressiveResults,
    ScoringContext,
    TierResult,
    VisionEvidence,
    mean_score,
)

logger = logging.getLogger(__name__)

TierCallback = Callable[[TierResult, ProgressiveResults], Any]


class TieredCriterionExecutor:
    """Runs tiers in order, and the criteria inside a tier concurrently.

    A criterion that raises, times out or has an open circuit is replaced by
    a zero-score placeholder, so every criterion produces exactly one result.
    """

    def __init__(
        self,
        tiers: list[TierDefinition] | None = None,
        *,
        llm: LLMProvider | None = None,
        pagespeed: PageSpeedClient | None = None,
        criterion_timeout_floor: float = 10.0,
        breaker: CircuitBreaker | None = None,
    ):
        self.llm = llm
        self.pagespeed = pagespeed
        self.tiers = tiers if tiers is not None else build_tiers(llm=llm, pagespeed=pagespeed)
        self.criterion_timeout_floor = criterion_timeout_floor
        self.breaker = breaker if breaker is not None else CircuitBreaker()

    @property
    def total_criteria(self) -> int:
        return sum(len(t.criteria) for t in self.tiers)

    async def execute_all_tiers(
        self,
        context: ScoringContext,
        config: ScoringConfig,
        on_tier_complete: TierCallback | None = None,
    ) -> ProgressiveResults:
        progressive = ProgressiveResults(total_criteria=self.total_criteria)
        logger.info("Starting tiered execution for %s: %d tiers, %d criteria",
                    getattr(context, "url", None), len(self.tiers), progressive.total_criteria)

        for tier in self.tiers:
            tier_result = await self.execute_tier(tier, context, config)
            progressive.tiers.append(tier_result)
            progressive.completed_criteria += len(tier_result.results)
            progressive.errors.extend(tier_result.errors)
            progressive.overall_score = mean_score(progressive.results)

            logger.info("Tier %d (%s) completed in %dms: partial %.1f, overall %.1f (%d/%d)",
                        tier.tier, tier.name, tier_result.duration_ms, tier_result.partial_score,
                        progressive.overall_score, progressive.completed_criteria, progressive.total_criteria)

            if on_tier_complete is not None:
                await self._notify(on_tier_complete, tier_result, progressive.snapshot())

        progressive.is_complete = True
        logger.info("All tiers completed for %s: overall %.1f, %d note(s)",
                    context.url, progressive.overall_score, len(progressive.errors))
        return progressive

    async def execute_tier(self, tier: TierDefinition, context: ScoringContext, config: ScoringConfig) -> TierResult:
        if not isinstance(context, ScoringContext) or not context.url:
            raise TierExecutionError(tier.tier, "malformed scoring context")
        if not isinstance(config, ScoringConfig):
            raise TierExecutionError(tier.tier, "missing scoring configuration")

        start = time.monotonic()
        errors = [note for spec in tier.criteria for note in self._degraded_notes(spec, context)]
        timeout = max(self.criterion_timeout_floor, tier.timeout / max(len(tier.criteria), 1))
        logger.info("Starting tier %d (%s): %d criteria, %.0fs per criterion",
                    tier.tier, tier.name, len(tier.criteria), timeout)

        outcomes = await asyncio.gather(*(self._run_criterion(spec, context, config, timeout) for spec in tier.criteria))
        results = []
        for result, error in outcomes:
            results.append(result)
            if error:
                errors.append(error)
            else:
                errors.extend(self._runtime_notes(result))

        return TierResult(
            tier=tier.tier,
            name=tier.name,
            results=tuple(results),
            duration_ms=int((time.monotonic() - start) * 1000),
            partial_score=mean_score(results),
            completed_at=datetime.now(timezone.utc),
            errors=tuple(errors),
        )

    async def _run_criterion(
        self,
        spec: CriterionSpec,
        context: ScoringContext,
        config: ScoringConfig,
        timeout: float,
    ) -> tuple[CriterionResult, str | None]:
        name = spec.criterion.value
        try:
            result = await self.breaker.call(
                f"criterion_{name}",
                lambda: asyncio.wait_for(spec.scorer(context, config), timeout=timeout),
            )
        except asyncio.TimeoutError:
            error = f"{name}: timed out after {timeout:.0f}s"
            logger.warning("Criterion %s timed out for %s", name, context.url)
            return CriterionResult.failed(spec.criterion, error), error
        except Exception as e:
            error = f"{name}: {e}"
            logger.warning("Criterion %s failed for %s: %s", name, context.url, e)
            return CriterionResult.failed(spec.criterion, str(e)), error

        if not isinstance(result, CriterionResult) or result.criterion is not spec.criterion:
            error = f"{name}: scorer returned an invalid result"
            logger.warning("Criterion %s returned an invalid result for %s", name, context.url)
            return CriterionResult.failed(spec.criterion, error), error
        return result, None

    def _degraded_notes(self, spec: CriterionSpec, context: ScoringContext) -> list[str]:
        available = {
            REQUIRES_HTML: context.has_html,
            REQUIRES_SCREENSHOT: context.has_screenshot,
            REQUIRES_AI: self.llm is not None and self.llm.is_configured(),
            REQUIRES_PERFORMANCE_API: self.pagespeed is not None,
        }
        return [
            f"{spec.criterion.value}: {REQUIREMENT_LABELS.get(req, req)} unavailable, degraded analysis"
            for req in spec.requires
            if not available.get(req, True)
        ]

    def _runtime_notes(self, result: CriterionResult) -> list[str]:
        evidence = result.evidence
        name = result.criterion.value
        if isinstance(evidence, VisionEvidence) and evidence.ai_error:
            return [f"{name}: AI analysis failed, degraded analysis"]
        if isinstance(evidence, ApiEvidence) and evidence.api_status == "failed":
            return [f"{name}: performance API failed, degraded analysis using {evidence.source} data"]
        return []

    async def _notify(self, callback: TierCallback, tier_result: TierResult, snapshot: ProgressiveResults) -> None:
        try:
            outcome = callback(tier_result, snapshot)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Tier %d callback failed: %s", tier_result.tier, e)
