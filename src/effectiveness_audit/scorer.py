"""Scoring orchestrator: collection, tiered scoring, insights and run state."""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Sequence

from .collector import DataCollector
from .config import ConfigProvider
from .events import Broadcaster, run_channel, safe_publish
from .executor import TieredCriterionExecutor
from .insights.client import AIInsightsClient
from .insights.prompts import PromptData
from .models import (
    ApiEvidence,
    CompetitorOutcome,
    Criterion,
    CriterionResult,
    EffectivenessResult,
    InsightsResponse,
    ProgressiveResults,
    RunResult,
    RunStatus,
    TierResult,
    WebVitals,
)
from .progress import COMPLETE_MESSAGE, INSIGHTS_STEP, ProgressTracker, entity_for_competitor
from .storage import RunStore

logger = logging.getLogger(__name__)

CLIENT = "client"
FAILURE_MESSAGE_LIMIT = 200

STATUS_MESSAGES = {
    RunStatus.STARTED: "Starting analysis",
    RunStatus.COLLECTING_DATA: "Collecting page data",
    RunStatus.EXECUTING_TIERS: "Scoring criteria",
    RunStatus.GENERATING_INSIGHTS: "Generating personalized insights",
    RunStatus.COMPLETED: COMPLETE_MESSAGE,
}

PartialCallback = Callable[[ProgressiveResults], Any]


def select_web_vitals(results: Sequence[CriterionResult], collected: WebVitals | None) -> WebVitals | None:
    """Prefer measured PageSpeed vitals over whatever the collector captured."""
    for result in results:
        evidence = result.evidence
        if (
            result.criterion is Criterion.SPEED
            and isinstance(evidence, ApiEvidence)
            and evidence.source == "pagespeed"
            and evidence.api_status == "success"
            and evidence.web_vitals is not None
        ):
            return evidence.web_vitals
    return collected


class EnhancedScorer:
    """Scores websites and drives the run state machine.

    Status transitions (started, collecting_data, executing_tiers,
    generating_insights, completed or failed) are persisted for the client
    entity only. Competitor scoring reports progress but never changes the
    run status.
    """

    def __init__(
        self,
        collector: DataCollector,
        config_provider: ConfigProvider | None = None,
        executor: TieredCriterionExecutor | None = None,
        insights_client: AIInsightsClient | None = None,
        store: RunStore | None = None,
        events: Broadcaster | None = None,
        persist_retries: int = 3,
        persist_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.collector = collector
        self.config_provider = config_provider or ConfigProvider()
        self.executor = executor or TieredCriterionExecutor()
        self.insights_client = insights_client
        self.store = store
        self.events = events
        self.persist_retries = persist_retries
        self.persist_delay = persist_delay
        self._sleep = sleep

    async def score_website(
        self,
        url: str,
        run_id: str | None = None,
        tracker: ProgressTracker | None = None,
        entity: str = CLIENT,
        on_partial: PartialCallback | None = None,
        include_insights: bool = True,
        finalize: bool = True,
        client_name: str | None = None,
        industry_type: str | None = None,
    ) -> EffectivenessResult:
        """Score one site. Unrecoverable errors mark the run failed and re-raise."""
        manage_status = entity == CLIENT
        try:
            config = await self.config_provider.get_config()
            if manage_status:
                await self._set_status(run_id, RunStatus.STARTED, tracker)
                await self._set_status(run_id, RunStatus.COLLECTING_DATA, tracker)

            collected = await self.collector.collect_all_data(url, config)
            if tracker is not None:
                tracker.complete_data_collection(entity)
            context = collected.to_context()

            if manage_status:
                await self._set_status(run_id, RunStatus.EXECUTING_TIERS, tracker)

            async def tier_complete(tier_result: TierResult, snapshot: ProgressiveResults) -> None:
                await self._on_tier_complete(run_id, tracker, entity, on_partial, tier_result, snapshot)

            progressive = await self.executor.execute_all_tiers(context, config, on_tier_complete=tier_complete)
            results = progressive.results

            result = EffectivenessResult(
                url=context.url,
                overall_score=progressive.overall_score,
                criterion_results=results,
                screenshot_url=collected.screenshot_url,
                full_page_screenshot_url=collected.full_page_screenshot_url,
                web_vitals=select_web_vitals(results, collected.web_vitals),
                collection_errors=dict(collected.errors),
                tiers=list(progressive.tiers),
                errors=list(progressive.errors),
                is_complete=progressive.is_complete,
            )

            if include_insights and self.insights_client is not None:
                if manage_status:
                    await self._set_status(run_id, RunStatus.GENERATING_INSIGHTS, tracker)
                if tracker is not None:
                    tracker.start_insights()
                result.insights = await self.generate_insights(result, client_name, industry_type)
                if tracker is not None:
                    tracker.mark_step_complete(INSIGHTS_STEP)

            if manage_status and finalize:
                await self._set_status(run_id, RunStatus.COMPLETED, tracker)
                self._publish(run_id, {"type": "completed", "run_id": run_id, "overall_score": result.overall_score})

            logger.info("Scored %s (%s): %.1f", url, entity, result.overall_score)
            return result

        except Exception as e:
            message = f"Scoring failed: {e}"[:FAILURE_MESSAGE_LIMIT]
            logger.error("Scoring %s (%s) failed: %s", url, entity, e)
            if manage_status:
                await self._set_status(run_id, RunStatus.FAILED, tracker, message)
                self._publish(run_id, {"type": "failed", "run_id": run_id, "entity": entity, "error": message})
            raise

    async def run_analysis(
        self,
        client_url: str,
        competitor_urls: Sequence[str] = (),
        run_id: str | None = None,
        client_name: str | None = None,
        industry_type: str | None = None,
    ) -> RunResult:
        """Score a client site and its competitors, then generate insights."""
        run_id = run_id or uuid.uuid4().hex
        tracker = ProgressTracker(run_id, broadcaster=self.events)
        tracker.set_total_steps(1, len(competitor_urls))
        tracker.start_client(client_name or client_url)

        client = await self.score_website(
            client_url,
            run_id=run_id,
            tracker=tracker,
            include_insights=False,
            finalize=False,
        )

        competitors = []
        for index, url in enumerate(competitor_urls):
            entity = entity_for_competitor(index)
            tracker.set_competitor_name(index, url)
            tracker.start_competitor(url, index)
            try:
                scored = await self.score_website(url, run_id=run_id, tracker=tracker, entity=entity,
                                                  include_insights=False)
                competitors.append(CompetitorOutcome(url=url, result=scored))
            except Exception as e:
                logger.warning("Competitor %s failed, continuing run %s: %s", url, run_id, e)
                tracker.skip_entity(entity)
                competitors.append(CompetitorOutcome(url=url, error=str(e)))

        try:
            await self._set_status(run_id, RunStatus.GENERATING_INSIGHTS, tracker)
            tracker.start_insights()
            if self.insights_client is not None:
                client.insights = await self.generate_insights(client, client_name, industry_type)
            tracker.mark_step_complete(INSIGHTS_STEP)

            tracker.complete()
            await self._set_status(run_id, RunStatus.COMPLETED, tracker)
        except Exception as e:
            message = f"Scoring failed: {e}"[:FAILURE_MESSAGE_LIMIT]
            logger.error("Run %s failed: %s", run_id, e)
            await self._set_status(run_id, RunStatus.FAILED, tracker, message)
            self._publish(run_id, {"type": "failed", "run_id": run_id, "entity": CLIENT, "error": message})
            raise

        self._publish(run_id, {"type": "completed", "run_id": run_id, "overall_score": client.overall_score})
        return RunResult(
            run_id=run_id,
            status=RunStatus.COMPLETED,
            client=client,
            competitors=competitors,
            insights=client.insights,
            progress=tracker.get_state(),
        )

    async def generate_insights(
        self,
        result: EffectivenessResult,
        client_name: str | None = None,
        industry_type: str | None = None,
    ) -> InsightsResponse | None:
        if self.insights_client is None:
            return None
        data = PromptData(
            website_url=result.url,
            overall_score=result.overall_score,
            criterion_scores=list(result.criterion_results),
            client_name=client_name,
            industry_type=industry_type,
        )
        try:
            return await self.insights_client.generate_insights(data)
        except Exception as e:
            logger.error("Insights generation failed for %s: %s", result.url, e)
            return None

    async def _on_tier_complete(
        self,
        run_id: str | None,
        tracker: ProgressTracker | None,
        entity: str,
        on_partial: PartialCallback | None,
        tier_result: TierResult,
        snapshot: ProgressiveResults,
    ) -> None:
        self._publish(run_id, {
            "type": "tier_complete",
            "run_id": run_id,
            "entity": entity,
            "tier": tier_result.tier,
            "tier_name": tier_result.name,
            "partial_score": tier_result.partial_score,
            "overall_score": snapshot.overall_score,
            "completed_criteria": snapshot.completed_criteria,
            "total_criteria": snapshot.total_criteria,
            "results": [r.to_dict() for r in tier_result.results],
        })

        if on_partial is not None:
            try:
                outcome = on_partial(snapshot)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning("Partial result callback failed for tier %d: %s", tier_result.tier, e)

        if tracker is not None:
            for result in tier_result.results:
                tracker.complete_criterion(result.criterion, entity)

        if run_id and self.store is not None and entity == CLIENT:
            for result in tier_result.results:
                await self._persist_result(run_id, result, tier_result.tier)

    async def _persist_result(self, run_id: str, result: CriterionResult, tier: int) -> bool:
        for attempt in range(1, self.persist_retries + 1):
            try:
                await self.store.append_criterion_result(run_id, result, tier)
                return True
            except Exception as e:
                logger.warning("Saving %s for run %s failed (attempt %d/%d): %s",
                               result.criterion.value, run_id, attempt, self.persist_retries, e)
                if attempt < self.persist_retries:
                    await self._sleep(self.persist_delay * 2 ** (attempt - 1))
        logger.error("Giving up on saving %s for run %s", result.criterion.value, run_id)
        return False

    async def _set_status(
        self,
        run_id: str | None,
        status: RunStatus,
        tracker: ProgressTracker | None,
        message: str | None = None,
    ) -> None:
        if not run_id or self.store is None:
            return
        if message is None:
            message = tracker.progress_text if tracker is not None else STATUS_MESSAGES[status]
        try:
            await self.store.update_run_status(run_id, status, message)
        except Exception as e:
            logger.warning("Could not update run %s to %s: %s", run_id, status.value, e)
        else:
            logger.info("Run %s: %s", run_id, status.value)

    def _publish(self, run_id: str | None, payload: dict) -> None:
        if run_id:
            safe_publish(self.events, run_channel(run_id), payload)
