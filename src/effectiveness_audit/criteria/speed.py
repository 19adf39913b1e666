"""Page speed from PageSpeed Insights, with Core Web Vitals penalties."""

import logging
import time

import httpx

from ..config import ScoringConfig
from ..errors import EffectivenessError
from ..models import ApiEvidence, Criterion, CriterionResult, ScoringContext, WebVitals
from .base import ScoreCard

logger = logging.getLogger(__name__)


PAGESPEED_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
DEFAULT_WEB_VITALS = WebVitals(lcp=4.0, cls=0.15, fid=100.0)
DEFAULT_PERFORMANCE_SCORE = 50.0
GOOD_LCP = 2.5
GOOD_CLS = 0.1


class PageSpeedError(EffectivenessError):
    """PageSpeed Insights returned an error or an unusable payload."""


class PageSpeedClient:
    """Minimal async client for the PageSpeed Insights v5 API."""

    def __init__(
        self,
        api_key: str | None = None,
        strategy: str = "desktop",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.strategy = strategy
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, url: str) -> tuple[WebVitals, float]:
        """Return web vitals and the 0-100 performance score for a URL."""
        params = {"url": url, "strategy": self.strategy, "category": "performance"}
        if self.api_key:
            params["key"] = self.api_key

        start = time.time()
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(PAGESPEED_URL, params=params)
        if resp.status_code != 200:
            raise PageSpeedError(f"PageSpeed API returned {resp.status_code}")

        try:
            lighthouse = resp.json()["lighthouseResult"]
            audits = lighthouse["audits"]
            performance = float(lighthouse["categories"]["performance"]["score"]) * 100
            vitals = WebVitals(
                lcp=audits["largest-contentful-paint"]["numericValue"] / 1000,
                cls=float(audits["cumulative-layout-shift"]["numericValue"]),
                fid=float(
                    (audits.get("max-potential-fid") or audits.get("first-input-delay") or {}).get("numericValue", 0)
                ),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PageSpeedError(f"Unexpected PageSpeed payload: {e}")

        logger.info("PageSpeed for %s: performance %.0f in %dms", url, performance, int((time.time() - start) * 1000))
        return vitals, performance


def estimate_performance_score(vitals: WebVitals) -> float:
    """Approximate a performance score from web vitals alone."""
    score = 100.0
    if vitals.lcp > 4.0:
        score -= 30
    elif vitals.lcp > GOOD_LCP:
        score -= 15
    if vitals.cls > 0.25:
        score -= 25
    elif vitals.cls > GOOD_CLS:
        score -= 10
    if vitals.fid > 300:
        score -= 20
    elif vitals.fid > 100:
        score -= 5
    return max(0.0, min(100.0, score))


def _label(value: float, good: float, poor: float) -> str:
    if value <= good:
        return "good"
    return "needs improvement" if value <= poor else "poor"


async def score_speed(
    context: ScoringContext,
    config: ScoringConfig,
    pagespeed: PageSpeedClient | None = None,
) -> CriterionResult:
    card = ScoreCard(Criterion.SPEED)
    thresholds = config.thresholds

    vitals, performance = None, None
    api_status = "skipped"
    if pagespeed is not None:
        try:
            vitals, performance = await pagespeed.fetch(context.url)
            api_status = "success"
        except Exception as e:
            logger.warning("PageSpeed failed for %s, falling back: %s", context.url, e)
            api_status = "failed"

    if vitals is not None:
        source = "pagespeed"
    elif context.web_vitals is not None:
        source = "collector"
        vitals = context.web_vitals
        performance = estimate_performance_score(vitals)
    else:
        source = "default"
        vitals = DEFAULT_WEB_VITALS
        performance = DEFAULT_PERFORMANCE_SCORE

    score = performance / 10

    if vitals.lcp <= GOOD_LCP:
        card.passed.append("lcp_good")
    elif vitals.lcp <= thresholds.lcp_limit:
        card.passed.append("lcp_acceptable")
        score *= 0.8
    else:
        card.fail("lcp_poor")
        score *= 0.5

    if vitals.cls <= GOOD_CLS:
        card.passed.append("cls_good")
    elif vitals.cls <= thresholds.cls_limit:
        card.passed.append("cls_acceptable")
        score *= 0.9
    else:
        card.fail("cls_poor")
        score *= 0.7

    if vitals.fid <= 100:
        card.passed.append("fid_good")
    elif vitals.fid <= 300:
        card.passed.append("fid_acceptable")
        score *= 0.95
    else:
        card.fail("fid_poor")
        score *= 0.8

    logger.info("Speed analysis for %s: score %.1f (source %s, api %s)", context.url, score, source, api_status)

    return card.result(ApiEvidence(
        description=f"Speed analysis based on a performance score of {performance:.0f}% and Core Web Vitals",
        reasoning=(
            f"LCP {vitals.lcp:.2f}s ({_label(vitals.lcp, GOOD_LCP, 4.0)}), "
            f"CLS {vitals.cls:.3f} ({_label(vitals.cls, GOOD_CLS, 0.25)}), "
            f"FID {vitals.fid:.0f}ms ({_label(vitals.fid, 100, 300)}) from {source} data"
        ),
        source=source,
        api_status=api_status,
        web_vitals=vitals,
        performance_score=performance,
    ), score=score)
