"""Brand story: point of view, approach, outcomes, proof and visual support."""

import logging
import re

from ..config import ScoringConfig
from ..insights.providers import LLMProvider
from ..models import Criterion, CriterionResult, ScoringContext, VisionEvidence
from .base import ScoreCard, as_confidence, classify_json, llm_available, page_text, parse_html

logger = logging.getLogger(__name__)


# signal -> (points check, failed check)
SIGNALS = {
    "pov_present": "no_clear_pov",
    "mechanism_described": "no_clear_approach",
    "outcomes_stated": "no_outcomes_stated",
    "proof_elements": "no_proof_elements",
    "visual_supports_story": "visual_story_weak",
}

POV_RE = re.compile(r"\b(?:we believe|our mission|we think|why we|our philosophy|our vision|manifesto)\b", re.I)
MECHANISM_RE = re.compile(r"\b(?:how it works|our approach|our process|step \d|methodology|framework)\b", re.I)
OUTCOME_RE = re.compile(r"\d+\s*%|\$\s?\d|\b\d+x\b|\b(?:results|roi|revenue|growth)\b", re.I)
PROOF_SELECTORS = '[class*="testimonial"], [class*="case"], [class*="review"], blockquote, [class*="logo"]'

SYSTEM_PROMPT = (
    "You evaluate how well a website tells its brand story. "
    "Return only a JSON object."
)

USER_TEMPLATE = """Evaluate the brand story of this website{screenshot_hint}.

Page text (truncated):
{text}

Answer with JSON:
{{
  "pov_present": true/false,
  "mechanism_described": true/false,
  "outcomes_stated": true/false,
  "proof_elements": true/false,
  "visual_supports_story": true/false,
  "evidence": {{"pov": "quote or null", "mechanism": "quote or null", "outcomes": "quote or null"}},
  "confidence": 0.0-1.0
}}"""


def heuristic_signals(context: ScoringContext) -> dict[str, bool]:
    soup = parse_html(context.html or context.initial_html)
    text = page_text(soup)
    media = soup.select("main img, section img, video, picture, svg")
    return {
        "pov_present": bool(POV_RE.search(text)),
        "mechanism_described": bool(MECHANISM_RE.search(text)),
        "outcomes_stated": bool(OUTCOME_RE.search(text)),
        "proof_elements": bool(soup.select(PROOF_SELECTORS)),
        "visual_supports_story": len(media) >= 3,
    }


async def score_brand_story(
    context: ScoringContext,
    config: ScoringConfig,
    llm: LLMProvider | None = None,
) -> CriterionResult:
    card = ScoreCard(Criterion.BRAND_STORY)
    screenshot = context.screenshot_url or context.full_page_screenshot_url
    signals = None
    findings: dict[str, str | None] = {}
    used_ai, used_screenshot, model, confidence, ai_error = False, False, None, None, None

    if llm_available(llm):
        text = page_text(parse_html(context.html or context.initial_html))[:3000]
        try:
            analysis, response = await classify_json(
                llm,
                SYSTEM_PROMPT,
                USER_TEMPLATE.format(
                    text=text,
                    screenshot_hint=" using the attached screenshot and page text" if screenshot else "",
                ),
                config,
                max_tokens=400,
                image_url=screenshot,
            )
            signals = {name: bool(analysis.get(name)) for name in SIGNALS}
            evidence = analysis.get("evidence")
            if isinstance(evidence, dict):
                findings = {k: v for k, v in evidence.items() if isinstance(v, str) or v is None}
            used_ai, used_screenshot, model = True, bool(screenshot), response.model
            confidence = as_confidence(analysis.get("confidence"))
        except Exception as e:
            logger.warning("Brand story AI analysis failed for %s, using heuristics: %s", context.url, e)
            ai_error = str(e)

    if signals is None:
        signals = heuristic_signals(context)

    for name, failed_check in SIGNALS.items():
        if signals[name]:
            card.award(2.0, name)
        else:
            card.fail(failed_check)

    logger.info("Brand story analysis for %s: score %.1f (ai: %s, screenshot: %s)",
                context.url, card.score, used_ai, used_screenshot)

    return card.result(VisionEvidence(
        description=f"Brand story: {len(card.passed)} of {len(SIGNALS)} story elements present",
        reasoning=(
            "Evaluated point of view, approach, outcomes, proof and visuals "
            f"{'by AI' if used_ai else 'with text heuristics'}"
        ),
        findings=findings,
        used_ai=used_ai,
        used_screenshot=used_screenshot,
        model=model,
        confidence=confidence,
        ai_error=ai_error,
    ))
