"""Calls to action: presence above the fold, hierarchy, secondary paths and copy."""

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup

from ..config import ScoringConfig
from ..insights.providers import LLMProvider
from ..models import Criterion, CriterionResult, ScoringContext, VisionEvidence
from .base import ScoreCard, as_confidence, classify_json, llm_available, parse_html
from .positioning import extract_hero

logger = logging.getLogger(__name__)


ACTION_WORDS = ("get", "start", "try", "buy", "sign", "join", "book", "request", "contact", "demo")
PRIMARY_PHRASES = ("get started", "start free", "try now", "buy now", "sign up", "book a demo", "request a demo")
SECONDARY_PHRASES = ("learn more", "see how", "watch demo", "contact", "read more")
ABOVE_FOLD_CONTAINERS = 'header, .hero, [class*="hero"], [class*="banner"]'
ABOVE_FOLD_POSITIONS = 3

SYSTEM_PROMPT = "You evaluate calls to action on websites. Return only a JSON object."

USER_TEMPLATE = """Headline: {headline}
Call-to-action labels, in page order: {labels}

Answer with JSON:
{{
  "message_match": true/false,
  "strong_copy": true/false,
  "reasoning": "one sentence",
  "confidence": 0.0-1.0
}}

message_match is true when the first call to action follows from the headline.
strong_copy is true when labels name a specific action or benefit rather than "Submit" or "Click here"."""


@dataclass
class CallToAction:
    text: str
    tag: str
    href: str | None
    classes: str
    above_fold: bool

    @property
    def is_primary(self) -> bool:
        lowered = self.text.lower()
        return (
            "primary" in self.classes
            or "main" in self.classes
            or self.tag == "button"
            or any(p in lowered for p in PRIMARY_PHRASES)
        )

    @property
    def is_secondary(self) -> bool:
        lowered = self.text.lower()
        return "secondary" in self.classes or any(p in lowered for p in SECONDARY_PHRASES)


def find_ctas(soup: BeautifulSoup) -> list[CallToAction]:
    """Unique calls to action in document order."""
    candidates = soup.select(
        'a, button, input[type="submit"], .cta, .call-to-action, .btn-primary, [class*="cta"]'
    )
    found: dict[str, CallToAction] = {}
    for el in candidates:
        text = el.get("value", "") if el.name == "input" else el.get_text(" ", strip=True)
        if not text or len(text) >= 100 or text in found:
            continue
        classes = " ".join(el.get("class", [])).lower()
        lowered = text.lower()
        if not ("cta" in classes or "btn" in classes or el.name in ("button", "input")
                or any(lowered.startswith(w) or f" {w}" in lowered for w in ACTION_WORDS)):
            continue
        if el.find_parent(["nav", "footer"]) and "cta" not in classes:
            continue
        found[text] = CallToAction(
            text=text,
            tag=el.name,
            href=el.get("href"),
            classes=classes,
            above_fold=el.css.closest(ABOVE_FOLD_CONTAINERS) is not None,
        )

    ctas = list(found.values())
    for index, cta in enumerate(ctas):
        if index < ABOVE_FOLD_POSITIONS:
            cta.above_fold = True
    return ctas


async def score_ctas(
    context: ScoringContext,
    config: ScoringConfig,
    llm: LLMProvider | None = None,
) -> CriterionResult:
    soup = parse_html(context.html or context.initial_html)
    card = ScoreCard(Criterion.CTAS)

    ctas = find_ctas(soup)
    above_fold = [c for c in ctas if c.above_fold]
    primary = [c for c in ctas if c.is_primary]
    secondary = [c for c in ctas if c.is_secondary]
    form_ctas = soup.select('form button, form input[type="submit"]')
    forms = soup.find_all("form")

    first = ctas[0] if ctas else None
    message_match = bool(
        first and first.href and not first.href.startswith(("#", "mailto:")) and 5 <= len(first.text) <= 50
    )
    strong_copy = None
    used_ai, model, confidence, ai_reasoning, ai_error = False, None, None, None, None

    if ctas and llm_available(llm):
        hero = extract_hero(soup)
        try:
            analysis, response = await classify_json(
                llm,
                SYSTEM_PROMPT,
                USER_TEMPLATE.format(
                    headline=hero["h1"] or hero["subheading"],
                    labels=", ".join(c.text for c in ctas[:10]),
                ),
                config,
                max_tokens=200,
            )
            message_match = bool(analysis.get("message_match"))
            strong_copy = bool(analysis.get("strong_copy"))
            ai_reasoning = analysis.get("reasoning") if isinstance(analysis.get("reasoning"), str) else None
            used_ai, model = True, response.model
            confidence = as_confidence(analysis.get("confidence"))
        except Exception as e:
            logger.warning("CTA AI analysis failed for %s, using heuristics: %s", context.url, e)
            ai_error = str(e)

    card.tiered([
        (len(above_fold) >= 2, 3.0, "multiple_above_fold_ctas"),
        (len(above_fold) >= 1, 2.0, "above_fold_cta_present"),
    ], "no_above_fold_cta")

    card.tiered([
        (1 <= len(primary) <= 3, 2.5, "clear_cta_hierarchy"),
        (len(primary) >= 1, 1.5, "primary_cta_present"),
    ], "no_clear_hierarchy")

    card.tiered([(bool(secondary), 2.0, "secondary_paths_available")], "no_secondary_paths")

    card.tiered([
        (message_match, 1.5, "message_match_verified"),
        (bool(ctas), 0.75, "ctas_present"),
    ], "no_message_match")

    card.tiered([
        (bool(form_ctas), 1.0, "form_ctas_present"),
        (bool(forms), 0.5, "forms_present"),
    ], "no_form_integration")

    if strong_copy is False:
        card.fail("weak_cta_copy")

    logger.info("CTA analysis for %s: score %.1f, %d CTAs (%d above fold)",
                context.url, card.score, len(ctas), len(above_fold))

    return card.result(VisionEvidence(
        description=(
            f"CTA analysis: {len(ctas)} total CTAs, {len(above_fold)} above-fold, "
            f"{len(primary)} primary, {len(secondary)} secondary"
        ),
        reasoning=ai_reasoning or (
            f"Above-fold presence ({len(above_fold)} CTAs), hierarchy "
            f"({'clear' if 1 <= len(primary) <= 3 else 'unclear'}), secondary paths "
            f"({'available' if secondary else 'missing'}), forms ({'present' if form_ctas else 'absent'})"
        ),
        findings={
            "primary": ", ".join(c.text for c in primary[:3]) or None,
            "secondary": ", ".join(c.text for c in secondary[:3]) or None,
        },
        used_ai=used_ai,
        model=model,
        confidence=confidence,
        ai_error=ai_error,
    ))
