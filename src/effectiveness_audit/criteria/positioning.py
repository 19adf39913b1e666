"""Positioning: does the hero say who it is for, what it does and what it delivers."""

import logging
import re

from bs4 import BeautifulSoup

from ..config import ScoringConfig
from ..insights.providers import LLMProvider
from ..models import Criterion, CriterionResult, ScoringContext, VisionEvidence
from .base import ScoreCard, as_confidence, classify_json, llm_available, parse_html, word_count

logger = logging.getLogger(__name__)


HERO_SELECTORS = (
    ".hero", "#hero", '[class*="hero"]',
    ".banner", "#banner", '[class*="banner"]',
    ".jumbotron", ".masthead", "header section", "main > section",
)
SKIP_HEADINGS = re.compile(
    r"^(menu|navigation|footer|contact|copyright|resources|company|products?|solutions?|cookie|privacy)$",
    re.IGNORECASE,
)
AUDIENCE_RE = re.compile(
    r"\bfor (?:\w+ )?(?:teams|businesses|companies|brands|developers|marketers|founders|"
    r"agencies|enterprises|startups|retailers|creators|professionals|leaders|organizations)\b",
    re.IGNORECASE,
)
OUTCOME_RE = re.compile(
    r"\d+\s*%|\b\d+x\b|\b(?:increase|grow|boost|save|reduce|cut|faster|more revenue|higher|double)\w*\b",
    re.IGNORECASE,
)

CHECKS = ("audience_named", "outcome_present", "capability_clear", "brevity_check")

SYSTEM_PROMPT = (
    "You evaluate website hero sections for positioning clarity. "
    "Return only a JSON object."
)

USER_TEMPLATE = """Evaluate this website hero content.

H1: {h1}
Subheading: {subheading}
First paragraph: {paragraph}
Full hero content: {content}

Answer with JSON:
{{
  "audience_named": true/false,
  "audience_evidence": "quote or null",
  "outcome_present": true/false,
  "outcome_evidence": "quote or null",
  "capability_clear": true/false,
  "capability_evidence": "quote or null",
  "brevity_check": true/false,
  "brevity_evidence": "quote or null",
  "confidence": 0.0-1.0
}}

brevity_check is true when the headline is at most {hero_words} words."""


def extract_hero(soup: BeautifulSoup) -> dict[str, str]:
    """Pull the headline, subheading and lead paragraph from the top of the page."""
    h1_tag = soup.find("h1")
    h1 = h1_tag.get_text(" ", strip=True) if h1_tag else ""
    hero = None
    for selector in HERO_SELECTORS:
        hero = soup.select_one(selector)
        if hero is not None:
            break

    subheading, paragraph, extra = "", "", []
    if hero is not None:
        sub = hero.find(["h2", "h3"])
        subheading = sub.get_text(" ", strip=True) if sub else ""
        para = hero.find("p")
        paragraph = para.get_text(" ", strip=True) if para else ""
        for el in hero.select("h2, h3, .tagline, .value-prop")[:3]:
            text = el.get_text(" ", strip=True)
            if len(text) > 10:
                extra.append(text)
    else:
        for heading in soup.find_all(["h2", "h3"])[:5]:
            text = heading.get_text(" ", strip=True)
            if len(text) > 10 and not SKIP_HEADINGS.match(text):
                subheading = text
                following = heading.find_next("p")
                paragraph = following.get_text(" ", strip=True) if following else ""
                break
        if not paragraph:
            first_p = soup.find("p")
            paragraph = first_p.get_text(" ", strip=True) if first_p else ""

    for el in soup.select('.tagline, .value-prop, .headline, .slogan, [class*="tagline"]')[:2]:
        text = el.get_text(" ", strip=True)
        if len(text) > 10:
            extra.append(text)

    parts = list(dict.fromkeys(p for p in [h1, subheading, paragraph, *extra] if p))
    return {
        "h1": h1,
        "subheading": subheading,
        "paragraph": paragraph,
        "content": " ".join(parts)[:1500],
    }


def heuristic_checks(hero: dict[str, str], config: ScoringConfig) -> dict[str, bool]:
    content = hero["content"]
    headline = hero["h1"] or hero["subheading"]
    return {
        "audience_named": bool(AUDIENCE_RE.search(content)),
        "outcome_present": bool(OUTCOME_RE.search(content)),
        "capability_clear": word_count(headline) >= 3 and bool(hero["subheading"] or hero["paragraph"]),
        "brevity_check": 0 < word_count(headline) <= config.thresholds.hero_words,
    }


async def score_positioning(
    context: ScoringContext,
    config: ScoringConfig,
    llm: LLMProvider | None = None,
) -> CriterionResult:
    soup = parse_html(context.html or context.initial_html)
    hero = extract_hero(soup)
    card = ScoreCard(Criterion.POSITIONING)

    if not hero["content"]:
        for check in CHECKS:
            card.fail(check)
        return card.result(VisionEvidence(
            description="No hero content found",
            reasoning="Unable to evaluate positioning without hero content",
        ))

    findings: dict[str, str | None] = {}
    used_ai, model, confidence, ai_error = False, None, None, None
    checks = None
    if llm_available(llm):
        try:
            analysis, response = await classify_json(
                llm,
                SYSTEM_PROMPT,
                USER_TEMPLATE.format(
                    h1=hero["h1"],
                    subheading=hero["subheading"],
                    paragraph=hero["paragraph"],
                    content=hero["content"],
                    hero_words=config.thresholds.hero_words,
                ),
                config,
            )
            checks = {check: bool(analysis.get(check)) for check in CHECKS}
            findings = {check: analysis.get(f"{check.split('_')[0]}_evidence") for check in CHECKS}
            used_ai, model = True, response.model
            confidence = as_confidence(analysis.get("confidence"))
        except Exception as e:
            logger.warning("Positioning AI analysis failed for %s, using heuristics: %s", context.url, e)
            ai_error = str(e)

    if checks is None:
        checks = heuristic_checks(hero, config)

    for check in CHECKS:
        if checks[check]:
            card.award(2.5, check)
        else:
            card.fail(check)

    lowered = hero["content"].lower()
    buzzwords = [w for w in config.buzzwords if w.lower() in lowered]
    score = max(0.0, card.score - 0.5 * len(buzzwords))
    if confidence is not None:
        score *= confidence

    logger.info("Positioning analysis for %s: score %.1f (ai: %s, buzzwords: %d)",
                context.url, score, used_ai, len(buzzwords))

    return card.result(VisionEvidence(
        description=f"Hero positioning: {len(card.passed)} of {len(CHECKS)} checks passed",
        reasoning=(
            f"Headline '{hero['h1'][:80]}' evaluated "
            f"{'by AI' if used_ai else 'with text heuristics'}; "
            f"{len(buzzwords)} buzzword(s) found"
        ),
        findings={**findings, "buzzwords": ", ".join(buzzwords) or None},
        used_ai=used_ai,
        model=model,
        confidence=confidence,
        ai_error=ai_error,
    ), score=score)
