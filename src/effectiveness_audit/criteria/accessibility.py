"""Accessibility: semantics, ARIA, alt text, form labels and keyboard support."""

import logging
import re

from bs4 import BeautifulSoup, Tag

from ..config import ScoringConfig
from ..models import Criterion, CriterionResult, HtmlEvidence, ScoringContext
from .base import ScoreCard, parse_html

logger = logging.getLogger(__name__)


SEMANTIC_TAGS = ["header", "nav", "main", "article", "section", "aside", "footer"]
ARIA_SELECTORS = "[aria-label], [aria-labelledby], [aria-describedby], [aria-expanded], [aria-hidden], [role]"
PLACEHOLDER_ALT = re.compile(r"^(image|img|photo|picture|icon|logo)\d*$|^untitled", re.IGNORECASE)


def _is_labeled(soup: BeautifulSoup, field: Tag) -> bool:
    field_id = field.get("id")
    if field_id and soup.find("label", attrs={"for": field_id}):
        return True
    if field.find_parent("label"):
        return True
    return bool(field.get("aria-label") or field.get("aria-labelledby") or field.get("title"))


def _has_skip_link(soup: BeautifulSoup) -> bool:
    for link in soup.select('a[href^="#"]'):
        text = link.get_text(strip=True).lower()
        if "skip" in text or "jump" in text or link["href"] in ("#main", "#content"):
            return True
    return bool(soup.select('.skip-link, [class*="skip"]'))


async def score_accessibility(context: ScoringContext, config: ScoringConfig) -> CriterionResult:
    soup = parse_html(context.html or context.initial_html)
    card = ScoreCard(Criterion.ACCESSIBILITY)

    semantic_count = len(soup.find_all(SEMANTIC_TAGS))
    aria_count = len(soup.select(ARIA_SELECTORS))
    modern_aria = sum(bool(soup.select(s)) for s in ("[aria-live]", "[aria-current]", "[aria-expanded]"))

    images = soup.find_all("img")
    with_alt = [img for img in images if img.has_attr("alt")]
    meaningful_alt = [
        img for img in with_alt
        if len(img["alt"]) > 3 and not PLACEHOLDER_ALT.match(img["alt"].strip())
    ]
    alt_coverage = len(with_alt) / len(images) if images else 1.0
    meaningful_ratio = len(meaningful_alt) / len(images) if images else 1.0

    fields = [f for f in soup.find_all(["input", "textarea", "select"]) if f.get("type") != "hidden"]
    labeled = [f for f in fields if _is_labeled(soup, f)]
    label_ratio = len(labeled) / len(fields) if fields else 1.0

    focusable = soup.select('a[href], button, input, textarea, select, [tabindex]:not([tabindex="-1"])')
    keyboard_hints = bool(soup.select("[accesskey]")) or len(soup.select("[tabindex]")) > 2

    fake_buttons = soup.select('button[onclick*="location"], button[onclick*="href"]')
    fake_links = soup.select('a[href="#"][onclick], a[href^="javascript:"]')
    proper_semantics = not fake_buttons and len(fake_links) < 3

    heading_structure = len(soup.find_all("h1")) == 1 and len(soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])) >= 2
    html_tag = soup.find("html")
    lang_declared = bool(html_tag and html_tag.get("lang"))
    raw = (context.html or "").lower()
    tooling = any(marker in raw for marker in ("axe-core", "a11y", "tailwind", "bootstrap"))

    card.tiered([(semantic_count >= 3, 2.0, "semantic_html_structure")], "no_semantic_structure")

    card.tiered([
        (aria_count >= 5 and modern_aria >= 2, 1.5, "comprehensive_aria"),
        (aria_count >= 5 or modern_aria >= 1, 1.0, "aria_attributes_present"),
        (aria_count >= 2, 0.5, "some_aria_attributes"),
    ], "insufficient_aria")

    card.tiered([
        (meaningful_ratio >= 0.8, 1.5, "meaningful_alt_text"),
        (alt_coverage >= 0.9, 1.2, "good_alt_text_coverage"),
        (alt_coverage >= 0.6, 0.8, "adequate_alt_text_coverage"),
    ], "poor_alt_text_coverage")

    card.tiered([
        (bool(fields) and label_ratio >= 0.8, 1.5, "form_labels_present"),
        (not fields, 1.0, "no_forms_to_evaluate"),
    ], "missing_form_labels")

    card.tiered([
        (len(focusable) >= 3 and keyboard_hints, 1.0, "focus_management_present"),
        (len(focusable) >= 3, 0.5, "basic_focus_management"),
    ], "no_focus_management")

    card.tiered([(heading_structure, 1.0, "proper_heading_structure")], "improper_heading_structure")
    card.tiered([(_has_skip_link(soup), 0.5, "skip_links_present")], "no_skip_links")
    card.tiered([(proper_semantics, 0.5, "proper_button_link_semantics")], "improper_button_link_usage")
    card.tiered([(lang_declared, 0.25, "language_declared")], "no_language_declaration")
    card.tiered([(tooling, 0.25, "accessibility_tools")], "no_accessibility_tools")

    logger.info("Accessibility analysis for %s: score %.1f, alt coverage %d%%",
                context.url, card.score, round(alt_coverage * 100))

    return card.result(HtmlEvidence(
        description=(
            f"Accessibility analysis: {semantic_count} semantic elements, {aria_count} ARIA attributes, "
            f"{round(alt_coverage * 100)}% alt text coverage"
        ),
        reasoning=(
            f"{len(card.passed)} accessibility checks passed and {len(card.failed)} failed; "
            f"{round(label_ratio * 100)}% of form fields are labeled"
        ),
        signals={
            "semantic_elements": semantic_count,
            "aria_attributes": aria_count,
            "alt_text_coverage": round(alt_coverage, 2),
            "meaningful_alt_ratio": round(meaningful_ratio, 2),
            "form_label_ratio": round(label_ratio, 2),
            "focusable_elements": len(focusable),
            "lang_declared": lang_declared,
        },
    ))
