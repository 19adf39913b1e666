"""User experience: layout, readability, interactivity and mobile support."""

import logging

from ..config import ScoringConfig
from ..models import Criterion, CriterionResult, HtmlEvidence, ScoringContext
from .base import ScoreCard, parse_html

logger = logging.getLogger(__name__)


MODERN_PATTERNS = {
    "hero": '.hero, [class*="hero"]',
    "cards": '.card, [class*="card"]',
    "sections": "section",
    "social_proof": '[class*="testimonial"], [class*="review"], [class*="client"], [class*="logo"]',
    "search": 'input[type="search"], [placeholder*="Search"]',
}


async def score_ux(context: ScoringContext, config: ScoringConfig) -> CriterionResult:
    soup = parse_html(context.html or context.initial_html)
    card = ScoreCard(Criterion.UX)

    headings = soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
    h1_count = len(soup.find_all("h1"))
    proper_hierarchy = h1_count == 1 and len(headings) >= 3

    readable_width = bool(soup.select('[class*="container"], [class*="wrapper"], [class*="content"], article, main'))

    buttons = [
        el for el in soup.select('button, a.btn, a.button, [class*="btn"]')
        if 0 < len(el.get_text(strip=True)) < 30 and not el.find_parent("nav")
    ]
    forms = [f for f in soup.find_all("form") if f.select('input:not([type="hidden"])')]
    widgets = soup.select('[class*="carousel"], [class*="slider"], [class*="tab"], [class*="accordion"]')
    interactive = len(buttons) + len(forms) * 3 + len(widgets) * 2

    viewport = soup.find("meta", attrs={"name": "viewport"}) is not None
    layout_classes = len(soup.select('[class*="flex"], [class*="grid"], [class*="container"], [class*="wrapper"]'))
    component_classes = len(soup.select('[class*="card"], [class*="modal"], [class*="dropdown"], [class*="nav"]'))
    custom_properties = "var(--" in (context.html or "")
    modern_styling = layout_classes >= 5 or component_classes >= 3 or custom_properties
    responsive = bool(soup.select('[class*="mobile"], [class*="responsive"], [class*="md:"], [class*="lg:"]'))

    patterns = {name: bool(soup.select(selector)) for name, selector in MODERN_PATTERNS.items()}
    patterns["cards"] = len(soup.select(MODERN_PATTERNS["cards"])) >= 2
    patterns["sections"] = len(soup.find_all("section")) >= 3
    footer = soup.find("footer")
    patterns["footer"] = footer is not None and len(footer.find_all("a")) >= 5
    modern_count = sum(patterns.values())

    images = soup.find_all("img")
    alt_ok = not images or len([i for i in images if i.has_attr("alt")]) / len(images) >= 0.8
    aria = bool(soup.select("[aria-label], [aria-describedby], [role]"))
    navigation = bool(soup.select('nav, [role="navigation"]'))

    card.tiered([
        (proper_hierarchy and modern_count >= 4, 2.5, "excellent_layout"),
        (proper_hierarchy or modern_count >= 3, 1.5, "good_layout"),
        (len(headings) >= 2, 0.5, "basic_layout"),
    ], "poor_layout")

    if readable_width:
        card.award(1.5, "readable_content")
    else:
        card.score += 0.5
        card.fail("content_width_issues")

    card.tiered([
        (interactive >= 15, 2.0, "rich_interactivity"),
        (interactive >= 8, 1.0, "adequate_interactivity"),
    ], "limited_interactivity")

    card.tiered([
        (viewport and (responsive or modern_styling), 2.0, "mobile_optimized"),
        (viewport, 1.0, "basic_mobile_support"),
    ], "no_mobile_optimization")

    card.tiered([(modern_styling, 1.0, "modern_styling")], "basic_styling")

    card.tiered([
        (alt_ok and aria, 1.0, "accessibility_features"),
        (alt_ok or aria, 0.5, "some_accessibility"),
    ], "no_accessibility_features")

    if not navigation:
        card.fail("poor_navigation")

    logger.info("UX analysis for %s: score %.1f, %d headings, %d interactive elements",
                context.url, card.score, len(headings), interactive)

    return card.result(HtmlEvidence(
        description=(
            f"UX analysis: {len(headings)} headings ({h1_count} H1s), "
            f"{interactive} interactive elements, {modern_count} modern patterns detected"
        ),
        reasoning=(
            f"Layout {'with' if proper_hierarchy else 'without'} a clear heading hierarchy, "
            f"{'responsive' if viewport else 'no viewport'} setup and "
            f"{'modern' if modern_styling else 'basic'} styling"
        ),
        signals={
            "headings": len(headings),
            "h1_count": h1_count,
            "interactive_elements": interactive,
            "has_viewport_meta": viewport,
            "has_navigation": navigation,
            "modern_patterns": patterns,
        },
    ))
