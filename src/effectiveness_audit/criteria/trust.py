"""Trust signals: logos, third-party proof, recency and case stories."""

import logging
import math
import re
from datetime import date

from ..config import ScoringConfig
from ..models import Criterion, CriterionResult, HtmlEvidence, ScoringContext
from .base import ScoreCard, page_text, parse_html

logger = logging.getLogger(__name__)


LOGO_SELECTORS = (
    'img[alt*="logo" i], img[src*="logo" i], img[class*="logo" i], '
    ".customer-logo img, .client-logo img, .partner-logo img"
)
TESTIMONIAL_SELECTORS = '.testimonial, .review, .quote, [class*="testimonial"], [class*="review"], blockquote'
CASE_STUDY_SELECTORS = (
    'a[href*="case-stud" i], a[href*="success-story" i], a[href*="customers/" i], '
    ".case-study, .success-story"
)
CERTIFICATION_SELECTORS = (
    'img[alt*="certified" i], img[alt*="badge" i], img[alt*="award" i], '
    ".certification, .badge, .award"
)
TRUST_KEYWORDS = (
    "customers", "clients served", "companies trust us", "trusted by",
    "years of experience", "since", "founded", "established",
    "award", "certified", "accredited", "recognized",
    "testimonial", "review", "rating",
)
SCALE_RE = re.compile(r"\d[\d,.]*\+?\s*(?:customers|clients|companies|users|projects)", re.IGNORECASE)


def recent_years(months: int, today: date | None = None) -> list[int]:
    """Calendar years that fall inside the recency window."""
    today = today or date.today()
    span = max(1, math.ceil(months / 12))
    return [today.year - i for i in range(span + 1)]


async def score_trust(context: ScoringContext, config: ScoringConfig) -> CriterionResult:
    soup = parse_html(context.html or context.initial_html)
    text = page_text(soup).lower()
    card = ScoreCard(Criterion.TRUST)

    logos = len(soup.select(LOGO_SELECTORS))
    testimonials = len(soup.select(TESTIMONIAL_SELECTORS))
    case_studies = len(soup.select(CASE_STUDY_SELECTORS))
    certifications = len(soup.select(CERTIFICATION_SELECTORS))
    keyword_count = sum(1 for keyword in TRUST_KEYWORDS if keyword in text)
    years = recent_years(config.thresholds.recent_months)
    has_recent = any(str(year) in text for year in years)
    scale_matches = SCALE_RE.findall(text)

    card.tiered([
        (logos >= 5, 2.5, "sufficient_logos"),
        (logos >= 3, 1.5, "some_logos"),
    ], "insufficient_logos")

    card.tiered([
        (certifications >= 2, 2.0, "third_party_proof"),
        (certifications >= 1, 1.0, "some_third_party_proof"),
    ], "no_third_party_proof")

    card.tiered([(has_recent, 2.0, "recent_proof")], "no_recent_proof")

    stories = testimonials + case_studies
    card.tiered([
        (stories >= 3, 2.5, "multiple_case_stories"),
        (stories >= 1, 1.5, "some_case_stories"),
    ], "no_case_stories")

    card.tiered([
        (keyword_count >= 5 and bool(scale_matches), 1.0, "trust_language"),
        (keyword_count >= 3, 0.5, "some_trust_language"),
    ], "weak_trust_language")

    logger.info("Trust analysis for %s: score %.1f, %d logos, %d stories",
                context.url, card.score, logos, stories)

    def level(count: int, high: int, low: int) -> str:
        return "strong" if count >= high else "some" if count >= low else "none"

    return card.result(HtmlEvidence(
        description=(
            f"Trust analysis: {logos} logos, {testimonials} testimonials, "
            f"{case_studies} case studies, {certifications} certifications"
        ),
        reasoning=(
            f"Customer logos {level(logos, 5, 3)}, third-party proof {level(certifications, 2, 1)}, "
            f"recent proof {'present' if has_recent else 'absent'}, case stories {level(stories, 3, 1)}"
        ),
        signals={
            "customer_logos": logos,
            "testimonials": testimonials,
            "case_studies": case_studies,
            "certifications": certifications,
            "trust_keywords": keyword_count,
            "recent_years": years,
            "scale_examples": scale_matches[:3],
        },
    ))
