"""Deterministic insights used when the LLM is unavailable."""

from ..models import Criterion, CriterionResult, InsightsMetadata, InsightsResponse, KeyPattern
from .prompts import CHECK_RECOMMENDATIONS, PromptData

FALLBACK_CONFIDENCE = 0.7

PATTERN_BY_CRITERION = {
    Criterion.POSITIONING: KeyPattern.MESSAGING_UNCLEAR,
    Criterion.BRAND_STORY: KeyPattern.CREDIBILITY_GAP,
    Criterion.TRUST: KeyPattern.CREDIBILITY_GAP,
    Criterion.SPEED: KeyPattern.TECHNICAL_ISSUES,
    Criterion.SEO: KeyPattern.TECHNICAL_ISSUES,
    Criterion.ACCESSIBILITY: KeyPattern.TECHNICAL_ISSUES,
    Criterion.CTAS: KeyPattern.CONVERSION_BARRIERS,
    Criterion.UX: KeyPattern.CONVERSION_BARRIERS,
}

FOCUS_RECOMMENDATIONS = {
    Criterion.POSITIONING: "Rewrite the hero headline to name your audience and the outcome you deliver",
    Criterion.BRAND_STORY: "Tell the story of your approach with a clear point of view",
    Criterion.TRUST: "Place customer proof such as logos and testimonials near the top of the page",
    Criterion.SPEED: "Compress images and defer scripts to cut load time",
    Criterion.SEO: "Fix the title, meta description and structured data on key pages",
    Criterion.ACCESSIBILITY: "Audit the page for alt text, labels and keyboard navigation",
    Criterion.CTAS: "Make one primary call-to-action visible above the fold",
    Criterion.UX: "Simplify navigation and the first screen on mobile",
}

IMPACT_BY_PATTERN = {
    KeyPattern.MESSAGING_UNCLEAR: "visitors cannot quickly tell what you offer or who it is for",
    KeyPattern.CREDIBILITY_GAP: "visitors lack the proof they need to trust you",
    KeyPattern.TECHNICAL_ISSUES: "technical problems are holding back reach and engagement",
    KeyPattern.CONVERSION_BARRIERS: "visitors are not guided toward the next step",
    KeyPattern.STRONG_FOUNDATION: "the site has a solid base to build on",
}

GENERIC_RECOMMENDATIONS = (
    "Clarify your value proposition in the hero section",
    "Add social proof such as testimonials and client logos",
    "Make the primary call-to-action more prominent",
    "Improve page load speed and mobile experience",
)


def identify_primary_issue(scores: list[CriterionResult]) -> CriterionResult | None:
    """Lowest-scoring result, first one wins on ties."""
    weakest = None
    for result in scores:
        if weakest is None or result.score < weakest.score:
            weakest = result
    return weakest


def pattern_for(scores: list[CriterionResult]) -> KeyPattern:
    weakest = identify_primary_issue(scores)
    if weakest is None:
        return KeyPattern.STRONG_FOUNDATION
    return PATTERN_BY_CRITERION[weakest.criterion]


def fallback_recommendations(scores: list[CriterionResult]) -> list[str]:
    weakest = identify_primary_issue(scores)
    specific = []
    if weakest is not None:
        specific += [CHECK_RECOMMENDATIONS[c] for c in weakest.passes.failed if c in CHECK_RECOMMENDATIONS]
        specific.append(FOCUS_RECOMMENDATIONS[weakest.criterion])
        for result in scores:
            if result is weakest:
                continue
            specific += [CHECK_RECOMMENDATIONS[c] for c in result.passes.failed if c in CHECK_RECOMMENDATIONS]

    specific = list(dict.fromkeys(specific))[:3]
    combined = list(dict.fromkeys(specific + list(GENERIC_RECOMMENDATIONS)))
    return combined[:4]


def generate_fallback_insights(data: PromptData, attempts: int = 0, elapsed_ms: int = 0) -> InsightsResponse:
    """Build insights from the scores alone. Same input, same output."""
    pattern = pattern_for(data.criterion_scores)
    weakest = identify_primary_issue(data.criterion_scores)
    if weakest is None:
        insight = (
            f"With a score of {data.overall_score}/10, {IMPACT_BY_PATTERN[pattern]}. "
            "Focus on steady refinement of messaging and conversion paths."
        )
    else:
        insight = (
            f"With a score of {data.overall_score}/10, your website's weakest area is "
            f"{weakest.criterion.label} at {weakest.score}/10, which means {IMPACT_BY_PATTERN[pattern]}. "
            "Addressing this gap first should have the largest effect on results."
        )

    return InsightsResponse(
        insight=insight,
        recommendations=tuple(fallback_recommendations(data.criterion_scores)),
        confidence=FALLBACK_CONFIDENCE,
        key_pattern=pattern,
        fallback=True,
        metadata=InsightsMetadata(
            model="fallback",
            response_time_ms=elapsed_ms,
            attempts=attempts,
            source="fallback",
        ),
    )
