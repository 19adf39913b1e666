"""Prompt templates for effectiveness insights."""

from dataclasses import dataclass, field

from ..models import Criterion, CriterionResult, KeyPattern
from .providers import PromptContent


@dataclass
class PromptData:
    """Scoring summary handed to the insights client."""
    website_url: str
    overall_score: float
    criterion_scores: list[CriterionResult] = field(default_factory=list)
    client_name: str | None = None
    industry_type: str | None = None
    business_goals: str | None = None


# Failed check -> concrete recommendation
CHECK_RECOMMENDATIONS = {
    "no_target_audience": "Specify your target customer in the headline",
    "audience_named": "Specify your target customer in the headline",
    "no_specific_value": "Add concrete benefits or outcomes to hero text",
    "outcome_present": "Add concrete benefits or outcomes to hero text",
    "capability_clear": "State plainly what you do in the first screen",
    "brevity_check": "Cut the hero headline to a single short sentence",
    "no_third_party_proof": "Include client logos or testimonials",
    "insufficient_logos": "Show recognizable customer logos near the top of the page",
    "no_case_stories": "Add case studies or success metrics",
    "no_proof_elements": "Add case studies or success metrics",
    "no_recent_proof": "Update testimonials and case studies with recent examples",
    "weak_trust_language": "Quantify your track record with customer counts or years in business",
    "lcp_poor": "Reduce page load time to under 2.5 seconds",
    "cls_poor": "Reserve space for images and embeds to stop layout shifts",
    "fid_poor": "Defer non-critical JavaScript to speed up interactivity",
    "no_above_fold_cta": "Make primary action more prominent",
    "few_above_fold_ctas": "Make primary action more prominent",
    "weak_cta_copy": "Strengthen call-to-action button text",
    "no_clear_hierarchy": "Give one primary call-to-action visual priority over the rest",
    "no_mobile_optimization": "Improve mobile user experience and responsiveness",
    "poor_mobile_ux": "Improve mobile user experience and responsiveness",
    "poor_navigation": "Simplify and clarify website navigation",
    "missing_form_labels": "Label every form field",
    "poor_alt_text_coverage": "Add descriptive alt text to all images",
    "missing_alt_text": "Add descriptive alt text to all images",
    "no_language_declaration": "Declare the page language on the html element",
    "no_skip_links": "Add a skip-to-content link for keyboard users",
    "no_clear_pov": "State the point of view that sets you apart",
    "no_clear_approach": "Name the method or approach behind your results",
    "no_outcomes_stated": "Publish recent customer outcomes with numbers",
    "no_title": "Write a descriptive page title",
    "no_meta_description": "Add a meta description summarizing the page",
    "no_structured_data": "Add structured data markup for your organization",
    "no_canonical": "Set a canonical URL",
    "blocks_indexing": "Remove the noindex directive from the homepage",
    "missing_contact_info": "Make contact information more prominent",
}

# Failed check -> human-readable description used in prompts
CHECK_DESCRIPTIONS = {
    "no_target_audience": "missing clear target audience definition",
    "audience_named": "missing clear target audience definition",
    "no_specific_value": "lacking specific value propositions",
    "outcome_present": "lacking specific outcomes",
    "no_third_party_proof": "absence of third-party validation",
    "insufficient_logos": "few customer logos",
    "lcp_poor": "slow page loading speed",
    "cls_poor": "unstable page layout while loading",
    "no_above_fold_cta": "limited call-to-action visibility",
    "no_proof_elements": "missing proof elements",
    "no_case_stories": "missing case studies",
    "no_recent_proof": "outdated testimonials or case studies",
    "no_mobile_optimization": "suboptimal mobile experience",
    "poor_alt_text_coverage": "accessibility issues with images",
    "weak_cta_copy": "weak call-to-action messaging",
    "poor_navigation": "confusing navigation structure",
    "no_clear_approach": "unclear service approach or methodology",
    "brevity_check": "overly verbose content that needs simplification",
    "no_structured_data": "absence of structured data markup",
    "analysis_failed": "a criterion that could not be analyzed",
}

INDUSTRY_CONTEXTS = {
    "saas": "SaaS businesses need clear trial/demo CTAs and feature benefits",
    "ecommerce": "E-commerce sites require trust signals and streamlined checkout",
    "consulting": "Consulting firms need credibility markers and clear expertise positioning",
    "agency": "Agencies benefit from portfolio showcases and client testimonials",
    "healthcare": "Healthcare requires compliance considerations and trust elements",
    "finance": "Financial services need security reassurance and clear value propositions",
    "education": "Educational platforms should emphasize outcomes and accessibility",
    "default": "Focus on clear value communication and user experience optimization",
}

# Business influence of each criterion, and how easy it is to fix
IMPACT_WEIGHTS = {
    Criterion.POSITIONING: 0.9,
    Criterion.CTAS: 0.85,
    Criterion.TRUST: 0.8,
    Criterion.SPEED: 0.75,
    Criterion.UX: 0.7,
    Criterion.BRAND_STORY: 0.65,
    Criterion.SEO: 0.6,
    Criterion.ACCESSIBILITY: 0.55,
}
EASE_WEIGHTS = {
    Criterion.CTAS: 0.9,
    Criterion.POSITIONING: 0.8,
    Criterion.TRUST: 0.75,
    Criterion.BRAND_STORY: 0.7,
    Criterion.UX: 0.6,
    Criterion.SEO: 0.5,
    Criterion.ACCESSIBILITY: 0.4,
    Criterion.SPEED: 0.3,
}

SYSTEM_PROMPT = """You are an expert website effectiveness analyst with deep expertise in conversion optimization, user experience, and digital marketing strategy.

Always base your insights on the provided data rather than generic advice. Focus on evidence-driven recommendations that address the specific gaps identified in the scoring system.

Return only valid JSON in the specified format."""


def score_context(overall_score: float) -> tuple[str, str, str]:
    """Return (range, focus, urgency) for an overall score."""
    if overall_score <= 3:
        return "poor", "fundamental credibility and usability issues", "critical - immediate action required"
    if overall_score <= 6:
        return "average", "key user experience and conversion gaps", "high priority - significant improvement opportunity"
    if overall_score <= 8:
        return "good", "optimization and fine-tuning opportunities", "moderate - incremental improvements"
    return "excellent", "advanced optimization and competitive advantages", "low - minor enhancements"


def priority_matrix(scores: list[CriterionResult]) -> list[tuple[CriterionResult, float]]:
    """Problem criteria (score < 7) ordered by impact x ease, highest first."""
    ranked = []
    for result in scores:
        if result.score >= 7:
            continue
        impact = IMPACT_WEIGHTS.get(result.criterion, 0.5) * (1 + (10 - result.score) / 10)
        ranked.append((result, impact * EASE_WEIGHTS.get(result.criterion, 0.5)))
    return sorted(ranked, key=lambda item: item[1], reverse=True)


def failed_checks(scores: list[CriterionResult]) -> list[str]:
    return [check for result in scores for check in result.passes.failed if check]


def optimal_temperature(overall_score: float) -> float:
    # Low scores get the most deterministic analysis
    if overall_score <= 4:
        return 0.0
    if overall_score <= 7:
        return 0.1
    return 0.2


def build_insights_prompt(data: PromptData) -> PromptContent:
    """Build the insights prompt for a scoring summary."""
    range_name, focus, urgency = score_context(data.overall_score)
    criteria_details = "\n".join(f"{r.criterion.label}: {r.score}/10" for r in data.criterion_scores)
    priorities = "\n".join(
        f"{r.criterion.label}: {r.score}/10 (Priority: {p:.1f})" for r, p in priority_matrix(data.criterion_scores)[:3]
    ) or "None below 7/10"
    issues = ", ".join(dict.fromkeys(CHECK_DESCRIPTIONS.get(c, c) for c in failed_checks(data.criterion_scores)))
    industry = INDUSTRY_CONTEXTS.get((data.industry_type or "default").lower(), INDUSTRY_CONTEXTS["default"])
    client = f" for {data.client_name}" if data.client_name else ""
    goals = f"\nBusiness Goals: {data.business_goals}" if data.business_goals else ""
    patterns = " | ".join(p.value for p in KeyPattern)

    user = f"""Analyze website effectiveness data and generate personalized insights{client}.

Website: {data.website_url}
Overall Score: {data.overall_score}/10 ({range_name})

Performance Analysis:
{criteria_details}

Top Priority Issues:
{priorities}

Identified Issues: {issues or "none"}

Industry Context: {industry}{goals}

Analysis Focus: {focus}
Urgency Level: {urgency}

TASK: Identify the primary pattern in the data, explain why it exists based on the evidence, and give 3-4 specific, actionable recommendations targeting the highest-impact gaps.

RESPONSE FORMAT (JSON only):
{{
  "insight": "One concise paragraph (2-3 sentences). Start with 'With a score of X/10' and name the primary gap and its impact.",
  "recommendations": ["One-sentence action starting with a verb", "Second action", "Third action", "Optional fourth action"],
  "confidence": 0.9,
  "key_pattern": "{patterns}"
}}

Return only valid JSON."""

    return PromptContent(
        system=SYSTEM_PROMPT,
        user=user,
        temperature=optimal_temperature(data.overall_score),
        max_tokens=1000,
    )


HEALTH_CHECK_PROMPT = PromptContent(
    system="You are a health check endpoint.",
    user="Say 'OK' if you're working.",
    temperature=0.0,
    max_tokens=10,
)
