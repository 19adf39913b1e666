from conftest import make_result, make_scores
from effectiveness_audit.insights.prompts import (
    HEALTH_CHECK_PROMPT,
    PromptData,
    build_insights_prompt,
    optimal_temperature,
    priority_matrix,
    score_context,
)
from effectiveness_audit.models import Criterion


def test_score_context_ranges():
    assert score_context(2.0)[0] == "poor"
    assert score_context(5.0)[0] == "average"
    assert score_context(7.5)[0] == "good"
    assert score_context(9.0)[0] == "excellent"


def test_temperature_is_lowest_for_weak_sites():
    assert optimal_temperature(3.0) == 0.0
    assert optimal_temperature(6.0) == 0.1
    assert optimal_temperature(8.5) == 0.2


def test_priority_matrix_skips_healthy_criteria_and_orders_by_priority():
    scores = [
        make_result(Criterion.ACCESSIBILITY, 3.0),
        make_result(Criterion.CTAS, 3.0),
        make_result(Criterion.SEO, 9.0),
    ]
    ranked = priority_matrix(scores)

    assert [r.criterion for r, _ in ranked] == [Criterion.CTAS, Criterion.ACCESSIBILITY]
    assert ranked[0][1] > ranked[1][1]


def test_prompt_includes_scores_issues_and_industry():
    data = PromptData(
        website_url="https://acme.example",
        overall_score=4.0,
        criterion_scores=[make_result(Criterion.TRUST, 2.0, failed=["no_case_stories"])],
        client_name="Acme",
        industry_type="SaaS",
        business_goals="More demo requests",
    )
    prompt = build_insights_prompt(data)

    assert "for Acme" in prompt.user
    assert "trust: 2.0/10" in prompt.user
    assert "missing case studies" in prompt.user
    assert "trial/demo CTAs" in prompt.user
    assert "More demo requests" in prompt.user
    assert "strong_foundation" in prompt.user
    assert prompt.temperature == 0.0
    assert "valid JSON" in prompt.system


def test_unknown_industry_uses_default_context():
    data = PromptData(website_url="https://acme.example", overall_score=8.0,
                      criterion_scores=make_scores(), industry_type="shipbuilding")
    prompt = build_insights_prompt(data)
    assert "clear value communication" in prompt.user
    assert "None below 7/10" in prompt.user


def test_health_check_prompt_is_tiny():
    assert HEALTH_CHECK_PROMPT.max_tokens == 10
    assert HEALTH_CHECK_PROMPT.temperature == 0.0
