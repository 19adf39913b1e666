import asyncio
import json
from datetime import date

import httpx

from conftest import SAMPLE_HTML, FakeProvider, make_result
from effectiveness_audit.criteria import PageSpeedClient, build_tiers
from effectiveness_audit.criteria.accessibility import score_accessibility
from effectiveness_audit.criteria.base import ScoreCard, as_confidence, parse_html
from effectiveness_audit.criteria.brand_story import score_brand_story
from effectiveness_audit.criteria.ctas import find_ctas, score_ctas
from effectiveness_audit.criteria.positioning import extract_hero, score_positioning
from effectiveness_audit.criteria.seo import score_seo
from effectiveness_audit.criteria.speed import estimate_performance_score, score_speed
from effectiveness_audit.criteria.trust import recent_years, score_trust
from effectiveness_audit.criteria.ux import score_ux
from effectiveness_audit.models import (
    ApiEvidence,
    Criterion,
    HtmlEvidence,
    ScoringContext,
    VisionEvidence,
    WebVitals,
    mean_score,
    round_half_up,
)


def run(coro):
    return asyncio.run(coro)


def page(html, url="https://acme.example/", **kwargs):
    return ScoringContext(url=url, html=html, initial_html=html, **kwargs)


PAGESPEED_PAYLOAD = {
    "lighthouseResult": {
        "categories": {"performance": {"score": 0.9}},
        "audits": {
            "largest-contentful-paint": {"numericValue": 2000},
            "cumulative-layout-shift": {"numericValue": 0.05},
            "max-potential-fid": {"numericValue": 80},
        },
    }
}


# -- shared helpers ---------------------------------------------------------

def test_score_card_clamps_and_rounds():
    card = ScoreCard(Criterion.UX)
    card.award(7.0, "a")
    card.award(6.0, "b")
    card.fail("c")
    result = card.result(HtmlEvidence(description="d", reasoning="r"))

    assert result.score == 10.0
    assert result.passes.passed == ("a", "b")
    assert result.passes.failed == ("c",)


def test_scores_round_half_up():
    card = ScoreCard(Criterion.UX)
    assert card.result(HtmlEvidence(description="d", reasoning="r"), score=6.25).score == 6.3

    results = [make_result(Criterion.UX, 2.5), make_result(Criterion.TRUST, 2.0)]
    assert mean_score(results) == 2.3
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(32.5) == 33


def test_as_confidence():
    assert as_confidence(0.4) == 0.4
    assert as_confidence(3) == 1.0
    assert as_confidence("high") == 0.8
    assert as_confidence(True) == 0.8


def test_standard_tiers():
    tiers = build_tiers()
    assert [t.tier for t in tiers] == [1, 2, 3]
    assert [len(t.criteria) for t in tiers] == [4, 3, 1]
    assert [s.criterion for t in tiers for s in t.criteria] == [
        Criterion.UX, Criterion.TRUST, Criterion.ACCESSIBILITY, Criterion.SEO,
        Criterion.POSITIONING, Criterion.BRAND_STORY, Criterion.CTAS,
        Criterion.SPEED,
    ]


# -- user experience --------------------------------------------------------

def test_ux_sample_page(context, config):
    result = run(score_ux(context, config))
    assert isinstance(result.evidence, HtmlEvidence)
    assert "poor_navigation" not in result.passes.failed
    assert result.evidence.signals["has_viewport_meta"] is True
    assert result.score > 3


def test_ux_bare_page(bare_context, config):
    result = run(score_ux(bare_context, config))
    assert result.score == 1.0
    for check in ("poor_layout", "content_width_issues", "limited_interactivity",
                  "no_mobile_optimization", "basic_styling", "poor_navigation"):
        assert check in result.passes.failed


# -- trust ------------------------------------------------------------------

def test_trust_sample_page(context, config):
    result = run(score_trust(context, config))
    assert "sufficient_logos" in result.passes.passed
    assert "multiple_case_stories" in result.passes.passed
    assert "no_third_party_proof" in result.passes.failed


def test_trust_recent_year_counts_as_recent_proof(config):
    html = SAMPLE_HTML.replace("</footer>", f"<p>Updated {date.today().year}</p></footer>")
    result = run(score_trust(page(html), config))
    assert "recent_proof" in result.passes.passed


def test_trust_bare_page(bare_context, config):
    result = run(score_trust(bare_context, config))
    assert result.score == 0.0
    assert set(result.passes.failed) == {
        "insufficient_logos", "no_third_party_proof", "no_recent_proof",
        "no_case_stories", "weak_trust_language",
    }


def test_recent_years_window():
    assert recent_years(24, today=date(2025, 3, 1)) == [2025, 2024, 2023]
    assert recent_years(6, today=date(2025, 3, 1)) == [2025, 2024]


# -- accessibility ----------------------------------------------------------

def test_accessibility_sample_page(context, config):
    result = run(score_accessibility(context, config))
    for check in ("language_declared", "skip_links_present", "form_labels_present",
                  "meaningful_alt_text", "semantic_html_structure"):
        assert check in result.passes.passed


def test_accessibility_bare_page(bare_context, config):
    result = run(score_accessibility(bare_context, config))
    assert "no_language_declaration" in result.passes.failed
    assert "no_skip_links" in result.passes.failed
    assert "no_forms_to_evaluate" in result.passes.passed


def test_accessibility_unlabeled_fields(config):
    html = '<html lang="en"><body><form><input type="text" name="q"><textarea></textarea></form></body></html>'
    result = run(score_accessibility(page(html), config))
    assert "missing_form_labels" in result.passes.failed


# -- seo --------------------------------------------------------------------

def test_seo_sample_page(context, config):
    result = run(score_seo(context, config))
    for check in ("optimized_title", "canonical_present", "allows_indexing",
                  "structured_data_present", "https_enabled", "mobile_viewport"):
        assert check in result.passes.passed
    assert "no_meta_description" not in result.passes.failed


def test_seo_bare_page(bare_context, config):
    result = run(score_seo(bare_context, config))
    for check in ("no_title", "no_meta_description", "no_canonical", "no_structured_data"):
        assert check in result.passes.failed


def test_seo_noindex_blocks_indexing(config):
    html = SAMPLE_HTML.replace("<head>", '<head><meta name="robots" content="noindex, nofollow">')
    result = run(score_seo(page(html), config))
    assert "blocks_indexing" in result.passes.failed


def test_seo_reads_server_html_first(config):
    rendered = "<html><head></head><body><h1>Rendered only</h1></body></html>"
    context = ScoringContext(url="https://acme.example/", html=rendered, initial_html=SAMPLE_HTML)
    result = run(score_seo(context, config))
    assert "optimized_title" in result.passes.passed
    assert result.evidence.signals["used_initial_html"] is True


# -- positioning ------------------------------------------------------------

def test_extract_hero(context):
    hero = extract_hero(parse_html(context.html))
    assert hero["h1"] == "Revenue analytics for SaaS teams"
    assert hero["subheading"].startswith("Grow revenue 30%")
    assert hero["paragraph"].startswith("Acme connects billing")


def test_positioning_heuristics_without_ai(context, config):
    result = run(score_positioning(context, config))
    assert isinstance(result.evidence, VisionEvidence)
    assert result.evidence.used_ai is False
    assert result.score == 10.0
    assert result.passes.passed == ("audience_named", "outcome_present", "capability_clear", "brevity_check")


def test_positioning_buzzwords_cost_points(config):
    html = SAMPLE_HTML.replace("Revenue analytics for SaaS teams", "Revolutionary revenue analytics for SaaS teams")
    result = run(score_positioning(page(html), config))
    assert result.score == 9.5
    assert result.evidence.findings["buzzwords"] == "revolutionary"


def test_positioning_with_ai_scales_by_confidence(context, config):
    reply = json.dumps({
        "audience_named": True, "audience_evidence": "for SaaS teams",
        "outcome_present": True, "outcome_evidence": "30%",
        "capability_clear": False, "capability_evidence": None,
        "brevity_check": True, "brevity_evidence": None,
        "confidence": 0.8,
    })
    llm = FakeProvider([reply])
    result = run(score_positioning(context, config, llm=llm))

    assert result.evidence.used_ai is True
    assert result.evidence.model == "fake-1"
    assert result.score == 6.0
    assert "capability_clear" in result.passes.failed
    assert result.evidence.findings["audience_named"] == "for SaaS teams"


def test_positioning_falls_back_when_ai_fails(context, config):
    result = run(score_positioning(context, config, llm=FakeProvider(["not json at all"])))
    assert result.evidence.used_ai is False
    assert result.score == 10.0


def test_positioning_without_hero_content(config):
    result = run(score_positioning(page("<html><body><div></div></body></html>"), config))
    assert result.score == 0.0
    assert len(result.passes.failed) == 4


# -- brand story ------------------------------------------------------------

def test_brand_story_heuristics(context, config):
    result = run(score_brand_story(context, config))
    assert result.score == 8.0
    assert result.passes.failed == ("no_clear_pov",)
    assert result.evidence.used_ai is False


def test_brand_story_sends_screenshot_to_ai(config):
    reply = json.dumps({
        "pov_present": True, "mechanism_described": True, "outcomes_stated": True,
        "proof_elements": True, "visual_supports_story": False,
        "evidence": {"pov": "We believe finance should be fast", "mechanism": None},
        "confidence": 0.9,
    })
    llm = FakeProvider([reply])
    context = page(SAMPLE_HTML, screenshot_url="https://cdn.example/shot.png")
    result = run(score_brand_story(context, config, llm=llm))

    assert llm.prompts[0].image_url == "https://cdn.example/shot.png"
    assert result.evidence.used_screenshot is True
    assert result.score == 8.0
    assert result.passes.failed == ("visual_story_weak",)
    assert result.evidence.findings["pov"] == "We believe finance should be fast"


# -- calls to action --------------------------------------------------------

def test_find_ctas(context):
    ctas = find_ctas(parse_html(context.html))
    assert [c.text for c in ctas] == ["Get started free", "See how it works", "Book a demo"]
    assert all(c.above_fold for c in ctas)
    assert ctas[0].is_primary and ctas[1].is_secondary


def test_ctas_sample_page(context, config):
    result = run(score_ctas(context, config))
    assert result.score == 10.0
    for check in ("multiple_above_fold_ctas", "clear_cta_hierarchy",
                  "secondary_paths_available", "message_match_verified", "form_ctas_present"):
        assert check in result.passes.passed


def test_ctas_weak_copy_from_ai(context, config):
    reply = json.dumps({"message_match": False, "strong_copy": False, "reasoning": "Generic labels", "confidence": 0.7})
    result = run(score_ctas(context, config, llm=FakeProvider([reply])))

    assert "weak_cta_copy" in result.passes.failed
    assert "message_match_verified" not in result.passes.passed
    assert result.evidence.reasoning == "Generic labels"
    assert result.evidence.used_ai is True


def test_ctas_bare_page(bare_context, config):
    result = run(score_ctas(bare_context, config))
    assert result.score == 0.0
    assert "no_above_fold_cta" in result.passes.failed


# -- speed ------------------------------------------------------------------

def test_speed_from_pagespeed(context, config):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=PAGESPEED_PAYLOAD)

    client = PageSpeedClient(api_key="psi-key", transport=httpx.MockTransport(handler))
    result = run(score_speed(context, config, pagespeed=client))

    assert seen["params"]["url"] == "https://acme.example/"
    assert seen["params"]["key"] == "psi-key"
    assert isinstance(result.evidence, ApiEvidence)
    assert result.evidence.source == "pagespeed"
    assert result.evidence.api_status == "success"
    assert result.evidence.web_vitals == WebVitals(lcp=2.0, cls=0.05, fid=80.0)
    assert result.score == 9.0


def test_speed_api_failure_uses_defaults(context, config):
    client = PageSpeedClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    result = run(score_speed(context, config, pagespeed=client))

    assert result.evidence.api_status == "failed"
    assert result.evidence.source == "default"
    assert "lcp_poor" in result.passes.failed
    assert "cls_poor" in result.passes.failed
    assert 1.7 <= result.score <= 1.8


def test_speed_uses_collected_vitals_without_api(config):
    context = page(SAMPLE_HTML, web_vitals=WebVitals(lcp=2.0, cls=0.05, fid=50.0))
    result = run(score_speed(context, config))

    assert result.evidence.api_status == "skipped"
    assert result.evidence.source == "collector"
    assert result.score == 10.0


def test_estimate_performance_score():
    assert estimate_performance_score(WebVitals(lcp=5.0, cls=0.3, fid=400)) == 25.0
    assert estimate_performance_score(WebVitals(lcp=3.0, cls=0.05, fid=50)) == 85.0
