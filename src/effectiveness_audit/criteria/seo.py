"""SEO fundamentals: title, description, headings, canonical and metadata."""

import logging
from urllib.parse import urlparse

from ..config import ScoringConfig
from ..models import Criterion, CriterionResult, HtmlEvidence, ScoringContext
from .base import ScoreCard, parse_html

logger = logging.getLogger(__name__)


def _meta(soup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    return (tag.get("content") or "").strip() if tag else ""


async def score_seo(context: ScoringContext, config: ScoringConfig) -> CriterionResult:
    # Server HTML carries the meta tags crawlers actually see
    html = context.initial_html or context.html
    soup = parse_html(html)
    card = ScoreCard(Criterion.SEO)

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    description = _meta(soup, name="description")

    h1s = soup.find_all("h1")
    h1_text = h1s[0].get_text(strip=True) if h1s else ""
    unique_h1 = len(h1s) == 1 and bool(h1_text)
    h1_distinct = bool(h1_text and title) and h1_text != title and len(h1_text) > 10 and len(title) > 10

    canonical_tag = soup.find("link", rel="canonical")
    canonical = canonical_tag.get("href") if canonical_tag else None
    robots = _meta(soup, name="robots").lower()
    allows_indexing = "noindex" not in robots and "none" not in robots

    parsed = urlparse(context.url)
    clean_url = not parsed.query and len(parsed.path.split("/")) <= 4
    sitemap = soup.find("link", rel="sitemap") is not None or "sitemap.xml" in (html or "")

    open_graph = bool(_meta(soup, property="og:title") and _meta(soup, property="og:description"))
    twitter = bool(_meta(soup, name="twitter:card") and _meta(soup, name="twitter:title"))
    structured_data = bool(soup.find_all("script", type="application/ld+json"))

    images = soup.find_all("img")
    alt_ratio = len([i for i in images if i.has_attr("alt")]) / len(images) if images else 1.0
    host = parsed.netloc
    internal_links = [
        a for a in soup.find_all("a", href=True)
        if a["href"].startswith("/") or (host and host in a["href"])
    ]

    card.tiered([
        (30 <= len(title) <= 70, 1.5, "optimized_title"),
        (bool(title), 1.0, "title_present"),
    ], "no_title")

    card.tiered([
        (120 <= len(description) <= 200, 1.5, "optimized_meta_description"),
        (bool(description), 1.0, "meta_description_present"),
    ], "no_meta_description")

    card.tiered([
        (unique_h1 and h1_distinct, 1.5, "optimized_h1"),
        (unique_h1, 1.0, "unique_h1"),
    ], "poor_h1_structure")

    card.tiered([(bool(canonical), 0.5, "canonical_present")], "no_canonical")
    card.tiered([(allows_indexing, 0.5, "allows_indexing")], "blocks_indexing")
    card.tiered([(clean_url, 0.5, "clean_url_structure")], "poor_url_structure")
    card.tiered([(sitemap, 0.5, "sitemap_present")], "no_sitemap")

    card.tiered([
        (open_graph and twitter, 1.0, "full_social_optimization"),
        (open_graph or twitter, 0.5, "partial_social_optimization"),
    ], "no_social_optimization")

    card.tiered([(structured_data, 1.0, "structured_data_present")], "no_structured_data")

    card.tiered([
        (alt_ratio >= 0.9 and len(internal_links) >= 5, 1.0, "content_optimized"),
        (alt_ratio >= 0.7 or len(internal_links) >= 5, 0.5, "partial_content_optimization"),
    ], "poor_content_optimization")

    card.tiered([
        (len(soup.find_all(["header", "nav", "main", "footer"])) >= 3, 0.5, "good_page_structure"),
    ], "poor_page_structure")

    bonus = 0.0
    if parsed.scheme == "https":
        bonus += 0.2
        card.passed.append("https_enabled")
    if soup.select('meta[name="viewport"][content*="width=device-width"]'):
        bonus += 0.2
        card.passed.append("mobile_viewport")
    if soup.select('img[loading="lazy"], source[type="image/webp"], source[type="image/avif"]'):
        bonus += 0.1
        card.passed.append("performance_optimized")
    card.score += min(0.5, bonus)

    logger.info("SEO analysis for %s: score %.1f (initial html: %s)",
                context.url, card.score, bool(context.initial_html))

    return card.result(HtmlEvidence(
        description=(
            f"SEO analysis: title {len(title)} chars, meta description {len(description)} chars, "
            f"{len(h1s)} H1 tags"
        ),
        reasoning=(
            f"Canonical {'present' if canonical else 'missing'}, "
            f"indexing {'allowed' if allows_indexing else 'blocked'}, "
            f"structured data {'present' if structured_data else 'missing'}"
        ),
        signals={
            "title": title[:120],
            "title_length": len(title),
            "meta_description_length": len(description),
            "h1_count": len(h1s),
            "canonical": canonical,
            "open_graph": open_graph,
            "twitter_cards": twitter,
            "structured_data": structured_data,
            "used_initial_html": bool(context.initial_html),
        },
    ))
