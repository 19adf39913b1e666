"""Shared helpers for criterion scorers."""

import json
import re
from typing import Any

from bs4 import BeautifulSoup

from ..config import ScoringConfig
from ..errors import LLMError
from ..insights.providers import LLMProvider, LLMResponse, PromptContent
from ..models import Criterion, CriterionResult, Evidence, Passes, round_half_up


def parse_html(html: str | None) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def page_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    return body.get_text(" ", strip=True)


def word_count(text: str) -> int:
    return len(re.findall(r"\w+", text))


class ScoreCard:
    """Accumulates points and named checks for one criterion."""

    def __init__(self, criterion: Criterion):
        self.criterion = criterion
        self.score = 0.0
        self.passed: list[str] = []
        self.failed: list[str] = []

    def award(self, points: float, check: str) -> None:
        self.score += points
        self.passed.append(check)

    def fail(self, check: str) -> None:
        self.failed.append(check)

    def tiered(self, tiers: list[tuple[bool, float, str]], failed_check: str) -> None:
        """Award the first matching (condition, points, check) tier, else fail."""
        for condition, points, check in tiers:
            if condition:
                self.award(points, check)
                return
        self.fail(failed_check)

    def result(self, evidence: Evidence, score: float | None = None) -> CriterionResult:
        value = self.score if score is None else score
        return CriterionResult(
            criterion=self.criterion,
            score=round_half_up(min(10.0, max(0.0, value)), 1),
            evidence=evidence,
            passes=Passes(passed=tuple(self.passed), failed=tuple(self.failed)),
        )


def llm_available(llm: LLMProvider | None) -> bool:
    return llm is not None and llm.is_configured()


async def classify_json(
    llm: LLMProvider,
    system: str,
    user: str,
    config: ScoringConfig,
    max_tokens: int = 300,
    image_url: str | None = None,
) -> tuple[dict[str, Any], LLMResponse]:
    """Ask the model for a JSON object and decode it."""
    prompt = PromptContent(
        system=system,
        user=user,
        temperature=config.model.temperature,
        max_tokens=max_tokens,
        image_url=image_url,
    )
    response = await llm.complete(prompt, json_mode=True)
    try:
        data = json.loads(response.text)
    except json.JSONDecodeError:
        raise LLMError(f"Invalid JSON from {llm.name}: {response.text[:100]!r}", provider=llm.name)
    if not isinstance(data, dict):
        raise LLMError(f"Expected a JSON object from {llm.name}", provider=llm.name)
    return data, response


def as_confidence(value: Any, default: float = 0.8) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(1.0, max(0.0, float(value)))
