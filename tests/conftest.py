import json

import pytest

from effectiveness_audit.collector import CollectedData
from effectiveness_audit.config import ScoringConfig
from effectiveness_audit.errors import CollectionError
from effectiveness_audit.insights.providers import LLMProvider, LLMResponse
from effectiveness_audit.models import Criterion, CriterionResult, HtmlEvidence, Passes, ScoringContext


SAMPLE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>Acme Analytics - Revenue dashboards for SaaS teams</title>
  <meta name="description" content="Acme Analytics connects billing, CRM and product data into revenue dashboards that SaaS finance and growth teams trust every day.">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="canonical" href="https://acme.example/">
  <meta property="og:title" content="Acme Analytics">
  <meta property="og:description" content="Revenue dashboards for SaaS teams">
  <script type="application/ld+json">{"@type": "Organization", "name": "Acme"}</script>
</head>
<body>
  <a href="#main" class="skip-link">Skip to content</a>
  <header>
    <nav aria-label="Main">
      <a href="/product">Product</a>
      <a href="/pricing">Pricing</a>
      <a href="/customers/">Customers</a>
    </nav>
  </header>
  <main id="main">
    <section class="hero">
      <h1>Revenue analytics for SaaS teams</h1>
      <h2>Grow revenue 30% with dashboards your finance team trusts</h2>
      <p>Acme connects billing, CRM and product data so leaders see churn before it happens.</p>
      <a href="/signup" class="btn btn-primary">Get started free</a>
      <a href="/tour" class="btn btn-secondary">See how it works</a>
    </section>
    <section class="logos">
      <img src="/img/globex.png" alt="Globex logo">
      <img src="/img/initech.png" alt="Initech logo">
      <img src="/img/umbrella.png" alt="Umbrella logo">
      <img src="/img/hooli.png" alt="Hooli logo">
      <img src="/img/stark.png" alt="Stark logo">
    </section>
    <section class="testimonials">
      <blockquote class="testimonial">Acme cut our reporting time in half.</blockquote>
      <blockquote class="testimonial">We finally trust our revenue numbers.</blockquote>
      <a href="/case-studies/globex">Read the Globex case study</a>
    </section>
    <form>
      <label for="email">Work email</label>
      <input id="email" type="email" name="email">
      <button type="submit">Book a demo</button>
    </form>
  </main>
  <footer>
    <a href="/about">About</a>
    <a href="/careers">Careers</a>
    <a href="/blog">Blog</a>
    <a href="/privacy">Privacy</a>
    <a href="/terms">Terms</a>
  </footer>
</body>
</html>
"""

BARE_HTML = (
    "<html><head></head><body>"
    "<p>Hello there, this page has very little on it at all and nothing else to say.</p>"
    "</body></html>"
)


VALID_REPLY = json.dumps({
    "insight": "With a score of 5.5/10, your positioning is unclear.",
    "recommendations": [
        "Name your audience in the headline",
        "Add customer logos",
        "Move the demo CTA above the fold",
        "Compress hero images",
        "A fifth idea that gets dropped",
    ],
    "confidence": 0.85,
    "key_pattern": "messaging_unclear",
})


class FakeProvider(LLMProvider):
    """Scripted provider. The last reply repeats once the script runs out."""

    name = "Fake"

    def __init__(self, replies=(), model="fake-1", configured=True, chunks=None):
        super().__init__()
        self.replies = list(replies)
        self.model = model
        self.configured = configured
        self.chunks = chunks
        self.prompts = []

    def is_configured(self):
        return self.configured

    async def complete(self, prompt, json_mode=True):
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("unexpected LLM call")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return LLMResponse(provider=self.name, model=self.model, text=reply, latency_ms=1)

    async def stream(self, prompt, json_mode=True):
        if self.chunks is None:
            async for chunk in LLMProvider.stream(self, prompt, json_mode):
                yield chunk
            return
        self.prompts.append(prompt)
        for chunk in self.chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeCollector:
    def __init__(self, pages=None, failures=()):
        self.pages = pages or {}
        self.failures = set(failures)
        self.calls = []

    async def collect_all_data(self, url, config):
        self.calls.append(url)
        if url in self.failures:
            raise CollectionError(url, "HTTP 500")
        html = self.pages.get(url, SAMPLE_HTML)
        return CollectedData(url=url, initial_html=html, rendered_html=html, final_url=url,
                             errors={"screenshot": "no page renderer configured"})


def make_result(criterion, score, failed=()):
    return CriterionResult(
        criterion=criterion,
        score=score,
        evidence=HtmlEvidence(description="test", reasoning="test"),
        passes=Passes(failed=tuple(failed)),
    )


def make_scores(**overrides):
    scores = {c: 7.0 for c in Criterion}
    scores.update({Criterion(k): v for k, v in overrides.items()})
    return [make_result(c, s) for c, s in scores.items()]


@pytest.fixture
def config():
    return ScoringConfig()


@pytest.fixture
def context():
    return ScoringContext(url="https://acme.example/", html=SAMPLE_HTML, initial_html=SAMPLE_HTML)


@pytest.fixture
def bare_context():
    return ScoringContext(url="https://bare.example/", html=BARE_HTML, initial_html=BARE_HTML)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
