"""Page data collection: HTML, rendered HTML, screenshots and web vitals."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from .circuit import CircuitBreaker
from .config import ScoringConfig, Viewport
from .errors import CircuitOpenError, CollectionError
from .models import ScoringContext, WebVitals

logger = logging.getLogger(__name__)


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; EffectivenessAudit/0.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def normalize_url(url: str) -> str:
    """Ensure URL has a scheme."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


@dataclass
class CollectedData:
    """Everything gathered about one page. Missing artifacts are None."""
    url: str
    initial_html: str | None = None
    rendered_html: str | None = None
    screenshot_url: str | None = None
    full_page_screenshot_url: str | None = None
    web_vitals: WebVitals | None = None
    screenshot_method: str | None = None
    errors: dict[str, str] = field(default_factory=dict)
    timing: dict[str, int] = field(default_factory=dict)
    final_url: str | None = None

    def to_context(self) -> ScoringContext:
        return ScoringContext(
            url=self.final_url or self.url,
            html=self.rendered_html or self.initial_html or "",
            initial_html=self.initial_html,
            screenshot_url=self.screenshot_url,
            full_page_screenshot_url=self.full_page_screenshot_url,
            web_vitals=self.web_vitals,
            screenshot_method=self.screenshot_method,
            collection_errors=self.errors,
        )


class DataCollector(Protocol):
    async def collect_all_data(self, url: str, config: ScoringConfig) -> CollectedData: ...


@dataclass
class RenderedPage:
    html: str | None = None
    screenshot_url: str | None = None
    full_page_screenshot_url: str | None = None
    web_vitals: WebVitals | None = None
    method: str | None = None


class PageRenderer(Protocol):
    """A headless browser or screenshot service."""

    async def render(self, url: str, viewport: Viewport) -> RenderedPage: ...


class HttpDataCollector:
    """Fetches the server HTML with httpx and, optionally, renders the page.

    The fetch and the render run concurrently, each behind its own circuit
    breaker. Each artifact fails on its own; only a page with no HTML from
    either source is an error.
    """

    def __init__(
        self,
        renderer: PageRenderer | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.renderer = renderer
        self.timeout = timeout
        self._transport = transport
        self.breaker = breaker if breaker is not None else CircuitBreaker()

    async def fetch_html(self, url: str) -> tuple[str, str]:
        """Return (html, final_url) for a URL."""
        async with httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text, str(response.url)

    async def collect_all_data(self, url: str, config: ScoringConfig) -> CollectedData:
        url = normalize_url(url)
        data = CollectedData(url=url, final_url=url)
        start = time.time()

        async def timed(name: str, coro):
            t0 = time.time()
            try:
                return await coro
            finally:
                data.timing[name] = int((time.time() - t0) * 1000)

        tasks = [timed("initial_html", self.breaker.call("initial_html", lambda: self.fetch_html(url)))]
        if self.renderer is not None:
            tasks.append(timed("render", self.breaker.call(
                "render", lambda: self.renderer.render(url, config.viewport),
            )))
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        fetched = outcomes[0]
        if isinstance(fetched, BaseException):
            data.errors["initial_html"] = _describe(fetched, self.timeout)
            logger.warning("Initial HTML fetch failed for %s: %s", url, data.errors["initial_html"])
        else:
            data.initial_html, data.final_url = fetched

        if self.renderer is None:
            for name in ("rendered_html", "screenshot", "full_page_screenshot", "web_vitals"):
                data.errors[name] = "no page renderer configured"
        else:
            rendered = outcomes[1]
            if isinstance(rendered, BaseException):
                message = _describe(rendered, self.timeout)
                for name in ("rendered_html", "screenshot", "full_page_screenshot", "web_vitals"):
                    data.errors[name] = message
                logger.warning("Page render failed for %s: %s", url, message)
            else:
                self._apply_render(data, rendered)

        if not data.rendered_html and data.initial_html:
            data.rendered_html = data.initial_html
        if not data.initial_html and not data.rendered_html:
            raise CollectionError(url, data.errors.get("initial_html", "no HTML collected"))

        data.timing["total"] = int((time.time() - start) * 1000)
        logger.info("Collected %s in %dms (screenshot: %s, web vitals: %s, %d missing artifact(s))",
                    url, data.timing["total"], bool(data.screenshot_url), bool(data.web_vitals), len(data.errors))
        return data

    def _apply_render(self, data: CollectedData, page: RenderedPage) -> None:
        data.rendered_html = page.html or None
        data.screenshot_url = page.screenshot_url
        data.full_page_screenshot_url = page.full_page_screenshot_url
        data.web_vitals = page.web_vitals
        data.screenshot_method = page.method
        for name, value in (
            ("rendered_html", data.rendered_html),
            ("screenshot", data.screenshot_url),
            ("full_page_screenshot", data.full_page_screenshot_url),
            ("web_vitals", data.web_vitals),
        ):
            if value is None:
                data.errors[name] = "not captured"


def _describe(error: BaseException, timeout: float) -> str:
    if isinstance(error, CircuitOpenError):
        return str(error)
    if isinstance(error, httpx.TimeoutException):
        return f"Timeout after {timeout}s"
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    if isinstance(error, httpx.RequestError):
        return f"Request failed: {error}"
    return f"Error: {error}"
