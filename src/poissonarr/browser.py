"""Playwright-backed resource host with an in-page interaction collaborator."""

import asyncio
import random
from typing import Any
from urllib.parse import urlsplit

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import Config
from .errors import CollaboratorAttachError, HandoffError, ResourceOpenError
from .host import INTERACT_COMMAND, INTERACTION_COMPLETE, Resource, ResourceHost
from .models import TaskKind

logger = structlog.get_logger()

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)

# Result-title selectors for the built-in engines, most specific first
SEARCH_RESULT_SELECTORS = [
    "h3 a",
    "a.result__a",
    "li.b_algo h2 a",
    "div.compTitle a",
    "#search a[href]:not([role])",
]

ESTIMATE_BYTES_JS = """
() => {
    let total = 0;
    for (const r of performance.getEntriesByType('resource')) {
        total += r.transferSize || r.encodedBodySize || 0;
    }
    const doc = document.documentElement.outerHTML;
    return total + (doc ? doc.length : 0);
}
"""


class PageResource(Resource):
    """A page in its own browser context, plus the collaborator driving it."""

    def __init__(self, context: BrowserContext, page: Page, url: str, fallback_bytes: int):
        self.context = context
        self.page = page
        self.url = url
        self.fallback_bytes = fallback_bytes
        self.rng = random.Random()
        self._attached = False
        self._job: asyncio.Task | None = None
        self._done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._closed = False

    async def load(self) -> None:
        if self._closed:
            raise ResourceOpenError("resource already closed")
        try:
            await self.page.goto(self.url, wait_until="domcontentloaded", timeout=60000)
        except PlaywrightError as e:
            raise ResourceOpenError(str(e)) from e

    async def attach(self) -> None:
        if urlsplit(self.page.url).scheme not in ("http", "https"):
            raise CollaboratorAttachError(f"restricted page: {self.page.url}")
        try:
            await self.page.evaluate("() => document.readyState")
        except PlaywrightError as e:
            raise CollaboratorAttachError(str(e)) from e
        self._attached = True

    async def send(self, message: dict[str, Any]) -> None:
        if not self._attached or self._closed:
            raise HandoffError("collaborator not listening")
        if message.get("command") != INTERACT_COMMAND or self._job is not None:
            return
        kind = TaskKind(message.get("kind", TaskKind.BROWSE.value))
        budget = int(message.get("durationBudgetMs", 10000))
        self._job = asyncio.create_task(self._interact(budget, kind))

    async def completion(self) -> dict[str, Any]:
        return await asyncio.shield(self._done)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._job is not None:
            self._job.cancel()
        await self.context.close()

    async def _interact(self, budget_ms: int, kind: TaskKind) -> None:
        """Scroll, hover and maybe click within the budget, then report counts."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        total = budget_ms / 1000
        scrolls = 0
        clicks = 0

        def remaining() -> float:
            return total - (loop.time() - started)

        try:
            await asyncio.sleep(self.rng.uniform(1.0, 3.0))

            for _ in range(self.rng.randint(2, 4)):
                if remaining() < 2:
                    break
                await self.page.evaluate(f"window.scrollBy(0, {self.rng.randint(200, 600)})")
                scrolls += 1
                await asyncio.sleep(self.rng.uniform(1.0, 3.0))

            if remaining() > 2:
                await self._hover_around()

            click_chance = 0.5 if kind is TaskKind.SEARCH else 0.3
            if remaining() > 3 and self.rng.random() < click_chance:
                if await self._click_link(kind):
                    clicks += 1
                    await asyncio.sleep(self.rng.uniform(1.0, 2.0))

            if remaining() > 0:
                await asyncio.sleep(min(remaining(), 3.0))
        except PlaywrightError as e:
            logger.debug("interaction_interrupted", url=self.url, error=str(e))

        nbytes = await self._estimate_bytes()
        if not self._done.done():
            self._done.set_result({
                "event": INTERACTION_COMPLETE,
                "scrolls": scrolls,
                "clicks": clicks,
                "bytesEstimated": nbytes,
            })

    async def _hover_around(self) -> None:
        elements = await self.page.query_selector_all("a, img, button, [role='button']")
        candidates = elements[:50]
        for _ in range(min(self.rng.randint(2, 5), len(candidates))):
            try:
                await self.rng.choice(candidates).hover(timeout=2000)
            except PlaywrightError:
                continue
            await asyncio.sleep(self.rng.uniform(0.2, 0.8))

    async def _links(self, kind: TaskKind) -> list:
        if kind is TaskKind.SEARCH:
            for selector in SEARCH_RESULT_SELECTORS:
                links = await self.page.query_selector_all(selector)
                if links:
                    return links

        origin = urlsplit(self.page.url).netloc
        links = []
        for link in (await self.page.query_selector_all("a[href]:not([href^='#'])"))[:50]:
            try:
                if not await link.is_visible():
                    continue
                href = await link.get_attribute("href") or ""
            except PlaywrightError:
                continue
            parts = urlsplit(href)
            # Same-origin only: relative links or absolute http(s) on this host
            if not parts.scheme and not parts.netloc and not href.startswith(("javascript:", "mailto:")):
                links.append(link)
            elif parts.scheme in ("http", "https") and parts.netloc == origin:
                links.append(link)
        return links

    async def _click_link(self, kind: TaskKind) -> bool:
        links = await self._links(kind)
        if not links:
            return False
        link = self.rng.choice(links[:10])
        await asyncio.sleep(self.rng.uniform(0.5, 1.5))
        try:
            await link.hover(timeout=2000)
            await link.click(timeout=5000)
        except PlaywrightError as e:
            logger.debug("click_failed", url=self.url, error=str(e))
            return False
        return True

    async def _estimate_bytes(self) -> int:
        try:
            nbytes = await self.page.evaluate(ESTIMATE_BYTES_JS)
        except PlaywrightError:
            return self.fallback_bytes
        return int(nbytes) or self.fallback_bytes


class PlaywrightHost(ResourceHost):
    """Opens each destination in a fresh context of one shared Chromium."""

    def __init__(self, config: Config):
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if self._browser is not None:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-gpu",
                ],
            )
            logger.info("browser_launched", headless=self.config.headless)

    async def open(self, url: str) -> Resource:
        """Create a context and blank page. Navigation happens in ``PageResource.load``."""
        context = None
        try:
            if self._browser is None:
                await self.start()
            context = await self._browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=USER_AGENT,
                locale="en-US",
                timezone_id=self.config.timezone,
            )
            page = await context.new_page()
        except PlaywrightError as e:
            if context is not None:
                try:
                    await context.close()
                except PlaywrightError as close_error:
                    logger.debug("context_close_failed", url=url, error=str(close_error))
            raise ResourceOpenError(str(e)) from e

        return PageResource(context, page, url, self.config.fallback_bytes)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
                logger.info("browser_closed")
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
