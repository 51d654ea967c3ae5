"""Playwright-backed browser driver.

Runs the async Playwright API on one dedicated event-loop thread and exposes a
blocking interface to the exploration loop. Async Playwright has no thread
affinity, so sessions driven from different threads can share one browser;
each session gets its own browser context, and a slow page only blocks the
thread waiting on that session's call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from contextlib import suppress
from typing import TYPE_CHECKING, Any, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..config.settings import Settings
from ..config.settings import settings as default_settings
from ..core.explore.driver import PageSnapshot, RawElement
from ..core.explore.errors import BrowserClosedError
from ..core.ir.model import Action, Back, Click, DispatchResult, Navigate, Scroll, Type

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Collects interactive elements near the viewport. Each element is stamped
# with a fresh data-roam-ref so the selector stays valid until the next
# snapshot; positions are in document coordinates so scrolling does not
# change an element's fingerprint.
_SNAPSHOT_JS = """(maxElements) => {
    const query = 'a, button, input, select, textarea, [onclick], [role="button"], ' +
        '[role="link"], [role="tab"], [role="menuitem"], [role="checkbox"]';
    document.querySelectorAll('[data-roam-ref]').forEach(el => el.removeAttribute('data-roam-ref'));

    const elements = [];
    const horizon = window.innerHeight * 2;
    let ref = 0;
    for (const el of document.querySelectorAll(query)) {
        if (elements.length >= maxElements) break;
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        const tag = el.tagName.toLowerCase();
        const visible = rect.width > 0 && rect.height > 0 &&
            style.visibility !== 'hidden' && style.display !== 'none' &&
            rect.bottom > 0 && rect.top < horizon;
        const interactable = !el.disabled &&
            el.getAttribute('aria-disabled') !== 'true' &&
            style.pointerEvents !== 'none';

        const id = 'r' + (ref++);
        el.setAttribute('data-roam-ref', id);

        const attributes = {};
        for (const name of ['id', 'name', 'type', 'role', 'aria-label', 'placeholder']) {
            const v = el.getAttribute(name);
            if (v !== null) attributes[name] = v;
        }
        if (tag === 'a' && el.href) attributes['href'] = el.href;

        // Field values are left out: typing into a field must not change its identity.
        const isField = tag === 'input' || tag === 'textarea' || tag === 'select';
        elements.push({
            tag: tag,
            selector: '[data-roam-ref="' + id + '"]',
            text: isField ? '' : (el.innerText || el.textContent || '').trim().substring(0, 100),
            attributes: attributes,
            x: rect.x + window.scrollX,
            y: rect.y + window.scrollY,
            width: rect.width,
            height: rect.height,
            visible: visible,
            interactable: interactable,
        });
    }
    return elements;
}"""


class PlaywrightDriver:
    """Browser driver implementing ``roam.core.explore.driver.BrowserDriver``."""

    def __init__(
        self,
        settings: Settings | None = None,
        max_elements: int = 300,
    ) -> None:
        self.settings = settings or default_settings
        self.max_elements = max_elements

        self._loop = asyncio.new_event_loop()
        self._thread: threading.Thread | None = None
        self._thread_lock = threading.Lock()

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._browser_lock: asyncio.Lock | None = None
        self._contexts: dict[str, BrowserContext] = {}
        self._pages: dict[str, Page] = {}

    # --- loop plumbing ------------------------------------------------------

    def _call(self, coro: Coroutine[Any, Any, T]) -> T:
        with self._thread_lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._loop.run_forever, name="roam-playwright", daemon=True
                )
                self._thread.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    async def _ensure_browser(self) -> Browser:
        if self._browser_lock is None:
            self._browser_lock = asyncio.Lock()
        async with self._browser_lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.settings.headless,
                    args=[
                        "--no-sandbox",
                        "--disable-dev-shm-usage",
                        "--disable-gpu",
                        "--disable-extensions",
                    ],
                )
                logger.info(f"Chromium launched (headless={self.settings.headless})")
            return self._browser

    def _page(self, session_id: str) -> Page:
        page = self._pages.get(session_id)
        if page is None or page.is_closed():
            raise BrowserClosedError(f"No browser context for session {session_id}")
        return page

    async def _settle(self, page: Page) -> None:
        with suppress(PlaywrightTimeoutError):
            await page.wait_for_load_state(
                "domcontentloaded", timeout=self.settings.navigation_timeout_ms
            )
        await page.wait_for_timeout(self.settings.settle_ms)

    # --- BrowserDriver ------------------------------------------------------

    def open(self, session_id: str, url: str) -> None:
        self._call(self._open(session_id, url))

    async def _open(self, session_id: str, url: str) -> None:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            }
        )
        page = await context.new_page()
        self._contexts[session_id] = context
        self._pages[session_id] = page
        try:
            await page.goto(
                url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms
            )
        except PlaywrightTimeoutError:
            logger.warning(f"Initial navigation to {url} timed out; continuing with partial page")
        await page.wait_for_timeout(self.settings.settle_ms)

    def snapshot(self, session_id: str) -> PageSnapshot:
        return self._call(self._snapshot(session_id))

    async def _snapshot(self, session_id: str) -> PageSnapshot:
        page = self._page(session_id)
        raw = await page.evaluate(_SNAPSHOT_JS, self.max_elements)
        return PageSnapshot(url=page.url, elements=[RawElement.from_dict(e) for e in raw])

    def dispatch(self, session_id: str, action: Action) -> DispatchResult:
        return self._call(self._dispatch(session_id, action))

    async def _dispatch(self, session_id: str, action: Action) -> DispatchResult:
        page = self._page(session_id)
        timeout = self.settings.action_timeout_ms
        try:
            if isinstance(action, Click):
                await page.click(action.selector, timeout=timeout)
            elif isinstance(action, Type):
                await page.fill(action.selector, action.value, timeout=timeout)
            elif isinstance(action, Scroll):
                dy = action.amount if action.direction == "down" else -action.amount
                await page.mouse.wheel(0, dy)
            elif isinstance(action, Back):
                before = page.url
                response = await page.go_back(
                    timeout=self.settings.navigation_timeout_ms, wait_until="domcontentloaded"
                )
                if response is None and page.url == before:
                    return DispatchResult(success=False, new_url=page.url, error="no history")
            elif isinstance(action, Navigate):
                await page.goto(
                    action.url,
                    timeout=self.settings.navigation_timeout_ms,
                    wait_until="domcontentloaded",
                )
            await self._settle(page)
        except PlaywrightError as e:
            if page.is_closed():
                raise BrowserClosedError(f"Page of session {session_id} closed: {e}") from e
            return DispatchResult(success=False, new_url=page.url, error=str(e).splitlines()[0])
        return DispatchResult(success=True, new_url=page.url)

    def screenshot(self, session_id: str) -> bytes | None:
        return self._call(self._screenshot(session_id))

    async def _screenshot(self, session_id: str) -> bytes | None:
        page = self._page(session_id)
        return await page.screenshot(type="png")

    def close(self, session_id: str) -> None:
        self._call(self._close(session_id))

    async def _close(self, session_id: str) -> None:
        self._pages.pop(session_id, None)
        context = self._contexts.pop(session_id, None)
        if context is not None:
            with suppress(PlaywrightError):
                await context.close()

    def shutdown(self) -> None:
        """Close every context, the browser and the loop thread."""
        if self._thread is None:
            return
        self._call(self._shutdown())
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        logger.info("Playwright driver shut down")

    async def _shutdown(self) -> None:
        for session_id in list(self._contexts):
            await self._close(session_id)
        if self._browser is not None:
            with suppress(PlaywrightError):
                await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            with suppress(PlaywrightError):
                await self._playwright.stop()
            self._playwright = None
