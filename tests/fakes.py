"""Scripted stand-ins for a browser, shared by the exploration tests."""

from __future__ import annotations

import threading
from collections import defaultdict

from roam.core.explore.driver import PageSnapshot, RawElement
from roam.core.explore.errors import BrowserClosedError
from roam.core.ir.model import Action, Back, Click, DispatchResult, Navigate, Scroll, Type


def el(tag: str, selector: str, text: str = "", y: float = 0, **attributes: str) -> RawElement:
    """A visible, comfortably sized element at vertical position ``y``."""
    attrs = {k.replace("_", "-"): v for k, v in attributes.items()}
    return RawElement(
        tag=tag,
        selector=selector,
        text=text,
        attributes=attrs,
        x=10,
        y=y,
        width=120,
        height=30,
    )


class FakeDriver:
    """In-memory site: pages are element lists, links map (url, selector) -> url.

    Clicking a linked selector or Navigate pushes onto the per-session
    history; Back pops it.
    Selectors listed in ``failing`` make dispatch report failure.
    """

    def __init__(
        self,
        pages: dict[str, list[RawElement]] | None = None,
        links: dict[tuple[str, str], str] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.links = links or {}
        self.failing = failing or set()
        self.history: dict[str, list[str]] = {}
        self.dispatched: dict[str, list[Action]] = defaultdict(list)
        self.closed: list[str] = []
        self.snapshot_failures = 0
        self.lost: set[str] = set()
        self.lock = threading.Lock()

    def url_of(self, session_id: str) -> str:
        return self.history[session_id][-1]

    def open(self, session_id: str, url: str) -> None:
        with self.lock:
            self.history[session_id] = [url]

    def snapshot(self, session_id: str) -> PageSnapshot:
        if session_id in self.lost:
            raise BrowserClosedError(f"context of {session_id} closed")
        if self.snapshot_failures > 0:
            self.snapshot_failures -= 1
            raise RuntimeError("evaluate failed")
        url = self.url_of(session_id)
        return PageSnapshot(url=url, elements=list(self.pages.get(url, [])))

    def dispatch(self, session_id: str, action: Action) -> DispatchResult:
        if session_id in self.lost:
            raise BrowserClosedError(f"context of {session_id} closed")
        with self.lock:
            self.dispatched[session_id].append(action)
            history = self.history[session_id]
        url = history[-1]
        if isinstance(action, (Click, Type)):
            if action.selector in self.failing:
                return DispatchResult(success=False, new_url=url, error="element detached")
            if isinstance(action, Click) and (url, action.selector) in self.links:
                history.append(self.links[(url, action.selector)])
            return DispatchResult(success=True, new_url=history[-1])
        if isinstance(action, Scroll):
            return DispatchResult(success=True, new_url=url)
        if isinstance(action, Back):
            if len(history) < 2:
                return DispatchResult(success=False, new_url=url, error="no history")
            history.pop()
            return DispatchResult(success=True, new_url=history[-1])
        if isinstance(action, Navigate):
            history.append(action.url)
            return DispatchResult(success=True, new_url=action.url)
        raise AssertionError(f"unexpected action {action!r}")

    def screenshot(self, session_id: str) -> bytes | None:
        return None

    def close(self, session_id: str) -> None:
        with self.lock:
            self.closed.append(session_id)
            self.history.pop(session_id, None)
