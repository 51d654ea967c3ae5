"""Stuck detection and recovery.

Every step is classified as progress, no progress, or neutral. The session's
stuck counter resets on progress and grows on no progress; its value picks the
recovery action (scroll, then back) and finally ends the session as exhausted.
"""

from __future__ import annotations

from collections.abc import Set
from enum import Enum

from ..ir.model import Back, Scroll
from .normalizer import NormalizedPageKey, PageState
from .policy import StuckThresholds


class Progress(str, Enum):
    PROGRESS = "progress"
    NO_PROGRESS = "no_progress"
    NEUTRAL = "neutral"


def _available(page: PageState, acted: Set[str]) -> int:
    return sum(1 for c in page.candidates if c.fingerprint not in acted)


class StuckDetector:
    def __init__(self, thresholds: StuckThresholds | None = None) -> None:
        self.thresholds = thresholds or StuckThresholds()

    def assess(
        self,
        before: PageState | None,
        after: PageState | None,
        acted_before: Set[str],
        acted_after: Set[str],
        visited: Set[NormalizedPageKey],
        known_fingerprints: Set[str] = frozenset(),
    ) -> Progress:
        """Classify the step that led from ``before`` to ``after``.

        ``visited`` and ``known_fingerprints`` describe what the session had
        seen before this step; ``acted_*`` are the registry contents for the
        resulting page before and after the step's registration.
        """
        if after is None:
            return Progress.NO_PROGRESS
        if after.key not in visited:
            return Progress.PROGRESS
        if after.fingerprints - known_fingerprints:
            return Progress.PROGRESS

        if before is None or after.key != before.key:
            if _available(after, acted_after) > 0:
                return Progress.PROGRESS
            return Progress.NEUTRAL

        # A failed dispatch still registers its target, so coverage grows.
        if _available(after, acted_after) < _available(before, acted_before):
            return Progress.PROGRESS
        return Progress.NO_PROGRESS

    @staticmethod
    def apply(counter: int, progress: Progress) -> int:
        if progress is Progress.PROGRESS:
            return 0
        if progress is Progress.NO_PROGRESS:
            return counter + 1
        return counter

    def recovery(self, counter: int, has_candidates: bool) -> Scroll | Back | None:
        """Recovery action for this counter value, or None to let the prioritizer pick."""
        t = self.thresholds
        if counter >= t.back_after:
            return Back()
        if counter >= t.scroll_after or not has_candidates:
            return Scroll()
        return None

    def is_exhausted(self, counter: int) -> bool:
        return counter >= self.thresholds.exhaust_after
