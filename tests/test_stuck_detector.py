"""Tests for stuck detection, recovery escalation and the element registry."""

from __future__ import annotations

import pytest
from fakes import el

from roam.core.explore.errors import ConfigurationError
from roam.core.explore.normalizer import normalize_page
from roam.core.explore.policy import ExplorationPolicy, StuckThresholds
from roam.core.explore.registry import ElementRegistry
from roam.core.explore.stuck import Progress, StuckDetector
from roam.core.ir.model import Back, Scroll

HOME = "https://example.com/"
ABOUT = "https://example.com/about"


def _page(url, *elements):
    return normalize_page(url, list(elements))


class TestElementRegistry:
    def test_record_is_idempotent_per_page(self):
        registry = ElementRegistry()
        assert registry.record("p1", "fp")
        assert not registry.record("p1", "fp")
        assert registry.record("p2", "fp")
        assert registry.count_on("p1") == 1
        assert registry.total() == 2

    def test_acted_on_unknown_page_is_empty(self):
        registry = ElementRegistry()
        assert registry.acted_on("nowhere") == frozenset()
        assert not registry.has("nowhere", "fp")


class TestAssess:
    detector = StuckDetector()

    def test_new_page_is_progress(self):
        before = _page(HOME, el("a", "#about", "About", href=ABOUT))
        after = _page(ABOUT)
        assert (
            self.detector.assess(before, after, frozenset(), frozenset(), {before.key})
            is Progress.PROGRESS
        )

    def test_new_elements_on_same_page_are_progress(self):
        before = _page(HOME, el("button", "#more", "More"))
        after = _page(HOME, el("button", "#more", "More"), el("a", "#item", "Item", y=40))
        progress = self.detector.assess(
            before,
            after,
            frozenset(),
            frozenset(),
            {before.key},
            known_fingerprints=before.fingerprints,
        )
        assert progress is Progress.PROGRESS

    def test_consuming_a_candidate_is_progress(self):
        page = _page(HOME, el("button", "#a", "A"), el("button", "#b", "B", y=40))
        fp = page.candidates[0].fingerprint
        progress = self.detector.assess(
            page, page, frozenset(), frozenset({fp}), {page.key}, page.fingerprints
        )
        assert progress is Progress.PROGRESS

    def test_unchanged_empty_page_is_no_progress(self):
        page = _page(HOME)
        assert (
            self.detector.assess(page, page, frozenset(), frozenset(), {page.key})
            is Progress.NO_PROGRESS
        )

    def test_missing_snapshot_is_no_progress(self):
        page = _page(HOME)
        assert (
            self.detector.assess(page, None, frozenset(), frozenset(), {page.key})
            is Progress.NO_PROGRESS
        )

    def test_return_to_fully_explored_page_is_neutral(self):
        home = _page(HOME, el("a", "#about", "About", href=ABOUT))
        about = _page(ABOUT)
        acted = frozenset(home.fingerprints)
        progress = self.detector.assess(
            about, home, frozenset(), acted, {home.key, about.key}, home.fingerprints
        )
        assert progress is Progress.NEUTRAL

    def test_return_to_page_with_work_left_is_progress(self):
        home = _page(HOME, el("a", "#about", "About", href=ABOUT), el("a", "#blog", "Blog", y=40))
        about = _page(ABOUT)
        acted = frozenset({home.candidates[0].fingerprint})
        progress = self.detector.assess(
            about, home, frozenset(), acted, {home.key, about.key}, home.fingerprints
        )
        assert progress is Progress.PROGRESS


class TestCounterAndRecovery:
    def test_apply(self):
        assert StuckDetector.apply(3, Progress.PROGRESS) == 0
        assert StuckDetector.apply(3, Progress.NO_PROGRESS) == 4
        assert StuckDetector.apply(3, Progress.NEUTRAL) == 3

    def test_escalation_ladder(self):
        detector = StuckDetector(StuckThresholds(scroll_after=1, back_after=3, exhaust_after=5))
        assert detector.recovery(0, has_candidates=True) is None
        assert detector.recovery(0, has_candidates=False) == Scroll()
        assert detector.recovery(1, has_candidates=True) == Scroll()
        assert detector.recovery(2, has_candidates=True) == Scroll()
        assert detector.recovery(3, has_candidates=True) == Back()
        assert detector.recovery(4, has_candidates=False) == Back()
        assert not detector.is_exhausted(4)
        assert detector.is_exhausted(5)


class TestPolicyValidation:
    @pytest.mark.parametrize(
        "thresholds",
        [
            StuckThresholds(scroll_after=0, back_after=3, exhaust_after=5),
            StuckThresholds(scroll_after=3, back_after=3, exhaust_after=5),
            StuckThresholds(scroll_after=1, back_after=5, exhaust_after=5),
        ],
    )
    def test_inconsistent_thresholds_are_rejected(self, thresholds):
        with pytest.raises(ConfigurationError):
            ExplorationPolicy(thresholds=thresholds).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ROAM_STUCK_SCROLL_AFTER", "2")
        monkeypatch.setenv("ROAM_STUCK_BACK_AFTER", "4")
        monkeypatch.setenv("ROAM_STUCK_EXHAUST_AFTER", "6")
        monkeypatch.setenv("ROAM_QUERY_ALLOW", "id, page")
        monkeypatch.setenv("ROAM_STAY_ON_DOMAIN", "false")
        policy = ExplorationPolicy.from_env()
        assert policy.thresholds == StuckThresholds(2, 4, 6)
        assert policy.url_rules.allow == ("id", "page")
        assert policy.stay_on_domain is False

    def test_from_env_rejects_bad_thresholds(self, monkeypatch):
        monkeypatch.setenv("ROAM_STUCK_SCROLL_AFTER", "5")
        with pytest.raises(ConfigurationError):
            ExplorationPolicy.from_env()
