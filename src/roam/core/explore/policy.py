"""Tunable exploration policy.

Scoring weights and stuck thresholds are policy constants, so every one of
them lives here and can be overridden from the environment or per test.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import ConfigurationError

DEFAULT_TRACKING_PARAMS: tuple[str, ...] = (
    "utm_*",
    "gclid",
    "fbclid",
    "msclkid",
    "dclid",
    "mc_cid",
    "mc_eid",
    "_ga",
    "_gl",
    "ref",
    "ref_src",
    "igshid",
    "yclid",
)


@dataclass(frozen=True)
class UrlRules:
    """Query-parameter handling for page keys.

    ``allow`` wins when non-empty: only those parameters survive. Otherwise any
    parameter matching ``deny`` is dropped; a trailing ``*`` is a prefix match.
    """

    deny: tuple[str, ...] = DEFAULT_TRACKING_PARAMS
    allow: tuple[str, ...] = ()
    keep_fragment: bool = False


@dataclass(frozen=True)
class FilterPolicy:
    min_width: float = 4.0
    min_height: float = 4.0
    max_candidates: int = 60
    position_grid: int = 10  # px; fingerprints tolerate sub-grid layout jitter


@dataclass(frozen=True)
class ScoringWeights:
    tag_weights: dict[str, float] = field(
        default_factory=lambda: {
            "button": 5.0,
            "a": 5.0,
            "input": 4.0,
            "textarea": 4.0,
            "select": 3.0,
        }
    )
    role_weights: dict[str, float] = field(
        default_factory=lambda: {
            "button": 5.0,
            "link": 5.0,
            "tab": 4.0,
            "menuitem": 4.0,
            "textbox": 4.0,
            "searchbox": 4.0,
            "checkbox": 3.0,
        }
    )
    default_tag_weight: float = 1.0
    text_bonus: float = 2.0
    input_type_bonus: dict[str, float] = field(
        default_factory=lambda: {"email": 3.0, "search": 2.5, "text": 2.0}
    )
    external_link_penalty: float = 10.0


@dataclass(frozen=True)
class StuckThresholds:
    scroll_after: int = 1
    back_after: int = 3
    exhaust_after: int = 5


@dataclass(frozen=True)
class ExplorationPolicy:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    thresholds: StuckThresholds = field(default_factory=StuckThresholds)
    filters: FilterPolicy = field(default_factory=FilterPolicy)
    url_rules: UrlRules = field(default_factory=UrlRules)
    stay_on_domain: bool = True

    def validate(self) -> ExplorationPolicy:
        t = self.thresholds
        if not 0 < t.scroll_after < t.back_after < t.exhaust_after:
            raise ConfigurationError(
                "stuck thresholds must satisfy 0 < scroll_after < back_after < exhaust_after, "
                f"got {t.scroll_after}/{t.back_after}/{t.exhaust_after}"
            )
        if self.filters.max_candidates < 1:
            raise ConfigurationError("max_candidates must be at least 1")
        if self.filters.position_grid < 1:
            raise ConfigurationError("position_grid must be at least 1")
        return self

    @classmethod
    def from_env(cls) -> ExplorationPolicy:
        """Build a policy from ``ROAM_*`` environment variables."""

        def _int(name: str, default: int) -> int:
            val = os.getenv(name)
            return int(val) if val else default

        def _list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
            val = os.getenv(name)
            if val is None:
                return default
            return tuple(p.strip() for p in val.split(",") if p.strip())

        base = StuckThresholds()
        thresholds = StuckThresholds(
            scroll_after=_int("ROAM_STUCK_SCROLL_AFTER", base.scroll_after),
            back_after=_int("ROAM_STUCK_BACK_AFTER", base.back_after),
            exhaust_after=_int("ROAM_STUCK_EXHAUST_AFTER", base.exhaust_after),
        )
        fbase = FilterPolicy()
        filters = FilterPolicy(
            min_width=float(os.getenv("ROAM_MIN_ELEMENT_WIDTH", fbase.min_width)),
            min_height=float(os.getenv("ROAM_MIN_ELEMENT_HEIGHT", fbase.min_height)),
            max_candidates=_int("ROAM_MAX_CANDIDATES", fbase.max_candidates),
            position_grid=_int("ROAM_POSITION_GRID", fbase.position_grid),
        )
        url_rules = UrlRules(
            deny=_list("ROAM_QUERY_DENY", DEFAULT_TRACKING_PARAMS),
            allow=_list("ROAM_QUERY_ALLOW", ()),
            keep_fragment=os.getenv("ROAM_KEEP_FRAGMENT", "false").lower() in {"1", "true", "yes"},
        )
        stay = os.getenv("ROAM_STAY_ON_DOMAIN", "true").lower() in {"1", "true", "yes"}
        return cls(
            thresholds=thresholds,
            filters=filters,
            url_rules=url_rules,
            stay_on_domain=stay,
        ).validate()
