"""Action prioritizer.

Scores the unacted candidates of the current page and turns the best one into
a ``Click`` or ``Type`` action. Pure and deterministic: identical inputs always
yield the identical action, which keeps exploration runs reproducible.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..ir.model import Click, Type
from .inputs import synthesize_value
from .normalizer import CandidateElement, host_of, same_site
from .policy import ScoringWeights


@dataclass(frozen=True)
class ScoredCandidate:
    element: CandidateElement
    score: float


@dataclass(frozen=True)
class Choice:
    action: Click | Type
    element: CandidateElement
    score: float


def score_candidate(
    element: CandidateElement,
    weights: ScoringWeights,
    start_host: str | None = None,
) -> float:
    tag_weight = weights.tag_weights.get(element.tag, weights.default_tag_weight)
    if element.role:
        tag_weight = max(tag_weight, weights.role_weights.get(element.role, tag_weight))
    score = tag_weight

    if element.visible_text.strip() or (element.aria_label or "").strip():
        score += weights.text_bonus

    if element.is_typeable:
        kind = element.input_type or ("textarea" if element.tag == "textarea" else "text")
        score += weights.input_type_bonus.get(kind, 0.0)

    if element.href and start_host and element.href.startswith(("http://", "https://")):
        if not same_site(host_of(element.href), start_host):
            score -= weights.external_link_penalty
    return score


def rank_candidates(
    candidates: Sequence[CandidateElement],
    acted: Iterable[str],
    weights: ScoringWeights,
    start_host: str | None = None,
) -> list[ScoredCandidate]:
    """Unacted candidates, best first; document order breaks ties."""
    acted_set = frozenset(acted)
    scored = [
        ScoredCandidate(element=c, score=score_candidate(c, weights, start_host))
        for c in candidates
        if c.fingerprint not in acted_set
    ]
    scored.sort(key=lambda s: (-s.score, s.element.index))
    return scored


def choose_action(
    candidates: Sequence[CandidateElement],
    acted: Iterable[str],
    weights: ScoringWeights,
    start_host: str | None = None,
) -> Choice | None:
    """Best action on this page, or None when every candidate was already acted on."""
    ranked = rank_candidates(candidates, acted, weights, start_host)
    if not ranked:
        return None
    best = ranked[0]
    element = best.element
    if element.is_typeable:
        action: Click | Type = Type(
            selector=element.selector,
            fingerprint=element.fingerprint,
            value=synthesize_value(element),
        )
    else:
        action = Click(selector=element.selector, fingerprint=element.fingerprint)
    return Choice(action=action, element=element, score=best.score)
