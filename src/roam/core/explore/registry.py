from __future__ import annotations

from .normalizer import NormalizedPageKey


class ElementRegistry:
    """Fingerprints already acted upon, per normalized page.

    Owned by exactly one session and only ever grows.
    """

    def __init__(self) -> None:
        self._acted: dict[NormalizedPageKey, set[str]] = {}

    def has(self, page_key: NormalizedPageKey, fingerprint: str) -> bool:
        return fingerprint in self._acted.get(page_key, ())

    def record(self, page_key: NormalizedPageKey, fingerprint: str) -> bool:
        """Register ``fingerprint`` on ``page_key``; False if it was already there."""
        acted = self._acted.setdefault(page_key, set())
        if fingerprint in acted:
            return False
        acted.add(fingerprint)
        return True

    def count_on(self, page_key: NormalizedPageKey) -> int:
        return len(self._acted.get(page_key, ()))

    def acted_on(self, page_key: NormalizedPageKey) -> frozenset[str]:
        return frozenset(self._acted.get(page_key, ()))

    def total(self) -> int:
        return sum(len(fps) for fps in list(self._acted.values()))
