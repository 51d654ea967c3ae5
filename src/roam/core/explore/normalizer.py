"""Page state normalization.

Maps a raw ``(url, elements)`` snapshot to a canonical page key and the list
of candidate elements worth acting on. Everything here is a pure function of
its inputs and the policy.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .driver import RawElement
from .policy import FilterPolicy, UrlRules

NormalizedPageKey = str

INTERACTIVE_TAGS = frozenset({"button", "a", "input", "select", "textarea"})
INTERACTIVE_ROLES = frozenset(
    {"button", "link", "textbox", "searchbox", "checkbox", "menuitem", "tab"}
)
TYPEABLE_INPUT_TYPES = frozenset(
    {"text", "email", "search", "tel", "url", "password", "number", "date"}
)

# Attributes that identify an element across re-renders.
_STABLE_ATTRIBUTES = ("id", "name", "type", "role", "aria-label", "href", "placeholder")

_DEFAULT_PORTS = {"http": "80", "https": "443"}


@dataclass(frozen=True)
class CandidateElement:
    fingerprint: str
    selector: str
    tag: str
    index: int
    structural_rank: int = 0
    role: str | None = None
    aria_label: str | None = None
    visible_text: str = ""
    input_type: str | None = None
    href: str | None = None
    placeholder: str | None = None
    name: str | None = None
    is_visible: bool = True
    is_interactable: bool = True

    @property
    def is_typeable(self) -> bool:
        if self.tag == "textarea":
            return True
        return self.tag == "input" and (self.input_type or "text") in TYPEABLE_INPUT_TYPES


@dataclass(frozen=True)
class PageState:
    key: NormalizedPageKey
    url: str
    candidates: tuple[CandidateElement, ...]

    @property
    def fingerprints(self) -> frozenset[str]:
        return frozenset(c.fingerprint for c in self.candidates)


def _param_denied(name: str, rules: UrlRules) -> bool:
    lowered = name.lower()
    if rules.allow:
        return lowered not in {a.lower() for a in rules.allow}
    for pattern in rules.deny:
        p = pattern.lower()
        if p.endswith("*"):
            if lowered.startswith(p[:-1]):
                return True
        elif lowered == p:
            return True
    return False


def normalize_url(url: str, rules: UrlRules | None = None) -> NormalizedPageKey:
    """Canonical page key for ``url``.

    Non-HTTP URLs (``about:blank``, ``data:``) come back unchanged.
    """
    rules = rules or UrlRules()
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        return url.strip()

    host = (parts.hostname or "").lower()
    try:
        port = parts.port
    except ValueError:
        port = None
    netloc = host
    if port is not None and str(port) != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"

    path = parts.path.rstrip("/")

    query_pairs = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _param_denied(k, rules)
    ]
    query = urlencode(sorted(query_pairs))
    fragment = parts.fragment if rules.keep_fragment else ""
    return urlunsplit((scheme, netloc, path, query, fragment))


def host_of(url: str) -> str | None:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def same_site(host: str | None, start_host: str | None) -> bool:
    """True when ``host`` is the start host or a sub/parent domain of it."""
    if not host or not start_host:
        return True
    if host == start_host:
        return True
    return host.endswith("." + start_host) or start_host.endswith("." + host)


def structural_rank(tag: str, role: str | None) -> int:
    if tag in INTERACTIVE_TAGS or (role or "") in INTERACTIVE_ROLES:
        return 0
    return 1


def fingerprint_of(raw: RawElement, grid: int = 10) -> str:
    attrs = "|".join(f"{name}={raw.attributes.get(name, '')}" for name in _STABLE_ATTRIBUTES)
    position = f"{int(raw.x // grid)},{int(raw.y // grid)}"
    text = " ".join(raw.text.split())[:50]
    material = f"{raw.tag}|{attrs}|{position}|{text}"
    return hashlib.sha1(material.encode("utf-8")).hexdigest()[:16]


def _passes_filter(raw: RawElement, policy: FilterPolicy) -> bool:
    if not raw.visible or not raw.interactable:
        return False
    if raw.width < policy.min_width or raw.height < policy.min_height:
        return False
    if raw.tag == "input" and raw.attributes.get("type", "").lower() == "hidden":
        return False
    return True


def extract_candidates(
    elements: list[RawElement], policy: FilterPolicy | None = None
) -> tuple[CandidateElement, ...]:
    policy = policy or FilterPolicy()
    seen: set[str] = set()
    kept: list[CandidateElement] = []
    for raw in elements:
        if not _passes_filter(raw, policy):
            continue
        fp = fingerprint_of(raw, policy.position_grid)
        if fp in seen:
            continue
        seen.add(fp)
        role = raw.attributes.get("role") or None
        input_type = None
        if raw.tag == "input":
            input_type = (raw.attributes.get("type") or "text").lower()
        kept.append(
            CandidateElement(
                fingerprint=fp,
                selector=raw.selector,
                tag=raw.tag,
                index=len(kept),
                structural_rank=structural_rank(raw.tag, role),
                role=role,
                aria_label=raw.attributes.get("aria-label") or None,
                visible_text=" ".join(raw.text.split())[:100],
                input_type=input_type,
                href=raw.attributes.get("href") or None,
                placeholder=raw.attributes.get("placeholder") or None,
                name=raw.attributes.get("name") or None,
                is_visible=raw.visible,
                is_interactable=raw.interactable,
            )
        )

    if len(kept) > policy.max_candidates:
        best = sorted(kept, key=lambda c: (c.structural_rank, c.index))[: policy.max_candidates]
        kept = sorted(best, key=lambda c: c.index)
    return tuple(kept)


def normalize_page(
    url: str,
    elements: list[RawElement],
    rules: UrlRules | None = None,
    filters: FilterPolicy | None = None,
) -> PageState:
    return PageState(
        key=normalize_url(url, rules),
        url=url,
        candidates=extract_candidates(elements, filters),
    )
