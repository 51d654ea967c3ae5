"""Browser driver boundary.

The exploration loop never touches a browser directly. It asks a driver for
page snapshots and hands it actions; ``roam.adapters.playwright`` provides the
default implementation and tests use scripted fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ..ir.model import Action, DispatchResult


@dataclass(frozen=True)
class RawElement:
    """One element as reported by the driver, before filtering."""

    tag: str
    selector: str
    text: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    visible: bool = True
    interactable: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawElement:
        return cls(
            tag=str(data.get("tag", "")).lower(),
            selector=str(data.get("selector", "")),
            text=str(data.get("text") or ""),
            attributes={k: str(v) for k, v in (data.get("attributes") or {}).items() if v is not None},
            x=float(data.get("x") or 0),
            y=float(data.get("y") or 0),
            width=float(data.get("width") or 0),
            height=float(data.get("height") or 0),
            visible=bool(data.get("visible", True)),
            interactable=bool(data.get("interactable", True)),
        )


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    elements: list[RawElement] = field(default_factory=list)


class BrowserDriver(Protocol):
    def open(self, session_id: str, url: str) -> None: ...

    def snapshot(self, session_id: str) -> PageSnapshot: ...

    def dispatch(self, session_id: str, action: Action) -> DispatchResult: ...

    def screenshot(self, session_id: str) -> bytes | None: ...

    def close(self, session_id: str) -> None: ...
