"""Exploration action IR.

Closed set of actions the run loop can hand to a browser driver, plus the
fixed-shape result the driver hands back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Click:
    selector: str
    fingerprint: str


@dataclass(frozen=True)
class Type:
    """Fill a form field with a synthetic value."""

    selector: str
    fingerprint: str
    value: str


@dataclass(frozen=True)
class Scroll:
    direction: str = "down"  # down|up
    amount: int = 400


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Navigate:
    """Load ``url`` directly; used to leave blank or data: pages."""

    url: str


Action = Union[Click, Type, Scroll, Back, Navigate]

ACTION_NAMES: dict[type, str] = {
    Click: "click",
    Type: "type",
    Scroll: "scroll",
    Back: "back",
    Navigate: "navigate",
}


def action_name(action: Action) -> str:
    return ACTION_NAMES[type(action)]


def target_of(action: Action) -> str | None:
    """Fingerprint of the element an action acts on (None for scroll, back and navigate)."""
    if isinstance(action, (Click, Type)):
        return action.fingerprint
    return None


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    new_url: str | None = None
    error: str | None = None
