"""Closure records produced by the parser and the auto-closer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union


class ClosureKind(str, Enum):
    STANDARD = "standard"
    ASSERTION = "assertion"
    DISPUTED = "disputed"
    SNAPSHOT = "snapshot"
    POLYMARKET = "polymarket"

    @property
    def type_label(self) -> str:
        return "" if self is ClosureKind.STANDARD else self.value.capitalize()

    @property
    def clears_participants(self) -> bool:
        return self is not ClosureKind.STANDARD

    @classmethod
    def from_keyword(cls, text: str | None) -> "ClosureKind | None":
        token = (text or "").strip().lower()
        for kind in cls:
            if kind is not cls.STANDARD and kind.value == token:
                return kind
        return None


BONK_CATEGORIES = ("primary", "secondary", "tertiary")
QUATERNARY = "quaternary"

MAX_PARTICIPANTS = 3
MAX_BONKERS = 5


def capitalize_name(value: str) -> str:
    text = (value or "").strip()
    return text[:1].upper() + text[1:]


@dataclass(frozen=True)
class BonkRecord:
    bonker: str
    victims: tuple[str, ...]
    category: str | None = None


@dataclass(frozen=True)
class _ClosingBase:
    kind: ClosureKind = ClosureKind.STANDARD
    closer: str = ""
    primary: str = ""
    secondary: str = ""
    tertiary: str = ""
    disputed: bool = False
    bonks: tuple[BonkRecord, ...] = ()

    @property
    def participants(self) -> tuple[str, str, str]:
        return (self.primary, self.secondary, self.tertiary)

    @property
    def bonkers(self) -> tuple[str, ...]:
        ordered: list[str] = []
        for bonk in self.bonks:
            if bonk.bonker not in ordered:
                ordered.append(bonk.bonker)
        return tuple(ordered[:MAX_BONKERS])


@dataclass(frozen=True)
class ManualClosing(_ClosingBase):
    """Closure entered by a human in a ``CLOSING:`` block; always validated."""

    link: str = ""
    type_label: str = ""
    alertoor: str = ""
    findoor: str = ""
    errors: tuple[str, ...] = field(default=())

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def with_errors(self, *errors: str) -> "ManualClosing":
        return replace(self, errors=self.errors + tuple(errors))


@dataclass(frozen=True)
class SynthesizedClosing(_ClosingBase):
    """Closure inferred from verification messages; never validated."""

    verifiers: tuple[str, ...] = ()


ClosingRecord = Union[ManualClosing, SynthesizedClosing]


def override_closing(kind: ClosureKind, closer: str) -> ManualClosing:
    """Minimal record for an explicit ``!record <kind>`` invocation."""

    return ManualClosing(
        kind=kind,
        closer=closer,
        disputed=kind is ClosureKind.DISPUTED,
    )


__all__ = [
    "BONK_CATEGORIES",
    "BonkRecord",
    "ClosingRecord",
    "ClosureKind",
    "MAX_BONKERS",
    "MAX_PARTICIPANTS",
    "ManualClosing",
    "QUATERNARY",
    "SynthesizedClosing",
    "capitalize_name",
    "override_closing",
]
