"""Parsing of loosely typed query and form parameters."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class Tristate(Enum):
    """A flag the caller may set to true, set to false, or leave out."""

    UNSET = "unset"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def from_values(cls, values: Iterable[str]) -> "Tristate":
        """Read the first occurrence of a repeated query parameter."""

        for value in values:
            return cls.TRUE if value == "true" else cls.FALSE
        return cls.UNSET

    def as_form_value(self) -> Optional[str]:
        if self is Tristate.UNSET:
            return None
        return self.value


def parse_int(value: str | None, default: int = 0) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_bool(value: str | None) -> bool:
    return value == "true"
