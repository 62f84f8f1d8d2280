"""
Plain value attribute types: id, text, number, boolean, list and object.
"""

import copy
from typing import Any

from ..attribute import Attribute


class IdAttribute(Attribute):
    """Persistent identity of a model; values are kept as given."""

    identity = True

    def to_internal(self, value: Any) -> Any:
        return value


class StringAttribute(Attribute):
    default = ""

    def to_internal(self, value: Any) -> str:
        return "" if value is None else str(value)


class NumberAttribute(Attribute):
    """Numbers are kept as they are; anything else is parsed as a float."""

    default = 0

    def to_internal(self, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return float(value)


class BooleanAttribute(Attribute):
    default = False

    def to_internal(self, value: Any) -> bool:
        return bool(value)


class ListAttribute(Attribute):
    """A list value; copied on the way in and out so callers can't mutate it."""

    default = list

    def to_internal(self, value: Any) -> list:
        return [] if value is None else list(value)

    def from_internal(self, value: Any) -> list:
        return list(value) if value is not None else None


class ObjectAttribute(Attribute):
    """A plain structured value (dict), deep-copied in and out."""

    default = dict

    def to_internal(self, value: Any) -> dict:
        return {} if value is None else copy.deepcopy(dict(value))

    def from_internal(self, value: Any) -> dict:
        return copy.deepcopy(value) if value is not None else None
