"""
Test utilities for derivable.

Shared model declarations and a dict-backed storage used across test modules.
"""

from .models import (
    InvalidWhenZero,
    Item,
    Items,
    Line,
    MemoryStorage,
    Nested,
    Order,
    WithNested,
)

__all__ = [
    "InvalidWhenZero",
    "Item",
    "Items",
    "Line",
    "MemoryStorage",
    "Nested",
    "Order",
    "WithNested",
]
