"""
Attribute types shipped with derivable.

Primitive values:
- IdAttribute: identity of a persisted model
- StringAttribute, NumberAttribute, BooleanAttribute
- ListAttribute, ObjectAttribute: copied on the way in and out

Nested values:
- ModelAttribute: a model inside a model
- CollectionAttribute: a collection of models inside a model
"""

from .nested import CollectionAttribute, ModelAttribute, NestedAttribute
from .primitives import (
    BooleanAttribute,
    IdAttribute,
    ListAttribute,
    NumberAttribute,
    ObjectAttribute,
    StringAttribute,
)

__all__ = [
    "IdAttribute",
    "StringAttribute",
    "NumberAttribute",
    "BooleanAttribute",
    "ListAttribute",
    "ObjectAttribute",
    "NestedAttribute",
    "ModelAttribute",
    "CollectionAttribute",
]
