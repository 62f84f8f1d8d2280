"""
Derivable - Reactive Transactional Models
=========================================

Typed attributes compose into models, models compose into collections, and derived
attributes are kept consistent by an asynchronous calculation engine that runs
until every derivation has settled.

Every attribute, model and collection tracks changes in named branches:
``commit()`` accepts the current state, ``revert()`` goes back to the last commit
and ``previous()`` shows what a value was before its latest change.
"""

from .attribute import Attribute, BranchSnapshot
from .collection import Collection
from .errors import (
    AttributeValidationError,
    CalculationDepthError,
    CollectionAttributeValidationError,
    DerivableError,
    IdentityRequiredError,
    ModelAttributeValidationError,
    ModelDestructedError,
    ModelValidationError,
    NoEventLoopError,
    PreconditionError,
    StorageRequiredError,
    UnknownAttributeError,
    ValidationError,
)
from .events import ALL_EVENTS, EventBus, EventsMixin
from .model import AttributeDescriptor, Model, ModelMeta
from .storage import Storage
from .types import (
    BooleanAttribute,
    CollectionAttribute,
    IdAttribute,
    ListAttribute,
    ModelAttribute,
    NestedAttribute,
    NumberAttribute,
    ObjectAttribute,
    StringAttribute,
)

DEFAULT_BRANCH = Attribute.DEFAULT_BRANCH
PREVIOUS_BRANCH = Attribute.PREVIOUS_BRANCH

__all__ = [
    # Core
    "Attribute",
    "BranchSnapshot",
    "Model",
    "ModelMeta",
    "AttributeDescriptor",
    "Collection",
    "Storage",
    # Events
    "EventBus",
    "EventsMixin",
    "ALL_EVENTS",
    # Attribute types
    "IdAttribute",
    "StringAttribute",
    "NumberAttribute",
    "BooleanAttribute",
    "ListAttribute",
    "ObjectAttribute",
    "NestedAttribute",
    "ModelAttribute",
    "CollectionAttribute",
    # Branches
    "DEFAULT_BRANCH",
    "PREVIOUS_BRANCH",
    # Exceptions
    "DerivableError",
    "ValidationError",
    "AttributeValidationError",
    "ModelAttributeValidationError",
    "CollectionAttributeValidationError",
    "ModelValidationError",
    "CalculationDepthError",
    "PreconditionError",
    "UnknownAttributeError",
    "IdentityRequiredError",
    "StorageRequiredError",
    "ModelDestructedError",
    "NoEventLoopError",
]
