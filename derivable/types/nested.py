"""
Nested attribute types: a model inside a model, or a collection inside a model.

The nested object is the attribute's value. Branch operations are delegated to
it, and the attribute additionally remembers *which* instance it held at each
commit, so swapping the nested instance is a change that ``revert()`` undoes.

When the nested object starts recalculating (or, for collections, gains or loses
members) the attribute reports a change to its owner. The owner then runs a pass
of its own and, through ``ready()``, waits for the nested object to settle before
it emits ``change:<name>``.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, Tuple, Type, Union

from ..attribute import Attribute
from ..collection import Collection
from ..errors import (
    CollectionAttributeValidationError,
    ModelAttributeValidationError,
    ModelValidationError,
    PreconditionError,
)
from ..model import Model


class NestedAttribute(Attribute, ABC):
    """Shared behavior of attributes whose value is a model or a collection."""

    #: events of the nested value reported as a change of this attribute
    bound_events: Tuple[str, ...] = ()

    def __init__(self, name: str, model: Model, init_value: Any = None) -> None:
        super().__init__(name, model, init_value)
        self._bind()

    def is_set(self) -> bool:
        raise NotImplementedError(f".is_set is not implemented for {type(self).__name__}")

    def unset(self) -> None:
        raise NotImplementedError(f".unset is not implemented for {type(self).__name__}")

    def is_equal(self, value: Any) -> bool:
        return value is self.value

    def set(self, value: Any) -> None:
        if value is None:
            self.unset()
        elif value is self.value:
            return
        elif self._is_replacement(value):
            self._snapshot(self.PREVIOUS_BRANCH)
            self._replace(value)
        else:
            self._update(value)

    def ready(self) -> Awaitable:
        return self.value.ready()

    def to_json(self) -> Any:
        return self.value.to_json()

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def is_changed(self, branch: str = Attribute.DEFAULT_BRANCH) -> bool:
        snapshot = self._branches.get(branch)
        return (
            snapshot is None
            or snapshot.value is not self.value
            or self.value.is_changed(branch)
        )

    def commit(self, branch: str = Attribute.DEFAULT_BRANCH) -> bool:
        changed = self.value.commit(branch)
        snapshot = self._branches.get(branch)
        if snapshot is None or snapshot.value is not self.value:
            self._snapshot(branch)
            changed = True
        if changed and branch == self.DEFAULT_BRANCH:
            self._emit_commit()
        return changed

    def revert(self) -> None:
        committed = self._branches[self.DEFAULT_BRANCH].value
        if committed is not self.value:
            self._snapshot(self.PREVIOUS_BRANCH)
            self._replace(committed)
        committed.revert()

    def get_last_committed(self, branch: str = Attribute.DEFAULT_BRANCH) -> Any:
        snapshot = self._branches.get(branch)
        nested = snapshot.value if snapshot is not None else self.value
        return nested.get_last_committed(branch)

    def previous(self) -> Any:
        return self.value.previous()

    def destruct(self) -> None:
        self._unbind()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @abstractmethod
    def _is_replacement(self, value: Any) -> bool:
        """Whether ``value`` takes the place of the held object instead of updating it."""
        pass

    @abstractmethod
    def _update(self, value: Any) -> None:
        """Apply raw data to the held object."""
        pass

    def _replace(self, value: Any) -> None:
        self._unbind()
        self.value = value
        self._bind()
        self._emit_change()

    def _bind(self) -> None:
        if self.value is not None:
            for event in self.bound_events:
                self.value.on(event, self._emit_change)

    def _unbind(self) -> None:
        if self.value is not None:
            for event in self.bound_events:
                self.value.off(event, self._emit_change)


class ModelAttribute(NestedAttribute):
    """
    Attribute holding a nested model.

    ``set()`` with a model instance swaps the nested model; ``set()`` with a mapping
    updates the nested model's attributes in place.

    Example:
        ```python
        class Address(Model):
            city = StringAttribute

        class Person(Model):
            address = ModelAttribute.of(Address)

        person = Person({"address": {"city": "Paris"}})
        person.get("address").set("city", "Lyon")
        ```
    """

    model_type: Optional[Type[Model]] = None
    default = dict
    bound_events = ("calculate",)

    @classmethod
    def of(cls, model_type: Type[Model]) -> Type["ModelAttribute"]:
        return cls.declare(model_type=model_type)

    async def validate(self) -> bool:
        try:
            return await self.value.validate()
        except ModelValidationError as error:
            raise ModelAttributeValidationError(error, attribute=self) from error

    def to_internal(self, value: Any) -> Model:
        if isinstance(value, Model):
            return value
        if self.model_type is None:
            raise PreconditionError(f"{type(self).__name__} has no model_type")
        return self.model_type(value)

    def _is_replacement(self, value: Any) -> bool:
        return isinstance(value, Model)

    def _update(self, value: Any) -> None:
        self.value.set(value)


class CollectionAttribute(NestedAttribute):
    """
    Attribute holding a nested collection.

    It is ready when every member is ready. Member recalculations and membership
    changes count as changes of the attribute.
    """

    collection_type: Type[Collection] = Collection
    model_type: Optional[Type[Model]] = None
    default = list
    bound_events = ("calculate", "add", "remove", "reset")

    @classmethod
    def of(cls, item_type: Union[Type[Model], Type[Collection]]) -> Type["CollectionAttribute"]:
        if issubclass(item_type, Collection):
            return cls.declare(collection_type=item_type)
        return cls.declare(model_type=item_type)

    async def validate(self) -> bool:
        results = await asyncio.gather(
            *(model.validate() for model in self.value), return_exceptions=True
        )
        errors = []
        for result in results:
            if not isinstance(result, BaseException):
                continue
            if not isinstance(result, ModelValidationError):
                raise result
            errors.append(result)

        if errors:
            raise CollectionAttributeValidationError(errors, attribute=self)
        return True

    def to_internal(self, value: Any) -> Collection:
        if isinstance(value, Collection):
            return value
        return self.collection_type(list(value or []), model_type=self.model_type)

    def _is_replacement(self, value: Any) -> bool:
        return isinstance(value, Collection)

    def _update(self, value: Any) -> None:
        self.value.set(list(value))
