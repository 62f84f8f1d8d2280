"""
Derivable Attribute - Branch-Tracked Value Holder
=================================================

An ``Attribute`` is one named field of a model. It converts incoming values to an
internal representation, remembers whether the value was explicitly set, and keeps
snapshots of its value in named *branches*:

- ``DEFAULT_BRANCH`` holds the last committed value. ``revert()`` goes back to it
  and ``is_changed()`` compares against it.
- ``PREVIOUS_BRANCH`` holds the value from just before the latest mutation, which
  is what ``previous()`` returns.

Attribute types are classes. Concrete types implement ``to_internal`` (and
optionally ``from_internal``); behavior hooks are optional and are picked up by the
model's calculation engine only when present:

- ``derive()`` computes the attribute's own value (a value or an awaitable)
- ``amend()`` adjusts other attributes after this one changed
- ``ready()`` returns a future for the attribute's own settling (nested models)
- ``get_validation_error()`` returns something truthy when the value is invalid

Example:
    ```python
    from derivable import Model, NumberAttribute

    class Total(NumberAttribute):
        def derive(self):
            return self.model.get("price") * self.model.get("quantity")

    class Line(Model):
        price = NumberAttribute
        quantity = NumberAttribute.declare(default=1)
        total = Total
    ```
"""

import inspect
from typing import TYPE_CHECKING, Any, Dict, NamedTuple, Type

from .errors import AttributeValidationError

if TYPE_CHECKING:
    from .model import Model


class BranchSnapshot(NamedTuple):
    """Value and set-state captured when an attribute is committed to a branch."""

    value: Any
    is_set: bool


class Attribute:
    """Base class for model attributes."""

    DEFAULT_BRANCH = "DEFAULT_BRANCH"
    PREVIOUS_BRANCH = "PREVIOUS_BRANCH"

    #: literal default or zero-argument rule producing one
    default: Any = None
    #: internal attributes are left out of serialized data
    internal: bool = False
    #: the model uses the first identity attribute as its id
    identity: bool = False

    def __init__(self, name: str, model: "Model", init_value: Any = None) -> None:
        self._branches: Dict[str, BranchSnapshot] = {}
        self.name = name
        self.model = model
        if init_value is None:
            self._is_set = False
            init_value = self._default_value()
        else:
            self._is_set = True
        self.value = self.to_internal(init_value)
        self.commit()

    @classmethod
    def declare(cls, **props: Any) -> Type["Attribute"]:
        """
        Build a configured subclass, the declarative way to add defaults and hooks.

        Plain functions passed as ``default`` are kept as zero-argument rules; any
        other function becomes a method and receives the attribute as ``self``.
        """
        namespace = dict(props)
        default = namespace.get("default")
        if inspect.isfunction(default):
            namespace["default"] = staticmethod(default)
        return type(cls)(cls.__name__, (cls,), namespace)

    # ------------------------------------------------------------------
    # Value access
    # ------------------------------------------------------------------

    def get(self) -> Any:
        return self.from_internal(self.value)

    def set(self, value: Any) -> None:
        """Set a new value; ``None`` unsets, an equal value is ignored."""
        if value is None:
            self.unset()
        elif not self.is_equal(value):
            self._assign(value, True)

    def unset(self) -> None:
        """Reset to the default value and mark the attribute as not set."""
        default = self._default_value()
        if self.is_equal(default):
            self._is_set = False
        else:
            self._assign(default, False)

    def is_set(self) -> bool:
        return self._is_set

    def is_equal(self, value: Any) -> bool:
        return self.value == self.to_internal(value)

    def to_json(self) -> Any:
        return self.get()

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def is_changed(self, branch: str = DEFAULT_BRANCH) -> bool:
        """Whether the value differs from the snapshot stored in ``branch``."""
        snapshot = self._branches.get(branch)
        return snapshot is None or snapshot.value != self.value

    def commit(self, branch: str = DEFAULT_BRANCH) -> bool:
        """Store the current value in ``branch``; returns whether anything changed."""
        if not self.is_changed(branch):
            return False
        self._snapshot(branch)
        if branch == self.DEFAULT_BRANCH:
            self._emit_commit()
        return True

    def revert(self) -> None:
        """Return to the last value committed to the default branch."""
        if not self.is_changed():
            return
        self._snapshot(self.PREVIOUS_BRANCH)
        committed = self._branches[self.DEFAULT_BRANCH]
        self.value = committed.value
        self._is_set = committed.is_set
        self._emit_change()

    def get_last_committed(self, branch: str = DEFAULT_BRANCH) -> Any:
        snapshot = self._branches.get(branch)
        return self.from_internal(snapshot.value if snapshot else None)

    def previous(self) -> Any:
        return self.get_last_committed(self.PREVIOUS_BRANCH)

    # ------------------------------------------------------------------
    # Validation and lifecycle
    # ------------------------------------------------------------------

    async def validate(self) -> bool:
        error = self.get_validation_error()
        if error:
            raise AttributeValidationError.from_result(error, attribute=self)
        return True

    def get_validation_error(self) -> Any:
        """Return something truthy (message or data) when the value is invalid."""
        return None

    def destruct(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_internal(self, value: Any) -> Any:
        raise NotImplementedError(
            f"{type(self).__name__} does not implement to_internal()"
        )

    def from_internal(self, value: Any) -> Any:
        return value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _assign(self, value: Any, is_set: bool) -> None:
        self._snapshot(self.PREVIOUS_BRANCH)
        self.value = self.to_internal(value)
        self._is_set = is_set
        self._emit_change()

    def _snapshot(self, branch: str) -> None:
        self._branches[branch] = BranchSnapshot(self.value, self._is_set)

    def _default_value(self) -> Any:
        default = self.default
        return default() if callable(default) else default

    def _emit_change(self, *args: Any) -> None:
        self.model._on_attribute_change(self)

    def _emit_commit(self) -> None:
        self.model._on_attribute_commit(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.get()!r})"
