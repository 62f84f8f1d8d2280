"""
Derivable Model - Attributes Kept Consistent by a Calculation Engine
====================================================================

A ``Model`` is an ordered set of attributes declared on the class. Whenever an
attribute changes, the model runs *calculation passes* on the event loop until no
attribute changes anymore:

1. every ``derive()`` hook is evaluated; plain results are set right away,
   awaitable results are collected,
2. ``amend()`` hooks run for the attributes that changed since the last pass,
3. attributes exposing ``ready()`` (nested models and collections) block the pass
   until they settle,
4. the collected derived values are applied in one batch,
5. if anything changed during the pass, another pass follows.

Passes are started on the next loop turn, so several synchronous ``set`` calls
coalesce into one settle cycle. At most ``max_calculations`` passes run before the
engine gives up with ``CalculationDepthError``. When the model settles it emits one
``change:<name>`` per attribute that changed, then one ``change``.

Example:
    ```python
    import asyncio
    from derivable import Model, NumberAttribute, StringAttribute

    class Person(Model):
        first = StringAttribute
        last = StringAttribute
        full_name = StringAttribute.declare(
            derive=lambda attr: f"{attr.model.get('first')} {attr.model.get('last')}"
        )

    async def main():
        person = Person({"first": "Ada", "last": "Lovelace"})
        await person.ready()
        print(person.get("full_name"))  # Ada Lovelace

    asyncio.run(main())
    ```

Persistence goes through an optional ``Storage`` backend (see ``storage.py``) with
``save()``, ``fetch()`` and ``remove()``.
"""

import asyncio
import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Type,
)

from . import tasks
from .attribute import Attribute
from .errors import (
    CalculationDepthError,
    IdentityRequiredError,
    ModelDestructedError,
    ModelValidationError,
    PreconditionError,
    StorageRequiredError,
    UnknownAttributeError,
    ValidationError,
)
from .events import EventBus, EventsMixin
from .storage import Storage

if TYPE_CHECKING:
    from .collection import Collection

_NOTHING = object()


class AttributeDescriptor:
    """
    Class-level handle for a declared attribute.

    On the class it returns the declared attribute type; on an instance it returns
    the bound ``Attribute`` object. Assignment goes through ``Model.set``.
    """

    def __init__(self, name: str) -> None:
        self.attr_name = name

    def __get__(self, instance: Optional["Model"], owner: Type["Model"]) -> Any:
        if instance is None:
            return owner._attribute_types[self.attr_name]
        return instance.attributes[self.attr_name]

    def __set__(self, instance: "Model", value: Any) -> None:
        instance.set(self.attr_name, value)


class ModelMeta(type):
    """
    Metaclass collecting attribute declarations in definition order.

    Attribute classes found in the class body are recorded in ``_attribute_types``
    and replaced with ``AttributeDescriptor`` instances. Declarations inherited from
    base models come first; redeclaring a name in a subclass overrides its type.

    Attribute names may not shadow model members (``get``, ``ready``, ``storage``,
    ...) or the fields every model instance carries, and at most one attribute may
    be an identity.
    """

    #: fields assigned on every model instance
    RESERVED_NAMES = frozenset(["collection", "storage", "attributes", "id_attribute"])

    def __new__(mcs, name: str, bases: tuple, namespace: dict) -> Type:
        attribute_types: Dict[str, Type[Attribute]] = {}
        for base in bases:
            attribute_types.update(getattr(base, "_attribute_types", {}))

        new_namespace = namespace.copy()
        for attr_name, attr_value in namespace.items():
            if isinstance(attr_value, type) and issubclass(attr_value, Attribute):
                if attr_name not in attribute_types:
                    mcs._check_name(name, bases, attr_name)
                attribute_types[attr_name] = attr_value
                new_namespace[attr_name] = AttributeDescriptor(attr_name)

        identities = [
            attr_name
            for attr_name, attribute_type in attribute_types.items()
            if attribute_type.identity
        ]
        if len(identities) > 1:
            raise PreconditionError(
                f"{name} declares more than one identity attribute: "
                f"{', '.join(identities)}"
            )

        cls = super().__new__(mcs, name, bases, new_namespace)
        cls._attribute_types = attribute_types
        return cls

    @classmethod
    def _check_name(mcs, name: str, bases: tuple, attr_name: str) -> None:
        if attr_name in mcs.RESERVED_NAMES or attr_name.startswith("_") or any(
            hasattr(base, attr_name) for base in bases
        ):
            raise PreconditionError(
                f"{name}.{attr_name} clashes with a Model member; "
                "choose another attribute name"
            )


class Model(EventsMixin, metaclass=ModelMeta):
    """Base class for models. Subclasses declare attributes as class attributes."""

    #: to prevent endless calculation loops the number of passes is limited
    max_calculations: int = 100
    #: when False a failed calculation pass does not fail ``ready()``
    throw_calculation_errors: bool = True
    #: default storage class or instance for ``save``/``fetch``/``remove``
    storage: Any = None

    _attribute_types: Dict[str, Type[Attribute]]

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        collection: Optional["Collection"] = None,
        storage: Any = None,
    ) -> None:
        self._events = EventBus()
        data = data or {}

        self.collection = collection
        storage = storage if storage is not None else type(self).storage
        self.storage: Optional[Storage] = (
            storage() if isinstance(storage, type) else storage
        )

        self._ready = True
        self._calculation: Optional[asyncio.Future] = None
        self._calculation_depth = 0
        self._changed: Dict[str, Attribute] = {}
        self._changed_since_ready: Dict[str, bool] = {}
        self._is_destructed = False

        self.attributes: Dict[str, Attribute] = {}
        self.id_attribute: Optional[Attribute] = None
        for name, attribute_type in self._attribute_types.items():
            attribute = attribute_type(name, self, data.get(name))
            self.attributes[name] = attribute
            if attribute.identity and self.id_attribute is None:
                self.id_attribute = attribute
        self._attributes: List[Attribute] = list(self.attributes.values())

        self.calculate()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def get_id(self) -> Any:
        return self.id_attribute.get() if self.id_attribute is not None else None

    def is_new(self) -> bool:
        return self.get_id() is None

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    def get(self, name: str) -> Any:
        return self._get_attribute(name).get()

    def set(self, name: Any, value: Any = _NOTHING) -> "Model":
        """
        Set one attribute (``set(name, value)``) or several (``set(mapping)``).

        Bulk data may carry keys the model does not declare; they are ignored.
        """
        self._ensure_alive()
        if value is _NOTHING:
            self._set_many(name)
        else:
            self._get_attribute(name).set(value)
        return self

    def _set_many(self, data: Mapping[str, Any]) -> None:
        for attr_name, attr_value in data.items():
            attribute = self.attributes.get(attr_name)
            if attribute is not None:
                attribute.set(attr_value)

    def unset(self, name: str) -> None:
        self._ensure_alive()
        self._get_attribute(name).unset()

    def is_set(self, name: str) -> bool:
        return self._get_attribute(name).is_set()

    def to_json(self) -> Dict[str, Any]:
        return self._serialize("to_json")

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def is_changed(self, branch: str = Attribute.DEFAULT_BRANCH) -> bool:
        return any(attribute.is_changed(branch) for attribute in self._attributes)

    def commit(self, branch: str = Attribute.DEFAULT_BRANCH) -> bool:
        changed = False
        for attribute in self._attributes:
            changed = attribute.commit(branch) or changed
        if changed:
            self.trigger("commit", branch)
        return changed

    def revert(self) -> "Model":
        for attribute in self._attributes:
            attribute.revert()
        return self

    def get_last_committed(self, branch: str = Attribute.DEFAULT_BRANCH) -> Dict[str, Any]:
        return self._serialize("get_last_committed", branch)

    def previous(self, name: Optional[str] = None) -> Any:
        """Values from before the latest change, of one attribute or of all of them."""
        if name is not None:
            return self._get_attribute(name).previous()
        return self._serialize("previous")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self) -> bool:
        """Wait for calculations, then validate every attribute concurrently."""
        await self.ready()
        results = await asyncio.gather(
            *(attribute.validate() for attribute in self._attributes),
            return_exceptions=True,
        )

        errors = []
        for attribute, result in zip(self._attributes, results):
            if not isinstance(result, BaseException):
                continue
            if not isinstance(result, ValidationError):
                raise result
            result.attribute = attribute
            errors.append(result)

        if errors:
            raise ModelValidationError(errors)
        return True

    # ------------------------------------------------------------------
    # Calculation engine
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._ready

    def ready(self) -> Awaitable:
        """Future settling when the current calculation has finished."""
        if self.throw_calculation_errors:
            return self._calculation
        return tasks.quietly(self._calculation)

    def calculate(self) -> Awaitable:
        """Start a calculation on the next loop turn unless one is already running."""
        if self._ready:
            self._calculation = tasks.defer(self._calculate())
            self._ready = False
            self._calculation.add_done_callback(self._log_calculation_failure)
            self.trigger("calculate")
        return self.ready()

    async def _calculate(self) -> None:
        try:
            while True:
                await self._calculation_pass()
                if not self._changed:
                    break
        except Exception:
            self._changed_since_ready = {}
            raise
        finally:
            self._ready = True
            self._calculation_depth = 0
            self._changed = {}

        self._trigger_changed()

    async def _calculation_pass(self) -> None:
        self._check_calculation_depth()
        changed, self._changed = self._changed, {}
        logging.debug(
            f"{type(self).__name__}: calculation pass {self._calculation_depth} "
            f"for {list(changed) or 'initial state'}"
        )

        derived: Dict[str, Awaitable] = {}
        blocking: List[Awaitable] = []
        settling: List[Attribute] = []
        for attribute in self._attributes:
            derive = getattr(attribute, "derive", None)
            if derive is not None:
                result = derive()
                if tasks.is_pending(result):
                    derived[attribute.name] = result
                elif result is not None:
                    attribute.set(result)

            amend = getattr(attribute, "amend", None)
            if amend is not None and attribute.name in changed:
                result = amend()
                if tasks.is_pending(result):
                    blocking.append(result)

            attribute_ready = getattr(attribute, "ready", None)
            if attribute_ready is not None:
                result = attribute_ready()
                if not tasks.is_fulfilled(result):
                    blocking.append(result)
                    settling.append(attribute)

        if derived or blocking:
            values, _ = await asyncio.gather(
                tasks.gather_mapping(derived), asyncio.gather(*blocking)
            )
            # Derivations of this pass may have read unsettled nested values
            for attribute in settling:
                self._changed[attribute.name] = attribute
            # One batch, so dependents never observe half-applied derivations
            self._set_many(
                {name: value for name, value in values.items() if value is not None}
            )

    def _check_calculation_depth(self) -> None:
        self._calculation_depth += 1
        if self._calculation_depth > self.max_calculations:
            raise CalculationDepthError(self.max_calculations, list(self._changed))

    def _trigger_changed(self) -> None:
        names, self._changed_since_ready = list(self._changed_since_ready), {}
        for name in names:
            self.trigger(f"change:{name}")
        self.trigger("change")

    def _log_calculation_failure(self, calculation: asyncio.Future) -> None:
        if calculation.cancelled():
            return
        error = calculation.exception()
        if error is not None:
            logging.error(f"Calculation of {type(self).__name__} failed: {error!r}")

    def _on_attribute_change(self, attribute: Attribute) -> None:
        if self._is_destructed:
            return
        self._changed[attribute.name] = attribute
        self._changed_since_ready[attribute.name] = True
        self.calculate()

    def _on_attribute_commit(self, attribute: Attribute) -> None:
        self.trigger(f"commit:{attribute.name}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> Awaitable:
        """Insert or update the model through its storage, then commit."""
        self._require_persistence("saved")
        self._ensure_alive()
        return self._save()

    async def _save(self) -> None:
        await self.ready()
        if self.is_new():
            new_id = await self.storage.insert(self)
            self.id_attribute.set(new_id)
            await self.ready()
            self.commit()
        else:
            await self.storage.update(self)
            self.commit()

    def fetch(self) -> Awaitable:
        """Load the model's data from storage and commit it."""
        self._require_persistence("fetched")
        self._ensure_alive()
        return self._fetch()

    async def _fetch(self) -> None:
        await self.ready()
        data = await self.storage.find(self)
        self.set(data)
        await self.ready()
        self.commit()

    def remove(self) -> Awaitable:
        """Remove the model from storage (when persisted) and destruct it."""
        if self.is_new():
            self.destruct()
            return tasks.settled()
        self._require_persistence("removed")
        return self._remove()

    async def _remove(self) -> None:
        await self.storage.remove(self)
        self.destruct()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def is_destructed(self) -> bool:
        return self._is_destructed

    def destruct(self) -> None:
        """Detach every listener and attribute binding; the model stays inert."""
        self._is_destructed = True
        self.trigger("destruct")
        self._events.off()
        for attribute in self._attributes:
            attribute.destruct()

    def trigger(self, event: str, *args: Any) -> None:
        self._events.trigger(event, self, *args)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_attribute(self, name: str) -> Attribute:
        try:
            return self.attributes[name]
        except KeyError:
            raise UnknownAttributeError(name) from None

    def _serialize(self, method: str, *args: Any) -> Dict[str, Any]:
        return {
            name: getattr(attribute, method)(*args)
            for name, attribute in self.attributes.items()
            if not attribute.internal
        }

    def _ensure_alive(self) -> None:
        if self._is_destructed:
            raise ModelDestructedError()

    def _require_persistence(self, action: str) -> None:
        if self.id_attribute is None:
            raise IdentityRequiredError(
                f"{type(self).__name__} can not be {action} without "
                "a declared identity attribute"
            )
        if self.storage is None:
            raise StorageRequiredError()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()!r})"
