"""
Derivable Collection - Ordered Sets of Models
=============================================

A ``Collection`` keeps an ordered list of models, indexes the persisted ones by
id, and aggregates their change tracking:

- ``is_changed(branch)`` is true when any member changed on ``branch`` or when the
  membership itself (which models, in which order) differs from the snapshot
  committed to ``branch``.
- ``commit``, ``revert`` and ``get_last_committed`` work on members and on the
  membership snapshot together.

Every event a member emits is re-emitted by the collection with the same
arguments (the member first), so listening to ``change`` on a collection reports
changes of any member. Membership changes emit ``add`` and ``remove`` with the
model and its index, and ``set()`` emits ``reset``.

Example:
    ```python
    class Todo(Model):
        id = IdAttribute
        title = StringAttribute

    class Todos(Collection):
        model_type = Todo

    todos = Todos([{"id": 1, "title": "write docs"}])
    todos.add({"title": "review"})
    todos.get(1).get("title")  # "write docs"
    ```
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Type

from . import tasks
from .attribute import Attribute
from .errors import PreconditionError
from .events import EventBus, EventsMixin
from .model import Model


class Collection(EventsMixin):
    """Ordered, id-indexed set of models with aggregated change tracking."""

    DEFAULT_BRANCH = Attribute.DEFAULT_BRANCH
    PREVIOUS_BRANCH = Attribute.PREVIOUS_BRANCH

    #: model class used to wrap raw data
    model_type: Optional[Type[Model]] = None

    def __init__(
        self,
        data: Optional[List[Any]] = None,
        model_type: Optional[Type[Model]] = None,
    ) -> None:
        self._events = EventBus()
        if model_type is not None:
            self.model_type = model_type

        self._branches: Dict[str, List[Model]] = {}
        self._models: List[Model] = []
        self._ids: Dict[Any, Model] = {}
        # member -> id it is indexed under, to move entries when ids change
        self._indexed_ids: Dict[Model, Any] = {}

        self.set(data or [])
        self.commit()

    # ------------------------------------------------------------------
    # Sequence access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[Model]:
        return iter(list(self._models))

    def __contains__(self, model: object) -> bool:
        return any(member is model for member in self._models)

    def at(self, index: int) -> Optional[Model]:
        if 0 <= index < len(self._models):
            return self._models[index]
        return None

    def get(self, model_id: Any) -> Optional[Model]:
        """Member with the given persisted id."""
        return self._ids.get(model_id)

    def index_of(self, model: Model) -> int:
        for index, member in enumerate(self._models):
            if member is model:
                return index
        return -1

    def find(self, predicate: Callable[[Model], bool]) -> Optional[Model]:
        return next((model for model in self._models if predicate(model)), None)

    def where(self, **conditions: Any) -> List[Model]:
        return [model for model in self._models if self._matches(model, conditions)]

    def find_where(self, **conditions: Any) -> Optional[Model]:
        return self.find(lambda model: self._matches(model, conditions))

    def pluck(self, name: str) -> List[Any]:
        return [model.get(name) for model in self._models]

    def to_json(self) -> List[Dict[str, Any]]:
        return [model.to_json() for model in self._models]

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def set(self, models: List[Any]) -> "Collection":
        """Replace every member; raw data is wrapped with ``model_type``."""
        self.commit(self.PREVIOUS_BRANCH)

        for model in self._models:
            self._unbind(model)

        self._models = []
        for item in models:
            model = self._prepare_model(item)
            self._bind(model)
            self._models.append(model)

        self.trigger("reset", self)
        return self

    def add(self, models: Any, at: Optional[int] = None) -> "Collection":
        """
        Add one model (or raw data) or a list of them.

        Models already present, by reference or by persisted id, are skipped.
        With ``at`` the new models are inserted from that position on.
        """
        self.commit(self.PREVIOUS_BRANCH)

        added = 0
        for item in self._as_list(models):
            if self._is_present(item):
                continue
            self._add_model(self._prepare_model(item), None if at is None else at + added)
            added += 1
        return self

    def remove(self, models: Any) -> "Collection":
        self.commit(self.PREVIOUS_BRANCH)

        for model in self._as_list(models):
            if model in self:
                self._remove_model(model)
        return self

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def is_changed(self, branch: str = DEFAULT_BRANCH) -> bool:
        return any(
            model.is_changed(branch) for model in self._models
        ) or not self._is_equal_to(self._get_branch(branch))

    def commit(self, branch: str = DEFAULT_BRANCH) -> bool:
        if not self.is_changed(branch):
            return False

        changed = False
        for model in self._models:
            changed = model.commit(branch) or changed

        if not self._is_equal_to(self._get_branch(branch)):
            self._branches[branch] = list(self._models)
            if not changed:
                changed = True
                # member commits were already re-emitted
                self.trigger("commit", self, branch)

        return changed

    def revert(self) -> "Collection":
        if not self.is_changed():
            return self

        for model in self._models:
            model.revert()

        committed = self._get_branch(self.DEFAULT_BRANCH)
        if not self._is_equal_to(committed):
            self.set(committed)
        return self

    def get_last_committed(self, branch: str = DEFAULT_BRANCH) -> List[Dict[str, Any]]:
        return [model.get_last_committed(branch) for model in self._get_branch(branch)]

    def previous(self) -> List[Dict[str, Any]]:
        return self.get_last_committed(self.PREVIOUS_BRANCH)

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        return all(model.is_ready() for model in self._models)

    def ready(self) -> Awaitable:
        """Future settling once every member finished calculating."""
        pending = [
            future
            for future in (model.ready() for model in self._models)
            if not tasks.is_fulfilled(future)
        ]
        if not pending:
            return tasks.settled()
        return asyncio.gather(*pending)

    def destruct(self) -> None:
        for model in self._models:
            self._unbind(model)
        self.trigger("destruct", self)
        self._events.off()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _as_list(self, models: Any) -> List[Any]:
        if isinstance(models, (Model, Mapping)):
            return [models]
        return list(models)

    def _prepare_model(self, item: Any) -> Model:
        if isinstance(item, Model):
            return item
        if self.model_type is None:
            raise PreconditionError(
                f"{type(self).__name__} needs a model_type to wrap raw data"
            )
        return self.model_type(item, collection=self)

    def _is_present(self, item: Any) -> bool:
        """Whether ``item`` (a model or raw data) is a member, by reference or id."""
        if isinstance(item, Model):
            return item in self or (not item.is_new() and item.get_id() in self._ids)
        id_value = self._raw_id(item)
        return id_value is not None and id_value in self._ids

    def _raw_id(self, data: Any) -> Any:
        if self.model_type is None or not isinstance(data, Mapping):
            return None
        for name, attribute_type in self.model_type._attribute_types.items():
            if attribute_type.identity:
                return data.get(name)
        return None

    def _get_branch(self, branch: str = DEFAULT_BRANCH) -> List[Model]:
        return self._branches.get(branch, [])

    def _is_equal_to(self, models: List[Model]) -> bool:
        return len(models) == len(self._models) and all(
            model is member for model, member in zip(models, self._models)
        )

    def _matches(self, model: Model, conditions: Dict[str, Any]) -> bool:
        return all(
            model.attributes[name].is_equal(value) for name, value in conditions.items()
        )

    def _add_model(self, model: Model, at: Optional[int] = None) -> None:
        index = len(self._models) if at is None else min(at, len(self._models))
        self._models.insert(index, model)
        self._bind(model)
        self.trigger("add", model, index)

    def _remove_model(self, model: Model) -> None:
        index = self.index_of(model)
        self._unbind(model)
        del self._models[index]
        self.trigger("remove", model, index)

    def _bind(self, model: Model) -> None:
        if model.collection is None:
            model.collection = self
        self._index(model)
        model.on("all", self._on_model_event)

    def _unbind(self, model: Model) -> None:
        model.off("all", self._on_model_event)
        if model.collection is self:
            model.collection = None
        self._unindex(model)

    def _index(self, model: Model) -> None:
        if not model.is_new():
            self._ids[model.get_id()] = model
            self._indexed_ids[model] = model.get_id()

    def _unindex(self, model: Model) -> None:
        if model not in self._indexed_ids:
            return
        model_id = self._indexed_ids.pop(model)
        if self._ids.get(model_id) is model:
            del self._ids[model_id]

    def _on_model_event(self, event: str, model: Model, *args: Any) -> None:
        if event == "destruct":
            self._remove_model(model)
        elif (
            model.id_attribute is not None
            and event == f"change:{model.id_attribute.name}"
        ):
            self._unindex(model)
            self._index(model)

        self.trigger(event, model, *args)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._models!r})"
