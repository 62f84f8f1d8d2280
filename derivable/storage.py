"""
Storage backend interface.

Models persist through a ``Storage`` implementation assigned on the model class
(``storage = MyStorage``) or passed to the constructor. Every method is a
coroutine; failures are propagated to the caller of ``save()``, ``fetch()`` or
``remove()`` as they are raised, without retries.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from .model import Model


class Storage(ABC):
    """Abstract persistence backend for models."""

    @abstractmethod
    async def insert(self, model: "Model") -> Any:
        """Persist a new model and return its id."""
        pass

    @abstractmethod
    async def update(self, model: "Model") -> None:
        """Persist the current state of an existing model."""
        pass

    @abstractmethod
    async def find(self, model: "Model") -> Mapping[str, Any]:
        """Return the stored data of the model with ``model.get_id()``."""
        pass

    @abstractmethod
    async def remove(self, model: "Model") -> None:
        """Delete the stored model."""
        pass
