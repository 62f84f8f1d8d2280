"""
Derivable Errors - Exception Taxonomy
=====================================

Three families of errors come out of the model layer:

- **Validation errors** are recoverable. They are raised by ``validate()`` and
  ``save()`` and describe which attribute rejected which value.
- **CalculationDepthError** means the calculation engine did not settle within
  ``max_calculations`` passes. It points at a derivation cycle or at derive
  rules that never stabilize.
- **Precondition errors** are programmer mistakes (unknown attribute names,
  persisting without identity or storage, using a destructed model). They are
  raised synchronously, never through a future.

Failures coming from a storage backend are not wrapped; they travel through
``save()``, ``fetch()`` and ``remove()`` unchanged.
"""

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .attribute import Attribute


class DerivableError(Exception):
    """Base class for every error raised by derivable."""

    pass


# ============================================================================
# Validation
# ============================================================================


class ValidationError(DerivableError):
    """Base class for validation failures."""

    pass


class AttributeValidationError(ValidationError):
    """
    A single attribute rejected its current value.

    ``message`` is set when the validation hook returned a string, ``data`` when it
    returned some other structured value. ``attribute`` is filled in by the model
    that collected the error.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        data: Any = None,
        attribute: Optional["Attribute"] = None,
    ) -> None:
        super().__init__(message or "")
        self.message = message
        self.data = data
        self.attribute = attribute

    @classmethod
    def from_result(
        cls, result: Any, attribute: Optional["Attribute"] = None
    ) -> "AttributeValidationError":
        """Build an error from whatever a validation hook returned."""
        if isinstance(result, str):
            return cls(message=result, attribute=attribute)
        if isinstance(result, bool):
            return cls(attribute=attribute)
        return cls(data=result, attribute=attribute)

    def __repr__(self) -> str:
        name = self.attribute.name if self.attribute is not None else None
        return (
            f"{type(self).__name__}(attribute={name!r}, "
            f"message={self.message!r}, data={self.data!r})"
        )


class ModelAttributeValidationError(AttributeValidationError):
    """A nested model failed validation."""

    def __init__(self, model_error: "ModelValidationError", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.model_error = model_error


class CollectionAttributeValidationError(AttributeValidationError):
    """One or more models of a nested collection failed validation."""

    def __init__(self, model_errors: List["ModelValidationError"], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.model_errors = model_errors


class ModelValidationError(ValidationError):
    """Aggregate of every attribute error found by ``Model.validate()``."""

    def __init__(self, attributes: Optional[List[AttributeValidationError]] = None):
        self.attributes: List[AttributeValidationError] = list(attributes or [])
        names = [
            error.attribute.name
            for error in self.attributes
            if error.attribute is not None
        ]
        super().__init__(f"Invalid attributes: {', '.join(names)}")


# ============================================================================
# Calculation
# ============================================================================


class CalculationDepthError(DerivableError):
    """Raised when a calculation pass still has changed attributes after the limit."""

    def __init__(self, max_calculations: int, attributes: List[str]):
        self.max_calculations = max_calculations
        self.attributes = list(attributes)
        super().__init__(
            f"After {max_calculations} calculations fields "
            f"{', '.join(self.attributes)} still changed"
        )


# ============================================================================
# Preconditions
# ============================================================================


class PreconditionError(DerivableError):
    """A model was used in a way its declaration does not allow."""

    pass


class UnknownAttributeError(PreconditionError, KeyError):
    """The model has no attribute with the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown attribute {name}")

    def __str__(self) -> str:
        return self.args[0]


class IdentityRequiredError(PreconditionError):
    """Persisting a model that declares no identity attribute."""

    pass


class StorageRequiredError(PreconditionError):
    """Persisting a model that has no storage backend."""

    def __init__(self, message: str = "Storage is required"):
        super().__init__(message)


class ModelDestructedError(PreconditionError):
    """Operating on a model after ``destruct()``."""

    def __init__(self, message: str = "Model is destructed"):
        super().__init__(message)


class NoEventLoopError(PreconditionError):
    """Models schedule their calculation on the running event loop."""

    pass
