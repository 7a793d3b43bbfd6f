"""Validation helpers for persisted game-state payloads.

Each model registers a :class:`ModelValidator` subclass as ``Model.validator``;
``Model.from_dict`` calls :func:`validate_payload` before building itself so a
corrupt save is reported field by field instead of failing deep inside a
constructor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, ClassVar, Mapping, Optional, Sequence


class ModelValidationError(ValueError):
    """Raised when a payload does not satisfy a model's requirements."""

    def __init__(self, model: type[Any], errors: Sequence[str]) -> None:
        self.model = model
        self.errors = list(errors)
        details = "; ".join(self.errors) or "invalid payload"
        super().__init__(f"Invalid {model.__name__} data: {details}")


@dataclass(frozen=True)
class SequenceSpec:
    item: Any


@dataclass(frozen=True)
class MappingSpec:
    key: Any
    value: Any


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def enum_value(enum_cls: type[Enum]) -> Any:
    """Return a predicate accepting members of ``enum_cls`` or their raw values."""

    allowed = frozenset(member.value for member in enum_cls)

    def _check(value: Any) -> bool:
        return isinstance(value, enum_cls) or value in allowed

    _check.__name__ = f"{enum_cls.__name__.lower()}_value"
    return _check


_SCALARS: Mapping[type, Any] = {
    bool: lambda value: isinstance(value, bool),
    int: lambda value: isinstance(value, int) and not isinstance(value, bool),
    float: lambda value: isinstance(value, Real) and not isinstance(value, bool),
}


def conforms(value: Any, expected: Any) -> bool:
    """Return ``True`` if ``value`` has the shape described by ``expected``.

    ``expected`` is a type, a :class:`SequenceSpec`/:class:`MappingSpec`, a
    tuple of alternatives or a predicate.  Booleans never count as numbers.
    """

    if expected is Any:
        return True
    if isinstance(expected, SequenceSpec):
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            return False
        return all(conforms(item, expected.item) for item in value)
    if isinstance(expected, MappingSpec):
        return isinstance(value, Mapping) and all(
            conforms(key, expected.key) and conforms(item, expected.value)
            for key, item in value.items()
        )
    if isinstance(expected, tuple):
        return any(conforms(value, option) for option in expected)
    if isinstance(expected, type):
        check = _SCALARS.get(expected)
        return check(value) if check is not None else isinstance(value, expected)
    if callable(expected):
        try:
            return bool(expected(value))
        except (TypeError, ValueError):
            return False
    return True


@dataclass(frozen=True)
class FieldSpec:
    expected: Any
    description: str
    required: bool = True
    allow_none: bool = False
    minimum: float | None = None
    maximum: float | None = None

    def problem(self, name: str, value: Any) -> Optional[str]:
        """Describe what is wrong with ``value`` or return ``None`` if it is acceptable."""

        if value is None:
            return None if self.allow_none else f"'{name}' cannot be null"
        if not conforms(value, self.expected):
            return f"'{name}' should be {self.description}, got {type(value).__name__}"
        if self.minimum is not None and value < self.minimum:
            return f"'{name}' is below the minimum of {self.minimum}"
        if self.maximum is not None and value > self.maximum:
            return f"'{name}' is above the maximum of {self.maximum}"
        return None


class ModelValidator:
    """Declarative field checks for one model; subclasses set ``model`` and ``fields``."""

    model: ClassVar[type[Any]]
    fields: ClassVar[Mapping[str, FieldSpec]]

    @classmethod
    def validate(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ModelValidationError(cls.model, ["expected a mapping of field names to values"])

        errors = []
        for name, spec in cls.fields.items():
            if name in data:
                problem = spec.problem(name, data[name])
                if problem:
                    errors.append(problem)
            elif spec.required:
                errors.append(f"'{name}' is missing ({spec.description})")
        if errors:
            raise ModelValidationError(cls.model, errors)
        # Unknown keys pass through for forward compatibility.
        return dict(data)


def validate_payload(cls: type[Any], data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate ``data`` against the validator registered on ``cls``, if any."""

    validator: type[ModelValidator] | None = getattr(cls, "validator", None)
    if validator is not None:
        return validator.validate(data)
    if not isinstance(data, Mapping):
        raise ModelValidationError(cls, ["expected a mapping"])
    return dict(data)
