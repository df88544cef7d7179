from __future__ import annotations

import dataclasses
import datetime as dt
import decimal
import enum
import inspect
import typing
import uuid
from collections.abc import Mapping, Sequence, Set
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from apicontract.extractors.shape import split_optional

FIXED_DATETIME = dt.datetime(2024, 1, 15, 12, 0, 0)
FIXED_DATE = FIXED_DATETIME.date()
_MAX_DEPTH = 3


@runtime_checkable
class InstanceSynthesizer(Protocol):
    """Builds a representative, in-memory instance of a model class. Fallible."""

    def make(self, model_cls: type) -> Any:
        ...


def model_fields(model_cls: type) -> dict[str, tuple[Any, bool]]:
    """
    Declared fields of a model: name -> (annotation, has_default).

    Understands dataclasses, pydantic models and plain annotated classes.
    """
    if dataclasses.is_dataclass(model_cls):
        hints = _safe_hints(model_cls)
        out = {}
        for f in dataclasses.fields(model_cls):
            if not f.init:
                continue
            has_default = f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
            out[f.name] = (hints.get(f.name, f.type), has_default)
        return out

    if inspect.isclass(model_cls) and issubclass(model_cls, BaseModel):
        return {
            name: (info.annotation, not info.is_required())
            for name, info in model_cls.model_fields.items()
        }

    hints = _safe_hints(model_cls)
    return {
        name: (ann, hasattr(model_cls, name))
        for name, ann in hints.items()
        if not name.startswith("_") and typing.get_origin(ann) is not typing.ClassVar
    }


def _safe_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except Exception:
        # unresolvable forward references
        return dict(getattr(cls, "__annotations__", {}))


def _sample_string(name: str) -> str:
    lowered = name.lower()
    if "email" in lowered:
        return "user@example.com"
    if "url" in lowered or "link" in lowered:
        return "https://example.com"
    if lowered.endswith("slug"):
        return "sample-slug"
    return f"sample {name}"


def _value_for(annotation: Any, name: str, zero: bool, depth: int) -> Any:
    nullable, inner = split_optional(annotation)
    if nullable:
        if zero:
            return None
        annotation = inner

    if annotation is None or annotation is Any or isinstance(annotation, str):
        return None

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    target = origin or annotation

    if not isinstance(target, type):
        return None
    if issubclass(target, bool):
        return False if zero else True
    if issubclass(target, enum.Enum):
        return next(iter(target))
    if issubclass(target, int):
        return 0 if zero else 1
    if issubclass(target, decimal.Decimal):
        return decimal.Decimal("0") if zero else decimal.Decimal("1.50")
    if issubclass(target, float):
        return 0.0 if zero else 1.5
    if issubclass(target, str):
        return "" if zero else _sample_string(name)
    if issubclass(target, dt.datetime):
        return FIXED_DATETIME
    if issubclass(target, dt.date):
        return FIXED_DATE
    if issubclass(target, uuid.UUID):
        return uuid.UUID(int=0 if zero else 1)
    if issubclass(target, Mapping):
        return {}
    if issubclass(target, (Sequence, Set)) and not issubclass(target, (bytes, bytearray)):
        if zero or not args:
            return []
        return [_value_for(args[0], name, zero, depth + 1)]

    if zero or depth >= _MAX_DEPTH:
        return None
    if dataclasses.is_dataclass(target) or issubclass(target, BaseModel):
        return _build(target, zero, depth + 1)
    return None


def _build(model_cls: type, zero: bool, depth: int) -> Any:
    values = {
        name: _value_for(annotation, name, zero, depth)
        for name, (annotation, has_default) in model_fields(model_cls).items()
        if not (zero and has_default)
    }

    if inspect.isclass(model_cls) and issubclass(model_cls, BaseModel):
        if zero:
            # zero values may not satisfy validators
            return model_cls.model_construct(**values)
        return model_cls(**values)

    if dataclasses.is_dataclass(model_cls):
        return model_cls(**values)

    instance = model_cls()
    for name, value in values.items():
        setattr(instance, name, value)
    return instance


class AnnotationModelFactory:
    """
    Default InstanceSynthesizer.

    A model with a `factory()` classmethod builds itself. Otherwise every
    declared field gets a deterministic plausible value derived from its type.
    """

    def make(self, model_cls: type) -> Any:
        factory = getattr(model_cls, "factory", None)
        if callable(factory):
            return factory()
        return _build(model_cls, zero=False, depth=0)


def zero_instance(model_cls: type) -> Any:
    """
    Instance with zero values for required fields and defaults for the rest.
    Raises whatever the model constructor raises.
    """
    return _build(model_cls, zero=True, depth=0)
