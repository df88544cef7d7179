from __future__ import annotations

import inspect
import typing
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from apicontract.domain.models import HandlerRef, SchemaNode
from apicontract.errors import FormRequestAnalysisError, RouteAnalysisError
from apicontract.extractors.rules import parse_rules
from apicontract.extractors.shape import annotation_to_schema
from apicontract.introspection.registry import ClassRegistry

_EMPTY = inspect.Parameter.empty
_SKIPPED_KINDS = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


@dataclass(frozen=True)
class HandlerInfo:
    """Reflective view of one resolved handler."""

    ref: HandlerRef
    func: Callable[..., Any]
    owner: Optional[type] = None
    parameters: tuple[inspect.Parameter, ...] = ()
    hints: dict[str, Any] = field(default_factory=dict)
    return_annotation: Any = None

    def annotation(self, param: inspect.Parameter) -> Any:
        if param.name in self.hints:
            return self.hints[param.name]
        return None if param.annotation is _EMPTY else param.annotation

    @property
    def doc(self) -> Optional[str]:
        return inspect.getdoc(self.func)


def annotation_name(annotation: Any) -> Optional[str]:
    """Bare class name of a string or class annotation ('Optional[X]' -> 'X')."""
    if isinstance(annotation, str):
        text = annotation.strip().strip("'\"")
        if text.startswith("Optional[") and text.endswith("]"):
            text = text[len("Optional["):-1]
        text = text.split("|")[0].strip()
        return text.split("[")[0].split(".")[-1] or None
    if inspect.isclass(annotation):
        return annotation.__name__
    return None


class HandlerResolver:
    """Resolves HandlerRefs through the registry; results are memoized per ref."""

    def __init__(self, registry: ClassRegistry) -> None:
        self.registry = registry
        self._cache: dict[HandlerRef, HandlerInfo] = {}

    def resolve(self, ref: HandlerRef) -> HandlerInfo:
        if ref in self._cache:
            return self._cache[ref]

        owner: Optional[type] = None
        if ref.owner:
            owner = self.registry.get(ref.owner)
            if owner is None:
                raise RouteAnalysisError.controller_not_found(ref.owner)
            func = getattr(owner, ref.name, None)
            if func is None or not callable(func):
                raise RouteAnalysisError.method_not_found(ref.owner, ref.name)
        else:
            target = self.registry.get(ref.name)
            if target is None:
                raise RouteAnalysisError.controller_not_found(ref.name)
            if inspect.isclass(target):
                # invokable handler class
                owner = target
                func = getattr(target, "__call__", None)
                if func is None or func is getattr(object, "__call__", None) or "__call__" not in vars(target):
                    raise RouteAnalysisError.method_not_found(ref.name, "__call__")
            elif callable(target):
                func = target
            else:
                raise RouteAnalysisError.reflection_failed(ref.label, f"{type(target).__name__} is not callable")

        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError) as e:
            raise RouteAnalysisError.reflection_failed(ref.label, str(e)) from e

        try:
            hints = typing.get_type_hints(func)
        except Exception:
            # unresolvable forward references: keep the raw (string) annotations
            hints = {}

        params = list(signature.parameters.values())
        if owner is not None and params and params[0].name in ("self", "cls"):
            params = params[1:]

        ret = hints.get("return")
        if ret is None and signature.return_annotation is not _EMPTY:
            ret = signature.return_annotation

        info = HandlerInfo(
            ref=ref,
            func=func,
            owner=owner,
            parameters=tuple(params),
            hints={k: v for k, v in hints.items() if k != "return"},
            return_annotation=ret,
        )
        self._cache[ref] = info
        return info


# ----------------------------
# Request-side introspectors
# ----------------------------


class HandlerIntrospector(ABC):
    """One strategy for describing what a handler accepts."""

    kind: str = ""

    @abstractmethod
    def supports(self, info: HandlerInfo) -> bool:
        ...

    @abstractmethod
    def request_schema(self, info: HandlerInfo) -> SchemaNode:
        """May raise AnalysisError subclasses; callers report them."""


class ValidatorIntrospector(HandlerIntrospector):
    """Handlers that take a validator object exposing rules()."""

    kind = "validator"

    def __init__(self, registry: ClassRegistry, validator_suffix: str = "Request") -> None:
        self.registry = registry
        self.validator_suffix = validator_suffix

    def find_validator(self, info: HandlerInfo) -> Optional[Union[type, str]]:
        """
        The validator class, or its unresolved name when the annotation looks
        like a validator but cannot be found.
        """
        for param in info.parameters:
            if param.kind in _SKIPPED_KINDS:
                continue
            annotation = info.annotation(param)
            if inspect.isclass(annotation):
                if hasattr(annotation, "rules"):
                    return annotation
                continue

            name = annotation_name(annotation)
            if not name:
                continue
            resolved = self.registry.get(name)
            if inspect.isclass(resolved) and hasattr(resolved, "rules"):
                return resolved
            # an unknown 'StorePostRequest' is a missing validator; a bare 'Request' is a framework object
            if resolved is None and name.endswith(self.validator_suffix) and name != self.validator_suffix:
                return name
        return None

    def supports(self, info: HandlerInfo) -> bool:
        return self.find_validator(info) is not None

    def request_schema(self, info: HandlerInfo) -> SchemaNode:
        validator = self.find_validator(info)
        if validator is None or isinstance(validator, str):
            raise FormRequestAnalysisError.class_not_found(str(validator))

        name = validator.__name__
        try:
            instance = validator()
        except Exception as e:
            raise FormRequestAnalysisError.instantiation_failed(name, str(e)) from e

        rules_fn = getattr(instance, "rules", None)
        if not callable(rules_fn):
            raise FormRequestAnalysisError.rules_not_found(name)

        try:
            rules = rules_fn()
        except Exception as e:
            raise FormRequestAnalysisError.invalid_rules(name, str(e)) from e

        if not isinstance(rules, Mapping):
            raise FormRequestAnalysisError.invalid_rules(
                name, f"rules() must return a mapping, got {type(rules).__name__}"
            )

        return parse_rules(rules)


class SignatureIntrospector(HandlerIntrospector):
    """Fallback: every declared parameter becomes a top-level field."""

    kind = "signature"

    def __init__(self, registry: ClassRegistry) -> None:
        self.registry = registry

    def supports(self, info: HandlerInfo) -> bool:
        return True

    def request_schema(self, info: HandlerInfo) -> SchemaNode:
        fields: dict[str, SchemaNode] = {}
        for param in info.parameters:
            if param.kind in _SKIPPED_KINDS:
                continue
            node = annotation_to_schema(info.annotation(param))
            required = param.default is _EMPTY
            fields[param.name] = node.model_copy(update={"required": required})
        return SchemaNode(type="object", children=fields)
