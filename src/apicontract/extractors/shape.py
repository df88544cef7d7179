from __future__ import annotations

import datetime as dt
import decimal
import enum
import typing
import uuid
from collections.abc import Mapping, Sequence, Set
from typing import Any

from apicontract.domain.models import SchemaNode

_SCALAR_NAMES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "Decimal": "number",
    "bool": "boolean",
    "list": "array",
    "tuple": "array",
    "set": "array",
    "frozenset": "array",
    "List": "array",
    "Tuple": "array",
    "Set": "array",
    "Sequence": "array",
    "dict": "object",
    "Dict": "object",
    "Mapping": "object",
}


def value_to_schema(value: Any, required: bool = False) -> SchemaNode:
    """
    Describe an observed value.

    Mappings become objects, sequences become arrays whose items come from the
    first element, scalars map to their primitive type.
    """
    if value is None:
        return SchemaNode(type="unknown", nullable=True, required=required)
    if isinstance(value, bool):
        return SchemaNode(type="boolean", required=required)
    if isinstance(value, enum.Enum):
        return value_to_schema(value.value, required=required)
    if isinstance(value, int):
        return SchemaNode(type="integer", required=required)
    if isinstance(value, (float, decimal.Decimal)):
        return SchemaNode(type="number", required=required)
    if isinstance(value, str):
        return SchemaNode(type="string", required=required)
    if isinstance(value, dt.datetime):
        return SchemaNode(type="string", required=required, constraints={"format": "date-time"})
    if isinstance(value, dt.date):
        return SchemaNode(type="string", required=required, constraints={"format": "date"})
    if isinstance(value, uuid.UUID):
        return SchemaNode(type="string", required=required, constraints={"format": "uuid"})
    if isinstance(value, Mapping):
        return SchemaNode(
            type="object",
            required=required,
            children={str(k): value_to_schema(v, required=True) for k, v in value.items()},
        )
    if isinstance(value, (Sequence, Set)) and not isinstance(value, (bytes, bytearray)):
        seq = list(value)
        items = value_to_schema(seq[0]) if seq else SchemaNode(type="unknown")
        return SchemaNode(type="array", required=required, items=items)
    return SchemaNode(type="unknown", required=required)


def split_optional(annotation: Any) -> tuple[bool, Any]:
    """Optional[X] and X | None -> (True, X). Anything else -> (False, annotation)."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or (origin is not None and getattr(origin, "__name__", "") == "UnionType"):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) != len(typing.get_args(annotation)):
            return True, args[0] if len(args) == 1 else typing.Union[tuple(args)]
    return False, annotation


def annotation_to_schema(annotation: Any, required: bool = False) -> SchemaNode:
    """
    Describe a declared type without executing anything.

    Handles builtin classes, typing generics, Optional[...] and string
    annotations (by name only). Anything unrecognized is 'unknown'.
    """
    if annotation is None or annotation is Any:
        return SchemaNode(type="unknown", required=required)

    if isinstance(annotation, str):
        return _string_annotation_to_schema(annotation, required)

    nullable, inner = split_optional(annotation)
    if nullable:
        node = annotation_to_schema(inner, required=required)
        return node.model_copy(update={"nullable": True})

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    target = origin or annotation

    if isinstance(target, type):
        if issubclass(target, bool):
            return SchemaNode(type="boolean", required=required)
        if issubclass(target, enum.Enum):
            values = ",".join(str(m.value) for m in target)
            return SchemaNode(type="string", required=required, constraints={"in": values})
        if issubclass(target, int):
            return SchemaNode(type="integer", required=required)
        if issubclass(target, (float, decimal.Decimal)):
            return SchemaNode(type="number", required=required)
        if issubclass(target, str):
            return SchemaNode(type="string", required=required)
        if issubclass(target, dt.datetime):
            return SchemaNode(type="string", required=required, constraints={"format": "date-time"})
        if issubclass(target, dt.date):
            return SchemaNode(type="string", required=required, constraints={"format": "date"})
        if issubclass(target, uuid.UUID):
            return SchemaNode(type="string", required=required, constraints={"format": "uuid"})
        if issubclass(target, Mapping):
            return SchemaNode(type="object", required=required, children={})
        if issubclass(target, (Sequence, Set)) and not issubclass(target, (bytes, bytearray)):
            items = annotation_to_schema(args[0]) if args else SchemaNode(type="unknown")
            return SchemaNode(type="array", required=required, items=items)

    return SchemaNode(type="unknown", required=required)


def _string_annotation_to_schema(annotation: str, required: bool) -> SchemaNode:
    text = annotation.strip().strip("'\"")
    nullable = False

    if text.startswith("Optional[") and text.endswith("]"):
        text, nullable = text[len("Optional["):-1].strip(), True
    elif "|" in text:
        parts = [p.strip() for p in text.split("|")]
        if "None" in parts:
            nullable = True
            parts = [p for p in parts if p != "None"]
        text = parts[0] if len(parts) == 1 else ""

    base, _, rest = text.partition("[")
    node_type = _SCALAR_NAMES.get(base.strip().split(".")[-1], "unknown")

    if node_type == "array":
        inner = rest[:-1] if rest.endswith("]") else ""
        inner = inner.split(",")[0].strip()
        items = _string_annotation_to_schema(inner, False) if inner else SchemaNode(type="unknown")
        return SchemaNode(type="array", required=required, nullable=nullable, items=items)
    if node_type == "object":
        return SchemaNode(type="object", required=required, nullable=nullable, children={})
    return SchemaNode(type=node_type, required=required, nullable=nullable)
