import datetime as dt
import enum
from decimal import Decimal
from typing import Optional

import pytest

from apicontract.domain.models import SchemaNode
from apicontract.extractors.shape import annotation_to_schema, value_to_schema


class Color(enum.Enum):
    RED = "red"
    BLUE = "blue"


def test_value_to_schema_scalars():
    assert value_to_schema(True).type == "boolean"
    assert value_to_schema(3).type == "integer"
    assert value_to_schema(1.5).type == "number"
    assert value_to_schema(Decimal("2.00")).type == "number"
    assert value_to_schema("x").type == "string"
    assert value_to_schema(Color.RED).type == "string"

    none = value_to_schema(None)
    assert none.type == "unknown"
    assert none.nullable is True


def test_value_to_schema_dates():
    assert value_to_schema(dt.datetime(2024, 1, 1)).constraints == {"format": "date-time"}
    assert value_to_schema(dt.date(2024, 1, 1)).constraints == {"format": "date"}


def test_value_to_schema_containers():
    node = value_to_schema({"id": 1, "tags": ["a"], "empty": [], "meta": {"n": None}})
    assert node.type == "object"
    assert all(child.required for child in node.children.values())
    assert node.children["tags"].items == SchemaNode(type="string")
    assert node.children["empty"].items == SchemaNode(type="unknown")
    assert node.children["meta"].children["n"].nullable is True


@pytest.mark.parametrize(
    "annotation, expected",
    [
        (int, "integer"),
        (float, "number"),
        (Decimal, "number"),
        (str, "string"),
        (bool, "boolean"),
        (list[int], "array"),
        (dict, "object"),
        (object, "unknown"),
        ("int", "integer"),
        ("list[str]", "array"),
    ],
)
def test_annotation_to_schema_types(annotation, expected):
    assert annotation_to_schema(annotation).type == expected


def test_optional_annotation_is_nullable():
    node = annotation_to_schema(Optional[int])
    assert node.type == "integer"
    assert node.nullable is True

    assert annotation_to_schema("Optional[str]").nullable is True
    assert annotation_to_schema("str | None").type == "string"


def test_sequence_annotation_items():
    node = annotation_to_schema(list[str])
    assert node.items == SchemaNode(type="string")


def test_enum_annotation_lists_values():
    node = annotation_to_schema(Color)
    assert node.type == "string"
    assert node.constraints == {"in": "red,blue"}


def test_schema_node_shape_is_enforced():
    with pytest.raises(ValueError):
        SchemaNode(type="string", children={})
    with pytest.raises(ValueError):
        SchemaNode(type="object", items=SchemaNode())
    assert SchemaNode(type="object").children == {}
