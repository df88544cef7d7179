from apicontract.domain.models import SchemaNode
from apicontract.extractors.rules import parse_rules, split_field_name, split_rule


def test_rule_parsing_is_deterministic():
    rules = {"title": "required|string|max:255", "tags.*": "string"}

    node = parse_rules(rules)

    assert node.type == "object"
    assert node.children["title"] == SchemaNode(type="string", required=True, constraints={"max": "255"})
    tags = node.children["tags"]
    assert tags.type == "array"
    assert tags.items == SchemaNode(type="string")
    assert parse_rules(rules) == node


def test_first_type_token_wins_and_unknown_tokens_are_ignored():
    node = parse_rules({"count": "integer|string|sometimes|confirmed"})
    assert node.children["count"].type == "integer"
    assert node.children["count"].constraints == {}


def test_no_type_token_is_unknown():
    node = parse_rules({"anything": "required|sometimes"})
    child = node.children["anything"]
    assert child.type == "unknown"
    assert child.required is True


def test_format_token_implies_string():
    node = parse_rules({"email": "required|email", "site": "nullable|url"})
    assert node.children["email"].type == "string"
    assert node.children["email"].constraints == {"format": "email"}
    assert node.children["site"].nullable is True
    assert node.children["site"].constraints == {"format": "url"}


def test_parametrised_tokens_land_in_constraints():
    node = parse_rules({"status": "required|string|in:draft,published|regex:^[a-z]+$"})
    assert node.children["status"].constraints == {"in": "draft,published", "regex": "^[a-z]+$"}


def test_list_rules_skip_rule_objects():
    class Uppercase:
        pass

    node = parse_rules({"code": ["required", Uppercase(), "string", "size:3"]})
    assert node.children["code"] == SchemaNode(type="string", required=True, constraints={"size": "3"})


def test_dotted_names_fold_into_objects():
    node = parse_rules({"author": "required|array", "author.name": "required|string", "author.email": "email"})
    author = node.children["author"]
    # named children force object even when the rule says array
    assert author.type == "object"
    assert author.required is True
    assert list(author.children) == ["name", "email"]
    assert author.children["email"].type == "string"


def test_bracketed_names_and_nested_wildcards():
    node = parse_rules({"items[*][sku]": "required|string", "items[*][qty]": "integer|min:1"})
    items = node.children["items"]
    assert items.type == "array"
    assert items.items.type == "object"
    assert items.items.children["sku"].required is True
    assert items.items.children["qty"].constraints == {"min": "1"}


def test_leading_wildcard_is_skipped():
    node = parse_rules({"*.id": "integer", "name": "string"})
    assert list(node.children) == ["name"]


def test_empty_rules_give_empty_object():
    assert parse_rules({}) == SchemaNode.empty_object()


def test_split_helpers():
    assert split_rule("required| string |max:5") == ["required", "string", "max:5"]
    assert split_rule(None) == []
    assert split_field_name("items[*][sku]") == ["items", "*", "sku"]
    assert split_field_name("a.b.c") == ["a", "b", "c"]
