from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from apicontract.domain.models import SchemaNode
from apicontract.logging import EXTRACT, get_logger

logger = get_logger(__name__)

RULE_DELIMITER = "|"
WILDCARD = "*"

_TYPE_TOKENS = {
    "string": "string",
    "integer": "integer",
    "int": "integer",
    "numeric": "number",
    "number": "number",
    "float": "number",
    "double": "number",
    "decimal": "number",
    "boolean": "boolean",
    "bool": "boolean",
    "array": "array",
    "list": "array",
    "object": "object",
}

# Tokens that describe a string's format; they imply type=string when no type token is present.
_FORMAT_TOKENS = {"email", "url", "uuid", "date", "date_format", "ip", "json"}

_PARAM_TOKENS = {
    "min",
    "max",
    "in",
    "not_in",
    "size",
    "between",
    "regex",
    "exists",
    "unique",
    "digits",
    "mimes",
    "after",
    "before",
}

_BRACKET = re.compile(r"\[([^\]]*)\]")


@dataclass
class _Draft:
    """Mutable node used while folding dotted rule names; frozen at the end."""

    type: Optional[str] = None
    required: bool = False
    nullable: bool = False
    constraints: dict[str, str] = field(default_factory=dict)
    children: dict[str, "_Draft"] = field(default_factory=dict)
    items: Optional["_Draft"] = None

    def child(self, name: str) -> "_Draft":
        if name not in self.children:
            self.children[name] = _Draft()
        return self.children[name]

    def item(self) -> "_Draft":
        if self.items is None:
            self.items = _Draft()
        return self.items

    def freeze(self) -> SchemaNode:
        # nested names win over a declared type: Laravel-style "array" rules
        # are routinely used for associative payloads
        if self.children:
            node_type = "object"
        elif self.items is not None:
            node_type = "array"
        else:
            node_type = self.type or "unknown"

        return SchemaNode(
            type=node_type,
            required=self.required,
            nullable=self.nullable,
            constraints=dict(self.constraints),
            children={k: v.freeze() for k, v in self.children.items()} if node_type == "object" else None,
            items=self.items.freeze() if node_type == "array" and self.items is not None else None,
        )


def split_rule(rule: Any) -> list[str]:
    """
    Normalize a rule into a list of string tokens.

    Accepts 'required|string|max:255' or ['required', 'string', SomeRuleObject()];
    anything that is not a string token is dropped.
    """
    if isinstance(rule, str):
        parts: Iterable[Any] = rule.split(RULE_DELIMITER)
    elif isinstance(rule, (list, tuple)):
        parts = rule
    else:
        return []
    return [p.strip() for p in parts if isinstance(p, str) and p.strip()]


def split_field_name(name: str) -> list[str]:
    """'items.*.sku' and 'items[*][sku]' both become ['items', '*', 'sku']."""
    dotted = _BRACKET.sub(lambda m: "." + m.group(1), str(name))
    return [seg for seg in dotted.split(".") if seg != ""]


def _apply_tokens(draft: _Draft, tokens: list[str]) -> None:
    fmt_seen = False
    for token in tokens:
        key, sep, value = token.partition(":")
        key = key.strip().lower()

        if not sep:
            if key == "required":
                draft.required = True
            elif key == "nullable":
                draft.nullable = True
            elif key in _TYPE_TOKENS:
                if draft.type is None:
                    draft.type = _TYPE_TOKENS[key]
            elif key in _FORMAT_TOKENS:
                draft.constraints.setdefault("format", key)
                fmt_seen = True
            # unknown bare tokens (sometimes, confirmed, ...) are ignored
            continue

        if key in _PARAM_TOKENS:
            draft.constraints[key] = value.strip()
        elif key in _FORMAT_TOKENS:
            draft.constraints.setdefault("format", key)
            fmt_seen = True

    if draft.type is None and fmt_seen:
        draft.type = "string"


def parse_rules(rules: Mapping[str, Any]) -> SchemaNode:
    """
    Turn a validator rule set into an object SchemaNode.

    Never raises for malformed tokens: unknown tokens are skipped and the field
    is still emitted (type=unknown when nothing recognizable was found).
    """
    root = _Draft(type="object")

    for raw_name, rule in rules.items():
        segments = split_field_name(str(raw_name))
        if not segments or segments[0] == WILDCARD:
            logger.debug(f"{EXTRACT} skipping rule for unsupported field name {raw_name!r}")
            continue

        node = root
        for seg in segments:
            node = node.item() if seg == WILDCARD else node.child(seg)

        _apply_tokens(node, split_rule(rule))

    return root.freeze()
