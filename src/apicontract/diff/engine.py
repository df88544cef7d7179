from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from apicontract.domain.models import Contract, ContractEntry, RouteDescriptor, SchemaNode
from apicontract.errors import ErrorCallback
from apicontract.logging import DIFF, get_logger

logger = get_logger(__name__)

RouteKey = tuple[str, str]  # (path, METHOD)

# top-level scalar fields, compared first and in this order
_SCALAR_FIELDS = (
    "description",
    "auth.type",
    "api_version",
    "request_location",
    "deprecated",
    "rate_limit",
    "custom_headers",
    "status_codes",
)


@dataclass(frozen=True)
class FieldChange:
    field_path: str
    before: Any
    after: Any


@dataclass(frozen=True)
class ModifiedEntry:
    path: str
    method: str
    field_changes: tuple[FieldChange, ...]


@dataclass(frozen=True)
class DiffResult:
    added: tuple[RouteKey, ...] = ()
    removed: tuple[RouteKey, ...] = ()
    modified: tuple[ModifiedEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    def summary(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "removed": len(self.removed),
            "modified": len(self.modified),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "added": [{"path": p, "method": m} for p, m in self.added],
            "removed": [{"path": p, "method": m} for p, m in self.removed],
            "modified": [
                {
                    "path": e.path,
                    "method": e.method,
                    "changes": [
                        {"field": c.field_path, "before": c.before, "after": c.after}
                        for c in e.field_changes
                    ],
                }
                for e in self.modified
            ],
        }


def _keys(contract: Contract) -> list[RouteKey]:
    return [(path, method) for path, methods in contract.items() for method in methods]


def _scalar(entry: ContractEntry, field: str) -> Any:
    if field == "auth.type":
        return entry.auth.type
    if field == "rate_limit":
        return entry.rate_limit.model_dump() if entry.rate_limit else None
    if field == "custom_headers":
        return [h.model_dump() for h in entry.custom_headers]
    if field == "status_codes":
        return list(entry.status_codes) if entry.status_codes is not None else None
    return getattr(entry, field)


def _ordered_union(first: Iterable[str], second: Iterable[str]) -> list[str]:
    out = list(first)
    out.extend(k for k in second if k not in out)
    return out


def diff_schema(prefix: str, before: SchemaNode, after: SchemaNode, out: list[FieldChange]) -> None:
    """Pre-order walk: own attributes, constraints, children, then items ('*')."""
    for attr in ("type", "required", "nullable"):
        a, b = getattr(before, attr), getattr(after, attr)
        if a != b:
            out.append(FieldChange(f"{prefix}.{attr}", a, b))

    for key in _ordered_union(before.constraints, after.constraints):
        a, b = before.constraints.get(key), after.constraints.get(key)
        if a != b:
            out.append(FieldChange(f"{prefix}.constraints.{key}", a, b))

    before_children = before.children or {}
    after_children = after.children or {}
    for name in _ordered_union(before_children, after_children):
        a_node, b_node = before_children.get(name), after_children.get(name)
        path = f"{prefix}.{name}"
        if a_node is None or b_node is None:
            out.append(
                FieldChange(
                    path,
                    a_node.to_dict() if a_node is not None else None,
                    b_node.to_dict() if b_node is not None else None,
                )
            )
        else:
            diff_schema(path, a_node, b_node, out)

    if before.items is not None and after.items is not None:
        diff_schema(f"{prefix}.*", before.items, after.items, out)
    elif before.items is not None or after.items is not None:
        out.append(
            FieldChange(
                f"{prefix}.*",
                before.items.to_dict() if before.items is not None else None,
                after.items.to_dict() if after.items is not None else None,
            )
        )


def diff_entry(before: ContractEntry, after: ContractEntry) -> list[FieldChange]:
    changes: list[FieldChange] = []

    for field in _SCALAR_FIELDS:
        a, b = _scalar(before, field), _scalar(after, field)
        if a != b:
            changes.append(FieldChange(field, a, b))

    if before.path_parameters != after.path_parameters:
        changes.append(FieldChange("path_parameters", list(before.path_parameters), list(after.path_parameters)))

    diff_schema("request_schema", before.request_schema, after.request_schema, changes)
    diff_schema("response_schema", before.response_schema, after.response_schema, changes)
    return changes


class ContractDiffEngine:
    """
    Compares two contracts.

    validate() needs a store to rebuild the live contract; plain diff() does not.
    """

    def __init__(self, store: Optional[Any] = None) -> None:
        self.store = store

    def diff(self, before: Contract, after: Contract) -> DiffResult:
        before_keys = _keys(before)
        after_keys = _keys(after)
        before_set, after_set = set(before_keys), set(after_keys)

        added = tuple(k for k in after_keys if k not in before_set)
        removed = tuple(k for k in before_keys if k not in after_set)

        modified: list[ModifiedEntry] = []
        for path, method in before_keys:
            if (path, method) not in after_set:
                continue
            changes = diff_entry(before[path][method], after[path][method])
            if changes:
                modified.append(ModifiedEntry(path=path, method=method, field_changes=tuple(changes)))

        result = DiffResult(added=added, removed=removed, modified=tuple(modified))
        logger.debug(f"{DIFF} {result.summary()}")
        return result

    def validate(
        self,
        live_routes: Iterable[RouteDescriptor],
        stored: Contract,
        on_error: Optional[ErrorCallback] = None,
    ) -> DiffResult:
        """diff(stored, build(live_routes))."""
        if self.store is None:
            raise ValueError("validate() requires a ContractStore")
        live = self.store.build(live_routes, on_error)
        return self.diff(stored, live)
