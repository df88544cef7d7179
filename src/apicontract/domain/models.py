from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from apicontract.errors import RouteAnalysisError

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")

SchemaType = Literal["string", "integer", "number", "boolean", "array", "object", "unknown"]
AuthType = Literal["none", "bearer", "session", "api_key"]
RequestLocation = Literal["query", "body"]

CLOSURE_ACTION = "Closure"


# ----------------------------
# Route input (read-only, supplied by the route registry)
# ----------------------------


@dataclass(frozen=True)
class HandlerRef:
    """
    Reference to a route handler.

    owner is the registered class name for 'Controller@method' actions and None
    for plain function handlers.
    """

    name: str
    owner: Optional[str] = None

    @classmethod
    def parse(cls, action: Optional[str]) -> Optional["HandlerRef"]:
        """
        Parse an action string. Returns None for inline handlers.

        Raises RouteAnalysisError for malformed actions.
        """
        if action is None:
            return None
        action = action.strip()
        if action == CLOSURE_ACTION:
            return None
        if not action:
            raise RouteAnalysisError.invalid_action(action)

        if "@" in action:
            parts = action.split("@")
            if len(parts) != 2 or not parts[0] or not parts[1]:
                raise RouteAnalysisError.invalid_action(action)
            return cls(name=parts[1], owner=parts[0])

        return cls(name=action)

    @property
    def label(self) -> str:
        return f"{self.owner}@{self.name}" if self.owner else self.name


@dataclass(frozen=True)
class RouteDescriptor:
    method: str
    uri: str
    action: Optional[HandlerRef] = None
    middleware: frozenset[str] = field(default_factory=frozenset)
    # raw action string when it could not be parsed; reported at build time
    raw_action: Optional[str] = None

    @classmethod
    def from_action(
        cls,
        method: str,
        uri: str,
        action: Optional[str] = None,
        middleware: tuple[str, ...] | list[str] | frozenset[str] = (),
    ) -> "RouteDescriptor":
        try:
            ref = HandlerRef.parse(action)
            raw = None
        except RouteAnalysisError:
            ref = None
            raw = action
        return cls(
            method=method.upper(),
            uri=uri,
            action=ref,
            middleware=frozenset(middleware),
            raw_action=raw,
        )


# ----------------------------
# Schema tree
# ----------------------------


class SchemaNode(BaseModel):
    """Shape of one field. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    type: SchemaType = "unknown"
    required: bool = False
    nullable: bool = False
    constraints: dict[str, str] = Field(default_factory=dict)
    children: Optional[dict[str, "SchemaNode"]] = None
    items: Optional["SchemaNode"] = None

    @model_validator(mode="before")
    @classmethod
    def _default_children(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") == "object" and data.get("children") is None:
            data = {**data, "children": {}}
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> "SchemaNode":
        if self.children is not None and self.type != "object":
            raise ValueError(f"children are only allowed on object nodes, not {self.type}")
        if self.items is not None and self.type != "array":
            raise ValueError(f"items are only allowed on array nodes, not {self.type}")
        return self

    @classmethod
    def empty_object(cls) -> "SchemaNode":
        return cls(type="object", children={})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "required": self.required,
            "nullable": self.nullable,
            "constraints": dict(self.constraints),
        }
        if self.children is not None:
            out["children"] = {k: v.to_dict() for k, v in self.children.items()}
        if self.items is not None:
            out["items"] = self.items.to_dict()
        return out


# ----------------------------
# Contract entries
# ----------------------------


class AuthSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "none"


class RateLimitSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""


class HeaderSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    required: bool = False
    description: str = ""


class ContractEntry(BaseModel):
    """One documented (path, method) pair."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    auth: AuthSpec = Field(default_factory=AuthSpec)
    path_parameters: list[str] = Field(default_factory=list)
    request_location: RequestLocation = "body"
    request_schema: SchemaNode = Field(default_factory=SchemaNode.empty_object)
    response_schema: SchemaNode = Field(default_factory=SchemaNode.empty_object)
    rate_limit: Optional[RateLimitSpec] = None
    custom_headers: list[HeaderSpec] = Field(default_factory=list)
    api_version: Optional[str] = None
    status_codes: Optional[list[int]] = None
    deprecated: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "auth": {"type": self.auth.type},
            "path_parameters": list(self.path_parameters),
            "request_location": self.request_location,
            "request_schema": self.request_schema.to_dict(),
            "response_schema": self.response_schema.to_dict(),
            "rate_limit": self.rate_limit.model_dump() if self.rate_limit else None,
            "custom_headers": [h.model_dump() for h in self.custom_headers],
            "api_version": self.api_version,
            "status_codes": list(self.status_codes) if self.status_codes is not None else None,
            "deprecated": self.deprecated,
        }


# path -> METHOD -> entry; insertion order is kept for stable output
Contract = dict[str, dict[str, ContractEntry]]


@dataclass(frozen=True)
class VersionInfo:
    version_id: str   # filename, e.g. api-2024-01-15-143022.json
    timestamp: str    # 2024-01-15-143022
    size: int

    @property
    def display_date(self) -> str:
        t = self.timestamp
        return f"{t[0:10]} {t[11:13]}:{t[13:15]}:{t[15:17]}"


@dataclass(frozen=True)
class VersionSnapshot:
    timestamp: str
    contract: Contract
    size: int
