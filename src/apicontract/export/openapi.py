from __future__ import annotations

import json
import re
from typing import Any, Literal, Optional

import yaml

from apicontract.analyzers.status_codes import describe_status
from apicontract.domain.models import Contract, ContractEntry, SchemaNode

OPENAPI_VERSION = "3.0.3"
BODY_METHODS = {"POST", "PUT", "PATCH"}

ExportFormat = Literal["json", "yaml"]

_FORMATS = {
    "email": "email",
    "url": "uri",
    "uuid": "uuid",
    "date": "date",
    "date-time": "date-time",
    "ip": "ipv4",
}

_SECURITY_SCHEMES = {
    "bearer": ("bearerAuth", {"type": "http", "scheme": "bearer"}),
    "session": ("sessionAuth", {"type": "apiKey", "in": "cookie", "name": "session"}),
    "api_key": ("apiKeyAuth", {"type": "apiKey", "in": "header", "name": "X-API-Key"}),
}

_NON_WORD = re.compile(r"[^A-Za-z0-9]+")
_VERSION_SEGMENT = re.compile(r"^v\d+$")


def _number(value: str) -> Optional[float | int]:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return None


def schema_to_openapi(node: SchemaNode) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if node.type != "unknown":
        out["type"] = node.type
    if node.nullable:
        out["nullable"] = True

    c = node.constraints
    fmt = _FORMATS.get(c.get("format", ""))
    if fmt:
        out["format"] = fmt
    if "in" in c:
        out["enum"] = [v.strip() for v in c["in"].split(",") if v.strip()]
    if "regex" in c:
        out["pattern"] = c["regex"]

    bounds = {
        "string": ("minLength", "maxLength"),
        "array": ("minItems", "maxItems"),
        "integer": ("minimum", "maximum"),
        "number": ("minimum", "maximum"),
    }.get(node.type)
    if bounds:
        for key, target in zip(("min", "max"), bounds):
            value = _number(c[key]) if key in c else None
            if value is not None:
                out[target] = value

    if node.type == "object":
        children = node.children or {}
        out["properties"] = {name: schema_to_openapi(child) for name, child in children.items()}
        required = [name for name, child in children.items() if child.required]
        if required:
            out["required"] = required
    elif node.type == "array":
        out["items"] = schema_to_openapi(node.items) if node.items is not None else {}

    return out


def _has_shape(node: SchemaNode) -> bool:
    return bool(node.children) or node.items is not None or node.type not in ("object", "unknown")


def _operation_id(method: str, path: str) -> str:
    return f"{method.lower()}_{_NON_WORD.sub('_', path).strip('_')}"


def _tag(path: str) -> Optional[str]:
    for seg in path.strip("/").split("/"):
        if seg in ("", "api") or _VERSION_SEGMENT.match(seg) or seg.startswith("{"):
            continue
        return seg
    return None


def _parameters(method: str, entry: ContractEntry) -> list[dict[str, Any]]:
    params: list[dict[str, Any]] = [
        {"name": name, "in": "path", "required": True, "schema": {"type": "string"}}
        for name in entry.path_parameters
    ]

    if entry.request_location == "query" and method not in BODY_METHODS:
        for name, child in (entry.request_schema.children or {}).items():
            if name in entry.path_parameters:
                continue
            params.append(
                {"name": name, "in": "query", "required": child.required, "schema": schema_to_openapi(child)}
            )

    for header in entry.custom_headers:
        param: dict[str, Any] = {
            "name": header.name,
            "in": "header",
            "required": header.required,
            "schema": {"type": "string"},
        }
        if header.description:
            param["description"] = header.description
        params.append(param)
    return params


def _responses(entry: ContractEntry) -> dict[str, Any]:
    codes = entry.status_codes or [200]
    responses: dict[str, Any] = {}
    for code in codes:
        response: dict[str, Any] = {"description": describe_status(code)}
        if 200 <= code < 300 and code != 204 and _has_shape(entry.response_schema):
            response["content"] = {"application/json": {"schema": schema_to_openapi(entry.response_schema)}}
        responses[str(code)] = response
    return responses


def _operation(path: str, method: str, entry: ContractEntry) -> dict[str, Any]:
    op: dict[str, Any] = {
        "summary": entry.description or f"{method.capitalize()} endpoint",
        "operationId": _operation_id(method, path),
    }
    if entry.description:
        op["description"] = entry.description
    tag = _tag(path)
    if tag:
        op["tags"] = [tag]

    params = _parameters(method, entry)
    if params:
        op["parameters"] = params

    if method in BODY_METHODS:
        op["requestBody"] = {
            "required": bool(entry.request_schema.children),
            "content": {"application/json": {"schema": schema_to_openapi(entry.request_schema)}},
        }

    op["responses"] = _responses(entry)

    scheme = _SECURITY_SCHEMES.get(entry.auth.type)
    if scheme:
        op["security"] = [{scheme[0]: []}]
    if entry.deprecated:
        op["deprecated"] = True
    if entry.rate_limit:
        op["x-rate-limit"] = entry.rate_limit.model_dump()
    return op


def to_openapi(
    contract: Contract,
    title: str = "API",
    version: str = "1.0.0",
    server_url: Optional[str] = None,
) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "openapi": OPENAPI_VERSION,
        "info": {"title": title, "version": version},
    }
    if server_url:
        doc["servers"] = [{"url": server_url}]

    paths: dict[str, Any] = {}
    auth_types: list[str] = []
    for path, methods in contract.items():
        item = paths.setdefault(path, {})
        for method, entry in methods.items():
            item[method.lower()] = _operation(path, method, entry)
            if entry.auth.type in _SECURITY_SCHEMES and entry.auth.type not in auth_types:
                auth_types.append(entry.auth.type)
    doc["paths"] = paths

    if auth_types:
        doc["components"] = {
            "securitySchemes": {_SECURITY_SCHEMES[t][0]: _SECURITY_SCHEMES[t][1] for t in auth_types}
        }
    return doc


def dump_openapi(doc: dict[str, Any], fmt: ExportFormat = "json") -> str:
    if fmt == "yaml":
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    raise ValueError(f"Unsupported export format: {fmt}")
