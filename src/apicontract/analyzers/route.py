from __future__ import annotations

import re
from typing import Mapping, Optional

from apicontract.config import DEFAULT_RATE_LIMIT_DESCRIPTIONS
from apicontract.domain.models import AuthSpec, HeaderSpec, RateLimitSpec, RouteDescriptor

_PATH_PARAM = re.compile(r"\{(\w+)\??\}")
_API_VERSION = re.compile(r"^/?(?:api/)?(v\d+)(?:/|$)")
_THROTTLE_PREFIX = "throttle:"
_THROTTLE_COUNTS = re.compile(r"^\s*(\d+)\s*,\s*(\d+)\s*$")

_BEARER_GUARDS = {"sanctum", "api", "bearer", "token", "jwt"}
_SESSION_GUARDS = {"web", "session"}
_API_KEY = ("apikey", "api-key", "api_key")

# (middleware needles, header); first match per header wins, table order is output order
_HEADER_TABLE: tuple[tuple[tuple[str, ...], HeaderSpec], ...] = (
    (("tenant",), HeaderSpec(name="X-Tenant-Id", required=True, description="Tenant identifier")),
    (_API_KEY, HeaderSpec(name="X-API-Key", required=True, description="API key for authentication")),
    (
        ("signature", "webhook"),
        HeaderSpec(name="X-Signature", required=True, description="Webhook signature for request validation"),
    ),
    (("locale", "localization"), HeaderSpec(name="Accept-Language", required=False, description="Preferred response language")),
)
_SIGNATURE_HEADER = _HEADER_TABLE[2][1]


def extract_path_params(uri: str) -> list[str]:
    """'{post}' and '{post?}' placeholders, in order, first occurrence only."""
    out: list[str] = []
    for name in _PATH_PARAM.findall(uri):
        if name not in out:
            out.append(name)
    return out


def extract_api_version(uri: str) -> Optional[str]:
    m = _API_VERSION.match(uri)
    return m.group(1) if m else None


def _middleware(route: RouteDescriptor) -> list[str]:
    # frozenset has no order; sort for deterministic matching
    return sorted(str(mw) for mw in route.middleware)


def _auth_guards(middleware: list[str]) -> set[str]:
    """Guard names from 'auth:a,b' entries; bare 'auth' is the default guard, ''."""
    guards: set[str] = set()
    for mw in middleware:
        name, sep, params = mw.partition(":")
        if name != "auth":
            continue
        if not sep:
            guards.add("")
        guards.update(g.strip() for g in params.split(",") if g.strip())
    return guards


def determine_auth(route: RouteDescriptor) -> AuthSpec:
    """
    Priority: bearer > session > api_key > none, regardless of middleware order.

    Guards are compared by name, so 'auth:apikey' is not mistaken for 'auth:api'.
    """
    middleware = [mw.lower() for mw in _middleware(route)]
    guards = _auth_guards(middleware)

    if guards & _BEARER_GUARDS or any("jwt" in mw for mw in middleware):
        return AuthSpec(type="bearer")
    if "" in guards or guards & _SESSION_GUARDS:
        return AuthSpec(type="session")
    if any(any(token in mw for token in _API_KEY) for mw in middleware):
        return AuthSpec(type="api_key")
    return AuthSpec(type="none")


def describe_throttle(name: str, descriptions: Mapping[str, str] = DEFAULT_RATE_LIMIT_DESCRIPTIONS) -> str:
    if name in descriptions:
        return descriptions[name]

    m = _THROTTLE_COUNTS.match(name)
    if m:
        count, minutes = int(m.group(1)), int(m.group(2))
        period = "minute" if minutes == 1 else f"{minutes} minutes"
        return f"{count} requests per {period}"

    return f"Rate limit: {name}"


def extract_rate_limit(
    route: RouteDescriptor,
    descriptions: Mapping[str, str] = DEFAULT_RATE_LIMIT_DESCRIPTIONS,
) -> Optional[RateLimitSpec]:
    for mw in _middleware(route):
        if mw.startswith(_THROTTLE_PREFIX):
            name = mw[len(_THROTTLE_PREFIX):]
            return RateLimitSpec(name=name, description=describe_throttle(name, descriptions))
    return None


def extract_custom_headers(route: RouteDescriptor) -> list[HeaderSpec]:
    middleware = [mw.lower() for mw in _middleware(route)]
    headers: list[HeaderSpec] = []

    for needles, header in _HEADER_TABLE:
        if any(any(n in mw for n in needles) for mw in middleware):
            headers.append(header)

    if route.action is not None and "Webhook" in route.action.label and _SIGNATURE_HEADER not in headers:
        headers.append(_SIGNATURE_HEADER)

    # dedupe by name, first wins
    seen: set[str] = set()
    out = []
    for h in headers:
        if h.name not in seen:
            seen.add(h.name)
            out.append(h)
    return out


class RouteAnalyzer:
    """Route metadata that needs no handler introspection."""

    def __init__(self, rate_limit_descriptions: Optional[Mapping[str, str]] = None) -> None:
        self.rate_limit_descriptions = dict(
            rate_limit_descriptions if rate_limit_descriptions is not None else DEFAULT_RATE_LIMIT_DESCRIPTIONS
        )

    def extract_path_params(self, uri: str) -> list[str]:
        return extract_path_params(uri)

    def determine_auth(self, route: RouteDescriptor) -> AuthSpec:
        return determine_auth(route)

    def extract_rate_limit(self, route: RouteDescriptor) -> Optional[RateLimitSpec]:
        return extract_rate_limit(route, self.rate_limit_descriptions)

    def extract_api_version(self, uri: str) -> Optional[str]:
        return extract_api_version(uri)

    def extract_custom_headers(self, route: RouteDescriptor) -> list[HeaderSpec]:
        return extract_custom_headers(route)
