from __future__ import annotations

from typing import Any, Optional

from apicontract.extractors.source import status_codes_in_source

COMMON_ERROR_CODES = (400, 401, 404, 422, 500)

STATUS_DESCRIPTIONS = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def describe_status(code: int) -> str:
    return STATUS_DESCRIPTIONS.get(code, f"HTTP {code}")


def default_success_code(handler_name: str) -> int:
    name = handler_name.lower()
    if "store" in name or "create" in name:
        return 201
    if "destroy" in name or "delete" in name:
        return 204
    return 200


def analyze_status_codes(handler_name: str, func: Optional[Any] = None) -> list[int]:
    """
    Sorted, unique status codes for a handler: the success code implied by its
    name, codes visible in its source, and the common error codes.
    """
    codes = {default_success_code(handler_name), *COMMON_ERROR_CODES}
    if func is not None:
        codes.update(status_codes_in_source(func))
    return sorted(codes)
