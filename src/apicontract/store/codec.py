from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import ValidationError

from apicontract.domain.models import HTTP_METHODS, Contract, ContractEntry
from apicontract.logging import STORE, get_logger

logger = get_logger(__name__)

JSON_INDENT = 4


def contract_to_dict(contract: Contract) -> dict[str, dict[str, dict[str, Any]]]:
    return {
        path: {method: entry.to_dict() for method, entry in methods.items()}
        for path, methods in contract.items()
    }


def dumps(contract: Contract) -> str:
    """Canonical JSON: 4-space indent, UTF-8 text, slashes unescaped, trailing newline."""
    return json.dumps(contract_to_dict(contract), indent=JSON_INDENT, ensure_ascii=False) + "\n"


def _valid_entry(data: Any) -> bool:
    if not isinstance(data, Mapping):
        return False
    auth = data.get("auth")
    if not isinstance(auth, Mapping) or not isinstance(auth.get("type"), str):
        return False
    params = data.get("path_parameters")
    if params is not None and not isinstance(params, list):
        return False
    return True


def parse_contract(data: Any) -> Optional[Contract]:
    """
    Validate and convert decoded JSON into a Contract.

    Unknown method keys are skipped; any other structural problem makes the
    whole document invalid (None).
    """
    if not isinstance(data, Mapping):
        return None

    contract: Contract = {}
    for path, methods in data.items():
        if not isinstance(path, str) or not isinstance(methods, Mapping):
            return None

        entries: dict[str, ContractEntry] = {}
        for method, raw in methods.items():
            if not isinstance(method, str) or method not in HTTP_METHODS:
                logger.debug(f"{STORE} skipping unknown method {method!r} under {path}")
                continue
            if not _valid_entry(raw):
                return None
            try:
                entries[method] = ContractEntry.model_validate(dict(raw))
            except ValidationError as e:
                logger.debug(f"{STORE} invalid entry {method} {path}: {e}")
                return None

        if entries:
            contract[path] = entries
    return contract


def loads(text: str) -> Optional[Contract]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parse_contract(data)
