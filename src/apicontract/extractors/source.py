from __future__ import annotations

import ast
import inspect
import textwrap
from typing import Any, Iterable, Optional

# XResource.collection(...) / XResource.make(...)
_FACTORY_ATTRS = {"collection", "make"}

# call names whose first positional int is an HTTP status
_STATUS_CALLS = {"abort", "HTTPException", "HttpError", "HTTPError", "Response", "JSONResponse"}
_STATUS_KEYWORDS = {"status_code", "status"}


def parse_source(obj: Any) -> Optional[ast.AST]:
    """
    Parse the source of a function or class. Uses ast only; does not execute code.

    Returns None when the source is unavailable (builtins, REPL, C extensions)
    or does not parse.
    """
    try:
        source = inspect.getsource(obj)
    except (OSError, TypeError):
        return None
    try:
        return ast.parse(textwrap.dedent(source))
    except SyntaxError:
        return None


def _const_str(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def _const_int(node: ast.AST) -> Optional[int]:
    if isinstance(node, ast.Constant) and isinstance(node.value, int) and not isinstance(node.value, bool):
        return node.value
    return None


def _call_name(node: ast.Call) -> Optional[str]:
    func = node.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def _iter_calls(tree: ast.AST) -> Iterable[ast.Call]:
    calls = [n for n in ast.walk(tree) if isinstance(n, ast.Call)]
    # stable ordering: source position
    calls.sort(key=lambda n: (getattr(n, "lineno", 0), getattr(n, "col_offset", 0)))
    return calls


def transformer_references(func: Any, suffixes: Iterable[str]) -> list[str]:
    """
    Transformer class names used in a handler body, in source order.

    Recognizes:
      PostResource(post)
      PostResource.collection(posts)
      PostResource.make(post)
    """
    tree = parse_source(func)
    if tree is None:
        return []

    suffixes = tuple(suffixes)
    out: list[str] = []
    for call in _iter_calls(tree):
        name: Optional[str] = None
        target = call.func
        if isinstance(target, ast.Name):
            name = target.id
        elif isinstance(target, ast.Attribute) and target.attr in _FACTORY_ATTRS:
            if isinstance(target.value, ast.Name):
                name = target.value.id
            elif isinstance(target.value, ast.Attribute):
                name = target.value.attr

        if name and name.endswith(suffixes) and name not in out:
            out.append(name)
    return out


def returned_dict_keys(cls: type, method: str = "resolve") -> list[str]:
    """
    Keys of the first dict literal returned by `cls.<method>`.

    Only constant string keys are kept; `**spread` entries are skipped.
    """
    func = getattr(cls, method, None)
    if func is None:
        return []
    tree = parse_source(func)
    if tree is None:
        return []

    for node in ast.walk(tree):
        if isinstance(node, ast.Return) and isinstance(node.value, ast.Dict):
            keys = []
            for key in node.value.keys:
                s = _const_str(key) if key is not None else None
                if s is not None and s not in keys:
                    keys.append(s)
            return keys
    return []


def status_codes_in_source(func: Any) -> list[int]:
    """
    HTTP status codes a handler visibly produces.

    Recognizes abort(404), HTTPException(409, ...), raise X(status_code=403)
    and any call with a literal status_code=/status= keyword.
    """
    tree = parse_source(func)
    if tree is None:
        return []

    found: list[int] = []
    for call in _iter_calls(tree):
        candidates: list[Optional[int]] = []
        if _call_name(call) in _STATUS_CALLS and call.args:
            candidates.append(_const_int(call.args[0]))
        for kw in call.keywords or []:
            if kw.arg in _STATUS_KEYWORDS:
                candidates.append(_const_int(kw.value))

        for code in candidates:
            if code is not None and 100 <= code <= 599 and code not in found:
                found.append(code)
    return found


def class_names_in_source(source: str) -> list[str]:
    """Top-level class names declared in a module's source."""
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return []
    return [node.name for node in tree.body if isinstance(node, ast.ClassDef)]
