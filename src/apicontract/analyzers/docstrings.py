from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Optional

# ".. deprecated:: 2.1 use /v2/posts" or "Deprecated: use /v2/posts"
_SPHINX_DEPRECATED = re.compile(r"^\.\.\s*deprecated::\s*(.*)$", re.IGNORECASE)
_PLAIN_DEPRECATED = re.compile(r"^@?deprecated\b[:\s]*(.*)$", re.IGNORECASE)


@dataclass(frozen=True)
class HandlerDoc:
    description: str = ""
    deprecated: Optional[str] = None


def parse_docstring(doc: Optional[str]) -> HandlerDoc:
    """
    First paragraph is the description. A deprecation marker anywhere in the
    docstring sets `deprecated` to its text (or "deprecated" when bare).
    """
    if not doc:
        return HandlerDoc()

    text = inspect.cleandoc(doc)
    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]

    deprecated: Optional[str] = None
    for line in text.splitlines():
        line = line.strip()
        m = _SPHINX_DEPRECATED.match(line) or _PLAIN_DEPRECATED.match(line)
        if m:
            deprecated = m.group(1).strip() or "deprecated"
            break

    description = ""
    if paragraphs:
        first = paragraphs[0]
        if not (_SPHINX_DEPRECATED.match(first.strip()) or _PLAIN_DEPRECATED.match(first.strip())):
            description = " ".join(line.strip() for line in first.splitlines())

    return HandlerDoc(description=description, deprecated=deprecated)


def analyze_handler(func: Any) -> HandlerDoc:
    doc = parse_docstring(inspect.getdoc(func))

    # warnings.deprecated (3.13+) and similar decorators set __deprecated__
    marker = getattr(func, "__deprecated__", None)
    if doc.deprecated is None and marker:
        return HandlerDoc(description=doc.description, deprecated=str(marker))
    return doc
