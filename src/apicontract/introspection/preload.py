from __future__ import annotations

import importlib.util
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable, Iterator, Optional

from apicontract.extractors.source import class_names_in_source
from apicontract.introspection.registry import ClassRegistry
from apicontract.logging import EXTRACT, get_logger

logger = get_logger(__name__)

# directories that never hold application transformers
SKIPPED_DIRS = frozenset({"__pycache__", "node_modules", "site-packages", "migrations", "tests"})


def _skip_dir(name: str) -> bool:
    return name.startswith(".") or name in SKIPPED_DIRS or name.endswith((".egg-info", ".dist-info"))


def iter_transformer_modules(directory: Path) -> Iterator[Path]:
    """
    Yield candidate transformer modules under directory in a stable order.

    Hidden, cache, vendored and test directories are not descended into.
    """
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if not _skip_dir(d))
        base = Path(root)
        yield from (base / f for f in sorted(files) if f.endswith(".py") and not f.startswith("test_"))


def _read_source(path: Path, max_bytes: int = 500_000) -> str:
    try:
        return path.read_bytes()[:max_bytes].decode("utf-8", errors="ignore")
    except OSError:
        return ""


class TransformerPreloader:
    """
    Index of transformer classes found on disk.

    Class names are discovered with ast only; a module is imported the first
    time one of its names is looked up and missed in the registry.
    """

    def __init__(self, suffixes: Iterable[str] = ("Resource", "Collection")) -> None:
        self.suffixes = tuple(suffixes)
        self._index: dict[str, Path] = {}
        self._modules: dict[Path, ModuleType] = {}

    def scan(self, directory: Path) -> list[str]:
        """Index transformer class names under directory. Returns the newly found names."""
        directory = Path(directory)
        if not directory.is_dir():
            logger.debug(f"{EXTRACT} preload directory missing: {directory}")
            return []

        found: list[str] = []
        for path in iter_transformer_modules(directory):
            for name in class_names_in_source(_read_source(path)):
                if name.endswith(self.suffixes) and name not in self._index:
                    self._index[name] = path
                    found.append(name)

        logger.debug(f"{EXTRACT} preloaded {len(found)} transformer name(s) from {directory}")
        return found

    def names(self) -> list[str]:
        return list(self._index)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def _import(self, path: Path) -> Optional[ModuleType]:
        if path in self._modules:
            return self._modules[path]

        module_name = f"_apicontract_preload_{path.stem}_{len(self._modules)}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            logger.warning(f"{EXTRACT} unable to load transformer module: {path}")
            return None

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            logger.warning(f"{EXTRACT} importing {path} failed: {e}")
            return None

        self._modules[path] = module
        return module

    def load(self, name: str) -> Optional[Any]:
        """Registry loader hook."""
        path = self._index.get(name)
        if path is None:
            return None
        module = self._import(path)
        return getattr(module, name, None) if module is not None else None

    def attach(self, registry: ClassRegistry) -> None:
        registry.add_loader(self.load)
