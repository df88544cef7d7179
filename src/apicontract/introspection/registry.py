from __future__ import annotations

import inspect
from types import ModuleType
from typing import Any, Callable, Iterable, Optional


class ClassRegistry:
    """
    Explicit name -> object registry for handlers, validators, transformers and models.

    Lookups never fall back to importing arbitrary dotted paths; anything the
    contract builder can see has been registered here (directly, per module,
    or lazily through a loader hook such as transformer preloading).
    """

    def __init__(self, objects: Optional[Iterable[Any]] = None) -> None:
        self._objects: dict[str, Any] = {}
        self._loaders: list[Callable[[str], Optional[Any]]] = []
        for obj in objects or ():
            self.register(obj)

    def register(self, obj: Any, name: Optional[str] = None) -> Any:
        key = name or getattr(obj, "__name__", None)
        if not key:
            raise ValueError(f"Cannot register {obj!r} without a name")
        self._objects[key] = obj
        return obj

    def register_module(self, module: ModuleType) -> int:
        """Register every class and function defined in `module`. Returns the count."""
        count = 0
        for name, obj in vars(module).items():
            if name.startswith("_"):
                continue
            if (inspect.isclass(obj) or inspect.isfunction(obj)) and getattr(obj, "__module__", None) == module.__name__:
                self._objects[name] = obj
                count += 1
        return count

    def add_loader(self, loader: Callable[[str], Optional[Any]]) -> None:
        """Loader hooks are consulted, in order, on a lookup miss."""
        self._loaders.append(loader)

    def get(self, name: str) -> Optional[Any]:
        key = name.split(".")[-1] if name not in self._objects else name
        if key in self._objects:
            return self._objects[key]
        for loader in self._loaders:
            found = loader(key)
            if found is not None:
                self._objects[key] = found
                return found
        return None

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def names(self) -> list[str]:
        return list(self._objects)
