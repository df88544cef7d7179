from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from apicontract.config import Settings
from apicontract.diff.engine import ContractDiffEngine, DiffResult
from apicontract.domain.models import Contract, RouteDescriptor, VersionInfo
from apicontract.errors import ConfigError, ContractLoadError, ErrorCollector, ErrorRecord
from apicontract.introspection.factory import AnnotationModelFactory, InstanceSynthesizer
from apicontract.introspection.registry import ClassRegistry
from apicontract.logging import STORE, get_logger
from apicontract.store.cache import ContractCache
from apicontract.store.contract_store import ContractStore

logger = get_logger(__name__)

RouteSource = Union[Iterable[RouteDescriptor], Callable[[], Iterable[RouteDescriptor]]]


@dataclass(frozen=True)
class AppSpec:
    """
    Everything the engine needs to know about an application.

    routes may be a callable so the route table is read at run time.
    """

    routes: RouteSource
    registry: ClassRegistry = field(default_factory=ClassRegistry)
    factory: Optional[InstanceSynthesizer] = None

    def route_list(self) -> list[RouteDescriptor]:
        source = self.routes() if callable(self.routes) else self.routes
        return list(source)


@dataclass(frozen=True)
class GenerateResult:
    contract_path: str
    routes_seen: int
    path_count: int
    entry_count: int
    errors: list[ErrorRecord]
    snapshot: Optional[VersionInfo]
    contract: Contract


def load_app(target: str) -> AppSpec:
    """
    Resolve 'package.module:attr' to an AppSpec. attr may also be a
    zero-argument callable returning one.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"App target must look like 'module:attr', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import app module {module_name!r}: {e}") from e

    obj = getattr(module, attr, None)
    if obj is None:
        raise ConfigError(f"Module {module_name!r} has no attribute {attr!r}")
    if not isinstance(obj, AppSpec) and callable(obj):
        obj = obj()
    if not isinstance(obj, AppSpec):
        raise ConfigError(f"{target} is {type(obj).__name__}, expected AppSpec")
    return obj


def open_store(settings: Settings, cache: ContractCache, app: Optional[AppSpec] = None) -> ContractStore:
    if app is None:
        return ContractStore(settings, ClassRegistry(), cache=cache)
    return ContractStore(
        settings,
        app.registry,
        cache=cache,
        factory=app.factory if app.factory is not None else AnnotationModelFactory(),
    )


def run_generate(
    app: AppSpec,
    settings: Settings,
    cache: ContractCache,
    strict: bool = False,
    snapshot: bool = False,
) -> GenerateResult:
    """
    Build and persist the contract. The contract is written even when some
    routes reported errors; strict only changes how callers treat the result.
    """
    store = open_store(settings, cache, app)
    routes = app.route_list()
    collector = ErrorCollector()

    contract = store.build(routes, collector)

    snap = store.snapshot() if snapshot else None
    path = store.persist(contract)

    if strict and len(collector):
        logger.warning(f"{STORE} {len(collector)} error(s) while generating in strict mode")

    return GenerateResult(
        contract_path=str(path),
        routes_seen=len(routes),
        path_count=len(contract),
        entry_count=sum(len(m) for m in contract.values()),
        errors=list(collector.records),
        snapshot=snap,
        contract=contract,
    )


def run_validate(app: AppSpec, settings: Settings, cache: ContractCache) -> Optional[DiffResult]:
    """Stored contract vs. a fresh build. None when nothing is stored yet."""
    store = open_store(settings, cache, app)
    stored = store.load()
    if stored is None:
        return None
    engine = ContractDiffEngine(store)
    return engine.validate(app.route_list(), stored, ErrorCollector())


def load_contract_file(path: Path, cache: ContractCache) -> Contract:
    contract = cache.load(Path(path))
    if contract is None:
        raise ContractLoadError(f"Not a readable contract: {path}")
    return contract


def run_compare(path_a: Path, path_b: Path, cache: ContractCache) -> DiffResult:
    before = load_contract_file(path_a, cache)
    after = load_contract_file(path_b, cache)
    return ContractDiffEngine().diff(before, after)
