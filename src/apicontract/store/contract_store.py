from __future__ import annotations

import datetime as dt
import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Optional

from apicontract.analyzers.docstrings import HandlerDoc, analyze_handler
from apicontract.analyzers.route import RouteAnalyzer, extract_api_version, extract_path_params
from apicontract.analyzers.status_codes import analyze_status_codes
from apicontract.config import Settings
from apicontract.domain.models import (
    HTTP_METHODS,
    Contract,
    ContractEntry,
    RouteDescriptor,
    VersionInfo,
    VersionSnapshot,
)
from apicontract.errors import (
    AnalysisError,
    ContractLoadError,
    ContractStorageError,
    ErrorCallback,
    ErrorCollector,
    RouteAnalysisError,
    VersionNotFoundError,
    log_error,
)
from apicontract.extractors.request import RequestSchemaExtractor
from apicontract.extractors.response import ResponseSchemaExtractor
from apicontract.introspection.factory import InstanceSynthesizer
from apicontract.introspection.handlers import HandlerInfo, HandlerResolver
from apicontract.introspection.registry import ClassRegistry
from apicontract.logging import ROUTES, STORE, get_logger
from apicontract.store.cache import ContractCache
from apicontract.store.codec import dumps, loads

logger = get_logger(__name__)

VERSION_PREFIX = "api-"
VERSION_TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M%S"
_VERSION_FILE = re.compile(r"^api-(\d{4}-\d{2}-\d{2}-\d{6})\.json$")
_VERSION_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{6}$")

SKIPPED_METHODS = {"HEAD"}


def normalize_uri(uri: str) -> str:
    return "/" + uri.strip().lstrip("/")


def _file_mode(path: Path) -> int:
    """Mode for a rewritten file: the existing file's, else 0666 minus the umask."""
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write to a temp file in the same directory, then os.replace. Raises OSError."""
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _file_mode(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates 0600
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class ContractStore:
    """
    Builds contracts from a route table and owns the on-disk layout:

      <base_dir>/api.json
      <base_dir>/versions/api-YYYY-MM-DD-HHMMSS.json

    Reads go through the shared ContractCache; writes prime or invalidate it.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ClassRegistry,
        cache: Optional[ContractCache] = None,
        factory: Optional[InstanceSynthesizer] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.cache = cache if cache is not None else ContractCache()
        self.clock = clock or dt.datetime.now

        self.resolver = HandlerResolver(registry)
        self.route_analyzer = RouteAnalyzer(settings.rate_limit_descriptions)
        self.request_extractor = RequestSchemaExtractor(registry, settings, resolver=self.resolver)
        self.response_extractor = ResponseSchemaExtractor(
            registry, settings, factory=factory, resolver=self.resolver
        )

    @property
    def contract_path(self) -> Path:
        return self.settings.contract_path

    @property
    def versions_dir(self) -> Path:
        return self.settings.versions_dir

    # ----------------------------
    # Build
    # ----------------------------

    def in_scope(self, uri: str) -> bool:
        prefix = self.settings.route_prefix
        if not prefix:
            return True
        prefix = normalize_uri(prefix).rstrip("/")
        return uri == prefix or uri.startswith(prefix + "/")

    def build(self, routes: Iterable[RouteDescriptor], on_error: Optional[ErrorCallback] = None) -> Contract:
        """
        One ContractEntry per in-scope (path, method). A failing route is
        reported through on_error and keeps only its route-level metadata.
        """
        if on_error is None:
            on_error = log_error
        contract: Contract = {}
        skipped = 0

        for route in routes:
            method = route.method.upper()
            uri = normalize_uri(route.uri)
            if method not in HTTP_METHODS:
                # the contract file only holds HttpMethod keys
                logger.debug(f"{ROUTES} skipping unsupported method {method} {uri}")
                skipped += 1
                continue
            if method in SKIPPED_METHODS or not self.in_scope(uri):
                skipped += 1
                continue

            if isinstance(on_error, ErrorCollector):
                on_error.route = f"{method} {uri}"

            try:
                entry = self.build_entry(route, on_error)
            except AnalysisError as e:
                e.report(on_error)
                entry = self._bare_entry(uri, method)
            except Exception as e:
                label = route.action.label if route.action else uri
                RouteAnalysisError.reflection_failed(label, str(e)).report(on_error)
                entry = self._bare_entry(uri, method)

            contract.setdefault(uri, {})[method] = entry

        if isinstance(on_error, ErrorCollector):
            on_error.route = ""

        logger.info(f"{ROUTES} built {sum(len(m) for m in contract.values())} entr(ies) ({skipped} route(s) skipped)")
        return contract

    def _bare_entry(self, uri: str, method: str) -> ContractEntry:
        return ContractEntry(
            path_parameters=extract_path_params(uri),
            request_location="query" if method in self.settings.query_methods else "body",
            api_version=extract_api_version(uri),
        )

    def _route_entry(self, route: RouteDescriptor, uri: str, method: str, **extra) -> ContractEntry:
        analyzer = self.route_analyzer
        return ContractEntry(
            auth=analyzer.determine_auth(route),
            path_parameters=analyzer.extract_path_params(uri),
            request_location="query" if method in self.settings.query_methods else "body",
            rate_limit=analyzer.extract_rate_limit(route),
            custom_headers=analyzer.extract_custom_headers(route),
            api_version=analyzer.extract_api_version(uri),
            **extra,
        )

    def build_entry(self, route: RouteDescriptor, on_error: ErrorCallback) -> ContractEntry:
        method = route.method.upper()
        uri = normalize_uri(route.uri)
        is_query = method in self.settings.query_methods

        if route.raw_action is not None:
            RouteAnalysisError.invalid_action(route.raw_action).report(on_error)
            return self._route_entry(route, uri, method)

        ref = route.action
        info: Optional[HandlerInfo] = None
        if ref is not None:
            # resolved once here so a resolution failure is reported once
            try:
                info = self.resolver.resolve(ref)
            except AnalysisError as e:
                e.report(on_error)
                return self._route_entry(route, uri, method)

        if info is None:
            # inline handler: only the naming convention can find a response shape
            response = self.response_extractor.extract(None, uri, on_error)
            return self._route_entry(route, uri, method, response_schema=response)

        request = self.request_extractor.extract(ref, on_error, is_query=is_query, info=info)
        response = self.response_extractor.extract(ref, uri, on_error, info=info)
        doc: HandlerDoc = analyze_handler(info.func)

        return self._route_entry(
            route,
            uri,
            method,
            description=doc.description,
            request_schema=request,
            response_schema=response,
            status_codes=analyze_status_codes(info.ref.name, info.func),
            deprecated=doc.deprecated,
        )

    # ----------------------------
    # Persistence
    # ----------------------------

    def persist(self, contract: Contract, snapshot_previous: bool = False) -> Path:
        """
        Atomically write the contract as canonical JSON and prime the cache.

        With snapshot_previous, the file being replaced is archived first.
        """
        if snapshot_previous:
            self.snapshot()

        path = self.contract_path
        try:
            _atomic_write_bytes(path, dumps(contract).encode("utf-8"))
        except OSError as e:
            raise ContractStorageError(f"Failed to write contract {path}: {e}") from e

        self.cache.prime(path, contract)
        logger.info(f"{STORE} wrote {path}")
        return path

    def load(self) -> Optional[Contract]:
        return self.cache.load(self.contract_path)

    # ----------------------------
    # Versions
    # ----------------------------

    def _next_version_name(self) -> tuple[str, str]:
        ts = self.clock().replace(microsecond=0)
        while True:
            stamp = ts.strftime(VERSION_TIMESTAMP_FORMAT)
            name = f"{VERSION_PREFIX}{stamp}.json"
            if not (self.versions_dir / name).exists():
                return name, stamp
            ts += dt.timedelta(seconds=1)

    def snapshot(self) -> Optional[VersionInfo]:
        """Copy the live contract byte-for-byte into versions/. None if there is no live file."""
        src = self.contract_path
        if not src.is_file():
            return None

        try:
            data = src.read_bytes()
            self.versions_dir.mkdir(parents=True, exist_ok=True)
            name, stamp = self._next_version_name()
            _atomic_write_bytes(self.versions_dir / name, data)
        except OSError as e:
            raise ContractStorageError(f"Failed to snapshot {src}: {e}") from e

        logger.info(f"{STORE} snapshot {name}")
        return VersionInfo(version_id=name, timestamp=stamp, size=len(data))

    def list_versions(self) -> list[VersionInfo]:
        """Newest first."""
        if not self.versions_dir.is_dir():
            return []

        out: list[VersionInfo] = []
        for p in self.versions_dir.iterdir():
            m = _VERSION_FILE.match(p.name)
            if m and p.is_file():
                out.append(VersionInfo(version_id=p.name, timestamp=m.group(1), size=p.stat().st_size))
        out.sort(key=lambda v: v.timestamp, reverse=True)
        return out

    def version_path(self, version_id: str) -> Path:
        """
        Accepts 'api-2024-01-15-143022.json' or '2024-01-15-143022'.
        Anything else (including path separators) is rejected.
        """
        version_id = (version_id or "").strip()
        if _VERSION_TIMESTAMP.match(version_id):
            version_id = f"{VERSION_PREFIX}{version_id}.json"
        if not _VERSION_FILE.match(version_id):
            raise VersionNotFoundError(f"Invalid version id: {version_id!r}")

        path = self.versions_dir / version_id
        if not path.is_file():
            raise VersionNotFoundError(f"Version not found: {version_id}")
        return path

    def load_version(self, version_id: str) -> VersionSnapshot:
        path = self.version_path(version_id)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ContractLoadError(f"Failed to read version {path.name}: {e}") from e

        contract = loads(data.decode("utf-8", errors="replace"))
        if contract is None:
            raise ContractLoadError(f"Version {path.name} is not a valid contract")

        m = _VERSION_FILE.match(path.name)
        return VersionSnapshot(timestamp=m.group(1) if m else "", contract=contract, size=len(data))

    def restore(self, version_id: str) -> Optional[VersionInfo]:
        """
        Back up the live contract, then replace it with the version's bytes.

        Returns the backup's VersionInfo (None when there was no live file).
        """
        src = self.version_path(version_id)
        try:
            data = src.read_bytes()
        except OSError as e:
            raise ContractStorageError(f"Failed to read version {src.name}: {e}") from e

        backup = self.snapshot()

        try:
            _atomic_write_bytes(self.contract_path, data)
        except OSError as e:
            raise ContractStorageError(f"Failed to restore {src.name}: {e}") from e

        self.cache.invalidate(self.contract_path)
        logger.info(f"{STORE} restored {src.name}" + (f" (backup {backup.version_id})" if backup else ""))
        return backup
