from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from apicontract.domain.models import Contract
from apicontract.logging import CACHE, get_logger
from apicontract.store.codec import loads

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    contract: Contract
    source_mtime: int  # st_mtime_ns of the file the contract was read from


def _key(path: Path) -> Path:
    return Path(path).resolve()


class ContractCache:
    """
    Parsed contracts keyed by file path, validated against the file's mtime.

    One instance is owned by whoever orchestrates a run and handed to every
    consumer; there is no module-level cache.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, CacheEntry] = {}
        self._lock = threading.RLock()

    def load(self, path: Path) -> Optional[Contract]:
        key = _key(path)
        with self._lock:
            try:
                mtime = key.stat().st_mtime_ns
            except OSError:
                self._entries.pop(key, None)
                return None

            entry = self._entries.get(key)
            if entry is not None and entry.source_mtime == mtime:
                return entry.contract

            try:
                text = key.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"{CACHE} unreadable contract {key}: {e}")
                self._entries.pop(key, None)
                return None

            contract = loads(text)
            if contract is None:
                logger.warning(f"{CACHE} malformed contract ignored: {key}")
                self._entries.pop(key, None)
                return None

            self._entries[key] = CacheEntry(contract=contract, source_mtime=mtime)
            logger.debug(f"{CACHE} loaded {key} ({len(contract)} path(s))")
            return contract

    def prime(self, path: Path, contract: Contract) -> None:
        """Record a contract just written to `path` so the next load skips the read."""
        key = _key(path)
        with self._lock:
            try:
                mtime = key.stat().st_mtime_ns
            except OSError:
                self._entries.pop(key, None)
                return
            self._entries[key] = CacheEntry(contract=contract, source_mtime=mtime)

    def invalidate(self, path: Path) -> None:
        with self._lock:
            self._entries.pop(_key(path), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return _key(path) in self._entries
