import os
from pathlib import Path

from apicontract.domain.models import ContractEntry
from apicontract.store.cache import ContractCache
from apicontract.store.codec import dumps


def write_contract(path: Path, contract, mtime_ns=None) -> None:
    path.write_text(dumps(contract), encoding="utf-8")
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))


def test_untouched_file_is_served_from_cache(tmp_path: Path, monkeypatch):
    path = tmp_path / "api.json"
    write_contract(path, {"/api/a": {"GET": ContractEntry(description="a")}})
    cache = ContractCache()

    first = cache.load(path)
    assert first["/api/a"]["GET"].description == "a"

    def no_read(*args, **kwargs):
        raise AssertionError("cache should not re-read an unchanged file")

    monkeypatch.setattr(Path, "read_text", no_read)
    assert cache.load(path) is first


def test_modified_file_is_reloaded(tmp_path: Path):
    path = tmp_path / "api.json"
    write_contract(path, {"/api/a": {"GET": ContractEntry(description="a")}}, mtime_ns=1_000_000_000)
    cache = ContractCache()
    assert "/api/a" in cache.load(path)

    write_contract(path, {"/api/b": {"POST": ContractEntry(description="b")}}, mtime_ns=2_000_000_000)

    reloaded = cache.load(path)
    assert list(reloaded) == ["/api/b"]


def test_missing_and_malformed_files_yield_none(tmp_path: Path):
    cache = ContractCache()
    path = tmp_path / "api.json"
    assert cache.load(path) is None

    path.write_text("{not json", encoding="utf-8")
    assert cache.load(path) is None

    path.write_text('{"/api/a": {"GET": {"path_parameters": []}}}', encoding="utf-8")
    assert cache.load(path) is None  # auth.type is required

    path.write_text('["not", "a", "mapping"]', encoding="utf-8")
    assert cache.load(path) is None
    assert path not in cache


def test_malformed_content_drops_previous_entry(tmp_path: Path):
    path = tmp_path / "api.json"
    write_contract(path, {"/api/a": {"GET": ContractEntry()}}, mtime_ns=1_000_000_000)
    cache = ContractCache()
    assert cache.load(path) is not None

    path.write_text("garbage", encoding="utf-8")
    os.utime(path, ns=(3_000_000_000, 3_000_000_000))
    assert cache.load(path) is None
    assert path not in cache


def test_unknown_methods_are_skipped(tmp_path: Path):
    path = tmp_path / "api.json"
    path.write_text(
        '{"/api/a": {"GET": {"auth": {"type": "none"}}, "TRACE": {"whatever": 1}}}',
        encoding="utf-8",
    )
    contract = ContractCache().load(path)
    assert list(contract["/api/a"]) == ["GET"]


def test_invalidate_and_clear(tmp_path: Path):
    path = tmp_path / "api.json"
    write_contract(path, {})
    cache = ContractCache()
    cache.load(path)
    assert path in cache

    cache.invalidate(path)
    assert path not in cache

    cache.load(path)
    cache.clear()
    assert path not in cache


def test_prime_skips_next_read(tmp_path: Path):
    path = tmp_path / "api.json"
    contract = {"/api/a": {"GET": ContractEntry()}}
    write_contract(path, contract)

    cache = ContractCache()
    cache.prime(path, contract)
    assert cache.load(path) is contract
