from pathlib import Path

from apicontract.config import Settings
from apicontract.orchestrator.pipeline import load_app, run_generate, run_validate
from apicontract.store.cache import ContractCache

import sample_api


def test_generate_returns_route_errors(tmp_path: Path):
    result = run_generate(sample_api.broken_app(), Settings(base_dir=tmp_path), ContractCache(), strict=True)

    assert [(r.route, r.code) for r in result.errors] == [("GET /api/reports", "ROUTE_CONTROLLER_NOT_FOUND")]
    assert Path(result.contract_path).is_file()
    assert result.entry_count == 1


def test_generate_then_validate_clean_app(tmp_path: Path):
    settings = Settings(base_dir=tmp_path)
    cache = ContractCache()

    assert run_validate(sample_api.app, settings, cache) is None

    result = run_generate(load_app("sample_api:app"), settings, cache)
    assert result.errors == []
    assert result.routes_seen == 8
    assert run_validate(sample_api.app, settings, cache).is_empty
