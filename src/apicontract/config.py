from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from apicontract.errors import ConfigError

CONFIG_ENV = "APICONTRACT_CONFIG"
BASE_DIR_ENV = "APICONTRACT_BASE_DIR"

DEFAULT_RATE_LIMIT_DESCRIPTIONS = {
    "api": "60 requests per minute",
    "webhook": "5000 requests per minute",
    "login": "5 requests per minute",
    "signup": "5 requests per minute",
    "sessions": "5 requests per minute",
    "phone-number": "3 requests per minute",
}


class Settings(BaseModel):
    base_dir: Path = Field(Path("storage/api-contracts"), description="Directory holding api.json and versions/.")
    contract_filename: str = "api.json"
    route_prefix: Optional[str] = Field("/api", description="Only routes under this prefix are documented.")

    transformers_path: Optional[Path] = Field(None, description="Directory scanned when preloading transformers.")
    transformer_suffixes: list[str] = Field(default_factory=lambda: ["Resource", "Collection"])
    validator_suffix: str = "Request"
    model_map: dict[str, str] = Field(default_factory=dict, description="Transformer name -> model name.")

    query_methods: list[str] = Field(default_factory=lambda: ["GET", "HEAD", "DELETE"])
    rate_limit_descriptions: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMIT_DESCRIPTIONS)
    )

    @property
    def contract_path(self) -> Path:
        return self.base_dir / self.contract_filename

    @property
    def versions_dir(self) -> Path:
        return self.base_dir / "versions"


def _load_yaml_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read YAML config: {path}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")

    return data


def load_settings(path: Optional[os.PathLike] = None, **overrides: Any) -> Settings:
    """
    Build Settings from defaults, an optional YAML file and the environment.

    Precedence (lowest first): defaults, YAML file (explicit path or
    $APICONTRACT_CONFIG), $APICONTRACT_BASE_DIR, keyword overrides.
    """
    data: dict[str, Any] = {}

    config_path = path if path is not None else os.environ.get(CONFIG_ENV)
    if config_path:
        data.update(_load_yaml_file(Path(config_path)))

    base_dir = os.environ.get(BASE_DIR_ENV)
    if base_dir:
        data["base_dir"] = base_dir

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
