"""Configuration for the CRM core.

Loads from YAML config file with environment variable overrides.
Pattern: CONFIG__{SECTION}__{KEY} overrides nested YAML keys.
Example: CONFIG__STORE__BACKEND=api
"""

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from langcrm.models import Currency

DEFAULT_CONFIG_PATH = "config/langcrm.yml"
DEFAULT_DB_URL = "sqlite+aiosqlite:///data/langcrm.db"


class StoreConfig(BaseModel):
    backend: Literal["sql", "api"] = "sql"
    database_url: str = DEFAULT_DB_URL  # from env: DATABASE_URL
    echo: bool = False
    api_base_url: str = "http://localhost:3001/api"
    api_token: str = ""  # from env: LANGCRM_API_TOKEN
    timeout_s: float = Field(default=10.0, gt=0)


class ActorConfig(BaseModel):
    """Identity stamped on every mutation made through the CLI."""
    id: str = ""
    username: str = ""


class DefaultsConfig(BaseModel):
    currency: Currency = Currency.USD
    assigned_to: str = "Everyone"


class CRMConfig(BaseModel):
    store: StoreConfig = StoreConfig()
    actor: ActorConfig = ActorConfig()
    defaults: DefaultsConfig = DefaultsConfig()
    log_level: str = "INFO"


def _apply_env_overrides(config_dict: dict, prefix: str = "CONFIG") -> dict:
    """Apply environment variable overrides to config dict.

    Pattern: CONFIG__SECTION__KEY=value maps to config[section][key] = value
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}__"):
            continue
        parts = key[len(prefix) + 2 :].lower().split("__")
        target = config_dict
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        if value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        target[parts[-1]] = value
    return config_dict


def load_config(config_path: Optional[str] = None) -> CRMConfig:
    """Load configuration from YAML file with env overrides.

    Priority: env vars > YAML file > defaults
    """
    config_dict = {}

    # 1. YAML, if present
    if config_path is None:
        config_path = os.getenv("LANGCRM_CONFIG", DEFAULT_CONFIG_PATH)
    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            config_dict = yaml.safe_load(f) or {}

    # 2. Nested env overrides
    config_dict = _apply_env_overrides(config_dict)

    # 3. Dedicated env vars fill unset fields
    store = config_dict.setdefault("store", {})
    if not store.get("database_url") and os.getenv("DATABASE_URL"):
        store["database_url"] = os.environ["DATABASE_URL"]
    if not store.get("api_token"):
        store["api_token"] = os.getenv("LANGCRM_API_TOKEN", "")
    if "log_level" not in config_dict and os.getenv("LOG_LEVEL"):
        config_dict["log_level"] = os.environ["LOG_LEVEL"]

    return CRMConfig(**config_dict)


_config: Optional[CRMConfig] = None


def get_config() -> CRMConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[str] = None) -> CRMConfig:
    global _config
    _config = load_config(config_path)
    return _config
