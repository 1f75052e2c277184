"""Persistence backends behind the DataStore contract."""

from langcrm.config import StoreConfig
from langcrm.store.api_store import APIStore
from langcrm.store.base import DataStore
from langcrm.store.sql_store import SQLStore

__all__ = ["APIStore", "DataStore", "SQLStore", "build_store"]


def build_store(config: StoreConfig) -> DataStore:
    """Instantiate the configured backend."""
    if config.backend == "api":
        return APIStore(config.api_base_url, token=config.api_token, timeout=config.timeout_s)
    return SQLStore(config.database_url, echo=config.echo)
