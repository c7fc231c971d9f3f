"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAPPING_PATH = str(Path(__file__).with_name("product-mapping.json"))


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _get_flag(name: str, default: str) -> bool:
    return _get_env(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_index: str = _get_env("ES_INDEX", "products")
    es_username: str = _get_env("ES_USERNAME", "elastic")
    es_password: str = _get_env("ES_PASSWORD", "")
    es_verify_certs: bool = _get_flag("ES_VERIFY_CERTS", "false")
    es_request_timeout: int = int(_get_env("ES_REQUEST_TIMEOUT", "30"))
    mapping_path: str = _get_env("MAPPING_PATH", DEFAULT_MAPPING_PATH)
    index_backend: str = _get_env("INDEX_BACKEND", "elasticsearch")
    catalog_path: str = _get_env("CATALOG_PATH", "products.json")
    catalog_batch_size: int = int(_get_env("CATALOG_BATCH_SIZE", "500"))
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    history_limit: int = int(_get_env("HISTORY_LIMIT", "20"))
    search_default_limit: int = int(_get_env("SEARCH_DEFAULT_LIMIT", "20"))
    search_max_limit: int = int(_get_env("SEARCH_MAX_LIMIT", "100"))
    suggest_default_limit: int = int(_get_env("SUGGEST_DEFAULT_LIMIT", "5"))
    suggest_max_limit: int = int(_get_env("SUGGEST_MAX_LIMIT", "20"))
    fuzzy_prefix_length: int = int(_get_env("FUZZY_PREFIX_LENGTH", "1"))
    auto_create_index: bool = _get_flag("AUTO_CREATE_INDEX", "true")
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
