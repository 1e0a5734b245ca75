"""Service configuration.

Every setting is resolved from, highest precedence first:

1. an environment variable,
2. a text file under `config/` named after the setting (e.g.
   `config/aggregation.write_chunk_size`),
3. the nested key in `service_config.json`,
4. a built-in default.

The resolved strings are validated by the pydantic models below.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR = Path("config")
ROOT_SERVICE_CONFIG = Path("service_config.json")

_FALSE_WORDS = {"0", "false", "no", "off"}


class DatabaseConfig(BaseModel):
    dsn: str
    auto_apply_migrations: bool = True

    @field_validator("dsn")
    @classmethod
    def dsn_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class AggregationConfig(BaseModel):
    default_threshold: int = Field(default=2, ge=2)
    write_chunk_size: int = Field(default=1000, gt=0)


class AnalysisConfig(BaseModel):
    page_size: int = Field(default=50, gt=0)
    # Seconds a cached analysis stays valid; 0 disables the cache
    cache_ttl_seconds: int = Field(default=300, ge=0)


class AppConfig(BaseModel):
    database: DatabaseConfig
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)


class _Setting(NamedTuple):
    path: str
    env: tuple[str, ...]
    default: str


_SETTINGS = (
    _Setting("database.dsn", ("TEST_DATABASE_URL", "DATABASE_URL"), "sqlite+pysqlite:///:memory:"),
    _Setting("database.auto_apply_migrations", ("AUTO_APPLY_MIGRATIONS",), "true"),
    _Setting("aggregation.default_threshold", ("AGGREGATION_DEFAULT_THRESHOLD",), "2"),
    _Setting("aggregation.write_chunk_size", ("AGGREGATION_WRITE_CHUNK_SIZE",), "1000"),
    _Setting("analysis.page_size", ("ANALYSIS_PAGE_SIZE",), "50"),
    _Setting("analysis.cache_ttl_seconds", ("ANALYSIS_CACHE_TTL_SECONDS",), "300"),
)


def _override_file(path: str) -> Optional[str]:
    candidate = CONFIG_DIR / path
    if not candidate.exists():
        return None
    try:
        return candidate.read_text(encoding="utf-8").strip() or None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("config.override_unreadable path=%s error=%s", candidate, e)
        return None


def _service_json() -> Dict[str, Any]:
    if not ROOT_SERVICE_CONFIG.exists():
        return {}
    try:
        data = json.loads(ROOT_SERVICE_CONFIG.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("config.service_json_unreadable path=%s error=%s", ROOT_SERVICE_CONFIG, e)
        return {}
    return data if isinstance(data, dict) else {}


def _nested(data: Dict[str, Any], path: str) -> Optional[str]:
    node: Any = data
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return None if node is None else str(node)


def _resolve(setting: _Setting, base: Dict[str, Any]) -> str:
    for name in setting.env:
        value = os.environ.get(name)
        if value:
            return value
    return _override_file(setting.path) or _nested(base, setting.path) or setting.default


def load_config() -> AppConfig:
    base = _service_json()
    raw = {s.path: _resolve(s, base).strip() for s in _SETTINGS}
    try:
        return AppConfig(
            database=DatabaseConfig(
                dsn=raw["database.dsn"],
                auto_apply_migrations=raw["database.auto_apply_migrations"].lower() not in _FALSE_WORDS,
            ),
            aggregation=AggregationConfig(
                default_threshold=raw["aggregation.default_threshold"],
                write_chunk_size=raw["aggregation.write_chunk_size"],
            ),
            analysis=AnalysisConfig(
                page_size=raw["analysis.page_size"],
                cache_ttl_seconds=raw["analysis.cache_ttl_seconds"],
            ),
        )
    except PydanticValidationError as e:
        logger.error("config.invalid error=%s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "AggregationConfig",
    "AnalysisConfig",
    "load_config",
]
