"""設定ファイル（YAML）の読み込み.

例（tag_reconciler.yml）:

    database:
      path: data/tags.sqlite
      timeout: 5.0
      profile: app
    resolver:
      max_conflict_retries: 3
    store:
      chunk_size: 500

環境変数 TAG_RECONCILER_DB_PATH があれば database.path より優先します。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger

from tag_reconciler.adapters.sqlite_adapter import DEFAULT_CHUNK_SIZE, SqliteTagStore
from tag_reconciler.core.resolver import DEFAULT_MAX_CONFLICT_RETRIES

DB_PATH_ENV = "TAG_RECONCILER_DB_PATH"

_PROFILES = {"app", "build"}


@dataclass(frozen=True)
class ReconcilerConfig:
    db_path: Path
    timeout: float = 5.0
    profile: str = "app"
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES
    chunk_size: int = DEFAULT_CHUNK_SIZE


def _section(config: dict, name: str) -> dict:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def parse_config(config: dict) -> ReconcilerConfig:
    """読み込み済みの設定辞書を ReconcilerConfig に変換する.

    Raises:
        ValueError: 必須項目が無い、または値が不正な場合
    """
    database = _section(config, "database")
    resolver = _section(config, "resolver")
    store = _section(config, "store")

    db_path = os.environ.get(DB_PATH_ENV) or database.get("path")
    if not db_path:
        raise ValueError(f"database.path is required (or set {DB_PATH_ENV})")

    profile = str(database.get("profile", "app"))
    if profile not in _PROFILES:
        raise ValueError(f"Unknown database.profile: {profile!r}")

    try:
        timeout = float(database.get("timeout", 5.0))
        max_conflict_retries = int(resolver.get("max_conflict_retries", DEFAULT_MAX_CONFLICT_RETRIES))
        chunk_size = int(store.get("chunk_size", DEFAULT_CHUNK_SIZE))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid config value: {e}") from e

    if timeout < 0:
        raise ValueError(f"database.timeout must not be negative: {timeout}")
    if max_conflict_retries < 0:
        raise ValueError(f"resolver.max_conflict_retries must not be negative: {max_conflict_retries}")
    if chunk_size <= 0:
        raise ValueError(f"store.chunk_size must be positive: {chunk_size}")

    return ReconcilerConfig(
        db_path=Path(db_path),
        timeout=timeout,
        profile=profile,
        max_conflict_retries=max_conflict_retries,
        chunk_size=chunk_size,
    )


def load_config(config_yml: Path | str) -> ReconcilerConfig:
    """YAML 設定ファイルを読み込む.

    Args:
        config_yml: 設定ファイルのパス

    Returns:
        ReconcilerConfig
    """
    config_yml = Path(config_yml)
    if not config_yml.exists():
        raise FileNotFoundError(config_yml)

    with open(config_yml, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config root must be a mapping: {config_yml}")

    parsed = parse_config(config)
    logger.info(f"Loaded config from {config_yml} (db={parsed.db_path})")
    return parsed


def open_store(config: ReconcilerConfig) -> SqliteTagStore:
    """設定に従って SQLite ストアを開く."""
    return SqliteTagStore.open(
        config.db_path,
        timeout=config.timeout,
        profile=config.profile,
        chunk_size=config.chunk_size,
    )
