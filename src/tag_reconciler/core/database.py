"""SQLiteデータベース作成・接続ユーティリティ.

タグ同期用の SQLite スキーマ作成、インデックス作成、接続ごとの PRAGMA 設定を提供します。

注意:
    PRAGMA のうち、foreign_keys / cache_size / temp_store などは接続単位の設定です。
    DBファイルへ恒久的に「書き込まれる設定」ではない点に注意してください。
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from loguru import logger

# PRAGMA は「DBファイルに永続化されるもの」と「接続ごとの一時設定」が混在するため、
# 意図が伝わるように分類して定義する。
PERSISTENT_APP_PRAGMAS = [
    "PRAGMA journal_mode = WAL;",  # 複数プロセスからの読み書き
    "PRAGMA synchronous = NORMAL;",
]
CONNECTION_APP_PRAGMAS = [
    "PRAGMA foreign_keys = ON;",
    "PRAGMA temp_store = MEMORY;",
]

CONNECTION_BUILD_PRAGMAS = [
    "PRAGMA foreign_keys = ON;",
    "PRAGMA cache_size = -128000;",  # 128MB cache（バックフィル等の一括処理用）
    "PRAGMA temp_store = MEMORY;",
]

TAGS_UNIQUE_INDEX = "ux_tags_owner_name"

# 必須インデックス（想定クエリに基づく）
REQUIRED_INDEXES = [
    # (owner_id, name) の一意性はストア側で保証する（並行作成の競合対策）
    f"CREATE UNIQUE INDEX IF NOT EXISTS {TAGS_UNIQUE_INDEX} ON tags(owner_id, name);",
    # item_tags の主キーは (item_id, tag_id) なので、tag_id 起点の逆引き用
    "CREATE INDEX IF NOT EXISTS idx_item_tags_tag_id ON item_tags(tag_id);",
]

SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS tags (
        tag_id INTEGER NOT NULL PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        created_at DATETIME DEFAULT (CURRENT_TIMESTAMP),
        updated_at DATETIME DEFAULT (CURRENT_TIMESTAMP),
        UNIQUE(owner_id, name)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS item_tags (
        item_id TEXT NOT NULL,
        tag_id INTEGER NOT NULL,
        created_at DATETIME DEFAULT (CURRENT_TIMESTAMP),
        PRIMARY KEY (item_id, tag_id),
        FOREIGN KEY(tag_id) REFERENCES tags(tag_id) ON DELETE CASCADE
    );
    """,
]


def apply_connection_pragmas(conn: sqlite3.Connection, *, profile: str) -> None:
    """接続ごとに適用が必要な PRAGMA を設定する。"""
    if profile == "app":
        pragmas = CONNECTION_APP_PRAGMAS
    elif profile == "build":
        pragmas = CONNECTION_BUILD_PRAGMAS
    else:
        raise ValueError(f"Unknown PRAGMA profile: {profile!r}")

    for pragma in pragmas:
        conn.execute(pragma)


def connect(db_path: Path | str, *, timeout: float = 5.0, profile: str = "app") -> sqlite3.Connection:
    """タグストア用の接続を開く.

    トランザクションは呼び出し側（SqliteTagStore.transaction）で明示的に BEGIN/COMMIT するため、
    isolation_level=None（autocommit）で開きます。

    Args:
        db_path: データベースファイルパス
        timeout: ロック待ちの秒数（超過すると sqlite3.OperationalError）
        profile: PRAGMA プロファイル（"app" / "build"）
    """
    db_path = Path(db_path)
    if not db_path.exists():
        msg = f"Database does not exist: {db_path}"
        raise FileNotFoundError(msg)

    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None)
    try:
        conn.row_factory = sqlite3.Row
        apply_connection_pragmas(conn, profile=profile)
    except Exception:
        conn.close()
        raise
    return conn


def create_schema(db_path: Path | str) -> None:
    """DBスキーマ（テーブル）を作成する."""
    db_path = Path(db_path)
    if not db_path.exists():
        msg = f"Database does not exist: {db_path}"
        raise FileNotFoundError(msg)

    conn = sqlite3.connect(db_path)
    try:
        for stmt in SCHEMA_SQL:
            conn.executescript(stmt)
        conn.commit()
    finally:
        conn.close()


def create_database(db_path: Path | str) -> None:
    """データベースファイルを新規作成する（スキーマ・永続PRAGMA込み）.

    Args:
        db_path: 作成するデータベースファイルパス
    """
    db_path = Path(db_path)

    if db_path.exists():
        logger.warning(f"Database already exists: {db_path}")
        return

    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Creating database: {db_path}")

    conn = sqlite3.connect(db_path)
    try:
        for pragma in PERSISTENT_APP_PRAGMAS:
            conn.execute(pragma)
            logger.debug(f"Applied: {pragma}")

        for stmt in SCHEMA_SQL:
            conn.executescript(stmt)

        conn.commit()
        logger.info("Database created successfully")

    except Exception as e:
        logger.error(f"Failed to create database: {e}")
        raise
    finally:
        conn.close()


def build_indexes(db_path: Path | str) -> None:
    """必須インデックスを作成する.

    Args:
        db_path: データベースファイルパス

    Raises:
        sqlite3.IntegrityError: 既存データに (owner_id, name) の重複がある場合
            （先に tools/normalize_legacy_tags.py で統合する）
    """
    db_path = Path(db_path)

    if not db_path.exists():
        msg = f"Database does not exist: {db_path}"
        raise FileNotFoundError(msg)

    logger.info(f"Building indexes: {db_path}")

    conn = sqlite3.connect(db_path)
    try:
        for index_sql in REQUIRED_INDEXES:
            logger.debug(f"Creating index: {index_sql}")
            conn.execute(index_sql)

        conn.commit()
        logger.info(f"Created {len(REQUIRED_INDEXES)} indexes successfully")

    except Exception as e:
        logger.error(f"Failed to build indexes: {e}")
        raise
    finally:
        conn.close()
