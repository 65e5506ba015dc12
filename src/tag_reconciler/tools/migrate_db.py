from __future__ import annotations

import argparse
import sqlite3
from pathlib import Path

from loguru import logger

from tag_reconciler.core.database import TAGS_UNIQUE_INDEX, build_indexes, create_schema


def _get_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return {r[1] for r in rows}


def _add_column_if_missing(
    conn: sqlite3.Connection,
    *,
    table: str,
    column: str,
    ddl: str,
) -> bool:
    cols = _get_columns(conn, table)
    if column in cols:
        logger.info(f"Skip (exists): {table}.{column}")
        return False
    logger.info(f"Apply: {ddl}")
    conn.execute(ddl)
    return True


def _find_exact_duplicates(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        """
        SELECT COUNT(*) FROM (
            SELECT owner_id, name FROM tags GROUP BY owner_id, name HAVING COUNT(*) > 1
        )
        """
    ).fetchone()
    return int(row[0])


def migrate(db_path: Path) -> int:
    if not db_path.exists():
        raise FileNotFoundError(db_path)

    logger.info(f"Migrating DB: {db_path}")

    # tags / item_tags が無い古いDBでも作成から始められる（IF NOT EXISTS）
    create_schema(db_path)

    changed = 0
    conn = sqlite3.connect(db_path)
    try:
        changed += int(
            _add_column_if_missing(
                conn,
                table="tags",
                column="created_at",
                ddl="ALTER TABLE tags ADD COLUMN created_at DATETIME NULL;",
            )
        )
        changed += int(
            _add_column_if_missing(
                conn,
                table="tags",
                column="updated_at",
                ddl="ALTER TABLE tags ADD COLUMN updated_at DATETIME NULL;",
            )
        )
        conn.commit()

        duplicates = _find_exact_duplicates(conn)
    finally:
        conn.close()

    if duplicates:
        # 一意インデックスを作れないので、先にバックフィルで統合してもらう
        msg = (
            f"{duplicates} (owner_id, name) group(s) are duplicated; "
            "run tag_reconciler.tools.normalize_legacy_tags before migrating"
        )
        logger.error(msg)
        raise RuntimeError(msg)

    # 一意インデックスは CREATE ... IF NOT EXISTS なので再実行しても安全
    build_indexes(db_path)
    logger.info(f"Ensured unique index: {TAGS_UNIQUE_INDEX}")

    logger.info(f"Migration complete. changed={changed}")
    return changed


def main() -> None:
    parser = argparse.ArgumentParser(description="Apply schema migrations to an existing tag reconciler SQLite file.")
    parser.add_argument("--db", type=Path, required=True, help="SQLite DB path")
    args = parser.parse_args()

    migrate(args.db)


if __name__ == "__main__":
    main()
