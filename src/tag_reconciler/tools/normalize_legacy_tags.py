"""未正規化の tags.name を一括で正規化・統合する（一度きりのバックフィル）."""

from __future__ import annotations

import argparse
import sqlite3
from contextlib import nullcontext
from pathlib import Path

import polars as pl
from loguru import logger

from tag_reconciler.adapters.sqlite_adapter import SqliteTagStore
from tag_reconciler.config import load_config
from tag_reconciler.core.database import create_schema
from tag_reconciler.core.legacy import TAGS_SCHEMA, plan_legacy_normalization
from tag_reconciler.core.reports import export_legacy_reports
from tag_reconciler.tools.migrate_db import _get_columns


def _read_tags(conn: sqlite3.Connection) -> pl.DataFrame:
    rows = conn.execute("SELECT tag_id, owner_id, name FROM tags ORDER BY tag_id").fetchall()
    return pl.DataFrame([tuple(r) for r in rows], schema=TAGS_SCHEMA, orient="row")


def _apply_plan(conn: sqlite3.Connection, plan: dict[str, pl.DataFrame]) -> dict[str, int]:
    duplicates = plan["duplicates"]
    renames = plan["renames"]

    pairs = list(
        zip(
            duplicates["survivor_id"].to_list(),
            duplicates["tag_id"].to_list(),
            strict=True,
        )
    )
    before = conn.total_changes

    # 1) 重複タグの紐付けを survivor へ付け替える（既に survivor に紐づいていれば捨てる）
    conn.executemany(
        """
        INSERT OR IGNORE INTO item_tags (item_id, tag_id)
        SELECT item_id, ? FROM item_tags WHERE tag_id = ?
        """,
        pairs,
    )
    relinked = conn.total_changes - before

    dup_ids = [(tag_id,) for _, tag_id in pairs]
    conn.executemany("DELETE FROM item_tags WHERE tag_id = ?", dup_ids)
    conn.executemany("DELETE FROM tags WHERE tag_id = ?", dup_ids)

    # 2) survivor を正規化名へ改名（重複は1で削除済みなので一意制約には当たらない）
    # migrate 前の古い tags には updated_at が無い
    if "updated_at" in _get_columns(conn, "tags"):
        rename_sql = "UPDATE tags SET name = ?, updated_at = CURRENT_TIMESTAMP WHERE tag_id = ?"
    else:
        rename_sql = "UPDATE tags SET name = ? WHERE tag_id = ?"
    conn.executemany(
        rename_sql,
        list(zip(renames["canonical_name"].to_list(), renames["tag_id"].to_list(), strict=True)),
    )

    return {
        "merged": len(pairs),
        "relinked": relinked,
        "renamed": len(renames),
    }


def normalize_legacy_tags(
    db_path: Path | str,
    *,
    report_dir: Path | str | None = None,
    dry_run: bool = False,
    timeout: float = 5.0,
) -> dict[str, int]:
    """tags を正規化名で統合する.

    Args:
        db_path: データベースファイルパス
        report_dir: CSVレポートの出力先（None なら出力しない）
        dry_run: True なら計画とレポートのみでDBは変更しない
        timeout: ロック待ちの秒数

    Returns:
        件数サマリ（merged / relinked / renamed / empty_names）
    """
    db_path = Path(db_path)
    logger.info(f"Normalizing legacy tags: {db_path} (dry_run={dry_run})")

    # item_tags が無い古いDBでも付け替えられるようにする（IF NOT EXISTS）
    if not dry_run:
        create_schema(db_path)

    with SqliteTagStore.open(db_path, timeout=timeout, profile="build") as store:
        conn = store.conn
        # dry run は読み取りのみなので書き込みロックを取らない
        with nullcontext() if dry_run else store.transaction():
            plan = plan_legacy_normalization(_read_tags(conn))
            if dry_run:
                summary = {
                    "merged": len(plan["duplicates"]),
                    "relinked": 0,
                    "renamed": len(plan["renames"]),
                }
            else:
                summary = _apply_plan(conn, plan)

    summary["empty_names"] = len(plan["empty_names"])
    if summary["empty_names"]:
        logger.warning(f"{summary['empty_names']} tag(s) have empty names after normalization; left unchanged")

    if report_dir is not None:
        paths = export_legacy_reports(plan, report_dir)
        for key, path in paths.items():
            if path is not None:
                logger.info(f"Report ({key}): {path}")

    logger.info(f"Legacy normalization complete: {summary}")
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Normalize legacy tag names and merge tags that collide after normalization."
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--db", type=Path, help="SQLite DB path")
    target.add_argument("--config", type=Path, help="Config YAML path (uses database.path)")
    parser.add_argument("--report-dir", type=Path, default=None, help="CSV report output directory")
    parser.add_argument("--dry-run", action="store_true", help="Only plan and report; do not modify the DB")
    args = parser.parse_args()

    if args.config is not None:
        config = load_config(args.config)
        normalize_legacy_tags(
            config.db_path,
            report_dir=args.report_dir,
            dry_run=args.dry_run,
            timeout=config.timeout,
        )
    else:
        normalize_legacy_tags(args.db, report_dir=args.report_dir, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
