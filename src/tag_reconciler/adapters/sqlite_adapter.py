"""SQLite タグストアアダプタ.

core/database.py のスキーマ（tags / item_tags）に対して5つのプリミティブ操作を実装します。

トランザクション方針:
    - 接続は autocommit（isolation_level=None）で開き、書き込みは SAVEPOINT で囲む
      （トランザクション外なら SAVEPOINT 単体で1トランザクションになる）
    - transaction() は BEGIN IMMEDIATE で書き込みロックを先に取る
    - 一括 INSERT が途中で失敗した場合は SAVEPOINT まで巻き戻し、部分的な行を残さない
"""

from __future__ import annotations

import sqlite3
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from tag_reconciler.adapters.base_adapter import ItemTag, TagId, TagRow, TagStoreAdapter
from tag_reconciler.core.database import connect
from tag_reconciler.core.exceptions import ConflictRetry, StorageFailure

# SQLite の変数上限（古いビルドは 999）に収まるよう IN (...) / VALUES を分割する
DEFAULT_CHUNK_SIZE = 500


def _chunked(seq: list, size: int) -> Iterator[list]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


def _is_tags_unique_violation(error: sqlite3.IntegrityError) -> bool:
    # 例: "UNIQUE constraint failed: tags.owner_id, tags.name"
    message = str(error)
    return message.startswith("UNIQUE constraint failed") and "tags.owner_id" in message


class SqliteTagStore(TagStoreAdapter):
    """SQLite 上のタグストア.

    Args:
        conn: core.database.connect() で開いた接続（autocommit 前提）
        chunk_size: 一括文1つあたりの最大件数
    """

    def __init__(self, conn: sqlite3.Connection, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        self._conn = conn
        self._chunk_size = chunk_size

    @classmethod
    def open(
        cls,
        db_path: Path | str,
        *,
        timeout: float = 5.0,
        profile: str = "app",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> SqliteTagStore:
        """DBファイルを開いてストアを作る."""
        return cls(connect(db_path, timeout=timeout, profile=profile), chunk_size=chunk_size)

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> SqliteTagStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _savepoint(self, name: str) -> Iterator[None]:
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except sqlite3.Error:
            try:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                self._conn.execute(f"RELEASE SAVEPOINT {name}")
            except sqlite3.Error as rollback_error:
                logger.warning(f"Failed to roll back savepoint {name}: {rollback_error}")
            raise
        self._conn.execute(f"RELEASE SAVEPOINT {name}")

    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        rows: list[TagRow] = []
        try:
            for chunk in _chunked(sorted(names), self._chunk_size):
                placeholders = ",".join("?" for _ in chunk)
                cur = self._conn.execute(
                    f"SELECT tag_id, name FROM tags WHERE owner_id = ? AND name IN ({placeholders})",
                    (owner_id, *chunk),
                )
                rows.extend(TagRow(tag_id=r["tag_id"], name=r["name"]) for r in cur.fetchall())
        except sqlite3.Error as e:
            raise StorageFailure("select_tags_by_owner_and_names", str(e)) from e
        return rows

    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        ordered = sorted(names)
        rows: list[TagRow] = []
        try:
            with self._savepoint("insert_tags"):
                for chunk in _chunked(ordered, self._chunk_size):
                    values = ",".join("(?, ?)" for _ in chunk)
                    params: list[str] = []
                    for name in chunk:
                        params.extend((owner_id, name))
                    cur = self._conn.execute(
                        f"INSERT INTO tags (owner_id, name) VALUES {values} RETURNING tag_id, name",
                        params,
                    )
                    rows.extend(TagRow(tag_id=r["tag_id"], name=r["name"]) for r in cur.fetchall())
        except sqlite3.IntegrityError as e:
            if _is_tags_unique_violation(e):
                raise ConflictRetry(owner_id, ordered) from e
            raise StorageFailure("insert_tags", str(e)) from e
        except sqlite3.Error as e:
            raise StorageFailure("insert_tags", str(e)) from e
        return rows

    def select_associations_by_item(self, item_id: str) -> list[ItemTag]:
        try:
            cur = self._conn.execute(
                """
                SELECT t.tag_id, t.name
                FROM item_tags it
                JOIN tags t ON t.tag_id = it.tag_id
                WHERE it.item_id = ?
                """,
                (item_id,),
            )
            return [ItemTag(tag_id=r["tag_id"], name=r["name"]) for r in cur.fetchall()]
        except sqlite3.Error as e:
            raise StorageFailure("select_associations_by_item", str(e)) from e

    def insert_associations(self, item_id: str, tag_ids: Collection[TagId]) -> None:
        if not tag_ids:
            return
        try:
            with self._savepoint("insert_associations"):
                # 同一アイテムの二重送信で既に紐付いていても重複行は作らない
                self._conn.executemany(
                    "INSERT OR IGNORE INTO item_tags (item_id, tag_id) VALUES (?, ?)",
                    [(item_id, tag_id) for tag_id in tag_ids],
                )
        except sqlite3.Error as e:
            raise StorageFailure("insert_associations", str(e)) from e

    def delete_associations(self, item_id: str, tag_ids: Collection[TagId] | None) -> None:
        try:
            with self._savepoint("delete_associations"):
                if tag_ids is None:
                    self._conn.execute("DELETE FROM item_tags WHERE item_id = ?", (item_id,))
                    return
                for chunk in _chunked(list(tag_ids), self._chunk_size):
                    placeholders = ",".join("?" for _ in chunk)
                    self._conn.execute(
                        f"DELETE FROM item_tags WHERE item_id = ? AND tag_id IN ({placeholders})",
                        (item_id, *chunk),
                    )
        except sqlite3.Error as e:
            raise StorageFailure("delete_associations", str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._conn.in_transaction:
            # 外側のトランザクションに合流する
            yield
            return

        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StorageFailure("begin", str(e)) from e

        try:
            yield
        except BaseException:
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error as rollback_error:
                logger.warning(f"Failed to roll back transaction: {rollback_error}")
            raise

        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise StorageFailure("commit", str(e)) from e
