"""sqlite_adapter.py のユニットテスト（プリミティブ操作とエラー変換）."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from tag_reconciler.adapters.sqlite_adapter import SqliteTagStore
from tag_reconciler.core.database import create_database
from tag_reconciler.core.exceptions import ConflictRetry, StorageFailure


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SqliteTagStore]:
    db_path = tmp_path / "tags.db"
    create_database(db_path)
    with SqliteTagStore.open(db_path, chunk_size=2) as s:
        yield s


class TestTags:
    def test_insert_and_select(self, store: SqliteTagStore) -> None:
        """タグ作成と検索のテスト."""
        inserted = store.insert_tags("user-1", {"milk", "eggs", "tea"})
        assert sorted(row.name for row in inserted) == ["eggs", "milk", "tea"]

        selected = store.select_tags_by_owner_and_names("user-1", {"milk", "tea", "coffee"})
        by_name = {row.name: row.tag_id for row in inserted}
        assert {row.name: row.tag_id for row in selected} == {"milk": by_name["milk"], "tea": by_name["tea"]}

    def test_select_is_owner_scoped(self, store: SqliteTagStore) -> None:
        """検索が owner で絞り込まれることのテスト."""
        store.insert_tags("user-1", {"milk"})
        assert store.select_tags_by_owner_and_names("user-2", {"milk"}) == []

    def test_duplicate_insert_raises_conflict_and_leaves_no_partial_rows(self, store: SqliteTagStore) -> None:
        """一意制約違反で ConflictRetry になり部分行が残らないことのテスト."""
        store.insert_tags("user-1", {"milk"})
        # chunk_size=2 なので "eggs"/"fish" のチャンクは先に挿入されてから "milk" で失敗する
        with pytest.raises(ConflictRetry) as excinfo:
            store.insert_tags("user-1", {"eggs", "fish", "milk"})

        # 衝突した名前だけでなくバッチ全体を持つ
        assert excinfo.value.names == ["eggs", "fish", "milk"]
        assert "batch" in str(excinfo.value)

        count = store.conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0]
        assert count == 1

    def test_closed_connection_is_storage_failure(self, tmp_path: Path) -> None:
        """接続エラーが StorageFailure になることのテスト."""
        db_path = tmp_path / "closed.db"
        create_database(db_path)
        store = SqliteTagStore.open(db_path)
        store.close()

        with pytest.raises(StorageFailure) as excinfo:
            store.select_tags_by_owner_and_names("user-1", {"milk"})
        assert excinfo.value.operation == "select_tags_by_owner_and_names"

    def test_invalid_chunk_size(self, tmp_path: Path) -> None:
        """不正な chunk_size のテスト."""
        db_path = tmp_path / "x.db"
        create_database(db_path)
        with pytest.raises(ValueError):
            SqliteTagStore.open(db_path, chunk_size=0)


class TestAssociations:
    def test_link_read_unlink(self, store: SqliteTagStore) -> None:
        """紐付け・読み出し・解除のテスト."""
        rows = store.insert_tags("user-1", {"a", "b", "c"})
        ids = {row.name: row.tag_id for row in rows}

        store.insert_associations("item-1", list(ids.values()))
        assert {t.name for t in store.select_associations_by_item("item-1")} == {"a", "b", "c"}

        store.delete_associations("item-1", [ids["a"], ids["b"]])
        assert {t.name for t in store.select_associations_by_item("item-1")} == {"c"}

        store.delete_associations("item-1", None)
        assert store.select_associations_by_item("item-1") == []

    def test_relinking_is_ignored(self, store: SqliteTagStore) -> None:
        """同じ紐付けの再作成が無視されることのテスト."""
        [row] = store.insert_tags("user-1", {"milk"})
        store.insert_associations("item-1", [row.tag_id])
        store.insert_associations("item-1", [row.tag_id])

        assert len(store.select_associations_by_item("item-1")) == 1

    def test_unknown_tag_id_is_storage_failure(self, store: SqliteTagStore) -> None:
        """存在しない tag_id への紐付けのテスト."""
        with pytest.raises(StorageFailure) as excinfo:
            store.insert_associations("item-1", [999])
        assert excinfo.value.operation == "insert_associations"

    def test_other_items_are_untouched(self, store: SqliteTagStore) -> None:
        """他アイテムの紐付けが残ることのテスト."""
        [row] = store.insert_tags("user-1", {"milk"})
        store.insert_associations("item-1", [row.tag_id])
        store.insert_associations("item-2", [row.tag_id])

        store.delete_associations("item-1", None)

        assert len(store.select_associations_by_item("item-2")) == 1


class TestTransaction:
    def test_rollback_on_error(self, store: SqliteTagStore) -> None:
        """エラー時にロールバックされることのテスト."""
        [row] = store.insert_tags("user-1", {"milk"})
        store.insert_associations("item-1", [row.tag_id])

        with pytest.raises(StorageFailure):
            with store.transaction():
                store.delete_associations("item-1", None)
                store.insert_associations("item-1", [999])

        assert len(store.select_associations_by_item("item-1")) == 1

    def test_commit(self, store: SqliteTagStore) -> None:
        """コミットのテスト."""
        with store.transaction():
            store.insert_tags("user-1", {"milk"})

        assert not store.conn.in_transaction
        assert len(store.select_tags_by_owner_and_names("user-1", {"milk"})) == 1

    def test_nested_transaction_joins_outer(self, store: SqliteTagStore) -> None:
        """入れ子トランザクションが外側に合流することのテスト."""
        with store.transaction():
            with store.transaction():
                store.insert_tags("user-1", {"milk"})
            assert store.conn.in_transaction

        assert not store.conn.in_transaction
