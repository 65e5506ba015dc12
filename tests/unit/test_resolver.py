"""resolver.py のユニットテスト（find-or-create と並行作成の競合）."""

from __future__ import annotations

from collections.abc import Collection

import pytest

from tag_reconciler.adapters.base_adapter import TagRow
from tag_reconciler.adapters.memory_adapter import InMemoryTagStore
from tag_reconciler.core.exceptions import ConflictRetry, StorageFailure
from tag_reconciler.core.resolver import find_or_create_tags, resolve_tags


class RecordingStore(InMemoryTagStore):
    """プリミティブ呼び出しを記録するストア."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, frozenset[str]]] = []

    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        self.calls.append(("select", frozenset(names)))
        return super().select_tags_by_owner_and_names(owner_id, names)

    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        self.calls.append(("insert", frozenset(names)))
        return super().insert_tags(owner_id, names)


class RacingStore(InMemoryTagStore):
    """最初の insert_tags の直前に、別リクエストの解決処理を割り込ませるストア."""

    def __init__(self) -> None:
        super().__init__()
        self.competitor = None

    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        competitor, self.competitor = self.competitor, None
        if competitor is not None:
            competitor()
        return super().insert_tags(owner_id, names)


class AlwaysConflictingStore(InMemoryTagStore):
    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        return []

    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        raise ConflictRetry(owner_id, sorted(names))


class BrokenStore(InMemoryTagStore):
    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        raise StorageFailure("select_tags_by_owner_and_names", "connection reset")


class TestResolveTags:
    def test_empty_names_do_not_touch_store(self) -> None:
        """空集合ではストアに触れないことのテスト."""
        store = RecordingStore()
        assert resolve_tags(store, "user-1", set()) == {}
        assert store.calls == []

    def test_creates_missing_tags(self) -> None:
        """未作成タグの一括作成のテスト."""
        store = RecordingStore()
        mapping = resolve_tags(store, "user-1", {"milk", "eggs"})

        assert set(mapping) == {"milk", "eggs"}
        assert len(set(mapping.values())) == 2
        assert store.calls == [
            ("select", frozenset({"milk", "eggs"})),
            ("insert", frozenset({"milk", "eggs"})),
        ]

    def test_reuses_existing_and_inserts_only_missing(self) -> None:
        """既存タグ再利用と不足分のみ作成のテスト."""
        store = RecordingStore()
        milk_id = store.add_tag("user-1", "milk")

        mapping = resolve_tags(store, "user-1", {"milk", "eggs"})

        assert mapping["milk"] == milk_id
        assert store.calls[-1] == ("insert", frozenset({"eggs"}))
        assert store.tag_count("user-1") == 2

    def test_all_existing_skips_insert(self) -> None:
        """全て既存なら INSERT しないことのテスト."""
        store = RecordingStore()
        store.add_tag("user-1", "milk")

        resolve_tags(store, "user-1", {"milk"})

        assert [kind for kind, _ in store.calls] == ["select"]
        assert store.writes == 0

    def test_owner_scoping(self) -> None:
        """owner ごとにタグが分かれることのテスト."""
        store = InMemoryTagStore()
        a = resolve_tags(store, "user-a", {"sugar"})
        b = resolve_tags(store, "user-b", {"sugar"})

        assert a["sugar"] != b["sugar"]
        assert store.tag_count("user-a") == 1
        assert store.tag_count("user-b") == 1

    def test_concurrent_creation_converges_on_one_tag(self) -> None:
        """並行作成が同じ tag_id に収束することのテスト."""
        store = RacingStore()
        competitor_results: list[dict] = []
        store.competitor = lambda: competitor_results.append(resolve_tags(store, "user-1", {"frozen"}))

        mapping = resolve_tags(store, "user-1", {"frozen"})

        assert competitor_results == [mapping]
        assert store.tag_count("user-1") == 1

    def test_concurrent_creation_with_overlapping_names(self) -> None:
        """一部が並行作成と重なる場合のテスト."""
        store = RacingStore()
        competitor_results: list[dict] = []
        store.competitor = lambda: competitor_results.append(resolve_tags(store, "user-1", {"frozen"}))

        mapping = resolve_tags(store, "user-1", {"frozen", "dairy"})

        assert mapping["frozen"] == competitor_results[0]["frozen"]
        assert set(mapping) == {"frozen", "dairy"}
        assert store.tag_count("user-1") == 2

    def test_conflict_retries_are_bounded(self) -> None:
        """競合リトライ上限のテスト."""
        store = AlwaysConflictingStore()
        with pytest.raises(StorageFailure) as excinfo:
            resolve_tags(store, "user-1", {"frozen"}, max_conflict_retries=2)

        assert excinfo.value.operation == "insert_tags"
        assert isinstance(excinfo.value.__cause__, ConflictRetry)

    def test_storage_failure_propagates(self) -> None:
        """ストアエラーが伝播することのテスト."""
        with pytest.raises(StorageFailure):
            resolve_tags(BrokenStore(), "user-1", {"milk"})


class TestFindOrCreateTags:
    def test_normalizes_before_resolving(self) -> None:
        """解決前に正規化されることのテスト."""
        store = InMemoryTagStore()
        ids = find_or_create_tags(store, "user-1", ["Milk", " milk ", "MILK", ""])

        assert len(ids) == 1
        assert store.tag_count() == 1

    def test_empty_input(self) -> None:
        """空入力のテスト."""
        assert find_or_create_tags(InMemoryTagStore(), "user-1", ["  "]) == []
