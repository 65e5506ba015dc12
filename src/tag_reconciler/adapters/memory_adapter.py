"""インメモリのタグストアアダプタ.

プロセス内で完結するストアです。組み込み用途とテストで使います。
書き込み回数（writes）を数えるので、「2回目の同期は書き込みゼロ」のような性質を直接確認できます。
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Collection

from tag_reconciler.adapters.base_adapter import ItemTag, TagId, TagRow, TagStoreAdapter
from tag_reconciler.core.exceptions import ConflictRetry, StorageFailure


class InMemoryTagStore(TagStoreAdapter):
    """dict ベースのタグストア.

    (owner_id, name) の一意性はここで強制し、違反時は ConflictRetry を送出します
    （SQLite の UNIQUE 制約と同じ振る舞い）。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        # (owner_id, name) -> tag_id
        self._tags: dict[tuple[str, str], TagId] = {}
        self._tag_names: dict[TagId, str] = {}
        # item_id -> {tag_id}
        self._item_tags: dict[str, set[TagId]] = {}
        self.writes = 0

    def add_tag(self, owner_id: str, name: str) -> int:
        """正規化せずにタグ行を直接作る（過去データの再現用）."""
        with self._lock:
            key = (owner_id, name)
            if key in self._tags:
                raise ConflictRetry(owner_id, [name])
            tag_id = next(self._ids)
            self._tags[key] = tag_id
            self._tag_names[tag_id] = name
            return tag_id

    def tag_count(self, owner_id: str | None = None) -> int:
        with self._lock:
            return sum(1 for owner, _ in self._tags if owner_id is None or owner == owner_id)

    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        with self._lock:
            return [
                TagRow(tag_id=self._tags[(owner_id, name)], name=name)
                for name in names
                if (owner_id, name) in self._tags
            ]

    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        ordered = sorted(names)
        with self._lock:
            existing = [name for name in ordered if (owner_id, name) in self._tags]
            if existing:
                raise ConflictRetry(owner_id, existing)
            rows: list[TagRow] = []
            for name in ordered:
                tag_id = next(self._ids)
                self._tags[(owner_id, name)] = tag_id
                self._tag_names[tag_id] = name
                rows.append(TagRow(tag_id=tag_id, name=name))
            self.writes += 1
            return rows

    def select_associations_by_item(self, item_id: str) -> list[ItemTag]:
        with self._lock:
            return [
                ItemTag(tag_id=tag_id, name=self._tag_names[tag_id])
                for tag_id in self._item_tags.get(item_id, set())
            ]

    def insert_associations(self, item_id: str, tag_ids: Collection[TagId]) -> None:
        if not tag_ids:
            return
        with self._lock:
            unknown = [tag_id for tag_id in tag_ids if tag_id not in self._tag_names]
            if unknown:
                raise StorageFailure("insert_associations", f"unknown tag_id: {unknown}")
            self._item_tags.setdefault(item_id, set()).update(tag_ids)
            self.writes += 1

    def delete_associations(self, item_id: str, tag_ids: Collection[TagId] | None) -> None:
        with self._lock:
            linked = self._item_tags.get(item_id)
            if linked is None:
                return
            if tag_ids is None:
                linked.clear()
            else:
                linked.difference_update(tag_ids)
            self.writes += 1
