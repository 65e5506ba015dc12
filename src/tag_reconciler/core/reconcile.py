"""アイテムのタグ同期（reconciliation）.

アイテム編集のたびに渡される「希望タグ名リスト」と、現在の紐付けを set 差分で比較し、
不要な紐付けの削除と新しいタグの解決・紐付けだけを行います。

手順:
    1. desired = 希望タグ名の正規化集合
    2. current = 現在の紐付け（名前は読み出し時に再正規化）
    3. to_unlink = desired に無い current の tag_id
    4. to_add = desired - current の名前
    5. to_unlink を一括削除（先に外す）
    6. to_add を resolve（find-or-create）して一括紐付け
    7. どちらも空ならストアへの書き込みは一切しない（冪等性）

5-6 はストアが対応していれば1トランザクションで実行します。
途中でストアエラーが起きたら残りの手順は実行せず、そのまま送出します。
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from tag_reconciler.adapters.base_adapter import TagId, TagStoreAdapter
from tag_reconciler.core.associations import current_item_tags, link_tags_to_item, unlink_tags_from_item
from tag_reconciler.core.exceptions import StorageFailure
from tag_reconciler.core.normalize import normalize_tag_names, split_tag_string
from tag_reconciler.core.resolver import DEFAULT_MAX_CONFLICT_RETRIES, resolve_tags


@dataclass(frozen=True)
class TagChanges:
    """1回の同期で行った変更."""

    unlinked: frozenset[TagId] = field(default_factory=frozenset)
    linked: frozenset[TagId] = field(default_factory=frozenset)
    # 紐付けた名前（正規化済み）
    added_names: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_noop(self) -> bool:
        return not self.unlinked and not self.linked


def reconcile_item_tags(
    store: TagStoreAdapter,
    item_id: str,
    owner_id: str,
    desired_raw_names: Iterable[str],
    *,
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
) -> TagChanges:
    """アイテムの紐付けを希望タグ名リストにちょうど一致させる.

    Args:
        store: タグストア
        item_id: 対象アイテム
        owner_id: タグの所有者（タグは owner をまたいで共有しない）
        desired_raw_names: 希望タグ名（未正規化・重複可）
        max_conflict_retries: resolve_tags に渡す競合リトライ上限

    Returns:
        実際に行った変更（呼び出し側は無視してよい）

    Raises:
        StorageFailure: ストア操作が失敗した場合（以降の手順は実行しない）
    """
    desired = normalize_tag_names(desired_raw_names)
    current = current_item_tags(store, item_id)
    current_names = {tag.name for tag in current}

    to_unlink = {tag.tag_id for tag in current if tag.name not in desired}
    to_add_names = desired - current_names

    logger.debug(
        f"Reconciling item {item_id}: desired={len(desired)} current={len(current)} "
        f"unlink={len(to_unlink)} add={len(to_add_names)}"
    )

    if not to_unlink and not to_add_names:
        return TagChanges()

    linked: set[TagId] = set()
    with store.transaction():
        if to_unlink:
            unlink_tags_from_item(store, item_id, to_unlink)

        if to_add_names:
            mapping = resolve_tags(
                store,
                owner_id,
                to_add_names,
                max_conflict_retries=max_conflict_retries,
            )
            linked = set(mapping.values())
            link_tags_to_item(store, item_id, linked)

    return TagChanges(
        unlinked=frozenset(to_unlink),
        linked=frozenset(linked),
        added_names=frozenset(to_add_names),
    )


@dataclass(frozen=True)
class TagSyncOutcome:
    """アイテム保存後のタグ同期結果.

    アイテム本体の保存はこの処理の外側で完了している前提です。tags_failed=True は
    「アイテムは保存されたがタグの状態は不完全かもしれない」ことを表します。
    """

    changes: TagChanges | None
    tags_failed: bool = False
    error_message: str | None = None


def apply_item_tags(
    store: TagStoreAdapter,
    item_id: str,
    owner_id: str,
    tags_text: str | None,
    *,
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
) -> TagSyncOutcome:
    """フォームのカンマ区切りタグ入力でアイテムのタグを同期する（作成・更新共通）.

    StorageFailure は送出せず、ログに残して tags_failed として返します。
    """
    try:
        changes = reconcile_item_tags(
            store,
            item_id,
            owner_id,
            split_tag_string(tags_text),
            max_conflict_retries=max_conflict_retries,
        )
    except StorageFailure as e:
        logger.error(f"Tag sync failed for item {item_id}: {e}")
        return TagSyncOutcome(changes=None, tags_failed=True, error_message=str(e))
    return TagSyncOutcome(changes=changes)
