"""アイテム ↔ タグの紐付け（item_tags）の読み書き."""

from __future__ import annotations

from collections.abc import Collection

from loguru import logger

from tag_reconciler.adapters.base_adapter import ItemTag, TagId, TagStoreAdapter
from tag_reconciler.core.normalize import normalize_tag_name


def current_item_tags(store: TagStoreAdapter, item_id: str) -> set[ItemTag]:
    """アイテムに現在紐づいているタグを返す.

    tags.name は正規化済みの前提ですが、過去データには揺れ（"Milk " など）が残っている
    可能性があるため、読み出し時に必ず再正規化します。
    """
    return {
        ItemTag(tag_id=row.tag_id, name=normalize_tag_name(row.name))
        for row in store.select_associations_by_item(item_id)
    }


def list_item_tag_names(store: TagStoreAdapter, item_id: str) -> list[str]:
    """アイテムのタグ名（正規化済み・重複なし）をソートして返す."""
    return sorted({tag.name for tag in current_item_tags(store, item_id) if tag.name})


def link_tags_to_item(store: TagStoreAdapter, item_id: str, tag_ids: Collection[TagId]) -> None:
    if not tag_ids:
        return
    store.insert_associations(item_id, tag_ids)
    logger.debug(f"Linked {len(tag_ids)} tag(s) to item {item_id}")


def unlink_tags_from_item(
    store: TagStoreAdapter,
    item_id: str,
    tag_ids: Collection[TagId] | None = None,
) -> None:
    """アイテムからタグの紐付けを外す.

    Args:
        store: タグストア
        item_id: 対象アイテム
        tag_ids: 外す tag_id。None または空ならアイテムの全紐付けを外す
    """
    if not tag_ids:
        store.delete_associations(item_id, None)
        logger.debug(f"Unlinked all tags from item {item_id}")
        return
    store.delete_associations(item_id, tag_ids)
    logger.debug(f"Unlinked {len(tag_ids)} tag(s) from item {item_id}")
