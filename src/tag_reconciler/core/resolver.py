"""タグの解決（find-or-create）.

owner ごとに (owner_id, name) のタグ行がちょうど1つになるよう、既存タグの検索と
不足分の一括作成を行います。

並行作成の競合:
    同じ owner の別アイテムが同時に同じ新規タグ（例: "frozen"）を導入すると、
    両方が「検索 → 見つからない」を通過してから INSERT しに来ます。
    一意性はストアの UNIQUE 制約で保証し、ここでは制約違反（ConflictRetry）を
    「もう作られている」合図として再検索に切り替えます。プロセス内ロックでは防げない
    （呼び出し元が別プロセスのことがある）ため、ロックは使いません。
"""

from __future__ import annotations

from collections.abc import Collection, Iterable

from loguru import logger

from tag_reconciler.adapters.base_adapter import TagId, TagStoreAdapter
from tag_reconciler.core.exceptions import ConflictRetry, StorageFailure
from tag_reconciler.core.normalize import normalize_tag_names

DEFAULT_MAX_CONFLICT_RETRIES = 3


def resolve_tags(
    store: TagStoreAdapter,
    owner_id: str,
    names: Collection[str],
    *,
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
) -> dict[str, TagId]:
    """正規化済みタグ名の集合を tag_id に解決する（無ければ作成）.

    Args:
        store: タグストア
        owner_id: タグの所有者
        names: 正規化済みタグ名（normalize_tag_names の結果）
        max_conflict_retries: 一意制約違反からの再検索を何回まで許すか

    Returns:
        name → tag_id の辞書（names の全要素をちょうど1回ずつ含む）

    Raises:
        StorageFailure: ストアエラー、または競合が max_conflict_retries を超えて続いた場合
    """
    requested = set(names)
    if not requested:
        return {}

    resolved: dict[str, TagId] = {}
    conflicts = 0
    while True:
        # 1) 既存タグを一括検索
        pending = requested - resolved.keys()
        for row in store.select_tags_by_owner_and_names(owner_id, pending):
            resolved[row.name] = row.tag_id

        # 2) 見つからなかった分だけ一括作成
        missing = requested - resolved.keys()
        if not missing:
            break

        try:
            inserted = store.insert_tags(owner_id, missing)
        except ConflictRetry as e:
            conflicts += 1
            if conflicts > max_conflict_retries:
                raise StorageFailure(
                    "insert_tags",
                    f"tag creation kept conflicting after {max_conflict_retries} retries "
                    f"(owner={owner_id!r}, names={sorted(missing)})",
                ) from e
            logger.warning(
                f"Concurrent tag creation detected (owner={owner_id!r}, batch containing {e.names}); re-fetching"
            )
            continue

        for row in inserted:
            resolved[row.name] = row.tag_id
        logger.debug(f"Created {len(inserted)} tag(s) for owner={owner_id!r}")
        break

    unresolved = requested - resolved.keys()
    if unresolved:
        raise StorageFailure("insert_tags", f"store did not return ids for: {sorted(unresolved)}")

    return {name: resolved[name] for name in requested}


def find_or_create_tags(
    store: TagStoreAdapter,
    owner_id: str,
    raw_names: Iterable[str],
    *,
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
) -> list[TagId]:
    """生タグ名を正規化してから解決し、tag_id のリストを返す.

    Examples:
        >>> from tag_reconciler.adapters.memory_adapter import InMemoryTagStore
        >>> store = InMemoryTagStore()
        >>> len(find_or_create_tags(store, "user-1", ["Milk", " milk "]))
        1
    """
    mapping = resolve_tags(
        store,
        owner_id,
        normalize_tag_names(raw_names),
        max_conflict_retries=max_conflict_retries,
    )
    return [mapping[name] for name in sorted(mapping)]
