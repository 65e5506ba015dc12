"""タグ同期のコア処理群.

- 正規化（入力タグ名 → tags.name）
- 解決（owner ごとの find-or-create、並行作成の競合処理）
- 同期（現在の紐付けと希望タグの set 差分）
"""

from .exceptions import ConflictRetry, StorageFailure, TagReconcilerError
from .normalize import normalize_tag_name, normalize_tag_names, split_tag_string
from .reconcile import TagChanges, TagSyncOutcome, apply_item_tags, reconcile_item_tags
from .resolver import find_or_create_tags, resolve_tags

__all__ = [
    "normalize_tag_name",
    "normalize_tag_names",
    "split_tag_string",
    "resolve_tags",
    "find_or_create_tags",
    "reconcile_item_tags",
    "apply_item_tags",
    "TagChanges",
    "TagSyncOutcome",
    "TagReconcilerError",
    "StorageFailure",
    "ConflictRetry",
]
