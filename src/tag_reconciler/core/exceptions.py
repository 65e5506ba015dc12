"""Tag reconciler exceptions.

カスタム例外クラスを定義します。
"""

from __future__ import annotations


class TagReconcilerError(Exception):
    """タグ同期処理の基底例外."""


class StorageFailure(TagReconcilerError):
    """ストア操作が失敗した（接続断・想定外の制約違反など）.

    呼び出し元へそのまま伝播し、同期処理はその時点で中断されます。
    元の例外は ``__cause__`` に保持されます（``raise ... from e``）。

    Attributes:
        operation: 失敗したストア操作名（例: "insert_tags"）
    """

    def __init__(self, operation: str, detail: str) -> None:
        """例外初期化.

        Args:
            operation: 失敗したストア操作名
            detail: 失敗内容
        """
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage operation failed: {operation} ({detail})")


class ConflictRetry(TagReconcilerError):
    """tags の (owner_id, name) 一意制約違反（内部専用）.

    同じ owner の同じ新規タグを並行リクエストが同時に作成しようとした場合に
    アダプタが送出します。TagResolver が捕捉して再検索に切り替えるため、
    呼び出し元へ漏れることはありません。

    Attributes:
        owner_id: 衝突した owner
        names: 挿入しようとしたバッチのタグ名（衝突した名前以外も含みうる）
    """

    def __init__(self, owner_id: str, names: list[str]) -> None:
        self.owner_id = owner_id
        self.names = names
        super().__init__(f"Tag insert conflicted for owner {owner_id!r} (batch: {', '.join(names)})")
