"""タグストアアダプタ（基底クラス）.

タグ同期エンジンが永続化層へアクセスする唯一の窓口です。
エンジンはここで定義する5つのプリミティブ操作（+ transaction）だけを使うため、
SQLite 以外のストア（ホスト型DBのクライアントなど）もこのクラスを継承すれば差し替えられます。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

# tag_id はストアが採番する不透明な識別子（SQLite では INTEGER）
TagId = int | str


@dataclass(frozen=True)
class TagRow:
    """tags テーブルの1行（owner で絞り込み済み）."""

    tag_id: TagId
    name: str


@dataclass(frozen=True)
class ItemTag:
    """アイテムに紐づいているタグ（item_tags と tags の JOIN 結果）."""

    tag_id: TagId
    name: str


class TagStoreAdapter(ABC):
    """タグストアの基底クラス.

    実装側の責務:
        - insert_tags は (owner_id, name) の重複を黙って作らず、
          一意制約違反を ConflictRetry として送出すること
        - それ以外のストアエラーは StorageFailure に変換して送出すること
    """

    @abstractmethod
    def select_tags_by_owner_and_names(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        """owner のタグのうち name が names に含まれるものを一括取得する."""
        ...

    @abstractmethod
    def insert_tags(self, owner_id: str, names: Collection[str]) -> list[TagRow]:
        """(owner_id, name) のタグを一括作成し、作成した行を返す.

        Raises:
            ConflictRetry: いずれかの (owner_id, name) が既に存在する場合
                （この呼び出しで作成した行は残さない）
            StorageFailure: その他のストアエラー
        """
        ...

    @abstractmethod
    def select_associations_by_item(self, item_id: str) -> list[ItemTag]:
        """アイテムに紐づくタグ（tag_id, 保存されている name）を取得する."""
        ...

    @abstractmethod
    def insert_associations(self, item_id: str, tag_ids: Collection[TagId]) -> None:
        """(item_id, tag_id) の紐付けを一括作成する."""
        ...

    @abstractmethod
    def delete_associations(self, item_id: str, tag_ids: Collection[TagId] | None) -> None:
        """アイテムの紐付けを一括削除する（tag_ids=None ならアイテムの全紐付け）."""
        ...

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """複数の書き込みを1トランザクションにまとめる.

        トランザクションを持たないストアではそのまま実行します（デフォルト実装）。
        """
        yield
