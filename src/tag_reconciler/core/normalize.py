"""タグ名の正規化（入力 → tags.name）.

アイテム編集フォームから渡される生のタグ名を、DBで比較・検索キーとして扱う
正規化済みタグ名（canonical name）に変換するための関数群です。

設計方針:
    - 正規化は「前後の空白除去 + 小文字化」のみ（ロケール非依存の str.lower）
    - 空文字になったものは捨てる
    - 結果は set（順序は意味を持たない）
    - DBから読んだ tags.name も同じ関数で再正規化する（過去データの揺れ対策）
"""

from __future__ import annotations

from collections.abc import Iterable

# フォームのタグ入力欄はカンマ区切り1行
TAG_STRING_DELIMITER = ","


def normalize_tag_name(raw_name: str) -> str:
    """タグ名1つを正規化する.

    Args:
        raw_name: 入力の生タグ名（例: " Milk ", "FROZEN"）

    Returns:
        正規化済みタグ名（例: "milk", "frozen"）。空白のみの場合は ""。

    Examples:
        >>> normalize_tag_name("  Tea ")
        'tea'
        >>> normalize_tag_name("   ")
        ''
    """
    return raw_name.strip().lower()


def normalize_tag_names(raw_names: Iterable[str]) -> set[str]:
    """生タグ名の列を正規化済みタグ名の集合に変換する.

    失敗条件はありません（空入力なら空集合）。

    Examples:
        >>> sorted(normalize_tag_names(["  Tea ", "tea", ""]))
        ['tea']
    """
    names: set[str] = set()
    for raw_name in raw_names:
        name = normalize_tag_name(raw_name)
        if name:
            names.add(name)
    return names


def split_tag_string(text: str | None) -> list[str]:
    """カンマ区切りのタグ入力文字列を生タグ名のリストに分割する.

    前後空白の除去と空要素の除外のみ行い、小文字化や重複除去はしない
    （それは normalize_tag_names の責務）。

    Examples:
        >>> split_tag_string("Milk, frozen,, ")
        ['Milk', 'frozen']
        >>> split_tag_string(None)
        []
    """
    if not text:
        return []
    parts = [part.strip() for part in text.split(TAG_STRING_DELIMITER)]
    return [part for part in parts if part]
