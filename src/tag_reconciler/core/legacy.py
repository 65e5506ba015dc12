"""過去データ（未正規化の tags.name）の統合計画.

tags.name は正規化済みである前提ですが、正規化導入前に作られた行には "Milk " や "MILK" が
残っていることがあります。同期処理は読み出し時の再正規化で吸収していますが、
同じ owner に正規化後同名のタグが複数あると resolve_tags がどちらも見つけられず
新しい行を作ってしまうため、一度だけ一括で統合します。

ここでは計画（どの行を残し、どれを統合し、どれを改名するか）だけを作り、DBは変更しません。
"""

from __future__ import annotations

import polars as pl

from .normalize import normalize_tag_name

TAGS_SCHEMA = {"tag_id": pl.Int64, "owner_id": pl.String, "name": pl.String}


def plan_legacy_normalization(tags_df: pl.DataFrame) -> dict[str, pl.DataFrame]:
    """正規化後の (owner_id, name) ごとに残す行を決める.

    方針:
        - 同じ (owner_id, 正規化名) のグループでは tag_id が最小の行を残す（survivor）
        - それ以外の行は survivor へ統合する（item_tags を付け替えてから削除）
        - survivor の name が正規化名と違えば改名する
        - 正規化すると空になる行は変更せずレポートのみ

    Args:
        tags_df: tags テーブル（tag_id, owner_id, name）

    Returns:
        計画の辞書
        - "duplicates": 統合される行（tag_id, owner_id, name, canonical_name, survivor_id）
        - "renames": 改名される survivor（tag_id, owner_id, name, canonical_name）
        - "empty_names": 正規化すると空になる行（tag_id, owner_id, name）

    Raises:
        ValueError: 必要な列が無い場合

    Examples:
        >>> df = pl.DataFrame({"tag_id": [1, 2], "owner_id": ["u", "u"], "name": ["Milk ", "milk"]})
        >>> plan = plan_legacy_normalization(df)
        >>> plan["duplicates"]["tag_id"].to_list()
        [2]
    """
    missing = [col for col in TAGS_SCHEMA if col not in tags_df.columns]
    if missing:
        raise ValueError(f"plan_legacy_normalization() requires columns: {missing}")

    df = tags_df.select(list(TAGS_SCHEMA)).with_columns(
        pl.col("name").map_elements(normalize_tag_name, return_dtype=pl.String).alias("canonical_name")
    )

    empty_names = df.filter(pl.col("canonical_name") == "").select(["tag_id", "owner_id", "name"]).sort("tag_id")
    valid = df.filter(pl.col("canonical_name") != "")

    survivors = valid.group_by(["owner_id", "canonical_name"]).agg(pl.col("tag_id").min().alias("survivor_id"))
    planned = valid.join(survivors, on=["owner_id", "canonical_name"], how="inner")

    duplicates = (
        planned.filter(pl.col("tag_id") != pl.col("survivor_id"))
        .select(["tag_id", "owner_id", "name", "canonical_name", "survivor_id"])
        .sort("tag_id")
    )
    renames = (
        planned.filter((pl.col("tag_id") == pl.col("survivor_id")) & (pl.col("name") != pl.col("canonical_name")))
        .select(["tag_id", "owner_id", "name", "canonical_name"])
        .sort("tag_id")
    )

    return {
        "duplicates": duplicates,
        "renames": renames,
        "empty_names": empty_names,
    }
