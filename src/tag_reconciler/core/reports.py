"""過去データ統合結果の出力（レポート）.

plan_legacy_normalization() の計画（統合・改名・空名）をCSVとして出力します。
"""

from __future__ import annotations

from pathlib import Path

import polars as pl

# 計画のキー → 出力ファイル名
REPORT_FILES = {
    "duplicates": "merged_duplicate_tags.csv",
    "renames": "renamed_tags.csv",
    "empty_names": "empty_tag_names.csv",
}


def export_legacy_reports(
    plan: dict[str, pl.DataFrame],
    output_dir: Path | str,
) -> dict[str, Path | None]:
    """統合計画をCSVファイルとして出力する.

    Args:
        plan: plan_legacy_normalization() の戻り値
        output_dir: 出力ディレクトリ

    Returns:
        出力したCSVのパス（該当行が無ければ None）
        - "duplicates": merged_duplicate_tags.csv
        - "renames": renamed_tags.csv
        - "empty_names": empty_tag_names.csv
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    result_paths: dict[str, Path | None] = {}
    for key, file_name in REPORT_FILES.items():
        df = plan[key]
        if len(df) > 0:
            path = output_dir / file_name
            df.write_csv(path)
            result_paths[key] = path
        else:
            result_paths[key] = None

    return result_paths
