"""Unit tests for normalize utilities."""

from tag_reconciler.core.normalize import normalize_tag_name, normalize_tag_names, split_tag_string


class TestNormalizeTagName:
    def test_lowercase_conversion(self) -> None:
        """小文字化のテスト."""
        assert normalize_tag_name("Milk") == "milk"
        assert normalize_tag_name("FROZEN") == "frozen"

    def test_strip_whitespace(self) -> None:
        """前後空白除去のテスト."""
        assert normalize_tag_name("  tea  ") == "tea"
        assert normalize_tag_name("\tdry goods\n") == "dry goods"

    def test_inner_whitespace_preserved(self) -> None:
        """内側の空白は保持されることのテスト."""
        assert normalize_tag_name(" Dry  Goods ") == "dry  goods"

    def test_blank_becomes_empty(self) -> None:
        """空白のみのタグ名が空文字になることのテスト."""
        assert normalize_tag_name("   ") == ""


class TestNormalizeTagNames:
    def test_round_trip_example(self) -> None:
        """空要素と重複が除去されることのテスト."""
        assert normalize_tag_names(["  Tea ", "tea", ""]) == {"tea"}

    def test_case_and_whitespace_variants_collapse(self) -> None:
        """大文字小文字・空白の揺れが1つにまとまることのテスト."""
        assert normalize_tag_names(["Milk", " milk ", "MILK"]) == {"milk"}

    def test_empty_input(self) -> None:
        """空入力のテスト."""
        assert normalize_tag_names([]) == set()

    def test_accepts_any_iterable(self) -> None:
        """ジェネレータ入力のテスト."""
        assert normalize_tag_names(name for name in ["A", "b"]) == {"a", "b"}


class TestSplitTagString:
    def test_comma_separated(self) -> None:
        """カンマ区切り分割のテスト."""
        assert split_tag_string("Milk, frozen ,dairy") == ["Milk", "frozen", "dairy"]

    def test_drops_empty_parts(self) -> None:
        """空要素除外のテスト."""
        assert split_tag_string(" , milk,, ") == ["milk"]

    def test_none_and_empty(self) -> None:
        """None・空文字入力のテスト."""
        assert split_tag_string(None) == []
        assert split_tag_string("") == []

    def test_keeps_case_and_duplicates(self) -> None:
        """分割時は正規化しないことのテスト."""
        assert split_tag_string("Milk,milk") == ["Milk", "milk"]
