"""Tests for problemhelper.check (tokenize, check, find_mismatch)."""

from __future__ import annotations

from problemhelper.check import Mismatch, check, find_mismatch, tokenize


# ---------------------------------------------------------------------------
# tokenize
# ---------------------------------------------------------------------------


class TestTokenize:
    def test_splits_on_mixed_whitespace(self) -> None:
        assert tokenize("a b\tc\nd\r\ne") == ["a", "b", "c", "d", "e"]

    def test_drops_empty_tokens(self) -> None:
        assert tokenize("  a   b  \n\n") == ["a", "b"]

    def test_empty(self) -> None:
        assert tokenize("") == []
        assert tokenize(" \t\n ") == []

    def test_other_unicode_whitespace_separates(self) -> None:
        assert tokenize("a\u2003b\u3000c\x1fd") == ["a", "b", "c", "d"]

    def test_non_breaking_spaces_stay_in_token(self) -> None:
        for nbsp in ("\u00a0", "\u2007", "\u202f"):
            assert tokenize(f"1{nbsp}000 2") == [f"1{nbsp}000", "2"]
        assert not check("1\u00a0000", "1 000")


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


class TestCheck:
    def test_reflexive(self) -> None:
        for text in ["", " ", "42", "1 2 3\n", "Yes\nNo\n\n", "é ü 漢字"]:
            assert check(text, text) is True

    def test_delimiters_ignored(self) -> None:
        assert check("a b c", "a\nb\tc") is True
        assert check("a b\nc", "a\nb   c") is True

    def test_trailing_newlines_ignored(self) -> None:
        assert check("3\n", "3") is True

    def test_extra_actual_token(self) -> None:
        assert check("a b c", "a b") is False

    def test_missing_actual_token(self) -> None:
        assert check("a b", "a b c") is False

    def test_order_matters(self) -> None:
        assert check("b a", "a b") is False

    def test_tokens_compared_exactly(self) -> None:
        assert check("Yes", "yes") is False
        assert check("1.0", "1") is False

    def test_empty_inputs_equivalent(self) -> None:
        assert check("", "") is True
        assert check(" ", "") is True
        assert check("\n\n", "\t") is True

    def test_returns_bool(self) -> None:
        assert isinstance(check("a", "b"), bool)


# ---------------------------------------------------------------------------
# find_mismatch
# ---------------------------------------------------------------------------


class TestFindMismatch:
    def test_equivalent_is_none(self) -> None:
        assert find_mismatch("1 2\n3", "1\n2 3") is None

    def test_different_token(self) -> None:
        assert find_mismatch("1 2 4", "1 2 3") == Mismatch(index=2, actual="4", expected="3")

    def test_output_too_short(self) -> None:
        mismatch = find_mismatch("1", "1 2")
        assert mismatch == Mismatch(index=1, actual=None, expected="2")
        assert "end of output" in mismatch.describe()

    def test_output_too_long(self) -> None:
        mismatch = find_mismatch("1 2", "1")
        assert mismatch == Mismatch(index=1, actual="2", expected=None)

    def test_describe_is_one_based(self) -> None:
        mismatch = find_mismatch("x", "y")
        assert mismatch is not None
        assert mismatch.describe() == "token 1: expected 'y', got 'x'"
