"""Tests for content injection."""

import pytest

from kitgen.exceptions import InjectionError
from kitgen.injector import InjectionRule, detect_eol, inject, should_skip


class TestLocations:
    def test_append(self):
        result = inject("a\nb\n", "c", InjectionRule("append"))
        assert result.content == "a\nb\nc\n"
        assert result.changed is True

    def test_append_without_final_newline(self):
        assert inject("a\nb", "c", InjectionRule("append")).content == "a\nb\nc\n"

    def test_append_to_empty_file(self):
        assert inject("", "c", InjectionRule("append")).content == "c\n"

    def test_prepend(self):
        assert inject("a\nb\n", "c", InjectionRule("prepend")).content == "c\na\nb\n"

    def test_before_pattern(self):
        assert inject("a\nb\n", "c", InjectionRule("before", pattern="^b")).content == "a\nc\nb\n"

    def test_after_pattern(self):
        assert inject("a\nb\n", "c", InjectionRule("after", pattern="^a")).content == "a\nc\nb\n"

    def test_after_last_line_without_newline(self):
        assert inject("a\nb", "c", InjectionRule("after", pattern="b")).content == "a\nb\nc\n"

    def test_first_matching_line_wins(self):
        content = "x = 1\nx = 2\n"
        assert inject(content, "# here", InjectionRule("before", pattern="^x")).content == "# here\nx = 1\nx = 2\n"

    @pytest.mark.parametrize(
        "line, expected",
        [
            (0, "c\na\nb\n"),
            (1, "a\nc\nb\n"),
            (5, "a\nb\nc\n"),
        ],
    )
    def test_at_line_is_zero_based(self, line, expected):
        assert inject("a\nb\n", "c", InjectionRule("at_line", line=line)).content == expected

    def test_multiline_body(self):
        assert inject("a\n", "x\ny", InjectionRule("append")).content == "a\nx\ny\n"

    def test_eol_last_false(self):
        assert inject("a\n", "c", InjectionRule("append", eol_last=False)).content == "a\nc"

    @pytest.mark.parametrize(
        "rule",
        [
            InjectionRule("before", pattern="b", eol_last=False),
            InjectionRule("after", pattern="a", eol_last=False),
            InjectionRule("at_line", line=1, eol_last=False),
        ],
    )
    def test_eol_last_false_keeps_body_on_its_own_line(self, rule):
        assert inject("a\nb\n", "X", rule).content == "a\nX\nb\n"

    def test_eol_last_false_prepend(self):
        assert inject("a\nb\n", "X", InjectionRule("prepend", eol_last=False)).content == "X\na\nb\n"

    def test_eol_last_false_after_last_line(self):
        assert inject("a\nb\n", "X", InjectionRule("after", pattern="b", eol_last=False)).content == "a\nb\nX"

    def test_eol_last_false_crlf(self):
        result = inject("a\r\nb\r\n", "X", InjectionRule("before", pattern="b", eol_last=False))
        assert result.content == "a\r\nX\r\nb\r\n"


class TestMultilinePatterns:
    def test_after_spanning_pattern(self):
        result = inject("a\nb\nz\n", "c", InjectionRule("after", pattern=r"a\nb"))
        assert result.content == "a\nb\nc\nz\n"

    def test_before_spanning_pattern(self):
        result = inject("a\nb\nz\n", "c", InjectionRule("before", pattern=r"a\nb"))
        assert result.content == "c\na\nb\nz\n"

    def test_invalid_regex_matches_literally(self):
        result = inject("x\nfoo(1)\n", "c", InjectionRule("before", pattern="foo("))
        assert result.content == "x\nc\nfoo(1)\n"


class TestLineEndings:
    def test_detect_eol(self):
        assert detect_eol("a\r\nb\r\n") == "\r\n"
        assert detect_eol("a\nb\n") == "\n"
        assert detect_eol("") == "\n"

    def test_crlf_preserved(self):
        result = inject("a\r\nb\r\n", "c\nd", InjectionRule("append"))
        assert result.content == "a\r\nb\r\nc\r\nd\r\n"

    def test_crlf_before(self):
        result = inject("a\r\nb\r\n", "c", InjectionRule("before", pattern="^b"))
        assert result.content == "a\r\nc\r\nb\r\n"

    def test_body_crlf_normalized_to_lf_file(self):
        assert inject("a\n", "c\r\nd", InjectionRule("append")).content == "a\nc\nd\n"


class TestSkipAndErrors:
    def test_skip_if_matches(self):
        result = inject("a\nc\n", "c", InjectionRule("append", skip_if="^c$"))
        assert result.skipped is True
        assert result.changed is False
        assert result.content == "a\nc\n"

    def test_repeated_injection_is_skipped(self):
        rule = InjectionRule("after", pattern="^import", skip_if="import os")
        first = inject("import sys\n", "import os", rule)
        second = inject(first.content, "import os", rule)
        assert first.changed is True
        assert second.skipped is True
        assert second.content == first.content

    def test_should_skip_invalid_regex_uses_substring(self):
        assert should_skip("call(x", "call(") is True
        assert should_skip("other", "call(") is False

    def test_missing_pattern_raises(self):
        with pytest.raises(InjectionError, match="Pattern not found"):
            inject("a\n", "c", InjectionRule("after", pattern="^zzz"))

    def test_before_without_pattern_raises(self):
        with pytest.raises(InjectionError):
            inject("a\n", "c", InjectionRule("before"))

    def test_at_line_requires_line(self):
        with pytest.raises(InjectionError):
            inject("a\n", "c", InjectionRule("at_line"))

    def test_negative_line_rejected(self):
        with pytest.raises(InjectionError):
            inject("a\n", "c", InjectionRule("at_line", line=-1))
