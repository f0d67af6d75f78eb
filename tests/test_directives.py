"""
Tests for directive lexing and cell classification.
"""

from notebook_go.directives import LineKind, classify_cell, is_directive_line, join_line, split_cmd


class TestSplitCmd:
    """Test cases for split_cmd."""

    def test_plain_words(self):
        assert split_cmd("env  FOO   bar") == ["env", "FOO", "bar"]

    def test_quotes_group_spaces(self):
        """Quoted text with spaces is one part; escapes are translated inside quotes."""
        assert split_cmd('--text "hello world" -x "a\\tb\\nc"') == ["--text", "hello world", "-x", "a\tb\nc"]

    def test_empty_quotes_are_an_argument(self):
        assert split_cmd('a "" b') == ["a", "", "b"]

    def test_quote_starts_part_mid_word(self):
        assert split_cmd('--name="John Doe" x') == ["--name=John Doe", "x"]

    def test_backslash_outside_quotes_is_literal(self):
        assert split_cmd("a\\b c") == ["a\\b", "c"]

    def test_dangling_backslash_in_quotes(self):
        """A backslash at the very end of an open quote stops the scan."""
        assert split_cmd('a "b\\') == ["a", "b"]

    def test_empty(self):
        assert split_cmd("") == []
        assert split_cmd("   ") == []

    def test_escapes_newlines_and_unterminated_quote(self):
        """Whitespace (newlines included) separates parts; an open quote at the end is an empty part."""
        parts = split_cmd('--msg="hello world" \t\n --msg2="it replied \\"\\nhello\\t\\"" "')
        assert parts == ["--msg=hello world", '--msg2=it replied "\nhello\t"', ""]


class TestJoinLine:
    """Test cases for join_line."""

    def test_continuation(self):
        lines = ["a", "b c\\", "d\\", "e", "f"]
        used = set()
        assert join_line(lines, 1, used) == "b c d e"
        assert used == {1, 2, 3}

    def test_single_line(self):
        used = set()
        assert join_line(["%ls", "x"], 0, used) == "%ls"
        assert used == {0}

    def test_continuation_at_end_of_cell(self):
        used = set()
        assert join_line(["!echo \\"], 0, used) == "!echo  "
        assert used == {0}


class TestClassifyCell:
    """Test cases for classify_cell."""

    def test_is_directive_line(self):
        assert is_directive_line("%ls")
        assert is_directive_line("!ls")
        assert not is_directive_line("%")
        assert not is_directive_line(" %ls")
        assert not is_directive_line("x := 1 % 2")

    def test_mixed_cell(self):
        """Directives and shell lines are consumed, Go lines are kept."""
        cell = classify_cell([
            "%env FOO bar",
            "func f() {}",
            "!echo \\",
            "  hi",
            "%%",
            "f()",
        ])

        assert cell.kinds == [
            LineKind.DIRECTIVE, LineKind.BODY, LineKind.SHELL,
            LineKind.SHELL, LineKind.DIRECTIVE, LineKind.BODY,
        ]
        assert cell.consumed == {0, 2, 3, 4}
        assert cell.shell_lines == {2, 3}
        assert cell.body_lines == [1, 5]

        names = [d.name for d in cell.directives]
        assert names == ["env", "", "%"]
        assert cell.directives[0].args == ["FOO", "bar"]
        assert cell.directives[1].is_shell
        assert cell.directives[1].text == "echo    hi"
        assert cell.directives[1].first_line == 2

    def test_main_marker_args(self):
        cell = classify_cell(["%% --name=world -v"])
        directive = cell.directives[0]
        assert directive.name == "%"
        assert directive.args == ["--name=world", "-v"]

    def test_blank_directive_consumes_line(self):
        """A sigil followed only by spaces produces no directive."""
        cell = classify_cell(["%   ", "x := 1"])
        assert cell.directives == []
        assert cell.consumed == {0}

    def test_has_body(self):
        assert not classify_cell(["%ls", "", "   "]).has_body()
        assert classify_cell(["%ls", "var x = 1"]).has_body()

    def test_continued_line_is_not_rescanned(self):
        """A continuation line starting with a sigil belongs to the first directive."""
        cell = classify_cell(["%env A \\", "%b"])
        assert len(cell.directives) == 1
        assert cell.directives[0].args == ["A", "%b"]
