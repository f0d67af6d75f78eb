"""
Tests for output formatting helpers.
"""

from rich.markdown import Markdown
from rich.syntax import Syntax
from rich.text import Text

from notebook_go.notebook import Cell
from notebook_go.utils import format_go_source, format_rich_output, get_cell_status, truncate_text


class TestFormatRichOutput:
    """Test cases for format_rich_output."""

    def test_stderr_is_highlighted(self):
        text = format_rich_output({"type": "stream", "name": "stderr", "text": "warning\n"})
        assert isinstance(text, Text)
        assert text.plain == "warning"
        assert text.style == "yellow"

    def test_plain_display_data(self):
        text = format_rich_output({"type": "display_data", "data": {"text/plain": "x"}})
        assert text.plain == "x"

    def test_markdown(self):
        output = {"type": "display_data", "data": {"text/markdown": "# Help", "text/plain": "# Help"}}
        assert isinstance(format_rich_output(output), Markdown)

    def test_build_error_report_is_not_repeated(self):
        report = "cell[1]:3:13: undefined: x"
        text = format_rich_output({"type": "error", "ename": "BuildError", "evalue": report, "traceback": [report]})
        assert text.plain == f"BuildError: {report}"

    def test_traceback_lines(self):
        output = {
            "type": "error",
            "ename": "RuntimeError",
            "evalue": "exit status 2",
            "traceback": ["panic: boom", "\tcell[1]:3 +0x1d"],
        }
        assert format_rich_output(output).plain == "RuntimeError: exit status 2\npanic: boom\n\tcell[1]:3 +0x1d"


def test_format_go_source():
    syntax = format_go_source("func f() {}", line_numbers=False)
    assert isinstance(syntax, Syntax)
    assert syntax.code == "func f() {}"


def test_get_cell_status():
    assert get_cell_status(Cell()) == ("--", "dim")
    assert get_cell_status(Cell(execution_count=1)) == ("ok", "green")
    assert get_cell_status(Cell(outputs=[{"type": "error"}])) == ("err", "red")


def test_truncate_text():
    assert truncate_text("short") == "short"
    assert truncate_text("x" * 20, max_length=10) == "xxxxxxx..."
