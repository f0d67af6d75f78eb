"""
Tests for remapping compiler output to cell positions.
"""

from notebook_go.assembler import assemble
from notebook_go.declarations import DeclarationStore, DeclKey
from notebook_go.diagnostics import (
    GENERATED, convert_columns, format_report, parse_diagnostics, remap_text, unused_imports,
)
from notebook_go.linemap import NO_CELL_LINE

CELL = ['import "fmt"', "%%", 'fmt.Println("é", x)']


class TestRemap:
    """Test cases for diagnostics against a hello world program."""

    def setup_method(self):
        # Generated: 1 package, 2 blank, 3 flag, 4 fmt, 5 blank, 6 main, 7 Println, 8 }
        self.document = assemble(CELL, {1}, DeclarationStore(), origin=3)

    def test_cell_location(self):
        text = "# notebook_go_cell\n./main.go:7:20: undefined: x\n"
        assert remap_text(text, self.document, 3) == "# notebook_go_cell\ncell[3]:3:20: undefined: x\n"

    def test_generated_location(self):
        text = './main.go:3:8: "flag" imported and not used'
        assert remap_text(text, self.document, 3) == f'{GENERATED}:3:8: "flag" imported and not used'

    def test_panic_trace(self):
        text = "panic: boom\n\ngoroutine 1 [running]:\nmain.main()\n\t/tmp/work/main.go:7 +0x1d\nexit status 2\n"
        remapped = remap_text(text, self.document, 3)
        assert "\tcell[3]:3 +0x1d" in remapped
        assert "main.go" not in remapped

    def test_other_files_are_left_alone(self):
        text = "./domain.go:7:1: oops\n/usr/lib/go/src/fmt/print.go:12 +0x3"
        assert remap_text(text, self.document, 3) == text

    def test_line_past_end_has_no_origin(self):
        assert remap_text("main.go:99:1: x", self.document, 3) == f"{GENERATED}:99:1: x"

    def test_parse_diagnostics(self):
        output = "# notebook_go_cell\n./main.go:7:20: undefined: x\n./main.go:4:8: something\n"
        diags = parse_diagnostics(output, self.document)

        assert [(d.file_line, d.cell_line, d.column) for d in diags] == [(7, 2, 20), (4, NO_CELL_LINE, 8)]
        assert diags[0].message == "undefined: x"
        assert diags[0].to_dict()["cell_line"] == 3

    def test_convert_columns(self):
        """Byte column 20 is after `é`, which takes two bytes but one UTF-16 unit."""
        diags = parse_diagnostics("./main.go:7:20: undefined: x", self.document)
        converted = convert_columns(diags, CELL, "utf16")

        assert converted[0].column == 19
        assert converted[0].units == "utf16"
        assert diags[0].column == 20

    def test_convert_columns_skips_generated(self):
        diags = parse_diagnostics("./main.go:3:8: unused", self.document)
        assert convert_columns(diags, CELL, "utf16") == diags

    def test_unused_imports(self):
        output = (
            './main.go:3:8: "flag" imported and not used\n'
            './main.go:4:8: "fmt" imported and not used\n'
        )
        diags = parse_diagnostics(output, self.document)
        assert unused_imports(diags) == {DeclKey.import_path("flag"), DeclKey.import_path("fmt")}

    def test_unused_import_on_cell_line_is_ignored(self):
        """Only import lines rendered from the store are candidates."""
        diags = parse_diagnostics('./main.go:7:1: "os" imported and not used', self.document)
        assert unused_imports(diags) == set()

    def test_unused_import_with_alias(self):
        diags = parse_diagnostics('./main.go:3:8: "math/rand" imported as r and not used', self.document)
        assert unused_imports(diags) == {DeclKey.import_path("math/rand")}

    def test_format_report(self):
        diags = parse_diagnostics("./main.go:7:20: undefined: x\n./main.go:3:8: unused", self.document)
        report = format_report(diags, 3, CELL)

        assert report == [
            "cell[3]:3:20: undefined: x",
            '       3 | fmt.Println("é", x)',
            f"{GENERATED}:3:8: unused",
        ]

    def test_location_without_column(self):
        diags = parse_diagnostics("main.go:7: bad", self.document)
        assert diags[0].column is None
        assert diags[0].location(3) == "cell[3]:3"
        assert diags[0].cell_line != NO_CELL_LINE
