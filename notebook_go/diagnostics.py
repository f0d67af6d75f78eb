"""
Diagnostic remapping: from main.go positions back to cell positions.

`go build` and Go panics point at lines of the generated main.go. Lines that
came from the current cell are rewritten as `cell[N]:L:C`, where N is the
execution count of the cell and L is the 1-based line in the cell. Lines with
no cell origin are rewritten as `<generated>:L:C` with the 1-based line of the
generated file, so they are never blamed on an unrelated cell line.

Columns are passed through as the compiler reports them (bytes for Go).
convert_columns() is a separate step for front-ends counting UTF-16 code
units or code points.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

from notebook_go.assembler import MappedLines
from notebook_go.declarations import DeclKey
from notebook_go.linemap import NO_CELL_LINE, CellLine, from_byte_column, has_origin

GENERATED = "<generated>"

_LOCATION = r"(?<![\w./-])(?P<path>(?:[^\s:\"'()]*/)?main\.go):(?P<line>\d+)(?::(?P<column>\d+))?"
_LOCATION_RE = re.compile(_LOCATION)
_DIAGNOSTIC_RE = re.compile(r"^\s*" + _LOCATION + r":\s*(?P<message>.*)$")
_UNUSED_IMPORT_RE = re.compile(r'"(?P<path>[^"]+)" imported (?:as \S+ )?and not used')


@dataclass(frozen=True)
class Diagnostic:
    """One compiler message, with both generated and cell positions."""
    file_line: int
    cell_line: CellLine
    column: Optional[int]
    message: str
    units: str = "byte"

    def location(self, cell_id: int) -> str:
        if has_origin(self.cell_line):
            location = f"cell[{cell_id}]:{self.cell_line + 1}"
        else:
            location = f"{GENERATED}:{self.file_line}"
        if self.column is not None:
            location += f":{self.column}"
        return location

    def to_dict(self) -> dict:
        return {
            "file_line": self.file_line,
            "cell_line": self.cell_line + 1 if has_origin(self.cell_line) else None,
            "column": self.column,
            "units": self.units,
            "message": self.message,
        }


def _cell_line_of(document: MappedLines, line_number: str) -> tuple[int, CellLine]:
    file_line = int(line_number)
    return file_line, document.cell_line(file_line - 1)


def remap_text(text: str, document: MappedLines, cell_id: int) -> str:
    """Rewrite every main.go:L[:C] reference in `text` in cell terms."""
    def _replace(match: re.Match) -> str:
        file_line, cell_line = _cell_line_of(document, match["line"])
        column = int(match["column"]) if match["column"] else None
        return Diagnostic(file_line, cell_line, column, "").location(cell_id)

    return _LOCATION_RE.sub(_replace, text)


def parse_diagnostics(text: str, document: MappedLines) -> list[Diagnostic]:
    """Extract `main.go:L:C: message` lines from compiler output."""
    diagnostics = []
    for line in text.splitlines():
        match = _DIAGNOSTIC_RE.match(line)
        if match is None:
            continue
        file_line, cell_line = _cell_line_of(document, match["line"])
        column = int(match["column"]) if match["column"] else None
        diagnostics.append(Diagnostic(file_line, cell_line, column, match["message"].strip()))
    return diagnostics


def convert_columns(diagnostics: list[Diagnostic], cell_lines: list[str], units: str) -> list[Diagnostic]:
    """
    Translate byte columns of cell diagnostics into `units`.

    Diagnostics without a column, or pointing at generated code, are
    returned unchanged.
    """
    converted = []
    for diag in diagnostics:
        if (diag.column is None or diag.units == units or not has_origin(diag.cell_line)
                or diag.cell_line >= len(cell_lines)):
            converted.append(diag)
            continue
        text = cell_lines[diag.cell_line]
        column = from_byte_column(text, diag.column - 1, units) + 1
        converted.append(replace(diag, column=column, units=units))
    return converted


def unused_imports(diagnostics: list[Diagnostic]) -> set[DeclKey]:
    """Memorized imports the compiler reports unused."""
    keys = set()
    for diag in diagnostics:
        if diag.cell_line is not NO_CELL_LINE:
            continue
        match = _UNUSED_IMPORT_RE.search(diag.message)
        if match:
            keys.add(DeclKey.import_path(match["path"]))
    return keys


def format_report(diagnostics: list[Diagnostic], cell_id: int, cell_lines: list[str]) -> list[str]:
    """Human readable lines: location, message and the offending cell line."""
    report = []
    for diag in diagnostics:
        report.append(f"{diag.location(cell_id)}: {diag.message}")
        if has_origin(diag.cell_line) and diag.cell_line < len(cell_lines):
            report.append(f"    {diag.cell_line + 1:>4} | {cell_lines[diag.cell_line]}")
    return report
