"""
Source assembly: from a cell plus the memorized declarations to one main.go.

Assembly happens in two steps:

1. compose_cell() turns the cell into a Go file line by line. Directive lines
   become blank lines and the `%%` (or `%main`) marker opens a `func main()`
   that the epilogue closes, so the file always has exactly
   len(cell) + CELL_OVERHEAD lines and every kept cell line stays on its own
   line, unchanged.
2. render_program() writes the program that is actually built: imports, all
   declarations of the store, leftover statements of the cell and its main.

Both keep a line map with one entry per generated line.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from notebook_go.declarations import Declaration, DeclarationStore, DeclKey
from notebook_go.goparse import ParsedSource, parse_declarations
from notebook_go.linemap import NO_CELL_LINE, CellLine, Cursor, has_origin

PREAMBLE = ("package main", "")
ENTRY_POINT = "func main() { flag.Parse()"
EMPTY_MAIN = "func main() {}"
FLAG_IMPORT = 'import "flag"'

# Preamble lines plus the single epilogue line.
CELL_OVERHEAD = len(PREAMBLE) + 1


def is_entry_marker(line: str) -> bool:
    """`%%` and `%main` start the body of main(); both may carry program args."""
    return line == "%%" or line.startswith(("%% ", "%%\t")) or line == "%main" or line.startswith(("%main ", "%main\t"))


@dataclass
class MappedLines:
    """Generated lines with the cell line each one came from."""
    lines: list[str] = field(default_factory=list)
    cell_lines: list[CellLine] = field(default_factory=list)
    cursor: Optional[Cursor] = None

    def emit(self, line: str, cell_line: CellLine = NO_CELL_LINE) -> None:
        self.lines.append(line)
        self.cell_lines.append(cell_line)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def text(self) -> str:
        return "\n".join(self.lines) + "\n"

    def cell_line(self, file_line: int) -> CellLine:
        """Cell line of a 0-based generated line, NO_CELL_LINE if unknown."""
        if 0 <= file_line < len(self.cell_lines):
            return self.cell_lines[file_line]
        return NO_CELL_LINE

    def file_line(self, cell_line: int) -> Optional[int]:
        """First generated line coming from `cell_line`."""
        for index, origin in enumerate(self.cell_lines):
            if origin == cell_line and has_origin(origin):
                return index
        return None


@dataclass
class CellDocument(MappedLines):
    """A single cell rendered as a Go file."""
    has_entry_point: bool = False


@dataclass
class GeneratedDocument(MappedLines):
    """The complete program built for one execution."""
    runnable: bool = False
    imports: list[DeclKey] = field(default_factory=list)


def compose_cell(cell_lines: list[str], skip_lines: Iterable[int] = (),
                 cursor: Optional[Cursor] = None) -> CellDocument:
    """
    Render a cell as a Go file, keeping one generated line per cell line.

    Args:
        cell_lines: lines of the cell
        skip_lines: indices of lines consumed by directives or shell commands
        cursor: optional cursor in cell coordinates

    Returns:
        CellDocument; its cursor is the cell cursor in file coordinates. A
        cursor on a skipped line lands on that line's blank placeholder.
    """
    skip_lines = set(skip_lines)
    doc = CellDocument()
    for line in PREAMBLE:
        doc.emit(line)

    for index, line in enumerate(cell_lines):
        column = 0
        if not doc.has_entry_point and is_entry_marker(line):
            doc.emit(ENTRY_POINT)
            doc.has_entry_point = True
        elif index in skip_lines:
            doc.emit("")
        else:
            doc.emit(line, index)
            column = cursor.column if cursor is not None else 0
        if cursor is not None and cursor.line == index:
            doc.cursor = Cursor(len(doc) - 1, column)

    doc.emit("}" if doc.has_entry_point else "")
    return doc


@dataclass
class ParsedCell:
    """A composed cell and the declarations found in it."""
    document: CellDocument
    source: ParsedSource
    origin: int

    @property
    def declarations(self) -> list[Declaration]:
        return self.source.declarations

    @property
    def main(self) -> Optional[Declaration]:
        return self.source.main

    @property
    def stray(self) -> list[tuple[str, CellLine]]:
        return self.source.stray


def parse_cell(document: CellDocument, origin: int) -> ParsedCell:
    """Extract the declarations of a composed cell, stamped with `origin`."""
    source = parse_declarations(document.lines, document.cell_lines, origin)
    return ParsedCell(document=document, source=source, origin=origin)


def _emit_declaration(doc: GeneratedDocument, decl: Declaration, origin: int) -> None:
    # Only declarations from the cell being executed point back to it.
    current = decl.origin == origin
    for line, cell_line in zip(decl.lines, decl.cell_lines):
        doc.emit(line, cell_line if current else NO_CELL_LINE)


def render_program(store: DeclarationStore, parsed: ParsedCell, origin: int,
                   exclude_imports: Iterable[DeclKey] = ()) -> GeneratedDocument:
    """
    Render the program for the current cell.

    Args:
        store: memorized declarations, already updated with the cell's own
        parsed: the current cell, from parse_cell()
        origin: execution count of the current cell
        exclude_imports: import keys to leave out (e.g. reported unused)

    Returns:
        GeneratedDocument with its line map; `runnable` is False when the
        cell has no main(), in which case an empty one is generated.
    """
    exclude_imports = set(exclude_imports)
    doc = GeneratedDocument()
    for line in PREAMBLE:
        doc.emit(line)

    imports = [decl for decl in store.imports() if decl.key not in exclude_imports]
    doc.imports = [decl.key for decl in imports]
    flag_key = DeclKey.import_path("flag")
    needs_flag = parsed.main is not None and parsed.document.has_entry_point
    if needs_flag and flag_key not in doc.imports:
        doc.emit(FLAG_IMPORT)
        doc.imports.append(flag_key)
    # Imports are merged from every cell and never map back to one.
    for decl in imports:
        for line in decl.lines:
            doc.emit(line)
    if doc.imports:
        doc.emit("")

    for decl in store.definitions():
        _emit_declaration(doc, decl, origin)
        doc.emit("")

    for line, cell_line in parsed.stray:
        doc.emit(line, cell_line)
    if parsed.stray:
        doc.emit("")

    if parsed.main is not None:
        _emit_declaration(doc, parsed.main, origin)
        doc.runnable = True
    else:
        doc.emit(EMPTY_MAIN)

    cell_cursor = parsed.document.cursor
    if cell_cursor is not None:
        cell_line = parsed.document.cell_line(cell_cursor.line)
        if has_origin(cell_line):
            file_line = doc.file_line(cell_line)
            if file_line is not None:
                doc.cursor = Cursor(file_line, cell_cursor.column)
    return doc


def assemble(cell_lines: list[str], consumed: Iterable[int], store: DeclarationStore, origin: int,
             cursor: Optional[Cursor] = None) -> GeneratedDocument:
    """
    Compose the cell, memorize its declarations in `store` and render the program.

    The store is updated in place; callers wanting all-or-nothing behavior
    take a snapshot first (see GoKernel).
    """
    parsed = parse_cell(compose_cell(cell_lines, consumed, cursor), origin)
    store.upsert_all(parsed.declarations)
    return render_program(store, parsed, origin)
