"""
Line and column bookkeeping shared by the assembler and the diagnostic remapper.

Generated documents carry a line map: for every generated line, the index of
the cell line it came from, or NO_CELL_LINE when the line has no origin in the
current cell (boilerplate, blank separators, declarations from older cells).

Go reports columns in bytes, while notebook front-ends count UTF-16 code
units or code points. The column helpers here are the only place where those
units are converted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class _NoCellLine(Enum):
    NO_CELL_LINE = "no-cell-line"

    def __repr__(self) -> str:
        return "NO_CELL_LINE"


NO_CELL_LINE = _NoCellLine.NO_CELL_LINE

CellLine = Union[int, _NoCellLine]


def has_origin(cell_line: CellLine) -> bool:
    """True if a line map entry points back to a cell line."""
    return cell_line is not NO_CELL_LINE


@dataclass(frozen=True)
class Cursor:
    """A 0-based (line, column) position."""
    line: int
    column: int = 0


# Column units ----------------------------------------------------------------

def _utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def to_byte_column(text: str, column: int, units: str) -> int:
    """Convert a 0-based column in `units` on line `text` to a UTF-8 byte column."""
    if units == "byte":
        return column
    if units == "codepoint":
        return len(text[:column].encode("utf-8"))
    if units != "utf16":
        raise ValueError(f"Unknown column units: {units}")
    consumed = 0
    for index, char in enumerate(text):
        if consumed >= column:
            return len(text[:index].encode("utf-8"))
        consumed += _utf16_len(char)
    # Past the end of the line: keep the overflow.
    return len(text.encode("utf-8")) + max(0, column - consumed)


def from_byte_column(text: str, column: int, units: str) -> int:
    """Convert a 0-based UTF-8 byte column on line `text` to `units`."""
    if units == "byte":
        return column
    if units not in ("codepoint", "utf16"):
        raise ValueError(f"Unknown column units: {units}")
    encoded = text.encode("utf-8")
    overflow = max(0, column - len(encoded))
    # A column inside a multi-byte character rounds down to its start.
    prefix = encoded[:column].decode("utf-8", errors="ignore")
    if units == "codepoint":
        return len(prefix) + overflow
    return _utf16_len(prefix) + overflow
