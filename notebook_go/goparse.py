"""
Go top level declaration scanner.

This is not a Go parser: it tokenizes just enough (comments, strings, runes,
brackets) to split a source file into top level statements using Go's
newline semicolon rule, and recognizes import, const, var, type and func
declarations. Anything it does not recognize is handed back as stray lines,
so the Go compiler gets to report it.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from notebook_go.declarations import Declaration, DeclKey, DeclKind
from notebook_go.linemap import NO_CELL_LINE, CellLine

_TOKEN_RE = re.compile(r"""
    (?P<newline>\n)
  | (?P<space>[ \t\r\f\v]+)
  | (?P<line_comment>//[^\n]*)
  | (?P<block_comment>/\*.*?(?:\*/|\Z))
  | (?P<raw_string>`[^`]*`?)
  | (?P<string>"(?:\\.|[^"\\\n])*"?)
  | (?P<rune>'(?:\\.|[^'\\\n])*'?)
  | (?P<number>\.?\d(?:[eEpP][+-]|[\w.])*)
  | (?P<ident>[^\W\d]\w*)
  | (?P<op>\+\+|--|\S)
""", re.VERBOSE | re.DOTALL)

KEYWORDS = frozenset({
    "break", "case", "chan", "const", "continue", "default", "defer", "else",
    "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
    "map", "package", "range", "return", "select", "struct", "switch", "type",
    "var",
})

# Keywords after which a newline still terminates the statement.
_TERMINATING_KEYWORDS = frozenset({"break", "continue", "fallthrough", "return"})
_LITERALS = frozenset({"number", "string", "raw_string", "rune"})
_OPENING = ("(", "[", "{")
_CLOSING = (")", "]", "}")

# Groups that may be split into one declaration per spec.
_SPLITTABLE = {"import": DeclKind.IMPORT, "var": DeclKind.VAR, "type": DeclKind.TYPE}
_VALUE_KINDS = {"const": DeclKind.CONST, "var": DeclKind.VAR, "type": DeclKind.TYPE}


@dataclass
class Token:
    kind: str
    text: str
    line: int

    @property
    def end_line(self) -> int:
        return self.line + self.text.count("\n")

    @property
    def is_comment(self) -> bool:
        return self.kind in ("line_comment", "block_comment")


def tokenize(source: str) -> list[Token]:
    """Split Go source into tokens, dropping plain spaces."""
    tokens = []
    line = 0
    for match in _TOKEN_RE.finditer(source):
        kind = match.lastgroup
        text = match.group()
        if kind != "space":
            tokens.append(Token(kind, text, line))
        line += text.count("\n")
    return tokens


def ends_statement(token: Token) -> bool:
    """Go's rule: a newline after this token inserts a semicolon."""
    if token.kind == "ident":
        return token.text not in KEYWORDS or token.text in _TERMINATING_KEYWORDS
    if token.kind in _LITERALS:
        return True
    return token.kind == "op" and token.text in ("++", "--") + _CLOSING


def _depth_change(token: Token) -> int:
    if token.kind != "op":
        return 0
    if token.text in _OPENING:
        return 1
    if token.text in _CLOSING:
        return -1
    return 0


@dataclass
class Statement:
    """A top level statement: its significant tokens and the lines it spans."""
    tokens: list[Token]
    doc_start: Optional[int] = None

    @property
    def first_line(self) -> int:
        return self.doc_start if self.doc_start is not None else self.tokens[0].line

    @property
    def last_line(self) -> int:
        return self.tokens[-1].end_line

    @property
    def keyword(self) -> str:
        return self.tokens[0].text


def split_statements(tokens: list[Token]) -> tuple[list[Statement], set[int]]:
    """
    Group tokens into top level statements.

    Returns the statements and the set of lines holding only comments.
    """
    statements: list[Statement] = []
    current: list[Token] = []
    comment_lines: set[int] = set()
    code_lines: set[int] = set()
    depth = 0

    def flush():
        nonlocal current
        if current:
            statements.append(Statement(current))
        current = []

    for token in tokens:
        if token.is_comment:
            comment_lines.update(range(token.line, token.end_line + 1))
            if "\n" not in token.text:
                continue
        if token.kind == "newline" or token.is_comment:
            if current and depth <= 0 and ends_statement(current[-1]):
                flush()
            continue

        code_lines.update(range(token.line, token.end_line + 1))
        if token.kind == "op" and token.text == ";" and depth <= 0:
            flush()
            continue
        depth += _depth_change(token)
        current.append(token)
    flush()

    comment_only = comment_lines - code_lines
    previous_end = -1
    for statement in statements:
        start = statement.tokens[0].line
        line = start - 1
        while line > previous_end and line in comment_only:
            line -= 1
        if line + 1 < start:
            statement.doc_start = line + 1
        previous_end = statement.last_line
    return statements, comment_only


def _split_specs(tokens: list[Token]) -> list[list[Token]]:
    """Split the tokens between a group's parentheses into specs."""
    specs: list[list[Token]] = []
    current: list[Token] = []
    depth = 0
    for token in tokens:
        if current and depth <= 0 and token.line > current[-1].end_line and ends_statement(current[-1]):
            specs.append(current)
            current = []
        if token.kind == "op" and token.text == ";" and depth <= 0:
            if current:
                specs.append(current)
            current = []
            continue
        depth += _depth_change(token)
        current.append(token)
    if current:
        specs.append(current)
    return specs


def _spec_names(tokens: list[Token]) -> list[str]:
    """Identifiers declared by a const/var spec: `a, b int = 1, 2` gives [a, b]."""
    names = []
    expect_name = True
    for token in tokens:
        if expect_name and token.kind == "ident":
            names.append(token.text)
            expect_name = False
        elif not expect_name and token.text == ",":
            expect_name = True
        else:
            break
    return names


def _import_path(tokens: list[Token]) -> Optional[str]:
    for token in tokens:
        if token.kind in ("string", "raw_string"):
            return token.text.strip('"`')
    return None


def _receiver_type(tokens: list[Token]) -> Optional[str]:
    """Type name of a method receiver, without `*` and type parameters."""
    idents = []
    depth = 0
    for token in tokens:
        if token.kind == "op" and token.text == "[":
            depth += 1
        elif token.kind == "op" and token.text == "]":
            depth -= 1
        elif depth == 0 and token.kind == "ident":
            idents.append(token.text)
    return idents[-1] if idents else None


def _matching_close(tokens: list[Token], open_index: int) -> Optional[int]:
    depth = 0
    for index in range(open_index, len(tokens)):
        depth += _depth_change(tokens[index])
        if depth == 0:
            return index
    return None


@dataclass
class ParsedSource:
    """Declarations found in a Go source, in source order."""
    declarations: list[Declaration] = field(default_factory=list)
    main: Optional[Declaration] = None
    stray: list[tuple[str, CellLine]] = field(default_factory=list)


class _Scanner:
    """Turns statements of one source into declarations."""

    def __init__(self, lines: list[str], cell_lines: list[CellLine], origin: int, comment_only: set[int]):
        self.lines = lines
        self.cell_lines = cell_lines
        self.origin = origin
        self.comment_only = comment_only

    def _make(self, key: DeclKey, kind: DeclKind, first: int, last: int,
              names=(), header: Optional[str] = None) -> Declaration:
        lines = self.lines[first:last + 1]
        cell_lines = self.cell_lines[first:last + 1]
        if header is not None:
            lines = [f"{header} ("] + lines + [")"]
            cell_lines = [NO_CELL_LINE] + cell_lines + [NO_CELL_LINE]
        return Declaration(key=key, kind=kind, lines=list(lines), cell_lines=list(cell_lines),
                           names=tuple(names), origin=self.origin)

    def _synthetic(self, key: DeclKey, kind: DeclKind, text: str) -> Declaration:
        return Declaration(key=key, kind=kind, lines=[text], names=(key.name,), origin=self.origin)

    def _value_key(self, keyword: str, specs: list[list[Token]]) -> tuple[DeclKey, list[str]]:
        names = []
        for spec in specs:
            if keyword != "type":
                names.extend(_spec_names(spec))
            elif spec[0].kind == "ident":
                names.append(spec[0].text)
        return DeclKey(",".join(names)), names

    def scan(self, statement: Statement, result: ParsedSource) -> None:
        keyword = statement.keyword
        if keyword == "package":
            return
        if keyword == "func":
            self._scan_func(statement, result)
        elif keyword in ("import", "const", "var", "type"):
            self._scan_group(statement, result)
        else:
            result.stray.extend(self._lines(statement.first_line, statement.last_line))

    def _lines(self, first: int, last: int) -> list[tuple[str, CellLine]]:
        return list(zip(self.lines[first:last + 1], self.cell_lines[first:last + 1]))

    def _scan_func(self, statement: Statement, result: ParsedSource) -> None:
        tokens = statement.tokens
        first, last = statement.first_line, statement.last_line
        if len(tokens) > 1 and tokens[1].text == "(":
            close = _matching_close(tokens, 1)
            receiver = _receiver_type(tokens[2:close]) if close else None
            if close is None or receiver is None or close + 1 >= len(tokens) or tokens[close + 1].kind != "ident":
                result.stray.extend(self._lines(first, last))
                return
            name = tokens[close + 1].text
            result.declarations.append(self._make(DeclKey.method(receiver, name), DeclKind.METHOD, first, last, (name,)))
            return
        if len(tokens) < 2 or tokens[1].kind != "ident":
            result.stray.extend(self._lines(first, last))
            return
        name = tokens[1].text
        decl = self._make(DeclKey(name), DeclKind.FUNC, first, last, (name,))
        if name == "main":
            result.main = decl
        else:
            result.declarations.append(decl)

    def _scan_group(self, statement: Statement, result: ParsedSource) -> None:
        keyword = statement.keyword
        tokens = statement.tokens
        first, last = statement.first_line, statement.last_line

        grouped = len(tokens) > 1 and tokens[1].text == "("
        if grouped:
            close = _matching_close(tokens, 1)
            body = tokens[2:close] if close is not None else tokens[2:]
            specs = _split_specs(body)
            if not specs:
                return
        else:
            specs = [tokens[1:]]
            if not specs[0]:
                result.stray.extend(self._lines(first, last))
                return

        if keyword == "import":
            self._scan_imports(statement, specs, grouped, result)
            return

        kind = _VALUE_KINDS[keyword]
        if grouped and keyword in _SPLITTABLE and self._line_aligned(statement, specs):
            for spec_first, spec_last, spec in self._spec_ranges(statement, specs):
                key, names = self._value_key(keyword, [spec])
                if names:
                    result.declarations.append(self._make(key, kind, spec_first, spec_last, names, header=keyword))
            return

        key, names = self._value_key(keyword, specs)
        if not names:
            result.stray.extend(self._lines(first, last))
            return
        result.declarations.append(self._make(key, kind, first, last, names))

    def _scan_imports(self, statement: Statement, specs: list[list[Token]], grouped: bool,
                      result: ParsedSource) -> None:
        if not grouped:
            path = _import_path(specs[0])
            if path is None:
                result.stray.extend(self._lines(statement.first_line, statement.last_line))
                return
            key = DeclKey.import_path(path)
            result.declarations.append(
                self._make(key, DeclKind.IMPORT, statement.first_line, statement.last_line))
            return

        if self._line_aligned(statement, specs):
            for spec_first, spec_last, spec in self._spec_ranges(statement, specs):
                path = _import_path(spec)
                if path is not None:
                    key = DeclKey.import_path(path)
                    result.declarations.append(
                        self._make(key, DeclKind.IMPORT, spec_first, spec_last, header="import"))
            return

        # Specs share lines with each other or with the parentheses:
        # rebuild one `import` line per spec.
        for spec in specs:
            path = _import_path(spec)
            if path is not None:
                text = "import " + " ".join(token.text for token in spec)
                result.declarations.append(self._synthetic(DeclKey.import_path(path), DeclKind.IMPORT, text))

    def _line_aligned(self, statement: Statement, specs: list[list[Token]]) -> bool:
        """True if every spec sits on lines of its own, apart from the parentheses."""
        open_line = statement.tokens[1].line
        close_line = statement.tokens[-1].line
        previous = open_line
        for spec in specs:
            if spec[0].line <= previous:
                return False
            previous = spec[-1].end_line
        return previous < close_line

    def _spec_ranges(self, statement: Statement, specs: list[list[Token]]):
        """Line range of each spec, including comment lines right above it."""
        previous = statement.tokens[1].line
        for spec in specs:
            first = spec[0].line
            while first - 1 > previous and first - 1 in self.comment_only:
                first -= 1
            yield first, spec[-1].end_line, spec
            previous = spec[-1].end_line


def parse_declarations(lines: list[str], cell_lines: Optional[list[CellLine]] = None,
                       origin: int = 0) -> ParsedSource:
    """
    Find the top level declarations in Go source lines.

    Args:
        lines: Go source, one entry per line
        cell_lines: cell line each source line came from (NO_CELL_LINE if none)
        origin: execution count stamped on the declarations found

    Returns:
        ParsedSource with declarations, the `main` function and stray lines
    """
    if cell_lines is None:
        cell_lines = [NO_CELL_LINE] * len(lines)
    statements, comment_only = split_statements(tokenize("\n".join(lines)))
    scanner = _Scanner(lines, cell_lines, origin, comment_only)
    result = ParsedSource()
    for statement in statements:
        scanner.scan(statement, result)
    return result
