"""
Directive lexing and cell line classification.

Cells may mix Go code with two kinds of directive lines:

- `%<cmd> args...`: configure the kernel (see commands.py).
- `!<shell command>`: run a shell command, `!*` runs it in the Go workspace.

A line ending in a backslash continues the directive on the next line.
Directive lines are consumed here and never reach the Go program.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Iterable

CONFIG_SIGIL = "%"
SHELL_SIGIL = "!"
CONTINUATION = "\\"

_SPACES = (" ", "\t", "\n")
_ESCAPES = {"n": "\n", "t": "\t"}


def split_cmd(cmd: str) -> list[str]:
    """
    Split a directive into its space separated parts.

    Double quotes group text with spaces into one part, e.g.
    `--text "hello world"` gives ["--text", "hello world"]. Inside quotes a
    backslash escapes the next character (`\\n` and `\\t` are translated);
    outside quotes it is an ordinary character. Never raises.
    """
    parts: list[str] = []
    part: list[str] = []
    started = False
    in_quotes = False
    pos = 0
    while pos < len(cmd):
        char = cmd[pos]
        pos += 1

        if not in_quotes and char in _SPACES:
            if started:
                parts.append("".join(part))
            part = []
            started = False
            continue

        if char == '"':
            in_quotes = not in_quotes
            # An opening quote starts a part, so `""` is an empty argument.
            started = True
            continue

        if char == "\\" and in_quotes:
            if pos == len(cmd):
                break
            char = _ESCAPES.get(cmd[pos], cmd[pos])
            pos += 1

        part.append(char)
        started = True

    if started:
        parts.append("".join(part))
    return parts


def join_line(lines: list[str], from_line: int, used_lines: set[int]) -> str:
    """
    Join `lines[from_line]` with the following lines while it ends in a backslash.

    The trailing backslash is replaced by a space. Every line visited is
    added to `used_lines`.
    """
    cmd = ""
    for line_num in range(from_line, len(lines)):
        cmd += lines[line_num]
        used_lines.add(line_num)
        if not cmd.endswith(CONTINUATION):
            return cmd
        cmd = cmd[:-1] + " "
    return cmd


class LineKind(str, Enum):
    """How a cell line is used."""
    BODY = "body"
    DIRECTIVE = "directive"
    SHELL = "shell"


@dataclass
class Directive:
    """A `%` or `!` command, possibly spanning several cell lines."""
    sigil: str
    text: str
    lines: frozenset[int]

    @property
    def is_shell(self) -> bool:
        return self.sigil == SHELL_SIGIL

    @cached_property
    def parts(self) -> list[str]:
        return split_cmd(self.text)

    @property
    def name(self) -> str:
        """Command name of a `%` directive, "" for shell commands."""
        if self.is_shell or not self.parts:
            return ""
        return self.parts[0]

    @property
    def args(self) -> list[str]:
        return self.parts[1:]

    @property
    def first_line(self) -> int:
        return min(self.lines)


@dataclass
class ClassifiedCell:
    """Result of classify_cell()."""
    lines: list[str]
    kinds: list[LineKind]
    directives: list[Directive] = field(default_factory=list)

    @property
    def consumed(self) -> set[int]:
        """Indices of lines used by directives or shell commands."""
        return {i for i, kind in enumerate(self.kinds) if kind != LineKind.BODY}

    @property
    def shell_lines(self) -> set[int]:
        return {i for i, kind in enumerate(self.kinds) if kind == LineKind.SHELL}

    @property
    def body_lines(self) -> list[int]:
        return [i for i, kind in enumerate(self.kinds) if kind == LineKind.BODY]

    def has_body(self) -> bool:
        """True if any non-blank line is left for the Go program."""
        return any(self.lines[i].strip() for i in self.body_lines)


def is_directive_line(line: str) -> bool:
    return len(line) > 1 and line[0] in (CONFIG_SIGIL, SHELL_SIGIL)


def classify_cell(lines: Iterable[str]) -> ClassifiedCell:
    """
    Classify every line of a cell and collect its directives.

    Lines consumed by a multi-line directive are not scanned again. A sigil
    followed only by spaces consumes the line without producing a directive.
    """
    lines = list(lines)
    kinds = [LineKind.BODY] * len(lines)
    directives: list[Directive] = []
    used: set[int] = set()

    for line_num, line in enumerate(lines):
        if line_num in used or not is_directive_line(line):
            continue
        directive_lines: set[int] = set()
        cmd = join_line(lines, line_num, directive_lines)
        used |= directive_lines

        sigil = cmd[0]
        kind = LineKind.SHELL if sigil == SHELL_SIGIL else LineKind.DIRECTIVE
        for idx in directive_lines:
            kinds[idx] = kind

        text = cmd[1:].lstrip(" ")
        if not text.strip():
            continue
        directives.append(Directive(sigil=sigil, text=text, lines=frozenset(directive_lines)))

    return ClassifiedCell(lines=lines, kinds=kinds, directives=directives)
