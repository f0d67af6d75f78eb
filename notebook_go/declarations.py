"""
DeclarationStore: Go declarations memorized across cell executions.

Each cell may define imports, constants, variables, types, functions and
methods. They are kept here so later cells can use them, and are rendered
again into every generated program. There is exactly one live declaration
per identity; defining it again replaces it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Union

from notebook_go.linemap import NO_CELL_LINE, CellLine

# Separator between receiver type and method name in method keys.
METHOD_SEPARATOR = "~"


class DeclKind(str, Enum):
    """Kind of a top level Go declaration."""
    IMPORT = "import"
    CONST = "const"
    VAR = "var"
    TYPE = "type"
    FUNC = "func"
    METHOD = "method"


@dataclass(frozen=True)
class DeclKey:
    """
    Identity of a declaration.

    Methods include their receiver type (without `*` or type parameters), so
    changing `func (k Kg) Gain` into `func (k *Kg) Gain` keeps the same key.
    Imports are keyed by path and never collide with identifiers.
    """
    name: str
    receiver: Optional[str] = None
    imported: bool = False

    def __str__(self) -> str:
        if self.receiver:
            return f"{self.receiver}{METHOD_SEPARATOR}{self.name}"
        return self.name

    @classmethod
    def method(cls, receiver: str, name: str) -> "DeclKey":
        return cls(name=name, receiver=receiver)

    @classmethod
    def import_path(cls, path: str) -> "DeclKey":
        return cls(name=path, imported=True)


@dataclass
class Declaration:
    """A declaration and the source lines it renders to."""
    key: DeclKey
    kind: DeclKind
    lines: list[str]
    cell_lines: list[CellLine] = field(default_factory=list)
    names: tuple[str, ...] = ()
    origin: int = 0

    def __post_init__(self):
        if not self.cell_lines:
            self.cell_lines = [NO_CELL_LINE] * len(self.lines)
        if len(self.cell_lines) != len(self.lines):
            raise ValueError(f"{self.key}: {len(self.lines)} lines but {len(self.cell_lines)} line origins")
        if not self.names:
            self.names = (self.key.name,)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def in_package_scope(self) -> bool:
        """True for declarations whose names live in the package block."""
        return self.kind not in (DeclKind.IMPORT, DeclKind.METHOD)


Identity = Union[DeclKey, str]


class DeclarationStore:
    """
    Memorized declarations, in insertion order.

    The store is owned by one kernel and is not thread-safe; cells are
    executed one at a time.
    """

    def __init__(self):
        self._decls: dict[DeclKey, Declaration] = {}

    def __len__(self) -> int:
        return len(self._decls)

    def __contains__(self, identity: Identity) -> bool:
        return self._resolve(identity) is not None

    def __iter__(self) -> Iterator[Declaration]:
        return iter(list(self._decls.values()))

    def _resolve(self, identity: Identity) -> Optional[DeclKey]:
        if isinstance(identity, DeclKey):
            return identity if identity in self._decls else None
        for key in self._decls:
            if str(key) == identity:
                return key
        # A name declared inside a group, e.g. `A` of `const ( A = iota; B )`.
        for key, decl in self._decls.items():
            if decl.in_package_scope and identity in decl.names:
                return key
        return None

    def upsert(self, decl: Declaration) -> None:
        """Insert or replace a declaration."""
        if decl.in_package_scope:
            overlapping = [
                key for key, other in self._decls.items()
                if key != decl.key and other.in_package_scope
                and set(other.names) & set(decl.names) - {"_"}
            ]
            for key in overlapping:
                del self._decls[key]
        self._decls[decl.key] = decl

    def upsert_all(self, decls) -> None:
        for decl in decls:
            self.upsert(decl)

    def remove(self, *identities: Identity) -> list[DeclKey]:
        """Remove declarations; unknown identities are ignored. Returns removed keys."""
        removed = []
        for identity in identities:
            key = self._resolve(identity)
            if key is not None:
                del self._decls[key]
                removed.append(key)
        return removed

    def get(self, identity: Identity) -> Optional[Declaration]:
        key = self._resolve(identity)
        return self._decls[key] if key is not None else None

    def keys(self) -> list[DeclKey]:
        """Keys in rendering order."""
        return list(self._decls)

    def imports(self) -> list[Declaration]:
        return [d for d in self._decls.values() if d.kind == DeclKind.IMPORT]

    def definitions(self) -> list[Declaration]:
        """Everything except imports, in rendering order."""
        return [d for d in self._decls.values() if d.kind != DeclKind.IMPORT]

    def by_kind(self) -> dict[DeclKind, list[Declaration]]:
        grouped: dict[DeclKind, list[Declaration]] = {}
        for decl in self._decls.values():
            grouped.setdefault(decl.kind, []).append(decl)
        return grouped

    def reset(self) -> None:
        """Forget every declaration."""
        self._decls.clear()

    def copy(self) -> "DeclarationStore":
        clone = DeclarationStore()
        clone._decls = dict(self._decls)
        return clone

    def snapshot(self) -> dict[DeclKey, Declaration]:
        return dict(self._decls)

    def restore(self, snapshot: dict[DeclKey, Declaration]) -> None:
        """Return to a state captured by snapshot()."""
        self._decls = dict(snapshot)
