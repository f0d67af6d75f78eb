"""
Tests for DeclarationStore.
"""

import pytest

from notebook_go.declarations import DeclarationStore, Declaration, DeclKey, DeclKind
from notebook_go.linemap import NO_CELL_LINE


def _decl(name, kind=DeclKind.FUNC, text=None, names=(), receiver=None, origin=0):
    key = DeclKey.method(receiver, name) if receiver else DeclKey(name)
    if kind == DeclKind.IMPORT:
        key = DeclKey.import_path(name)
    return Declaration(key=key, kind=kind, lines=[text or f"func {name}() {{}}"], names=names, origin=origin)


class TestDeclKey:
    """Test cases for DeclKey."""

    def test_display(self):
        assert str(DeclKey("f")) == "f"
        assert str(DeclKey.method("Point", "Move")) == "Point~Move"
        assert str(DeclKey.import_path("net/http")) == "net/http"

    def test_imports_never_collide_with_identifiers(self):
        assert DeclKey.import_path("fmt") != DeclKey("fmt")


class TestDeclaration:
    """Test cases for Declaration."""

    def test_defaults(self):
        decl = Declaration(key=DeclKey("x"), kind=DeclKind.VAR, lines=["var x = 1", ""])
        assert decl.cell_lines == [NO_CELL_LINE, NO_CELL_LINE]
        assert decl.names == ("x",)
        assert decl.text == "var x = 1\n"

    def test_mismatched_line_map(self):
        with pytest.raises(ValueError):
            Declaration(key=DeclKey("x"), kind=DeclKind.VAR, lines=["var x = 1"], cell_lines=[0, 1])

    def test_package_scope(self):
        assert _decl("f").in_package_scope
        assert not _decl("fmt", DeclKind.IMPORT).in_package_scope
        assert not _decl("M", DeclKind.METHOD, receiver="T").in_package_scope


class TestDeclarationStore:
    """Test cases for DeclarationStore."""

    def setup_method(self):
        self.store = DeclarationStore()

    def test_upsert_replaces_same_key(self):
        """Redefining a declaration replaces it in place."""
        self.store.upsert(_decl("f", text="func f() int { return 1 }"))
        self.store.upsert(_decl("g"))
        self.store.upsert(_decl("f", text="func f() int { return 2 }"))

        assert len(self.store) == 2
        assert self.store.get("f").lines == ["func f() int { return 2 }"]
        assert [str(k) for k in self.store.keys()] == ["f", "g"]

    def test_upsert_evicts_overlapping_names(self):
        """`var a = 1` replaces an earlier `var a, b = 1, 2`."""
        self.store.upsert(_decl("a,b", DeclKind.VAR, "var a, b = 1, 2", names=("a", "b")))
        self.store.upsert(_decl("a", DeclKind.VAR, "var a = 3"))

        assert "a,b" not in self.store
        assert self.store.get("a").text == "var a = 3"

    def test_type_replaces_function_of_same_name(self):
        self.store.upsert(_decl("Point"))
        self.store.upsert(_decl("Point", DeclKind.TYPE, "type Point struct{}"))

        assert len(self.store) == 1
        assert self.store.get("Point").kind == DeclKind.TYPE

    def test_blank_identifier_never_collides(self):
        self.store.upsert(_decl("_,a", DeclKind.VAR, "var _, a = f()", names=("_", "a")))
        self.store.upsert(_decl("_", DeclKind.VAR, "var _ = g()", names=("_",)))
        assert len(self.store) == 2

    def test_methods_and_imports_do_not_evict(self):
        self.store.upsert(_decl("String"))
        self.store.upsert(_decl("String", DeclKind.METHOD, "func (p Point) String() string", receiver="Point"))
        self.store.upsert(_decl("strings", DeclKind.IMPORT, 'import "strings"'))
        self.store.upsert(_decl("strings"))

        assert len(self.store) == 3

    def test_remove(self):
        self.store.upsert(_decl("f"))
        self.store.upsert(_decl("Move", DeclKind.METHOD, receiver="Point"))
        self.store.upsert(_decl("fmt", DeclKind.IMPORT, 'import "fmt"'))

        removed = self.store.remove("Point~Move", "fmt", "missing")

        assert removed == [DeclKey.method("Point", "Move"), DeclKey.import_path("fmt")]
        assert [str(k) for k in self.store.keys()] == ["f"]

    def test_remove_by_name_in_group(self):
        """A name declared inside a group identifies the whole group."""
        group = _decl("A,B", DeclKind.CONST, "const (\n\tA = iota\n\tB\n)", names=("A", "B"))
        self.store.upsert(group)
        self.store.upsert(_decl("Move", DeclKind.METHOD, receiver="B", names=("Move",)))

        assert self.store.get("B") is group
        assert self.store.remove("A") == [DeclKey("A,B")]
        assert "Move" not in self.store
        assert [str(k) for k in self.store.keys()] == ["B~Move"]

    def test_imports_and_definitions(self):
        self.store.upsert(_decl("f"))
        self.store.upsert(_decl("os", DeclKind.IMPORT, 'import "os"'))
        self.store.upsert(_decl("x", DeclKind.VAR, "var x int"))

        assert [str(d.key) for d in self.store.imports()] == ["os"]
        assert [str(d.key) for d in self.store.definitions()] == ["f", "x"]
        assert set(self.store.by_kind()) == {DeclKind.FUNC, DeclKind.IMPORT, DeclKind.VAR}

    def test_snapshot_restore(self):
        """restore() brings back exactly the snapshotted declarations."""
        self.store.upsert(_decl("f"))
        snapshot = self.store.snapshot()

        self.store.upsert(_decl("g"))
        self.store.remove("f")
        self.store.restore(snapshot)

        assert [str(k) for k in self.store.keys()] == ["f"]

    def test_copy_is_independent(self):
        self.store.upsert(_decl("f"))
        clone = self.store.copy()
        clone.upsert(_decl("g"))
        clone.reset()

        assert [str(k) for k in self.store.keys()] == ["f"]
        assert len(clone) == 0
