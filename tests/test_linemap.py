"""
Tests for column unit conversion.
"""

import pytest

from notebook_go.linemap import NO_CELL_LINE, from_byte_column, has_origin, to_byte_column


def test_has_origin():
    assert has_origin(0)
    assert not has_origin(NO_CELL_LINE)


@pytest.mark.parametrize("units", ["byte", "codepoint", "utf16"])
def test_ascii_columns_are_unchanged(units):
    assert to_byte_column("x := 42", 5, units) == 5
    assert from_byte_column("x := 42", 5, units) == 5


def test_accented_characters():
    """`é` is one code point, one UTF-16 unit and two bytes."""
    text = 's := "é!"'
    assert to_byte_column(text, 7, "codepoint") == 8
    assert to_byte_column(text, 7, "utf16") == 8
    assert from_byte_column(text, 8, "codepoint") == 7


def test_astral_characters():
    """An emoji is one code point but two UTF-16 units and four bytes."""
    text = "😀x"
    assert to_byte_column(text, 2, "utf16") == 4
    assert to_byte_column(text, 1, "codepoint") == 4
    assert from_byte_column(text, 4, "utf16") == 2
    assert from_byte_column(text, 4, "codepoint") == 1


def test_column_inside_character_rounds_down():
    assert from_byte_column("é", 1, "codepoint") == 0


def test_columns_past_end_of_line():
    assert to_byte_column("é", 3, "utf16") == 4
    assert from_byte_column("é", 4, "utf16") == 3


def test_unknown_units():
    with pytest.raises(ValueError):
        to_byte_column("x", 0, "furlongs")
    with pytest.raises(ValueError):
        from_byte_column("x", 0, "furlongs")
