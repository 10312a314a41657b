"""
Unit tests for Selection index arithmetic.
"""
import pytest

from pixel_selection import Selection


def test_decomposition():
    selection = Selection([6], columns=4)
    assert selection.columns().tolist() == [2]
    assert selection.rows().tolist() == [1]


def test_shift():
    selection = Selection([6], columns=4)
    selection.shift(1, 1)
    assert selection.indices == [11], f"Expected [11], got {selection.indices}"


def test_axis_shifts():
    selection = Selection([5, 6], columns=4)
    selection.shift_columns(-1)
    assert selection.indices == [4, 5]
    selection.shift_rows(2)
    assert selection.indices == [12, 13]


def test_shift_has_no_bounds_checks():
    selection = Selection([0], columns=4)
    selection.shift(-1, 0)
    assert selection.indices == [-1]


def test_shift_and_crop():
    """Pixels (1, 1) and (2, 2) of a width 6 grid moved into the grid cropped by one pixel."""
    selection = Selection([7, 14], columns=6)
    selection.shift_and_crop(-1, -1)
    # (1, 1) -> (0, 0); (2, 2) -> (1, 1) on width 4
    assert selection.indices == [0, 5]
    assert selection.width == 4


def test_shift_and_crop_too_narrow():
    selection = Selection([0], columns=2)
    with pytest.raises(ValueError):
        selection.shift_and_crop(1, 0)


def test_non_integer_delta():
    selection = Selection([1], columns=4)
    with pytest.raises(TypeError):
        selection.shift(0.5, 0)
    with pytest.raises(TypeError):
        selection.shift_and_crop(1, 1.0)


def test_duplicates_and_add_indices():
    selection = Selection([3, 3], columns=4)
    selection.add_indices([3, 8])
    assert len(selection) == 4
    assert selection.length() == 4
    assert list(selection) == [3, 3, 3, 8]
    assert selection == Selection([3, 3, 3, 8], columns=4)
