"""
Index-set representation of the true pixels of a mask.
"""
from typing import Iterable, Iterator, List

import numpy as np


def _check_delta(delta) -> int:
    if isinstance(delta, bool) or not isinstance(delta, (int, np.integer)):
        raise TypeError(f"Shift delta must be an integer, got {type(delta).__name__}")
    return int(delta)


class Selection:
    """
    Ordered list of flattened, row-major pixel indices over a grid of given width.

    Indices are not required to be unique.

    Args:
        indices (Iterable[int]): Flattened indices (col + row * columns).
        columns (int): Width of the grid the indices refer to.
    """

    def __init__(self, indices: Iterable[int] = (), columns: int = 1) -> None:
        if int(columns) <= 0:
            raise ValueError(f"Grid width must be positive, got {columns}")
        self.indices: List[int] = [int(i) for i in indices]
        self.width = int(columns)

    def add_indices(self, indices: Iterable[int]) -> None:
        self.indices.extend(int(i) for i in indices)

    def columns(self) -> np.ndarray:
        return np.asarray(self.indices, dtype=int) % self.width

    def rows(self) -> np.ndarray:
        return np.asarray(self.indices, dtype=int) // self.width

    def length(self) -> int:
        return len(self.indices)

    def to_array(self) -> np.ndarray:
        return np.asarray(self.indices, dtype=int)

    def shift(self, delta_col: int, delta_row: int) -> None:
        """Translate every index by whole columns and rows. No bounds checks are made."""
        delta_col = _check_delta(delta_col)
        delta_row = _check_delta(delta_row)
        self.indices = (self.to_array() + delta_col + delta_row * self.width).tolist()

    def shift_columns(self, delta: int) -> None:
        self.shift(delta, 0)

    def shift_rows(self, delta: int) -> None:
        self.shift(0, delta)

    def shift_and_crop(self, delta_col: int, delta_row: int) -> None:
        """
        Shift the indices and re-flatten them against a grid narrowed by
        2 * |delta_col| columns, as when a border of that width is cropped away.

        The selection's width becomes the narrowed width.
        """
        delta_col = _check_delta(delta_col)
        delta_row = _check_delta(delta_row)
        new_width = self.width - 2 * abs(delta_col)
        if new_width <= 0:
            raise ValueError(f"Cropping {abs(delta_col)} columns from each side of width {self.width}")
        new_cols = self.columns() - abs(delta_col)
        new_rows = self.rows() - abs(delta_row)
        self.indices = (new_cols + new_rows * new_width).tolist()
        self.width = new_width

    def __len__(self) -> int:
        return len(self.indices)

    def __iter__(self) -> Iterator[int]:
        return iter(self.indices)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Selection):
            return NotImplemented
        return self.indices == other.indices

    __hash__ = None

    def __repr__(self) -> str:
        return f"Selection(length={len(self.indices)}, width={self.width})"
