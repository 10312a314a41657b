"""
Rasterization of closed contours onto a pixel grid.

Grids are 2D numpy arrays indexed as image[row, column]. A contour is drawn
with an integer line algorithm and its interior found with a scanline flood
fill, after which the fill is checked for having escaped into the exterior.
"""
import logging
from collections import deque
from typing import Optional, Sequence, Tuple

import numpy as np
from skimage import draw

logger = logging.getLogger(__name__)

EMPTY_VALUE = 0
LINE_VALUE = 1
FILL_VALUE = 2

# (column delta, row delta)
DIRECTIONS = {
    'north': (0, -1),
    'south': (0, 1),
    'east': (1, 0),
    'west': (-1, 0),
}


def draw_line(image: np.ndarray, col0: int, row0: int, col1: int, row1: int, value: int) -> int:
    """
    Draw a straight line between two pixels with Bresenham's algorithm.

    Points that fall outside the grid are not written.

    Args:
        image (np.ndarray): Grid of shape (rows, columns), modified in place.
        col0, row0 (int): Start pixel.
        col1, row1 (int): End pixel.
        value (int): Value written to every line pixel.

    Returns:
        int: Number of line points that were clipped by the grid bounds.
    """
    n_rows, n_cols = image.shape
    rr, cc = draw.line(int(row0), int(col0), int(row1), int(col1))
    inside = (rr >= 0) & (rr < n_rows) & (cc >= 0) & (cc < n_cols)
    image[rr[inside], cc[inside]] = value
    return int(np.count_nonzero(~inside))


def draw_lines(image: np.ndarray, column_indices: Sequence[int], row_indices: Sequence[int],
               value: int) -> int:
    """
    Draw a closed polyline, joining the last vertex back to the first.

    Returns:
        int: Total number of clipped line points.
    """
    if len(column_indices) != len(row_indices):
        raise ValueError(f"Index lists differ in length: {len(column_indices)} vs {len(row_indices)}")
    clipped = 0
    for i in range(len(column_indices)):
        clipped += draw_line(image, column_indices[i - 1], row_indices[i - 1],
                             column_indices[i], row_indices[i], value)
    return clipped


def neighbour(image: np.ndarray, col: int, row: int, direction: str) -> Optional[Tuple[int, int]]:
    """
    Return the (column, row) of the adjacent pixel in the given direction,
    or None when that pixel lies outside the grid.
    """
    try:
        d_col, d_row = DIRECTIONS[direction]
    except KeyError:
        raise ValueError(f"Unknown direction '{direction}', expected one of {sorted(DIRECTIONS)}")
    n_rows, n_cols = image.shape
    col, row = col + d_col, row + d_row
    if 0 <= col < n_cols and 0 <= row < n_rows:
        return col, row
    return None


def find_border(image: np.ndarray, col: int, row: int, target: int, direction: str) -> int:
    """Column of the last pixel holding the target value when walking east or west from (col, row)."""
    while True:
        next_pixel = neighbour(image, col, row, direction)
        if next_pixel is None or image[row, next_pixel[0]] != target:
            return col
        col = next_pixel[0]


def flood_fill(image: np.ndarray, col: int, row: int, fill_value: int) -> int:
    """
    Scanline flood fill starting at a seed pixel.

    Every pixel connected (4-neighbourhood) to the seed and holding the seed's
    original value is set to fill_value.

    Args:
        image (np.ndarray): Grid of shape (rows, columns), modified in place.
        col, row (int): Seed pixel.
        fill_value (int): Replacement value.

    Returns:
        int: Number of pixels filled.
    """
    n_rows, n_cols = image.shape
    if not (0 <= col < n_cols and 0 <= row < n_rows):
        raise ValueError(f"Seed ({col}, {row}) lies outside the {n_cols}x{n_rows} grid")
    target = image[row, col]
    if target == fill_value:
        return 0
    filled = 0
    queue = deque([(col, row)])
    while queue:
        c, r = queue.popleft()
        if image[r, c] != target:
            continue
        west = find_border(image, c, r, target, 'west')
        east = find_border(image, c, r, target, 'east')
        image[r, west:east + 1] = fill_value
        filled += east - west + 1
        for run_col in range(west, east + 1):
            for direction in ('north', 'south'):
                pixel = neighbour(image, run_col, r, direction)
                if pixel is not None and image[pixel[1], pixel[0]] == target:
                    queue.append(pixel)
    return filled


def binary_image(column_indices: Sequence[int], row_indices: Sequence[int],
                 columns: int, rows: int) -> np.ndarray:
    """
    Rasterize a closed contour into a boolean mask of its interior (boundary included).

    The fill is seeded at the mean vertex position. Pixel (0, 0) must not be
    part of the region: if the fill reaches that corner the seed is taken to
    have been outside the contour, and the boundary together with the untouched
    pixels becomes the region.

    Args:
        column_indices (Sequence[int]): Vertex column indices.
        row_indices (Sequence[int]): Vertex row indices.
        columns (int): Grid width.
        rows (int): Grid height.

    Returns:
        np.ndarray: Boolean array of shape (rows, columns).
    """
    cols = np.asarray(column_indices, dtype=int)
    rws = np.asarray(row_indices, dtype=int)
    if cols.shape != rws.shape:
        raise ValueError(f"Index arrays differ in shape: {cols.shape} vs {rws.shape}")
    if cols.size < 3:
        raise ValueError(f"A closed contour needs at least 3 vertices, got {cols.size}")

    grid = np.zeros((rows, columns), dtype=np.uint8)
    clipped = draw_lines(grid, cols.tolist(), rws.tolist(), LINE_VALUE)
    if clipped:
        logger.warning(f"{clipped} contour points fall outside the {columns}x{rows} grid")

    seed_col = int(np.clip(int(np.mean(cols)), 0, columns - 1))
    seed_row = int(np.clip(int(np.mean(rws)), 0, rows - 1))
    flood_fill(grid, seed_col, seed_row, FILL_VALUE)

    if grid[0, 0] == FILL_VALUE:
        logger.debug(f"Fill from seed ({seed_col}, {seed_row}) escaped the contour, inverting")
        return grid != FILL_VALUE
    return grid != EMPTY_VALUE
