"""
Patient-space geometry for image slices.

Holds the point and contour types used throughout the package together with
CoordinateSpace, which converts between physical coordinates (mm) and pixel
indices of a single slice using its origin, pixel spacing and direction cosines.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np

COSINE_TOLERANCE = 1e-3
CLOSED_PLANAR = "CLOSED_PLANAR"


class Coordinate:
    """A single point in patient space, optionally owned by a Contour."""

    def __init__(self, x: float, y: float, z: float, contour: Optional["Contour"] = None) -> None:
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)
        self.contour = contour
        if contour is not None:
            contour.add_coordinate(self)

    def translate(self, dx: float, dy: float, dz: float) -> None:
        self.x += dx
        self.y += dy
        self.z += dz

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Coordinate):
            return NotImplemented
        return self.to_tuple() == other.to_tuple()

    __hash__ = None

    def __repr__(self) -> str:
        return f"Coordinate({self.x}, {self.y}, {self.z})"


class Contour:
    """
    An ordered, closed polyline of coordinates lying on one slice.

    Args:
        number (int, optional): Contour number within its structure.
        contour_type (str): Geometric type, CLOSED_PLANAR by default.
        contour_slice: Owning ContourSlice. The contour registers itself with it.
    """

    def __init__(self, number: Optional[int] = None, contour_type: str = CLOSED_PLANAR,
                 contour_slice=None) -> None:
        self.number = number
        self.type = contour_type
        self.coordinates: List[Coordinate] = []
        self.slice = contour_slice
        if contour_slice is not None:
            contour_slice.add_contour(self)

    @classmethod
    def from_coordinates(cls, x: Sequence[float], y: Sequence[float], z: Sequence[float],
                         number: Optional[int] = None, contour_slice=None) -> "Contour":
        """
        Build a contour from parallel x, y and z value lists.

        Raises:
            ValueError: If the lists differ in length.
        """
        if not (len(x) == len(y) == len(z)):
            raise ValueError(f"Coordinate lists differ in length: {len(x)}, {len(y)}, {len(z)}")
        contour = cls(number=number, contour_slice=contour_slice)
        for cx, cy, cz in zip(x, y, z):
            Coordinate(cx, cy, cz, contour=contour)
        return contour

    @classmethod
    def from_contour_data(cls, contour_data: Sequence[float], number: Optional[int] = None,
                          contour_slice=None) -> "Contour":
        """
        Build a contour from a flat list of x1, y1, z1, x2, ... values.

        Args:
            contour_data (Sequence[float]): Flat coordinate triplets as stored in Contour Data.
            number (int, optional): Contour number.
            contour_slice: Owning ContourSlice.

        Returns:
            Contour: The new contour.
        """
        try:
            points = np.asarray(contour_data, dtype=float).reshape(-1, 3)
        except ValueError:
            raise ValueError(f"Contour data length {len(contour_data)} is not a multiple of 3")
        return cls.from_coordinates(points[:, 0], points[:, 1], points[:, 2],
                                    number=number, contour_slice=contour_slice)

    def add_coordinate(self, coordinate: Coordinate) -> None:
        if not isinstance(coordinate, Coordinate):
            raise TypeError(f"Expected Coordinate, got {type(coordinate).__name__}")
        if not any(c is coordinate for c in self.coordinates):
            self.coordinates.append(coordinate)
        coordinate.contour = self

    def coords(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return the x, y and z values of the contour as three arrays."""
        x = np.array([c.x for c in self.coordinates], dtype=float)
        y = np.array([c.y for c in self.coordinates], dtype=float)
        z = np.array([c.z for c in self.coordinates], dtype=float)
        return x, y, z

    def translate(self, dx: float, dy: float, dz: float) -> None:
        for coordinate in self.coordinates:
            coordinate.translate(dx, dy, dz)

    def __len__(self) -> int:
        return len(self.coordinates)

    def __repr__(self) -> str:
        return f"Contour(number={self.number}, points={len(self.coordinates)})"


class CoordinateSpace:
    """
    Pixel grid geometry of a single slice.

    Args:
        columns (int): Number of columns (grid width).
        rows (int): Number of rows (grid height).
        pos_x (float): x of the centre of the first transmitted pixel.
        pos_y (float): y of the centre of the first transmitted pixel.
        pos_slice (float): z of the centre of the first transmitted pixel.
        col_spacing (float): Distance between adjacent columns (mm).
        row_spacing (float): Distance between adjacent rows (mm).
        cosines (Sequence[float]): Row direction cosines followed by column direction cosines.
    """

    def __init__(self, columns: int, rows: int, pos_x: float, pos_y: float, pos_slice: float,
                 col_spacing: float, row_spacing: float, cosines: Sequence[float]) -> None:
        if int(columns) <= 0 or int(rows) <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {columns}x{rows}")
        if col_spacing <= 0 or row_spacing <= 0:
            raise ValueError(f"Pixel spacing must be positive, got ({col_spacing}, {row_spacing})")
        self.columns = int(columns)
        self.rows = int(rows)
        self.pos_x = float(pos_x)
        self.pos_y = float(pos_y)
        self.pos_slice = float(pos_slice)
        self.col_spacing = float(col_spacing)
        self.row_spacing = float(row_spacing)
        self.cosines = self.validate_cosines(cosines)

    @staticmethod
    def validate_cosines(cosines: Sequence[float]) -> List[float]:
        """
        Check that the cosines describe two orthogonal unit vectors.

        Returns:
            List[float]: The six cosines as floats.
        """
        values = np.asarray(cosines, dtype=float).ravel()
        if values.size != 6:
            raise ValueError(f"Expected 6 direction cosines, got {values.size}")
        row_dir, col_dir = values[:3], values[3:]
        if abs(np.linalg.norm(row_dir) - 1.0) > COSINE_TOLERANCE or \
                abs(np.linalg.norm(col_dir) - 1.0) > COSINE_TOLERANCE:
            raise ValueError(f"Direction cosines are not unit vectors: {values.tolist()}")
        if abs(np.dot(row_dir, col_dir)) > COSINE_TOLERANCE:
            raise ValueError(f"Direction cosines are not orthogonal: {values.tolist()}")
        return values.tolist()

    @property
    def pixel_area(self) -> float:
        return self.col_spacing * self.row_spacing

    def contains(self, column: int, row: int) -> bool:
        return 0 <= column < self.columns and 0 <= row < self.rows

    def index_to_physical(self, column_indices, row_indices) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Convert pixel indices to physical coordinates.

        Args:
            column_indices: Column index or array of column indices.
            row_indices: Row index or array of row indices, same length as column_indices.

        Returns:
            Tuple of x, y and z arrays (mm).
        """
        ci = np.asarray(column_indices, dtype=float)
        ri = np.asarray(row_indices, dtype=float)
        if ci.shape != ri.shape:
            raise ValueError(f"Index arrays differ in shape: {ci.shape} vs {ri.shape}")
        c = self.cosines
        cs, rs = self.col_spacing, self.row_spacing
        x = self.pos_x + ci * cs * c[0] + ri * rs * c[3]
        y = self.pos_y + ci * cs * c[1] + ri * rs * c[4]
        z = self.pos_slice + ci * cs * c[2] + ri * rs * c[5]
        return x, y, z

    def physical_to_index(self, x, y, z) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert physical coordinates to the nearest pixel indices.

        Points are projected onto the row and column direction vectors, so any
        offset along the slice normal is ignored.

        Returns:
            Tuple of integer column and row index arrays.
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        z = np.asarray(z, dtype=float)
        if not (x.shape == y.shape == z.shape):
            raise ValueError(f"Coordinate arrays differ in shape: {x.shape}, {y.shape}, {z.shape}")
        c = self.cosines
        dx, dy, dz = x - self.pos_x, y - self.pos_y, z - self.pos_slice
        ci = (dx * c[0] + dy * c[1] + dz * c[2]) / self.col_spacing
        ri = (dx * c[3] + dy * c[4] + dz * c[5]) / self.row_spacing
        return np.floor(ci + 0.5).astype(int), np.floor(ri + 0.5).astype(int)

    def corner_coordinates(self) -> List[Coordinate]:
        """Three in-plane points spread over the grid, used for plane fitting."""
        cols = [0, self.columns / 2, self.columns - 1]
        rows = [self.rows / 2, self.rows - 1, 0]
        x, y, z = self.index_to_physical(cols, rows)
        return [Coordinate(x[i], y[i], z[i]) for i in range(3)]

    def geometry(self) -> Tuple:
        return (self.columns, self.rows, self.pos_x, self.pos_y, self.pos_slice,
                self.col_spacing, self.row_spacing, tuple(self.cosines))
