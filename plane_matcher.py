"""
Plane equations for slice orientation matching.

A plane is stored as ax + by + cz + d = 0 with d fixed to PLANE_D for every
instance, so that planes of different slices can be compared through their
(a, b, c) coefficients alone.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

PLANE_D = 500.0
DEVIATION_THRESHOLD = 0.01
DETERMINANT_TOLERANCE = 1e-12
# Mean deviations below this are treated as zero when normalising
ZERO_DEVIATION = 1e-9


class DegeneratePlaneError(ValueError):
    """Raised when three points do not define a plane in ax + by + cz + d = 0 form."""


def _xyz(point) -> np.ndarray:
    if hasattr(point, 'x') and hasattr(point, 'y') and hasattr(point, 'z'):
        return np.array([point.x, point.y, point.z], dtype=float)
    values = np.asarray(point, dtype=float).ravel()
    if values.size != 3:
        raise TypeError(f"Expected a coordinate or an (x, y, z) triple, got {point!r}")
    return values


class Plane:
    """
    Plane with coefficients a, b and c and the fixed constant d.
    """

    d = PLANE_D

    def __init__(self, a: float, b: float, c: float) -> None:
        self.a = float(a)
        self.b = float(b)
        self.c = float(c)

    @classmethod
    def fit(cls, p1, p2, p3) -> "Plane":
        """
        Solve for the plane through three points with Cramer's rule.

        Args:
            p1, p2, p3: Coordinates (objects with x, y, z) or (x, y, z) sequences.

        Returns:
            Plane: The fitted plane.

        Raises:
            DegeneratePlaneError: If points coincide, or are collinear or coplanar
                with the origin (zero determinant).
        """
        points = np.vstack([_xyz(p1), _xyz(p2), _xyz(p3)])
        for i in range(3):
            for j in range(i + 1, 3):
                if np.array_equal(points[i], points[j]):
                    raise DegeneratePlaneError(f"Duplicate points given for plane fitting: {points[i].tolist()}")
        det = np.linalg.det(points)
        scale = np.prod(np.linalg.norm(points, axis=1))
        if scale == 0 or abs(det) <= DETERMINANT_TOLERANCE * scale:
            raise DegeneratePlaneError(f"Points give a zero determinant: {points.tolist()}")

        ones = np.ones(3)
        det_a = np.linalg.det(np.column_stack([ones, points[:, 1], points[:, 2]]))
        det_b = np.linalg.det(np.column_stack([points[:, 0], ones, points[:, 2]]))
        det_c = np.linalg.det(np.column_stack([points[:, 0], points[:, 1], ones]))
        factor = -cls.d / det
        return cls(factor * det_a, factor * det_b, factor * det_c)

    calculate = fit

    @classmethod
    def from_space(cls, space) -> "Plane":
        """Fit the plane of an image slice from three of its grid points."""
        return cls.fit(*space.corner_coordinates())

    def match(self, planes: Sequence["Plane"]) -> Optional[int]:
        """
        Find the candidate plane most similar to this one.

        Each parameter's absolute deviations are divided by their mean (unless
        that mean is zero) and the candidate with the smallest summed relative
        deviation is chosen. The choice is rejected if its raw summed deviation
        exceeds DEVIATION_THRESHOLD.

        Args:
            planes (Sequence[Plane]): Candidate planes.

        Returns:
            Optional[int]: Index of the matching plane, or None if none is close enough.
        """
        if not planes:
            return None
        da = np.abs(np.array([p.a for p in planes]) - self.a)
        db = np.abs(np.array([p.b for p in planes]) - self.b)
        dc = np.abs(np.array([p.c for p in planes]) - self.c)

        def relative(deviations: np.ndarray) -> np.ndarray:
            mean = deviations.mean()
            return deviations / mean if mean > ZERO_DEVIATION else deviations

        scores = relative(da) + relative(db) + relative(dc)
        index = int(np.argmin(scores))
        raw = da[index] + db[index] + dc[index]
        if raw > DEVIATION_THRESHOLD:
            logger.debug(f"Closest plane {index} deviates by {raw:.4g}, no match")
            return None
        return index

    def coefficients(self) -> List[float]:
        return [self.a, self.b, self.c, self.d]

    def __repr__(self) -> str:
        return f"Plane(a={self.a:.6g}, b={self.b:.6g}, c={self.c:.6g}, d={self.d})"
