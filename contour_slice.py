"""
Contours of one structure on one image slice.
"""
import logging
from typing import List, Optional, Sequence

from coordinate_space import Contour, Coordinate
from plane_matcher import Plane
from slice_mask import SliceMask

logger = logging.getLogger(__name__)


class ContourSlice:
    """
    Container for the contours a structure has on a single slice.

    Args:
        pos (float, optional): Slice position (mm). Defaults to the z of the first coordinate.
        uid (str, optional): SOP instance uid of the referenced image.
        image (ImageSlice, optional): Referenced image, if already known.
    """

    def __init__(self, pos: Optional[float] = None, uid: Optional[str] = None, image=None) -> None:
        self.contours: List[Contour] = []
        self._pos = None if pos is None else float(pos)
        self.uid = uid
        self.image = image

    @classmethod
    def from_contour_data(cls, contour_data: Sequence[Sequence[float]], pos: Optional[float] = None,
                          uid: Optional[str] = None) -> "ContourSlice":
        """Build a slice from one flat x, y, z list per contour."""
        contour_slice = cls(pos=pos, uid=uid)
        for number, data in enumerate(contour_data, start=1):
            Contour.from_contour_data(data, number=number, contour_slice=contour_slice)
        return contour_slice

    @property
    def pos(self) -> float:
        if self._pos is not None:
            return self._pos
        for contour in self.contours:
            if contour.coordinates:
                return contour.coordinates[0].z
        raise ValueError("Contour slice has no position and no coordinates")

    def add_contour(self, contour: Contour) -> None:
        if not isinstance(contour, Contour):
            raise TypeError(f"Expected Contour, got {type(contour).__name__}")
        if not any(c is contour for c in self.contours):
            self.contours.append(contour)
        contour.slice = self

    def coordinates(self) -> List[Coordinate]:
        return [coordinate for contour in self.contours for coordinate in contour.coordinates]

    def plane(self) -> Plane:
        """
        Fit the plane of the slice through three of its coordinates, taken at the
        start, one third and two thirds of the way along the point list.
        """
        coordinates = self.coordinates()
        n = len(coordinates)
        if n < 3:
            raise ValueError(f"At least 3 coordinates are needed to fit a plane, got {n}")
        return Plane.fit(coordinates[0], coordinates[n // 3], coordinates[2 * n // 3])

    def attach_to(self, series) -> None:
        """
        Reference the image of the series whose plane matches this slice.

        Raises:
            RuntimeError: If no image of the series matches.
        """
        image = series.match_image(self.plane())
        if image is None:
            raise RuntimeError(f"No image in series matches the plane of the slice at {self.pos}")
        self.image = image
        self.uid = image.uid
        logger.debug(f"Contour slice at {self.pos} attached to image at {image.pos_slice}")

    def bin_image(self, source_image=None) -> SliceMask:
        """Rasterize the slice's contours onto the given image, or the referenced one."""
        image = source_image if source_image is not None else self.image
        if image is None:
            raise ValueError(f"Contour slice at {self._pos} has no image to rasterize onto")
        return SliceMask.from_contours(self.contours, image)

    def area(self) -> float:
        return self.bin_image().area()

    def translate(self, dx: float, dy: float, dz: float) -> None:
        for contour in self.contours:
            contour.translate(dx, dy, dz)
        if self._pos is not None:
            self._pos += dz

    def __len__(self) -> int:
        return len(self.contours)

    def __repr__(self) -> str:
        return f"ContourSlice(pos={self._pos}, contours={len(self.contours)})"
