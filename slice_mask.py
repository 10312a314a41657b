"""
Binary mask of a single image slice.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np
from skimage import measure, segmentation

from coordinate_space import Contour
from pixel_selection import Selection

logger = logging.getLogger(__name__)


class SliceMask:
    """
    Boolean pixel mask of shape (rows, columns) tied to the image it was derived from.

    Args:
        narray (np.ndarray): 2D binary array.
        image (ImageSlice, optional): Image giving the mask its position, spacing and orientation.
    """

    def __init__(self, narray, image=None) -> None:
        arr = np.asarray(narray)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2D mask, got shape {arr.shape}")
        if arr.dtype != bool and not np.isin(arr, (0, 1)).all():
            raise ValueError("Mask values must be binary (0/1 or bool)")
        if image is not None and arr.shape != (image.rows, image.columns):
            raise ValueError(f"Mask shape {arr.shape} does not match image grid {(image.rows, image.columns)}")
        self.narray = arr.astype(bool)
        self.image = image
        self._selection: Optional[Selection] = None
        # Bumped on every in-place change so that stacked copies can be refreshed
        self.version = 0

    @classmethod
    def from_contours(cls, contours: Sequence[Contour], image) -> "SliceMask":
        """
        Rasterize contours onto an image and combine them into one mask.

        Every contour is filled on its own and the results are OR-ed, so nested
        contours add to the region rather than cutting holes into it.

        Args:
            contours (Sequence[Contour]): Contours lying on the image.
            image (ImageSlice): Target image.

        Returns:
            SliceMask: Union of the contour interiors.
        """
        mask = np.zeros((image.rows, image.columns), dtype=bool)
        for contour in contours:
            if len(contour) < 3:
                logger.debug(f"Skipping {contour!r}: fewer than 3 points")
                continue
            mask |= image.binary_image(*contour.coords())
        return cls(mask, image)

    @classmethod
    def empty(cls, image) -> "SliceMask":
        return cls(np.zeros((image.rows, image.columns), dtype=bool), image)

    @classmethod
    def full(cls, image) -> "SliceMask":
        return cls(np.ones((image.rows, image.columns), dtype=bool), image)

    def add(self, pixels) -> None:
        """OR another mask (SliceMask or binary array of the same shape) into this one."""
        other = pixels.narray if isinstance(pixels, SliceMask) else np.asarray(pixels)
        if other.shape != self.narray.shape:
            raise ValueError(f"Cannot add mask of shape {other.shape} to mask of shape {self.narray.shape}")
        self.narray = self.narray | other.astype(bool)
        self._selection = None
        self.version += 1

    @property
    def selection(self) -> Selection:
        if self._selection is None:
            self._selection = Selection(np.flatnonzero(self.narray), self.columns)
        return self._selection

    @property
    def columns(self) -> int:
        return self.narray.shape[1]

    @property
    def rows(self) -> int:
        return self.narray.shape[0]

    def area(self, value: bool = True) -> float:
        """
        Area (mm²) covered by pixels holding the given value.
        """
        if self.image is None:
            raise ValueError("Mask has no image, pixel spacing unknown")
        count = int(np.count_nonzero(self.narray == bool(value)))
        return count * self.image.pixel_area

    @property
    def pos_slice(self) -> float:
        return self.image.pos_slice

    @property
    def pos_x(self) -> float:
        return self.image.pos_x

    @property
    def pos_y(self) -> float:
        return self.image.pos_y

    @property
    def col_spacing(self) -> float:
        return self.image.col_spacing

    @property
    def row_spacing(self) -> float:
        return self.image.row_spacing

    @property
    def cosines(self) -> List[float]:
        return self.image.cosines

    def contour_indices(self) -> List[Selection]:
        """
        Boundary pixels of each connected structure in the mask.

        The mask is padded by one pixel so that structures touching the grid
        edge get a closed boundary, and indices are mapped back afterwards.

        Returns:
            List[Selection]: One selection per structure, indices relative to this mask.
        """
        padded = np.pad(self.narray, 1, mode='constant', constant_values=False)
        labels = measure.label(padded, connectivity=2)
        selections = []
        for label in range(1, labels.max() + 1):
            boundary = segmentation.find_boundaries(labels == label, mode='inner')
            selection = Selection(np.flatnonzero(boundary), padded.shape[1])
            selection.shift_and_crop(-1, -1)
            selections.append(selection)
        return selections

    def to_contours(self) -> List[Contour]:
        """
        Trace the mask outline as contours in physical coordinates.

        Returns:
            List[Contour]: Closed contours following the 0.5 iso-line of the mask.
        """
        if self.image is None:
            raise ValueError("Mask has no image, cannot convert to physical coordinates")
        padded = np.pad(self.narray.astype(float), 1, mode='constant')
        contours = []
        for number, path in enumerate(measure.find_contours(padded, 0.5), start=1):
            if len(path) > 1 and np.array_equal(path[0], path[-1]):
                path = path[:-1]
            rows, cols = path[:, 0] - 1, path[:, 1] - 1
            x, y, z = self.image.index_to_physical(cols, rows)
            contours.append(Contour.from_coordinates(x, y, z, number=number))
        return contours

    def __eq__(self, other) -> bool:
        if not isinstance(other, SliceMask):
            return NotImplemented
        return np.array_equal(self.narray, other.narray)

    __hash__ = None

    def __repr__(self) -> str:
        pos = None if self.image is None else self.image.pos_slice
        return f"SliceMask(pos={pos}, {self.columns}x{self.rows}, pixels={len(self.selection)})"
