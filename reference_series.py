"""
Reference image series and sampled grids.

ImageSlice carries the geometry of one reference image, ReferenceSeries keeps
the images of a series in slice order with position-keyed lookup, and
SampleGrid holds a stack of stored samples (dose or intensity) with its linear
scaling factor. Adapters build these from in-memory pydicom datasets and
SimpleITK images.
"""
import logging
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np
import pydicom
import SimpleITK as sitk

from coordinate_space import CoordinateSpace
from plane_matcher import Plane
from rasterizer import binary_image

logger = logging.getLogger(__name__)

POSITION_DECIMALS = 2


class ImageSlice(CoordinateSpace):
    """
    Geometry of a single reference image.

    Takes the CoordinateSpace arguments plus an optional SOP instance uid.
    The owning series is set when the image is added to a ReferenceSeries.
    """

    def __init__(self, columns: int, rows: int, pos_x: float, pos_y: float, pos_slice: float,
                 col_spacing: float, row_spacing: float, cosines: Sequence[float],
                 uid: Optional[str] = None) -> None:
        super().__init__(columns, rows, pos_x, pos_y, pos_slice, col_spacing, row_spacing, cosines)
        self.uid = uid
        self.series: Optional["ReferenceSeries"] = None
        self._plane: Optional[Plane] = None

    @classmethod
    def from_dataset(cls, ds: pydicom.Dataset, pos_offset: float = 0.0) -> "ImageSlice":
        """
        Create an image slice from the image plane attributes of a dataset.

        Args:
            ds (pydicom.Dataset): Dataset with ImagePositionPatient, ImageOrientationPatient,
                PixelSpacing, Rows and Columns.
            pos_offset (float): Offset (mm) along the slice normal, as given by
                GridFrameOffsetVector for multi-frame grids.

        Returns:
            ImageSlice: The slice geometry.
        """
        for keyword in ('ImagePositionPatient', 'ImageOrientationPatient', 'PixelSpacing', 'Rows', 'Columns'):
            if keyword not in ds:
                raise ValueError(f"Dataset is missing required attribute {keyword}")
        position = np.asarray([float(v) for v in ds.ImagePositionPatient])
        cosines = [float(v) for v in ds.ImageOrientationPatient]
        if pos_offset:
            normal = np.cross(cosines[:3], cosines[3:])
            position = position + pos_offset * normal
        # PixelSpacing holds the row spacing first, then the column spacing
        row_spacing, col_spacing = (float(v) for v in ds.PixelSpacing)
        return cls(int(ds.Columns), int(ds.Rows), position[0], position[1], position[2],
                   col_spacing, row_spacing, cosines, uid=getattr(ds, 'SOPInstanceUID', None))

    def plane(self) -> Plane:
        if self._plane is None:
            self._plane = Plane.from_space(self)
        return self._plane

    def binary_image(self, x, y, z) -> np.ndarray:
        """Rasterize a contour given in physical coordinates into a boolean mask of this image."""
        column_indices, row_indices = self.physical_to_index(x, y, z)
        return binary_image(column_indices, row_indices, self.columns, self.rows)

    def __repr__(self) -> str:
        return f"ImageSlice(pos={self.pos_slice}, {self.columns}x{self.rows}, uid={self.uid})"


class ReferenceSeries:
    """
    Ordered collection of image slices.

    Args:
        images (Sequence[ImageSlice]): Slices of the series, in any order.
        close_match (bool): If True, position lookups that find no exact match accept
            the nearest slice within a third of the slice spacing.
        uid (str, optional): Series instance uid.
    """

    def __init__(self, images: Sequence[ImageSlice] = (), close_match: bool = False,
                 uid: Optional[str] = None) -> None:
        self.images: List[ImageSlice] = []
        self.close_match = close_match
        self.uid = uid
        self._by_position: Dict[float, ImageSlice] = {}
        for image in images:
            self.add_image(image)

    @staticmethod
    def position_key(pos: float) -> float:
        return round(float(pos), POSITION_DECIMALS)

    def add_image(self, image: ImageSlice) -> None:
        if not isinstance(image, ImageSlice):
            raise TypeError(f"Expected ImageSlice, got {type(image).__name__}")
        key = self.position_key(image.pos_slice)
        if key in self._by_position:
            logger.warning(f"Series already has an image at position {key}, replacing lookup entry")
        image.series = self
        self._by_position[key] = image
        self.images.append(image)
        self.images.sort(key=lambda img: img.pos_slice)

    def positions(self) -> List[float]:
        return [img.pos_slice for img in self.images]

    @property
    def slice_spacing(self) -> Optional[float]:
        """Median distance between consecutive slice positions, None for fewer than two slices."""
        positions = np.unique(np.round(self.positions(), POSITION_DECIMALS))
        if positions.size < 2:
            return None
        return float(np.median(np.diff(positions)))

    def image(self, pos: float) -> Optional[ImageSlice]:
        """
        Look up the image at a slice position.

        Args:
            pos (float): Slice position (mm).

        Returns:
            Optional[ImageSlice]: The image, or None if the series has none at that position.
        """
        found = self._by_position.get(self.position_key(pos))
        if found is not None or not self.close_match:
            return found
        spacing = self.slice_spacing
        if spacing is None or not self.images:
            return None
        distances = np.abs(np.asarray(self.positions()) - pos)
        nearest = int(np.argmin(distances))
        if distances[nearest] < spacing / 3:
            return self.images[nearest]
        return None

    def index_of(self, image: ImageSlice) -> Optional[int]:
        for i, candidate in enumerate(self.images):
            if candidate is image:
                return i
        return None

    def match_index(self, plane: Plane) -> Optional[int]:
        """Index of the image whose plane best matches the given plane, or None."""
        return plane.match([img.plane() for img in self.images])

    def match_image(self, plane: Plane) -> Optional[ImageSlice]:
        index = self.match_index(plane)
        return None if index is None else self.images[index]

    @classmethod
    def from_datasets(cls, datasets: Sequence[pydicom.Dataset], close_match: bool = False) -> "ReferenceSeries":
        """
        Build a series from in-memory image datasets (one per slice).

        Returns:
            ReferenceSeries: Series with slices sorted by position.
        """
        if not datasets:
            raise ValueError("No datasets given to build a series from")
        uid = getattr(datasets[0], 'SeriesInstanceUID', None)
        return cls([ImageSlice.from_dataset(ds) for ds in datasets], close_match=close_match, uid=uid)

    @classmethod
    def from_sitk(cls, image: sitk.Image, close_match: bool = False) -> "ReferenceSeries":
        """
        Build a series from a 3D SimpleITK image, one ImageSlice per z index.
        """
        if image.GetDimension() != 3:
            raise ValueError(f"Expected a 3D image, got {image.GetDimension()}D")
        columns, rows, frames = image.GetSize()
        col_spacing, row_spacing, _ = image.GetSpacing()
        direction = image.GetDirection()
        cosines = [direction[0], direction[3], direction[6], direction[1], direction[4], direction[7]]
        images = []
        for k in range(frames):
            x, y, z = image.TransformIndexToPhysicalPoint((0, 0, k))
            images.append(ImageSlice(columns, rows, x, y, z, col_spacing, row_spacing, cosines))
        return cls(images, close_match=close_match)

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[ImageSlice]:
        return iter(self.images)

    def __getitem__(self, index: int) -> ImageSlice:
        return self.images[index]


class SampleGrid:
    """
    Stored samples of shape (frames, rows, columns) and their scaling factor.

    Args:
        samples (np.ndarray): Stored values. A single 2D frame is accepted.
        scaling (float): Linear factor converting stored values to physical values.
        series (ReferenceSeries, optional): Geometry of the frames.
    """

    def __init__(self, samples, scaling: float = 1.0, series: Optional[ReferenceSeries] = None) -> None:
        samples = np.asarray(samples)
        if samples.ndim == 2:
            samples = samples[np.newaxis]
        if samples.ndim != 3:
            raise ValueError(f"Expected a 2D or 3D sample array, got shape {samples.shape}")
        self.samples = samples
        self.scaling = float(scaling)
        self.series = series
        if series is not None and len(series) != samples.shape[0]:
            logger.warning(f"Grid has {samples.shape[0]} frames but its series has {len(series)} images")

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    @property
    def rows(self) -> int:
        return self.samples.shape[1]

    @property
    def columns(self) -> int:
        return self.samples.shape[2]

    def values(self) -> np.ndarray:
        """Scaled sample values."""
        return self.samples.astype(float) * self.scaling

    def frame(self, index: int) -> np.ndarray:
        return self.samples[index].astype(float) * self.scaling

    def frame_index(self, image: CoordinateSpace) -> Optional[int]:
        """Index of the grid frame at the position of the given image, if the grid has a series."""
        if self.series is None:
            return None
        found = self.series.image(image.pos_slice)
        return None if found is None else self.series.index_of(found)

    @classmethod
    def from_dataset(cls, ds: pydicom.Dataset, close_match: bool = True) -> "SampleGrid":
        """
        Build a grid from an in-memory dose dataset.

        The stored pixel data is scaled by DoseGridScaling (1.0 when absent) and
        frame positions follow GridFrameOffsetVector.

        Args:
            ds (pydicom.Dataset): Dataset with pixel data and image plane attributes.
            close_match (bool): Close matching for the position lookups of the grid's series.

        Returns:
            SampleGrid: The grid with one ImageSlice per frame.
        """
        samples = np.asarray(ds.pixel_array)
        if samples.ndim == 2:
            samples = samples[np.newaxis]
        scaling = float(getattr(ds, 'DoseGridScaling', 1.0))
        offsets = [float(v) for v in getattr(ds, 'GridFrameOffsetVector', [0.0] * samples.shape[0])]
        if len(offsets) != samples.shape[0]:
            raise ValueError(f"GridFrameOffsetVector has {len(offsets)} values for {samples.shape[0]} frames")
        images = [ImageSlice.from_dataset(ds, pos_offset=offset) for offset in offsets]
        series = ReferenceSeries(images, close_match=close_match, uid=getattr(ds, 'SeriesInstanceUID', None))
        order = np.argsort([img.pos_slice for img in images], kind='stable')
        return cls(samples[order], scaling=scaling, series=series)

    @classmethod
    def from_sitk(cls, image: sitk.Image, scaling: float = 1.0, close_match: bool = True) -> "SampleGrid":
        """Build a grid from a 3D SimpleITK image."""
        samples = sitk.GetArrayFromImage(image)
        series = ReferenceSeries.from_sitk(image, close_match=close_match)
        order = np.argsort([image.TransformIndexToPhysicalPoint((0, 0, k))[2] for k in range(samples.shape[0])],
                           kind='stable')
        return cls(samples[order], scaling=scaling, series=series)

    def __repr__(self) -> str:
        return f"SampleGrid(shape={self.samples.shape}, scaling={self.scaling})"
