"""
Volumetric binary regions built from stacks of slice masks.

A RegionVolume is created from a structure's contours, from a threshold
applied to a sampled grid, or as the full extent of a reference series.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from log_utils import get_logger
from reference_series import ReferenceSeries, SampleGrid
from slice_mask import SliceMask

CONTOURS = 'contours'
THRESHOLD = 'threshold'
VOLUME = 'volume'


@dataclass
class Provenance:
    """Describes how a RegionVolume was produced."""
    kind: str
    label: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None


class RegionVolume:
    """
    Ordered stack of SliceMask objects sharing one grid size.

    The dice, sensitivity and specificity attributes are not computed here;
    they are assigned by whoever compares the volume against others.

    Args:
        slice_masks (Sequence[SliceMask]): Initial masks.
        series (ReferenceSeries, optional): Series the masks belong to.
        source (Provenance, optional): Origin of the volume.
        verbose (bool): If True, log detailed messages.
    """

    def __init__(self, slice_masks: Sequence[SliceMask] = (), series: Optional[ReferenceSeries] = None,
                 source: Optional[Provenance] = None, verbose: bool = False) -> None:
        self.logger = get_logger(self.__class__.__name__, verbose)
        self.slice_masks: List[SliceMask] = []
        self.series = series
        self.source = source
        self.dice: Optional[float] = None
        self.sensitivity: Optional[float] = None
        self.specificity: Optional[float] = None
        self.missed_slices = 0
        self._narray: Optional[np.ndarray] = None
        self._narray_masks: List[SliceMask] = []
        self._narray_versions: List[int] = []
        for mask in slice_masks:
            self.add(mask)

    @classmethod
    def from_contours(cls, contour_slices: Sequence, series: ReferenceSeries, label: Optional[str] = None,
                      max_workers: Optional[int] = None, verbose: bool = False) -> "RegionVolume":
        """
        Rasterize the contour slices of a structure onto the images of a series.

        Each slice is matched to the image at the same position. Slices without
        a matching image are skipped and counted in missed_slices. Slices are
        rasterized in parallel, each onto its own grid.

        Args:
            contour_slices (Sequence[ContourSlice]): The structure's slices.
            series (ReferenceSeries): Series giving the image geometry.
            label (str, optional): Structure name recorded in the provenance.
            max_workers (int, optional): Thread pool size.
            verbose (bool): If True, log detailed messages.

        Returns:
            RegionVolume: Volume sorted by slice position.
        """
        volume = cls(series=series, source=Provenance(CONTOURS, label=label), verbose=verbose)
        matched = []
        missed = 0
        for contour_slice in contour_slices:
            image = series.image(contour_slice.pos)
            if image is None:
                missed += 1
                volume.logger.debug(f"No image at position {contour_slice.pos} for structure '{label}'")
                continue
            matched.append((contour_slice, image))

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            masks = list(executor.map(lambda pair: pair[0].bin_image(pair[1]), matched))

        # Slices referencing the same image are merged into one mask
        by_image: Dict[int, SliceMask] = {}
        for mask in masks:
            existing = by_image.get(id(mask.image))
            if existing is None:
                by_image[id(mask.image)] = mask
                volume.add(mask)
            else:
                existing.add(mask)

        volume.missed_slices = missed
        if missed:
            volume.logger.warning(f"{missed} of {len(contour_slices)} contour slices of '{label}' "
                                  f"could not be matched to an image")
        volume.sort()
        volume.logger.debug(f"Built '{label}' from {len(volume)} slices")
        return volume

    @classmethod
    def from_threshold(cls, grid, minimum: Optional[float] = None, maximum: Optional[float] = None,
                       series: Optional[ReferenceSeries] = None, verbose: bool = False) -> "RegionVolume":
        """
        Mark the pixels whose scaled sample value lies within [minimum, maximum].

        Grid frames are paired with series images by index, not by position.

        Args:
            grid (SampleGrid or array-like): Sampled values; arrays are wrapped with scaling 1.0.
            minimum (float, optional): Inclusive lower bound.
            maximum (float, optional): Inclusive upper bound.
            series (ReferenceSeries, optional): Images for the masks. Defaults to the grid's series.
            verbose (bool): If True, log detailed messages.

        Returns:
            RegionVolume: One mask per shared frame index.
        """
        if minimum is None and maximum is None:
            raise ValueError("At least one of minimum and maximum must be given")
        if minimum is not None and maximum is not None and minimum > maximum:
            raise ValueError(f"Minimum {minimum} exceeds maximum {maximum}")
        if not isinstance(grid, SampleGrid):
            grid = SampleGrid(grid)
        if series is None:
            series = grid.series

        values = grid.values()
        in_range = np.ones(values.shape, dtype=bool)
        if minimum is not None:
            in_range &= values >= minimum
        if maximum is not None:
            in_range &= values <= maximum

        volume = cls(series=series, source=Provenance(THRESHOLD, minimum=minimum, maximum=maximum),
                     verbose=verbose)
        if series is None:
            for frame in in_range:
                volume.add(SliceMask(frame))
            return volume

        if grid.frames != len(series):
            volume.logger.warning(f"Grid has {grid.frames} frames but the series has {len(series)} images, "
                                  f"using the first {min(grid.frames, len(series))}")
        for i in range(min(grid.frames, len(series))):
            image = series[i]
            if in_range[i].shape != (image.rows, image.columns):
                raise ValueError(f"Frame {i} has shape {in_range[i].shape}, "
                                 f"image has {(image.rows, image.columns)}")
            volume.add(SliceMask(in_range[i], image))
        return volume

    @classmethod
    def from_volume(cls, series: ReferenceSeries, verbose: bool = False) -> "RegionVolume":
        """Volume covering every pixel of every image in the series."""
        return cls([SliceMask.full(image) for image in series], series=series,
                   source=Provenance(VOLUME), verbose=verbose)

    def add(self, mask: SliceMask) -> None:
        if not isinstance(mask, SliceMask):
            raise TypeError(f"Expected SliceMask, got {type(mask).__name__}")
        if self.slice_masks and mask.narray.shape != self.slice_masks[0].narray.shape:
            raise ValueError(f"Mask shape {mask.narray.shape} differs from volume shape "
                             f"{self.slice_masks[0].narray.shape}")
        self.slice_masks.append(mask)

    @property
    def columns(self) -> Optional[int]:
        return self.slice_masks[0].columns if self.slice_masks else None

    @property
    def rows(self) -> Optional[int]:
        return self.slice_masks[0].rows if self.slice_masks else None

    @property
    def frames(self) -> int:
        return len(self.slice_masks)

    def images(self) -> List:
        return [mask.image for mask in self.slice_masks]

    def sorted_masks(self) -> List[SliceMask]:
        """The masks ordered by ascending slice position, leaving the volume untouched."""
        return sorted(self.slice_masks, key=lambda m: m.pos_slice if m.image is not None else 0.0)

    def sort(self) -> None:
        """Order the masks by ascending slice position."""
        self.slice_masks = self.sorted_masks()

    def reorder(self, order: Sequence[int]) -> None:
        """
        Rearrange the masks so that position i holds the mask previously at order[i].
        """
        order = [int(i) for i in order]
        if sorted(order) != list(range(len(self.slice_masks))):
            raise ValueError(f"Order {order} is not a permutation of {len(self.slice_masks)} masks")
        self.slice_masks = [self.slice_masks[i] for i in order]

    def narray(self, sort_slices: bool = True) -> np.ndarray:
        """
        Stacked boolean array of shape (frames, rows, columns).

        Args:
            sort_slices (bool): Stack the masks by ascending position. The order of
                slice_masks itself is not changed.

        Returns:
            np.ndarray: The stacked masks. The array is cached until a mask or the order changes.
        """
        if not self.slice_masks:
            raise ValueError("Volume has no slice masks")
        masks = self.sorted_masks() if sort_slices else self.slice_masks
        versions = [mask.version for mask in masks]
        stale = (self._narray is None or len(masks) != len(self._narray_masks)
                 or any(a is not b for a, b in zip(masks, self._narray_masks))
                 or versions != self._narray_versions)
        if stale:
            self._narray = np.stack([mask.narray for mask in masks])
            self._narray_masks = list(masks)
            self._narray_versions = versions
        return self._narray

    def voxel_count(self) -> int:
        return sum(len(mask.selection) for mask in self.slice_masks)

    def size(self) -> float:
        """
        Volume in cm³: slice areas times slice spacing, with the first and last
        slices counting half.
        """
        if not self.slice_masks:
            return 0.0
        spacing = self.series.slice_spacing if self.series is not None else None
        if spacing is None:
            positions = np.unique(np.round([m.pos_slice for m in self.slice_masks], 2))
            if positions.size < 2:
                raise ValueError("Slice spacing unknown, cannot compute volume")
            spacing = float(np.median(np.diff(positions)))
        areas = np.array([mask.area() for mask in self.sorted_masks()])
        weights = np.ones(len(areas))
        if len(areas) > 1:
            weights[0] = weights[-1] = 0.5
        return float(np.sum(areas * weights) * spacing / 1000.0)

    def __len__(self) -> int:
        return len(self.slice_masks)

    def __repr__(self) -> str:
        kind = None if self.source is None else self.source.kind
        return f"RegionVolume(kind={kind}, frames={self.frames}, voxels={self.voxel_count()})"
