"""
Dose-volume statistics over the samples of a region.

A DoseDistribution holds the scaled grid values found under a RegionVolume,
sorted ascending, and answers percentile (D), volume-at-dose (V) and summary
queries on them.
"""
import logging
from typing import Optional

import numpy as np
import pandas as pd

from reference_series import SampleGrid
from region_volume import RegionVolume

logger = logging.getLogger(__name__)


class DoseDistribution:
    """
    Sorted sample values and the volume they were drawn from.

    Args:
        samples: Sample values in any order.
        volume (RegionVolume, optional): Region the samples were taken under.
    """

    def __init__(self, samples, volume: Optional[RegionVolume] = None) -> None:
        self.samples = np.sort(np.asarray(samples, dtype=float).ravel())
        self.samples.flags.writeable = False
        self.volume = volume

    @classmethod
    def create(cls, volume: RegionVolume, grid) -> "DoseDistribution":
        """
        Sample a grid at the selected pixels of every mask in a volume.

        Masks are paired with grid frames by slice position when the grid has a
        series, otherwise by their index in the volume's stack.

        Args:
            volume (RegionVolume): Region to sample under.
            grid (SampleGrid or array-like): Grid of stored values.

        Returns:
            DoseDistribution: The sorted samples.
        """
        if not isinstance(grid, SampleGrid):
            grid = SampleGrid(grid)
        chunks = []
        unmatched = 0
        for i, mask in enumerate(volume.slice_masks):
            if grid.series is not None and mask.image is not None:
                frame_index = grid.frame_index(mask.image)
                if frame_index is None:
                    unmatched += 1
                    continue
            else:
                frame_index = i
                if frame_index >= grid.frames:
                    raise ValueError(f"Volume has more masks ({volume.frames}) than the grid has frames ({grid.frames})")
            frame = grid.frame(frame_index)
            if frame.shape != mask.narray.shape:
                raise ValueError(f"Grid frame shape {frame.shape} does not match mask shape {mask.narray.shape}")
            chunks.append(frame.ravel()[mask.selection.to_array()])
        if unmatched:
            logger.warning(f"{unmatched} masks have no grid frame at their position and were not sampled")
        samples = np.concatenate(chunks) if chunks else np.empty(0)
        return cls(samples, volume)

    @classmethod
    def from_grid(cls, grid) -> "DoseDistribution":
        """Distribution of every value in a grid."""
        if not isinstance(grid, SampleGrid):
            grid = SampleGrid(grid)
        return cls(grid.values())

    def _require_samples(self) -> None:
        if self.samples.size == 0:
            raise ValueError("Distribution has no samples")

    def d(self, percent: float) -> float:
        """
        Minimum dose received by the given percentage of the volume.

        d(0) is the maximum sample and d(100) the minimum.
        """
        if not 0 <= percent <= 100:
            raise ValueError(f"Percent must be within [0, 100], got {percent}")
        self._require_samples()
        index = round((len(self.samples) - 1) * (1 - percent / 100.0))
        return float(self.samples[index])

    def v(self, dose: float) -> float:
        """Percentage of the volume receiving at least the given dose."""
        if dose < 0:
            raise ValueError(f"Dose must be non-negative, got {dose}")
        self._require_samples()
        count = len(self.samples) - np.searchsorted(self.samples, dose, side='left')
        return 100.0 * count / len(self.samples)

    def hindex(self) -> float:
        """Homogeneity index (D2 - D98) / D50."""
        d50 = self.d(50)
        if d50 == 0:
            raise ValueError("D50 is zero, homogeneity index undefined")
        return (self.d(2) - self.d(98)) / d50

    def mean(self) -> float:
        self._require_samples()
        return float(np.mean(self.samples))

    def median(self) -> float:
        self._require_samples()
        return float(np.median(self.samples))

    def min(self) -> float:
        self._require_samples()
        return float(self.samples[0])

    def max(self) -> float:
        self._require_samples()
        return float(self.samples[-1])

    def rmsdev(self) -> float:
        """Population standard deviation."""
        self._require_samples()
        return float(np.std(self.samples))

    def stddev(self) -> float:
        """Sample standard deviation (N - 1 denominator)."""
        if self.samples.size < 2:
            raise ValueError("At least 2 samples are needed for the sample standard deviation")
        return float(np.std(self.samples, ddof=1))

    def length(self) -> int:
        return int(self.samples.size)

    def __len__(self) -> int:
        return self.length()

    def dvh(self, num_bins: int = 100) -> pd.DataFrame:
        """
        Cumulative dose-volume histogram.

        Args:
            num_bins (int): Number of dose bins between 0 and the maximum sample.

        Returns:
            pd.DataFrame: Columns 'dose' (lower bin edge) and 'volume_pct'
                (percentage of samples at or above that dose).
        """
        self._require_samples()
        if num_bins <= 0:
            raise ValueError(f"num_bins must be positive, got {num_bins}")
        upper = max(self.max(), 0.0)
        hist, bin_edges = np.histogram(self.samples, bins=num_bins, range=(min(self.min(), 0.0), upper or 1.0))
        # Volume receiving >= dose
        cumulative = np.cumsum(hist[::-1])[::-1]
        return pd.DataFrame({
            'dose': bin_edges[:-1],
            'volume_pct': 100.0 * cumulative / len(self.samples),
        })

    def summary(self) -> pd.Series:
        """Common statistics as a Series."""
        self._require_samples()
        stats = {
            'N': self.length(),
            'Mean': self.mean(),
            'Median': self.median(),
            'Min': self.min(),
            'Max': self.max(),
            'D2': self.d(2),
            'D50': self.d(50),
            'D98': self.d(98),
            'RMS_dev': self.rmsdev(),
        }
        stats['Std_dev'] = self.stddev() if self.length() > 1 else np.nan
        stats['HI'] = self.hindex() if stats['D50'] != 0 else np.nan
        return pd.Series(stats)

    def __repr__(self) -> str:
        return f"DoseDistribution(N={self.samples.size})"
