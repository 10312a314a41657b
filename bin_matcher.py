"""
Comparison of region volumes against a reference (master) volume.

Scores are written onto the compared RegionVolume objects through their
dice, sensitivity and specificity attributes.
"""
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from log_utils import get_logger
from region_volume import RegionVolume
from slice_mask import SliceMask


class BinMatcher:
    """
    Scores a set of region volumes against a master volume.

    Args:
        volumes (Sequence[RegionVolume]): Volumes to score.
        master (RegionVolume, optional): Reference volume.
        verbose (bool): If True, log detailed messages.
    """

    def __init__(self, volumes: Sequence[RegionVolume] = (), master: Optional[RegionVolume] = None,
                 verbose: bool = False) -> None:
        self.logger = get_logger(self.__class__.__name__, verbose)
        self.volumes: List[RegionVolume] = []
        self.master = master
        for volume in volumes:
            self.add(volume)

    def add(self, volume: RegionVolume) -> None:
        if not isinstance(volume, RegionVolume):
            raise TypeError(f"Expected RegionVolume, got {type(volume).__name__}")
        self.volumes.append(volume)

    def _all_volumes(self) -> List[RegionVolume]:
        return ([self.master] if self.master is not None else []) + self.volumes

    def fill_blanks(self) -> None:
        """
        Give every volume an empty mask for each image that only other volumes cover,
        so that all volumes stack to the same number of frames.
        """
        images: Dict[int, object] = {}
        for volume in self._all_volumes():
            for mask in volume.slice_masks:
                if mask.image is not None:
                    images.setdefault(id(mask.image), mask.image)
        for volume in self._all_volumes():
            present = {id(mask.image) for mask in volume.slice_masks}
            added = 0
            for key, image in images.items():
                if key not in present:
                    volume.add(SliceMask.empty(image))
                    added += 1
            if added:
                self.logger.debug(f"Added {added} empty masks to {volume!r}")

    def sort_volumes(self) -> None:
        """
        Sort the first volume (the master when set) by slice position and put
        the masks of every other volume in the same image order.
        """
        volumes = self._all_volumes()
        if not volumes:
            return
        first = volumes[0]
        first.sort()
        if len(volumes) < 2:
            return
        counts = [len(volume) for volume in volumes]
        if len(set(counts)) > 1:
            raise ValueError(f"Volumes hold different numbers of masks: {counts}")
        reference = first.images()
        if any(image is None for image in reference):
            raise ValueError("Cannot align volumes: a mask of the first volume has no image")
        for volume in volumes[1:]:
            index = {id(mask.image): i for i, mask in enumerate(volume.slice_masks)}
            try:
                order = [index[id(image)] for image in reference]
            except KeyError:
                raise ValueError(f"{volume!r} does not cover the images of the first volume")
            volume.reorder(order)

    def narrays(self, sort_slices: bool = True) -> List[np.ndarray]:
        return [volume.narray(sort_slices) for volume in self.volumes]

    def _prepare(self) -> np.ndarray:
        if self.master is None:
            raise ValueError("No master volume to compare against")
        self.fill_blanks()
        self.sort_volumes()
        master = self.master.narray(sort_slices=False)
        for volume in self.volumes:
            shape = volume.narray(sort_slices=False).shape
            if shape != master.shape:
                raise ValueError(f"Volume shape {shape} differs from master shape {master.shape}")
        return master

    def score_dice(self) -> None:
        """Set the Dice coefficient 2|A ∩ M| / (|A| + |M|) of each volume. NaN when both are empty."""
        master = self._prepare()
        for volume in self.volumes:
            arr = volume.narray(sort_slices=False)
            total = int(arr.sum()) + int(master.sum())
            overlap = int(np.logical_and(arr, master).sum())
            volume.dice = 2.0 * overlap / total if total else float('nan')

    def score_ss(self) -> None:
        """Set the sensitivity and specificity of each volume relative to the master."""
        master = self._prepare()
        for volume in self.volumes:
            arr = volume.narray(sort_slices=False)
            tp = int(np.logical_and(arr, master).sum())
            fn = int(np.logical_and(~arr, master).sum())
            tn = int(np.logical_and(~arr, ~master).sum())
            fp = int(np.logical_and(arr, ~master).sum())
            volume.sensitivity = tp / (tp + fn) if tp + fn else float('nan')
            volume.specificity = tn / (tn + fp) if tn + fp else float('nan')

    @staticmethod
    def _score_key(value: Optional[float]) -> float:
        if value is None or np.isnan(value):
            return -np.inf
        return value

    def by_sensitivity(self) -> List[RegionVolume]:
        return sorted(self.volumes, key=lambda v: self._score_key(v.sensitivity), reverse=True)

    def by_specificity(self) -> List[RegionVolume]:
        return sorted(self.volumes, key=lambda v: self._score_key(v.specificity), reverse=True)

    def scores(self) -> pd.DataFrame:
        """
        Score every volume and collect the results.

        Returns:
            pd.DataFrame: Columns Structure, Dice, Sensitivity and Specificity.
        """
        self.score_dice()
        self.score_ss()
        rows = []
        for volume in self.volumes:
            label = volume.source.label if volume.source is not None else None
            rows.append({
                'Structure': label,
                'Dice': volume.dice,
                'Sensitivity': volume.sensitivity,
                'Specificity': volume.specificity,
            })
            self.logger.info(f"  '{label}': dice {volume.dice:.3f}, sensitivity {volume.sensitivity:.3f}, "
                             f"specificity {volume.specificity:.3f}")
        return pd.DataFrame(rows)
