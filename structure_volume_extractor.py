"""
Module for extracting structure volumes and dose metrics from contour data.
This class takes a reference image series and the contours of each structure,
generates a binary region volume for each structure, and computes the volume
(in cc) and dose statistics per structure.
"""
from typing import Dict, List, Optional, Sequence

import pandas as pd
import pydicom

from contour_slice import ContourSlice
from coordinate_space import Contour
from dose_distribution import DoseDistribution
from log_utils import get_logger
from reference_series import ReferenceSeries, SampleGrid
from region_volume import RegionVolume


class StructureVolumeExtractor:
    """
    Class to build structure masks and compute structure volumes and dose metrics.
    """

    def __init__(self, series: ReferenceSeries, structures: Dict[str, Sequence[ContourSlice]],
                 verbose: bool = True, max_workers: Optional[int] = None) -> None:
        """
        Initialize the extractor with a reference series and structure contours.

        Args:
            series (ReferenceSeries): Images the contours are drawn on.
            structures (Dict[str, Sequence[ContourSlice]]): Contour slices per structure name.
            verbose (bool): If True, log detailed messages.
            max_workers (int, optional): Thread pool size used per structure.
        """
        self.series = series
        self.structures: Dict[str, List[ContourSlice]] = {name: list(slices) for name, slices in structures.items()}
        self.verbose = verbose
        self.max_workers = max_workers
        self.logger = get_logger(self.__class__.__name__, verbose)
        self.structure_masks: Dict[str, RegionVolume] = {}

    def log(self, message: str) -> None:
        """Log a message if verbosity is enabled."""
        if self.verbose:
            self.logger.info(message)

    @classmethod
    def from_rtstruct(cls, rtstruct_data: pydicom.Dataset, series: ReferenceSeries,
                      verbose: bool = True, max_workers: Optional[int] = None) -> "StructureVolumeExtractor":
        """
        Collect the contours of every structure in an in-memory structure set.

        Args:
            rtstruct_data (pydicom.Dataset): Structure set with StructureSetROISequence
                and ROIContourSequence.
            series (ReferenceSeries): Images the contours are drawn on.
            verbose (bool): If True, log detailed messages.
            max_workers (int, optional): Thread pool size used per structure.

        Returns:
            StructureVolumeExtractor: Extractor holding one list of contour slices per structure.
        """
        if not hasattr(rtstruct_data, 'StructureSetROISequence'):
            raise ValueError("Structure set is missing 'StructureSetROISequence'")

        roi_dict: Dict[int, str] = {}
        for roi in rtstruct_data.StructureSetROISequence:
            if hasattr(roi, 'ROINumber') and hasattr(roi, 'ROIName'):
                roi_dict[int(roi.ROINumber)] = roi.ROIName.strip()

        structures: Dict[str, Dict[float, ContourSlice]] = {name: {} for name in roi_dict.values()}
        for roi_contour in getattr(rtstruct_data, 'ROIContourSequence', []):
            roi_name = roi_dict.get(int(roi_contour.ReferencedROINumber))
            if roi_name is None:
                continue
            slices = structures[roi_name]
            for number, contour in enumerate(getattr(roi_contour, 'ContourSequence', []), start=1):
                contour_data = getattr(contour, 'ContourData', [])
                if not contour_data:
                    continue
                pos = ReferenceSeries.position_key(float(contour_data[2]))
                if pos not in slices:
                    uid = None
                    if hasattr(contour, 'ContourImageSequence') and len(contour.ContourImageSequence) > 0:
                        uid = contour.ContourImageSequence[0].ReferencedSOPInstanceUID
                    slices[pos] = ContourSlice(pos=pos, uid=uid)
                Contour.from_contour_data(contour_data, number=getattr(contour, 'ContourNumber', number),
                                          contour_slice=slices[pos])

        return cls(series, {name: list(slices.values()) for name, slices in structures.items()},
                   verbose=verbose, max_workers=max_workers)

    def build_masks(self) -> Dict[str, RegionVolume]:
        """
        Rasterize every structure onto the reference series.

        Returns:
            Dict[str, RegionVolume]: Region volume per structure name.
        """
        self.log(f"Building masks for {len(self.structures)} structures...")
        for name, contour_slices in self.structures.items():
            self.structure_masks[name] = RegionVolume.from_contours(
                contour_slices, self.series, label=name, max_workers=self.max_workers, verbose=self.verbose)
            self.log(f"  Structure '{name}': {len(self.structure_masks[name])} slices")
        return self.structure_masks

    def calculate_volumes(self) -> pd.DataFrame:
        """
        Calculate the volumes (in cc) for each structure based on the generated masks.

        Returns:
            pd.DataFrame: Structure names, volumes in cc, slice counts and missed slice counts.
        """
        if not self.structure_masks:
            raise ValueError("No structure masks built. Call build_masks() first.")
        self.log("Calculating structure volumes...")
        volumes = []
        for structure, volume in self.structure_masks.items():
            volume_cc = volume.size() if len(volume) else 0.0
            volumes.append({
                'Structure': structure,
                'Volume_cc': volume_cc,
                'Slices': len(volume),
                'Missed_slices': volume.missed_slices,
            })
            self.log(f"  Structure '{structure}': {volume_cc:.2f} cc")
        return pd.DataFrame(volumes)

    def dose_metrics(self, grid: SampleGrid, doses: Sequence[float] = ()) -> pd.DataFrame:
        """
        Compute dose statistics for every structure.

        Args:
            grid (SampleGrid): Dose grid with the same image geometry as the masks.
            doses (Sequence[float]): Dose levels for which V(dose) columns are added.

        Returns:
            pd.DataFrame: One row per structure with N, Mean, Median, Min, Max, D2, D50,
                D98, RMS_dev, Std_dev, HI and V_<dose> columns. Structures with no
                sampled voxels are left out.
        """
        if not self.structure_masks:
            raise ValueError("No structure masks built. Call build_masks() first.")
        rows = []
        for structure, volume in self.structure_masks.items():
            distribution = DoseDistribution.create(volume, grid)
            if len(distribution) == 0:
                self.logger.warning(f"Structure '{structure}' has no dose samples, skipping")
                continue
            row = {'Structure': structure}
            row.update(distribution.summary().to_dict())
            for dose in doses:
                row[f"V_{dose:g}"] = distribution.v(dose)
            rows.append(row)
            self.log(f"  Structure '{structure}': mean dose {row['Mean']:.2f}")
        return pd.DataFrame(rows)

    def get_structure_volumes(self) -> pd.DataFrame:
        """
        Execute the full workflow: build masks and compute volumes.

        Returns:
            pd.DataFrame: DataFrame with the computed volumes.
        """
        self.build_masks()
        return self.calculate_volumes()
