"""
Unit tests for RegionVolume construction, stacking and ordering.
"""
import logging

import numpy as np
import pytest

from conftest import make_series
from contour_slice import ContourSlice
from coordinate_space import Contour
from reference_series import SampleGrid
from region_volume import CONTOURS, THRESHOLD, VOLUME, RegionVolume
from slice_mask import SliceMask


def square_slice(c0, r0, c1, r1, z):
    contour_slice = ContourSlice(pos=z)
    Contour.from_coordinates([c0, c1, c1, c0], [r0, r0, r1, r1], [z] * 4, contour_slice=contour_slice)
    return contour_slice


def test_whole_volume_masks():
    series = make_series(frames=4, columns=6, rows=5)
    volume = RegionVolume.from_volume(series)
    assert volume.frames == 4
    assert all(len(mask.selection) == 30 for mask in volume.slice_masks), "Every pixel should be selected"
    assert volume.source.kind == VOLUME
    assert (volume.columns, volume.rows) == (6, 5)


def test_threshold_marks_values_in_range():
    volume = RegionVolume.from_threshold([[1, 5], [10, 20]], minimum=5, maximum=10)
    assert volume.frames == 1
    assert volume.slice_masks[0].narray.tolist() == [[False, True], [True, False]]
    assert volume.source.kind == THRESHOLD
    assert (volume.source.minimum, volume.source.maximum) == (5, 10)


def test_threshold_single_bound_and_scaling():
    grid = SampleGrid([[1, 5], [10, 20]], scaling=0.5)
    volume = RegionVolume.from_threshold(grid, minimum=5)
    assert volume.slice_masks[0].narray.tolist() == [[False, False], [True, True]]
    volume = RegionVolume.from_threshold(grid, maximum=2.5)
    assert volume.slice_masks[0].narray.tolist() == [[True, True], [False, False]]


def test_threshold_requires_a_bound():
    with pytest.raises(ValueError):
        RegionVolume.from_threshold([[1, 2]])
    with pytest.raises(ValueError):
        RegionVolume.from_threshold([[1, 2]], minimum=3, maximum=1)


def test_threshold_pairs_frames_by_index(caplog):
    series = make_series(frames=3, columns=4, rows=4)
    samples = np.stack([np.full((4, 4), k) for k in range(2)])
    with caplog.at_level(logging.WARNING):
        volume = RegionVolume.from_threshold(SampleGrid(samples), minimum=1, series=series)
    assert volume.frames == 2
    assert volume.slice_masks[1].image is series.images[1]
    assert len(volume.slice_masks[0].selection) == 0
    assert len(volume.slice_masks[1].selection) == 16
    assert "2 frames" in caplog.text


def test_threshold_frame_shape_mismatch():
    series = make_series(frames=1, columns=4, rows=4)
    with pytest.raises(ValueError):
        RegionVolume.from_threshold(np.zeros((1, 3, 3)), minimum=0, series=series)


def test_from_contours_skips_unmatched_slices(caplog):
    series = make_series(frames=3)
    slices = [square_slice(2, 2, 7, 7, 14.0), square_slice(1, 1, 3, 3, 10.0), square_slice(2, 2, 4, 4, 30.0)]
    with caplog.at_level(logging.WARNING):
        volume = RegionVolume.from_contours(slices, series, label="PTV", max_workers=2)
    assert volume.frames == 2
    assert volume.missed_slices == 1
    assert [mask.pos_slice for mask in volume.slice_masks] == [10.0, 14.0]
    assert [len(mask.selection) for mask in volume.slice_masks] == [9, 36]
    assert volume.source.kind == CONTOURS and volume.source.label == "PTV"
    assert "could not be matched" in caplog.text


def test_from_contours_merges_slices_on_same_image():
    series = make_series(frames=1)
    slices = [square_slice(1, 1, 3, 3, 10.0), square_slice(6, 6, 8, 8, 10.0)]
    volume = RegionVolume.from_contours(slices, series)
    assert volume.frames == 1
    assert len(volume.slice_masks[0].selection) == 18


def test_narray_is_cached_and_invalidated():
    series = make_series(frames=3, columns=4, rows=2)
    volume = RegionVolume.from_volume(series)
    stacked = volume.narray()
    assert stacked.shape == (3, 2, 4)
    assert volume.narray() is stacked
    volume.add(SliceMask.empty(series.images[0]))
    assert volume.narray().shape == (4, 2, 4)


def test_narray_follows_changes_to_slice_masks():
    series = make_series(frames=2, columns=4, rows=2)
    volume = RegionVolume([SliceMask.empty(image) for image in series], series=series)
    assert volume.narray().sum() == 0
    volume.slice_masks[0].add(np.ones((2, 4)))
    assert volume.narray().sum() == volume.voxel_count() == 8


def test_empty_volume_has_no_array():
    with pytest.raises(ValueError):
        RegionVolume().narray()


def test_add_rejects_different_grid():
    volume = RegionVolume.from_volume(make_series(frames=1, columns=4, rows=4))
    with pytest.raises(ValueError):
        volume.add(SliceMask.empty(make_series(frames=1, columns=5, rows=4).images[0]))
    with pytest.raises(TypeError):
        volume.add(np.ones((4, 4)))


def test_reorder_and_sort():
    series = make_series(frames=3)
    volume = RegionVolume.from_volume(series)
    volume.reorder([2, 0, 1])
    assert [m.pos_slice for m in volume.slice_masks] == [14.0, 10.0, 12.0]
    assert volume.narray(sort_slices=False) is not None
    volume.narray()
    assert [m.pos_slice for m in volume.slice_masks] == [14.0, 10.0, 12.0], \
        "Stacking should not change the mask order"
    volume.sort()
    assert [m.pos_slice for m in volume.slice_masks] == [10.0, 12.0, 14.0]


def test_narray_orders_frames_without_reordering():
    series = make_series(frames=3, columns=4, rows=2)
    masks = []
    for k, image in enumerate(series):
        arr = np.zeros((2, 4), dtype=bool)
        arr.flat[:k + 1] = True
        masks.append(SliceMask(arr, image))
    volume = RegionVolume([masks[2], masks[0], masks[1]], series=series)
    assert [int(frame.sum()) for frame in volume.narray()] == [1, 2, 3]
    assert [int(frame.sum()) for frame in volume.narray(sort_slices=False)] == [3, 1, 2]
    assert volume.slice_masks[0] is masks[2]
    assert [int(frame.sum()) for frame in volume.narray()] == [1, 2, 3]


def test_reorder_rejects_non_permutation():
    volume = RegionVolume.from_volume(make_series(frames=3))
    with pytest.raises(ValueError):
        volume.reorder([0, 0, 1])
    with pytest.raises(ValueError):
        volume.reorder([0, 1])


def test_size_in_cc():
    series = make_series(frames=3, columns=10, rows=10, slice_spacing=2.0)
    volume = RegionVolume.from_volume(series)
    # (50 + 100 + 50) mm² * 2 mm = 400 mm³
    assert volume.size() == pytest.approx(0.4)
    assert volume.voxel_count() == 300


def test_comparison_scores_start_unset():
    volume = RegionVolume.from_volume(make_series(frames=1))
    assert (volume.dice, volume.sensitivity, volume.specificity) == (None, None, None)
