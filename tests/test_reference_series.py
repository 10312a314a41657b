"""
Unit tests for reference series lookup, sample grids and their adapters.
"""
import numpy as np
import pytest
import SimpleITK as sitk
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian

from conftest import AXIAL, make_series
from reference_series import ImageSlice, ReferenceSeries, SampleGrid


def make_image_dataset(z, uid):
    ds = Dataset()
    ds.SOPInstanceUID = uid
    ds.SeriesInstanceUID = "1.2.840.1"
    ds.ImagePositionPatient = [-5.0, -5.0, z]
    ds.ImageOrientationPatient = AXIAL
    ds.PixelSpacing = [1.0, 0.5]
    ds.Rows = 4
    ds.Columns = 6
    return ds


def make_dose_dataset(samples, offsets, scaling):
    frames, rows, columns = samples.shape
    ds = Dataset()
    ds.file_meta = FileMetaDataset()
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds.ImagePositionPatient = [0.0, 0.0, 20.0]
    ds.ImageOrientationPatient = AXIAL
    ds.PixelSpacing = [2.0, 2.0]
    ds.Rows = rows
    ds.Columns = columns
    ds.NumberOfFrames = frames
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 0
    ds.PixelData = samples.astype(np.uint16).tobytes()
    ds.DoseGridScaling = scaling
    ds.GridFrameOffsetVector = offsets
    return ds


def test_position_lookup_rounds_to_two_decimals(series):
    assert series.image(12.004) is series.images[1]
    assert series.image(13.0) is None


def test_close_match():
    strict = make_series(close_match=False)
    close = make_series(close_match=True)
    assert strict.image(12.5) is None
    assert close.image(12.5) is close.images[1]
    assert close.image(13.0) is None, "1 mm is beyond a third of the 2 mm spacing"


def test_images_sorted_and_linked():
    images = [ImageSlice(4, 4, 0, 0, z, 1, 1, AXIAL) for z in (14.0, 10.0, 12.0)]
    series = ReferenceSeries(images)
    assert series.positions() == [10.0, 12.0, 14.0]
    assert series.slice_spacing == 2.0
    assert all(img.series is series for img in series)
    assert series.index_of(images[0]) == 2


def test_single_image_has_no_spacing():
    assert make_series(frames=1).slice_spacing is None


def test_add_image_type_check(series):
    with pytest.raises(TypeError):
        series.add_image("not an image")


def test_from_datasets():
    datasets = [make_image_dataset(z, f"1.2.3.{i}") for i, z in enumerate([5.0, 1.0, 3.0])]
    series = ReferenceSeries.from_datasets(datasets)
    assert series.positions() == [1.0, 3.0, 5.0]
    image = series.images[0]
    assert (image.columns, image.rows) == (6, 4)
    assert image.col_spacing == 0.5 and image.row_spacing == 1.0
    assert image.uid == "1.2.3.1"
    assert series.uid == "1.2.840.1"


def test_from_dataset_missing_attribute():
    ds = make_image_dataset(0.0, "1.2.3")
    del ds.PixelSpacing
    with pytest.raises(ValueError):
        ImageSlice.from_dataset(ds)


def test_from_sitk():
    image = sitk.Image(6, 4, 3, sitk.sitkFloat32)
    image.SetOrigin((-5.0, -5.0, 10.0))
    image.SetSpacing((0.5, 1.0, 2.0))
    series = ReferenceSeries.from_sitk(image)
    assert series.positions() == [10.0, 12.0, 14.0]
    first = series.images[0]
    assert (first.columns, first.rows) == (6, 4)
    assert first.col_spacing == 0.5 and first.row_spacing == 1.0
    assert first.cosines == AXIAL


def test_from_sitk_requires_3d():
    with pytest.raises(ValueError):
        ReferenceSeries.from_sitk(sitk.Image(4, 4, sitk.sitkUInt8))


def test_sample_grid_scaling_and_2d_input():
    grid = SampleGrid([[1, 5], [10, 20]], scaling=0.5)
    assert grid.samples.shape == (1, 2, 2)
    assert grid.values()[0].tolist() == [[0.5, 2.5], [5.0, 10.0]]
    assert grid.frame_index(ImageSlice(2, 2, 0, 0, 0, 1, 1, AXIAL)) is None


def test_sample_grid_from_sitk():
    samples = np.arange(24, dtype=np.int16).reshape(2, 3, 4)
    image = sitk.GetImageFromArray(samples)
    image.SetOrigin((0.0, 0.0, 30.0))
    grid = SampleGrid.from_sitk(image, scaling=2.0)
    assert grid.samples.shape == (2, 3, 4)
    assert np.array_equal(grid.values(), samples * 2.0)
    assert grid.series.positions() == [30.0, 31.0]
    assert grid.frame_index(grid.series.images[1]) == 1


def test_sample_grid_from_dataset():
    samples = np.arange(12).reshape(2, 2, 3)
    ds = make_dose_dataset(samples, [0.0, 3.0], 0.5)
    grid = SampleGrid.from_dataset(ds)
    assert grid.scaling == 0.5
    assert np.allclose(grid.values(), samples * 0.5)
    assert grid.series.positions() == [20.0, 23.0]
    assert grid.series.images[0].col_spacing == 2.0
