import pytest

from reference_series import ImageSlice, ReferenceSeries

AXIAL = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0]


def make_series(frames=3, columns=10, rows=10, spacing=1.0, slice_spacing=2.0, z0=10.0,
                origin=(0.0, 0.0), close_match=False):
    """Axial series with the first pixel of each slice at (origin, z0 + k * slice_spacing)."""
    images = [ImageSlice(columns, rows, origin[0], origin[1], z0 + k * slice_spacing,
                         spacing, spacing, AXIAL, uid=f"1.2.3.{k}")
              for k in range(frames)]
    return ReferenceSeries(images, close_match=close_match)


@pytest.fixture
def series():
    return make_series()
