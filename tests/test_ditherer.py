"""
Tests for palette mapping with and without Floyd-Steinberg error diffusion.
"""

import numpy as np
import pytest

from core.ditherer import floyd_steinberg, map_to_palette, nearest_index
from core.models import TRANSPARENT_INDEX

BW = ["#000000", "#ffffff"]


@pytest.fixture(params=[floyd_steinberg, map_to_palette], ids=["dither", "nearest"])
def mapper(request):
    return request.param


class TestMapping:
    def test_uniform_image_maps_to_one_index(self, mapper, solid_raster):
        grid = mapper(solid_raster((250, 250, 250)), BW)
        assert {v for row in grid for v in row} == {1}

    def test_indices_in_range(self, mapper):
        rng = np.random.default_rng(7)
        raster = rng.integers(0, 256, size=(12, 9, 4), dtype=np.uint8)
        raster[:, :, 3] = 255
        palette = ["#000000", "#ff0000", "#00ff00", "#0000ff", "#ffffff"]
        grid = mapper(raster, palette)
        assert len(grid) == 12 and all(len(row) == 9 for row in grid)
        assert all(0 <= v < len(palette) for row in grid for v in row)

    def test_transparent_pixels_get_sentinel(self, mapper, solid_raster):
        raster = solid_raster((255, 255, 255))
        raster[0, 0, 3] = 0
        raster[2, 3, 3] = 127
        grid = mapper(raster, BW)
        assert grid[0][0] == TRANSPARENT_INDEX
        assert grid[2][3] == TRANSPARENT_INDEX
        assert grid[1][1] == 1

    def test_empty_palette_rejected(self, mapper, solid_raster):
        with pytest.raises(ValueError):
            mapper(solid_raster((0, 0, 0)), [])


class TestFloydSteinberg:
    def test_mid_gray_mixes_black_and_white(self, solid_raster):
        grid = floyd_steinberg(solid_raster((128, 128, 128), size=(16, 16)), BW)
        values = [v for row in grid for v in row]
        ones = values.count(1)
        # Error diffusion approximates the gray with a roughly even mix
        assert 0.35 < ones / len(values) < 0.65

    def test_nearest_mapping_does_not_mix(self, solid_raster):
        grid = map_to_palette(solid_raster((128, 128, 128)), BW)
        assert {v for row in grid for v in row} == {1}

    def test_exact_palette_colors_unchanged(self, solid_raster):
        raster = solid_raster((0, 0, 0), size=(4, 4))
        raster[:, 2:, :3] = 255
        assert floyd_steinberg(raster, BW) == map_to_palette(raster, BW)


def test_nearest_index_first_match_wins():
    colors = np.array([[0, 0, 0], [20, 20, 20]], dtype=np.float64)
    assert nearest_index(np.array([10.0, 10.0, 10.0]), colors) == 0
