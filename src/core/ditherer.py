"""Map RGBA rasters onto a fixed palette, with or without Floyd-Steinberg error diffusion."""
from __future__ import annotations

from typing import List

import numpy as np

from core.models import TRANSPARENT_INDEX, PixelGrid
from core.quantizer import DEFAULT_ALPHA_THRESHOLD
from utils.image_utils import palette_to_array

# Floyd-Steinberg distribution coefficients and offsets (dx, dy)
#       *   7/16
#   3/16 5/16 1/16
FS_DISTRIBUTION = (
    ((1, 0), 7 / 16),
    ((-1, 1), 3 / 16),
    ((0, 1), 5 / 16),
    ((1, 1), 1 / 16),
)


def _palette_or_raise(palette: List[str]) -> np.ndarray:
    colors = palette_to_array(palette)
    if len(colors) == 0:
        raise ValueError("Cannot map pixels onto an empty palette")
    return colors


def nearest_index(color: np.ndarray, colors: np.ndarray) -> int:
    """Index of the palette entry closest to ``color`` (first match wins ties)."""
    dist = np.sum((colors - color) ** 2, axis=1)
    return int(np.argmin(dist))


def floyd_steinberg(
    raster: np.ndarray,
    palette: List[str],
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
) -> PixelGrid:
    """
    Dither an RGBA raster onto ``palette`` with Floyd-Steinberg error diffusion.

    Pixels with alpha below ``alpha_threshold`` become ``TRANSPARENT_INDEX``
    and neither receive a color nor push error to their neighbors.
    """
    colors = _palette_or_raise(palette)
    height, width = raster.shape[0], raster.shape[1]

    # Use float for error accumulation
    work = raster[:, :, :3].astype(np.float64)
    opaque = raster[:, :, 3] >= alpha_threshold
    grid: PixelGrid = [[TRANSPARENT_INDEX] * width for _ in range(height)]

    for y in range(height):
        row = grid[y]
        for x in range(width):
            if not opaque[y, x]:
                continue
            old = work[y, x]
            index = nearest_index(old, colors)
            row[x] = index
            error = old - colors[index]
            if not error.any():
                continue
            for (dx, dy), weight in FS_DISTRIBUTION:
                nx, ny = x + dx, y + dy
                if 0 <= nx < width and 0 <= ny < height:
                    work[ny, nx] += error * weight

    return grid


def map_to_palette(
    raster: np.ndarray,
    palette: List[str],
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
) -> PixelGrid:
    """Plain nearest-color mapping, no error diffusion."""
    colors = _palette_or_raise(palette)
    height, width = raster.shape[0], raster.shape[1]

    rgb = raster[:, :, :3].reshape(-1, 1, 3).astype(np.float64)
    dist = np.sum((rgb - colors[np.newaxis, :, :]) ** 2, axis=2)
    indices = np.argmin(dist, axis=1).astype(np.int64)
    indices[raster[:, :, 3].reshape(-1) < alpha_threshold] = TRANSPARENT_INDEX

    return indices.reshape(height, width).tolist()
