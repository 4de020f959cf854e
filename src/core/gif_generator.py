from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

import imageio.v3 as iio
import numpy as np

from core.models import PixelAnimation, PixelGrid, StaticPixelArt
from utils.image_utils import palette_to_array

PixelArt = Union[StaticPixelArt, PixelAnimation]


class GifGenerator:
    """Render produced pixel art back to images: RGBA rasters, upscaled previews and GIF files."""

    def __init__(self, scale: int = 8) -> None:
        self.scale = max(1, scale)

    def render_pixels(self, palette: List[str], pixels: PixelGrid) -> np.ndarray:
        """Turn a palette-indexed grid into an RGBA raster; transparent cells get alpha 0."""
        colors = palette_to_array(palette).astype(np.uint8)
        grid = np.asarray(pixels, dtype=np.int64)
        out = np.zeros(grid.shape + (4,), dtype=np.uint8)
        valid = (grid >= 0) & (grid < len(colors))
        out[valid, :3] = colors[grid[valid]]
        out[valid, 3] = 255
        return out

    def upscale(self, raster: np.ndarray, scale: Optional[int] = None) -> np.ndarray:
        """Nearest-neighbor enlargement so single pixels stay crisp blocks."""
        factor = max(1, scale or self.scale)
        return np.repeat(np.repeat(raster, factor, axis=0), factor, axis=1)

    def render_frames(self, art: PixelArt) -> List[np.ndarray]:
        if isinstance(art, PixelAnimation):
            return [self.upscale(self.render_pixels(art.palette, f.pixels)) for f in art.frames]
        return [self.upscale(self.render_pixels(art.palette, art.pixels))]

    def generate_gif(self, art: PixelArt, output_path: Union[str, Path], default_duration: int = 100) -> str:
        frames = self.render_frames(art)
        if isinstance(art, PixelAnimation):
            durations = [f.duration_ms for f in art.frames]
            loop = art.loop_count
        else:
            durations = [default_duration]
            loop = 0
        # Pillow's single-frame GIF writer only takes a scalar duration
        iio.imwrite(
            str(output_path),
            np.stack(frames),
            extension=".gif",
            is_batch=True,
            duration=durations if len(frames) > 1 else durations[0],
            loop=loop,
        )
        return str(output_path)
