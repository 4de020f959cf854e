from __future__ import annotations

import io
import logging
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from core.config import ConversionConfig
from core.ditherer import floyd_steinberg, map_to_palette
from core.models import ScaleMode, StaticPixelArt
from core.quantizer import median_cut
from utils.image_utils import composite_over, hex_to_rgb, pil_to_rgba, solid_canvas, to_rgba

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, memoryview, Image.Image, np.ndarray]

# Text is drawn this many times larger than the target before pixelization
TEXT_SUPERSAMPLE = 4
# Font size as a share of the canvas height
TEXT_HEIGHT_RATIO = 0.7


def decode_image(source: ImageSource) -> np.ndarray:
    """
    Decode a still image (first frame for animated sources) into an RGBA raster.

    Raises:
        ValueError: If the bytes are empty or Pillow cannot identify them.
    """
    if isinstance(source, np.ndarray):
        return to_rgba(source)
    if isinstance(source, Image.Image):
        return pil_to_rgba(source)

    data = bytes(source)
    if not data:
        raise ValueError("Image data is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.seek(0)
            return pil_to_rgba(img)
    except (UnidentifiedImageError, OSError, EOFError) as e:
        raise ValueError(f"Failed to decode image: {e}") from e


def load_font(size: int, font_path: Optional[str] = None):
    if font_path is None:
        return ImageFont.load_default(size=size)
    try:
        return ImageFont.truetype(font_path, size)
    except OSError as e:
        raise ValueError(f"Failed to load font {font_path}: {e}") from e


def render_text(
    text: str,
    width: int,
    height: int,
    color: str = "#ffffff",
    font_path: Optional[str] = None,
    scale: int = TEXT_SUPERSAMPLE,
) -> np.ndarray:
    """
    Draw ``text`` (typically a single emoji) centered on a transparent canvas.

    The canvas is ``scale`` times the target size and the font is sized to
    ``TEXT_HEIGHT_RATIO`` of its height. Glyphs from a color emoji font at
    ``font_path`` keep their own colors; ``color`` applies to the rest.

    Raises:
        ValueError: If ``text`` is blank or the font cannot be loaded.
    """
    if not text or not text.strip():
        raise ValueError("Text is empty")
    canvas_w, canvas_h = width * scale, height * scale
    font = load_font(max(1, int(canvas_h * TEXT_HEIGHT_RATIO)), font_path)

    img = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    origin = ((canvas_w - (right - left)) / 2 - left, (canvas_h - (bottom - top)) / 2 - top)
    draw.text(
        origin,
        text,
        fill=hex_to_rgb(color) + (255,),
        font=font,
        embedded_color=font_path is not None and isinstance(font, ImageFont.FreeTypeFont),
    )
    return pil_to_rgba(img)


def smooth(raster: np.ndarray) -> np.ndarray:
    """3x3 box blur to knock down noise before pixelization."""
    return cv2.blur(raster, (3, 3))


def scaled_size(
    src_width: int, src_height: int, width: int, height: int, mode: ScaleMode
) -> Tuple[int, int]:
    if mode == ScaleMode.STRETCH:
        return width, height

    sx = width / src_width
    sy = height / src_height
    if mode == ScaleMode.FIT:
        scale = min(sx, sy)
        return (
            min(width, max(1, int(round(src_width * scale)))),
            min(height, max(1, int(round(src_height * scale)))),
        )
    scale = max(sx, sy)
    return (
        max(width, int(round(src_width * scale))),
        max(height, int(round(src_height * scale))),
    )


def render_to_canvas(
    raster: np.ndarray,
    width: int,
    height: int,
    mode: ScaleMode = ScaleMode.FIT,
    background: Tuple[int, int, int, int] = (0, 0, 0, 255),
) -> np.ndarray:
    """
    Draw ``raster`` onto a ``width`` x ``height`` background-filled surface.

    Resampling is nearest-neighbor to keep hard pixel edges. ``fit`` letterboxes,
    ``fill`` crops the overflow symmetrically, ``stretch`` ignores aspect ratio.
    """
    src_h, src_w = raster.shape[0], raster.shape[1]
    if src_w == 0 or src_h == 0:
        raise ValueError("Cannot render an empty raster")

    new_w, new_h = scaled_size(src_w, src_h, width, height, mode)
    scaled = cv2.resize(raster, (new_w, new_h), interpolation=cv2.INTER_NEAREST)

    # Offsets are negative when the scaled image overflows the canvas (fill)
    off_x = (width - new_w) // 2
    off_y = (height - new_h) // 2
    x1, y1 = max(0, off_x), max(0, off_y)
    x2, y2 = min(width, off_x + new_w), min(height, off_y + new_h)

    canvas = solid_canvas(width, height, background)
    composite_over(
        canvas[y1:y2, x1:x2],
        scaled[y1 - off_y:y2 - off_y, x1 - off_x:x2 - off_x],
    )
    return canvas


def finalize_palette(colors: List[str], background: str, max_colors: int) -> List[str]:
    """Put the background color at index 0 when missing, then cut to ``max_colors``."""
    palette = list(colors)
    background = background.lower()
    if background not in palette:
        palette.insert(0, background)
    return palette[:max_colors]


class StaticImporter:
    def __init__(self, config: Optional[ConversionConfig] = None) -> None:
        self.config = (config or ConversionConfig()).validate()

    def render(self, source: ImageSource) -> np.ndarray:
        raster = decode_image(source)
        if self.config.smoothing:
            raster = smooth(raster)
        return render_to_canvas(
            raster,
            self.config.target_width,
            self.config.target_height,
            self.config.scale_mode,
            self.config.background_rgba,
        )

    def import_image(
        self,
        source: ImageSource,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> StaticPixelArt:
        cfg = self.config
        canvas = self.render(source)

        colors = median_cut(canvas, cfg.max_colors, cfg.alpha_threshold)
        palette = finalize_palette(colors, cfg.background, cfg.max_colors)

        if cfg.dither:
            pixels = floyd_steinberg(canvas, palette, cfg.alpha_threshold)
        else:
            pixels = map_to_palette(canvas, palette, cfg.alpha_threshold)

        logger.info(
            "Imported static image at %dx%d with %d colors (dither=%s, mode=%s)",
            cfg.target_width, cfg.target_height, len(palette), cfg.dither, cfg.scale_mode.value,
        )
        return StaticPixelArt(
            width=cfg.target_width,
            height=cfg.target_height,
            palette=palette,
            pixels=pixels,
            title=title,
            description=description,
            tags=tags,
        )

    def import_text(
        self,
        text: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        color: str = "#ffffff",
        font_path: Optional[str] = None,
    ) -> StaticPixelArt:
        raster = render_text(text, self.config.target_width, self.config.target_height, color, font_path)
        return self.import_image(raster, title, description, tags)


def import_static(
    source: ImageSource,
    config: Optional[ConversionConfig] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> StaticPixelArt:
    return StaticImporter(config).import_image(source, title, description, tags)
