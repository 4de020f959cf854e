"""Shared color and raster conversion utilities."""
from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image

RGB = Tuple[int, int, int]
RGBA = Tuple[int, int, int, int]


def hex_to_rgb(color: str) -> RGB:
    """Parse ``#rrggbb`` (or ``rrggbb``, or short ``#rgb``) into an RGB tuple."""
    value = color.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {color!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{int(r):02x}{int(g):02x}{int(b):02x}"


def palette_to_array(palette) -> np.ndarray:
    """Convert a list of hex colors to an ``(n, 3)`` float array."""
    if not palette:
        return np.zeros((0, 3), dtype=np.float64)
    return np.array([hex_to_rgb(c) for c in palette], dtype=np.float64)


def to_rgba(arr: np.ndarray) -> np.ndarray:
    """Normalize an image array to ``(height, width, 4)`` uint8 RGBA.

    Supports:
    - 2-D arrays (grayscale, any dtype; non-uint8 data is rescaled)
    - 3-D arrays with 1, 3 (RGB) or 4 (RGBA) channels

    Always returns a new array so callers may mutate the result freely.
    """
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3:
        raise ValueError("Unsupported image shape")

    if arr.dtype != np.uint8:
        arr_f = arr.astype(np.float64)
        lo, hi = float(arr_f.min()), float(arr_f.max())
        if hi > 255 or lo < 0:
            # Normalize out-of-range data (e.g. uint16) into 0..255
            if hi - lo > 0:
                arr_f = (arr_f - lo) / (hi - lo) * 255.0
            else:
                arr_f = np.zeros_like(arr_f)
        arr = np.clip(arr_f, 0, 255).astype(np.uint8)

    h, w, c = arr.shape
    if c == 4:
        return arr.copy()
    out = np.empty((h, w, 4), dtype=np.uint8)
    if c in (1, 3):
        # Single-channel data broadcasts across R, G and B
        out[:, :, :3] = arr
    else:
        raise ValueError(f"Unsupported channel count: {c}")
    out[:, :, 3] = 255
    return out


def pil_to_rgba(image: Image.Image) -> np.ndarray:
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.array(image, dtype=np.uint8)


def solid_canvas(width: int, height: int, color: RGBA) -> np.ndarray:
    canvas = np.empty((height, width, 4), dtype=np.uint8)
    canvas[:, :] = color
    return canvas


def composite_over(dst: np.ndarray, src: np.ndarray) -> None:
    """Alpha-composite ``src`` over ``dst`` in place (both RGBA, same shape)."""
    alpha = src[:, :, 3:4].astype(np.float32) / 255.0
    if np.all(alpha == 1.0):
        dst[:] = src
        return
    dst_alpha = dst[:, :, 3:4].astype(np.float32) / 255.0
    out_alpha = alpha + dst_alpha * (1.0 - alpha)
    rgb = src[:, :, :3].astype(np.float32) * alpha + dst[:, :, :3].astype(np.float32) * dst_alpha * (
        1.0 - alpha
    )
    safe = np.where(out_alpha > 0, out_alpha, 1.0)
    dst[:, :, :3] = np.clip(np.rint(rgb / safe), 0, 255).astype(np.uint8)
    dst[:, :, 3:4] = np.clip(np.rint(out_alpha * 255.0), 0, 255).astype(np.uint8)
