"""Median-cut palette extraction."""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple

import numpy as np

from utils.image_utils import rgb_to_hex

logger = logging.getLogger(__name__)

DEFAULT_ALPHA_THRESHOLD = 128


def opaque_pixels(raster: np.ndarray, alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD) -> np.ndarray:
    """Return the RGB values of every pixel whose alpha reaches the threshold, as ``(n, 3)`` int64."""
    flat = raster.reshape(-1, 4)
    return flat[flat[:, 3] >= alpha_threshold][:, :3].astype(np.int64)


def _cut(pixels: np.ndarray, budget: int, leaves: List[Tuple[np.ndarray, int]]) -> None:
    if len(pixels) == 1 or budget == 1:
        leaves.append((pixels.mean(axis=0), len(pixels)))
        return

    ranges = pixels.max(axis=0) - pixels.min(axis=0)
    channel = int(np.argmax(ranges))
    ordered = pixels[np.argsort(pixels[:, channel], kind="stable")]
    median = len(ordered) // 2

    _cut(ordered[:median], budget // 2, leaves)
    _cut(ordered[median:], budget - budget // 2, leaves)


def median_cut_pixels(pixels: np.ndarray, max_colors: int) -> List[str]:
    """Quantize an ``(n, 3)`` array of RGB values down to at most ``max_colors`` hex colors.

    Colors come back ordered by how many pixels they stand for, most first.
    """
    if not 1 <= max_colors <= 256:
        raise ValueError("max_colors must be between 1 and 256")
    if len(pixels) == 0:
        return []

    leaves: List[Tuple[np.ndarray, int]] = []
    _cut(pixels, max_colors, leaves)

    # Identical leaves appear when a box holds fewer distinct colors than its budget
    weights: Dict[str, int] = {}
    for mean, count in leaves:
        r, g, b = (int(round(v)) for v in mean)
        key = rgb_to_hex(r, g, b)
        weights[key] = weights.get(key, 0) + count

    return sorted(weights, key=lambda c: weights[c], reverse=True)


def median_cut(
    raster: np.ndarray,
    max_colors: int,
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
) -> List[str]:
    """
    Extract a palette from an RGBA raster using median-cut.

    Args:
        raster: ``(height, width, 4)`` uint8 array
        max_colors: Color budget, 1..256
        alpha_threshold: Pixels with alpha below this are ignored

    Returns:
        Up to ``max_colors`` ``#rrggbb`` strings, heaviest first. Empty when
        the raster has no opaque pixels; callers inject a background color.
    """
    pixels = opaque_pixels(raster, alpha_threshold)
    palette = median_cut_pixels(pixels, max_colors)
    logger.debug("median-cut: %d opaque pixels -> %d colors", len(pixels), len(palette))
    return palette
