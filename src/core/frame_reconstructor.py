from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from core.gif_decoder import DecodedGif, IndexedFrame
from core.models import DisposalMethod, FrameMetadata, RasterFrame

logger = logging.getLogger(__name__)

TRANSPARENT = (0, 0, 0, 0)


def _clip_region(meta: FrameMetadata, width: int, height: int) -> Tuple[int, int, int, int]:
    x1 = min(max(0, meta.left), width)
    y1 = min(max(0, meta.top), height)
    x2 = min(width, meta.left + meta.width)
    y2 = min(height, meta.top + meta.height)
    return x1, y1, max(x1, x2), max(y1, y2)


def indices_to_rgba(
    indices: np.ndarray,
    color_table: Optional[np.ndarray],
    transparent_index: Optional[int] = None,
) -> np.ndarray:
    """
    Expand palette indices into an RGBA patch.

    Indices beyond the color table (or every index when there is no table)
    come out black. Pixels equal to ``transparent_index`` get alpha 0.
    """
    table = np.zeros((256, 4), dtype=np.uint8)
    table[:, 3] = 255
    if color_table is not None and len(color_table):
        n = min(256, len(color_table))
        table[:n, :3] = color_table[:n]
    if transparent_index is not None:
        table[transparent_index, 3] = 0
    return table[indices]


class FrameReconstructor:
    """
    Compose indexed frames onto one persistent canvas.

    Before each frame the previous frame's disposal is applied: ``NONE`` keeps
    the canvas, ``RESTORE_BACKGROUND`` clears the previous region, and
    ``RESTORE_PREVIOUS`` puts back the snapshot taken before that frame was
    drawn. Frame 0 starts from a fully cleared canvas.
    """

    def __init__(
        self,
        width: int,
        height: int,
        global_color_table: Optional[np.ndarray] = None,
        background: Tuple[int, int, int, int] = TRANSPARENT,
    ) -> None:
        self.width = width
        self.height = height
        self.global_color_table = global_color_table
        self.background = background
        self.canvas = np.empty((height, width, 4), dtype=np.uint8)
        self.canvas[:, :] = background
        self._previous: Optional[FrameMetadata] = None
        self._snapshot: Optional[np.ndarray] = None
        self._count = 0

    def _dispose_previous(self) -> None:
        prev = self._previous
        if prev is None:
            return
        if prev.disposal == DisposalMethod.RESTORE_BACKGROUND:
            x1, y1, x2, y2 = _clip_region(prev, self.width, self.height)
            self.canvas[y1:y2, x1:x2] = self.background
        elif prev.disposal == DisposalMethod.RESTORE_PREVIOUS and self._snapshot is not None:
            self.canvas[:] = self._snapshot

    def compose(self, frame: IndexedFrame) -> np.ndarray:
        """Draw ``frame`` and return a copy of the full canvas after blitting."""
        meta = frame.metadata
        if self._count == 0:
            self.canvas[:, :] = self.background
        else:
            self._dispose_previous()

        if meta.disposal == DisposalMethod.RESTORE_PREVIOUS:
            self._snapshot = self.canvas.copy()
        else:
            self._snapshot = None

        table = frame.color_table if frame.color_table is not None else self.global_color_table
        transparent = meta.transparent_index if meta.has_transparency else None
        patch = indices_to_rgba(frame.indices, table, transparent)

        x1, y1, x2, y2 = _clip_region(meta, self.width, self.height)
        if x2 > x1 and y2 > y1:
            px, py = x1 - meta.left, y1 - meta.top
            region = patch[py:py + (y2 - y1), px:px + (x2 - x1)]
            opaque = region[:, :, 3] > 0
            self.canvas[y1:y2, x1:x2][opaque] = region[opaque]
        else:
            logger.debug("Frame %d lies outside the %dx%d canvas", meta.index, self.width, self.height)

        self._previous = meta
        self._count += 1
        return self.canvas.copy()


def reconstruct_frames(
    decoded: DecodedGif,
    background: Tuple[int, int, int, int] = TRANSPARENT,
) -> List[RasterFrame]:
    width, height = decoded.width, decoded.height
    if width == 0 or height == 0:
        # Some encoders leave the logical screen empty; size it from the frames
        width = max(f.metadata.left + f.metadata.width for f in decoded.frames)
        height = max(f.metadata.top + f.metadata.height for f in decoded.frames)
    reconstructor = FrameReconstructor(width, height, decoded.global_color_table, background)
    return [
        RasterFrame(raster=reconstructor.compose(frame), duration_ms=frame.metadata.delay_ms)
        for frame in decoded.frames
    ]
