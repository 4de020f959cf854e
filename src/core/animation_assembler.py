from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import List, Optional, Sequence

import numpy as np

from core.config import ConversionConfig
from core.ditherer import map_to_palette
from core.frame_sampler import sample_frame_indices
from core.models import AnimationFrame, PixelAnimation, RasterFrame, TimingSource
from core.quantizer import median_cut, median_cut_pixels, opaque_pixels
from core.results import ExtractionResult
from core.static_importer import finalize_palette, render_to_canvas

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Pixel Animation"


def union_palettes(candidates: Sequence[List[str]]) -> List[str]:
    """Merge palettes by exact color match, keeping first-seen order."""
    merged: List[str] = []
    seen = set()
    for palette in candidates:
        for color in palette:
            if color not in seen:
                seen.add(color)
                merged.append(color)
    return merged


def frame_durations(frames: Sequence[RasterFrame], timing: TimingSource, total_duration: int) -> List[int]:
    """
    Durations for the sampled frames.

    ``DECODED`` keeps each frame's own delay. ``UNIFORM`` spreads the source's
    loop duration evenly; the two policies never mix within one animation.
    """
    if timing == TimingSource.DECODED:
        return [max(1, int(f.duration_ms)) for f in frames]
    total = total_duration or sum(f.duration_ms for f in frames)
    return [max(1, total // len(frames))] * len(frames)


async def assemble_animation(
    extraction: ExtractionResult,
    config: ConversionConfig,
    executor: Optional[Executor] = None,
    title: Optional[str] = None,
) -> PixelAnimation:
    """
    Sample the extracted frames and build a ``PixelAnimation`` on one shared palette.

    Per-frame rendering and quantization run as independent tasks; the palette
    union and truncation happen only once every task has finished, so the
    outcome does not depend on completion order.
    """
    if not extraction.frames:
        raise ValueError("Cannot assemble an animation without frames")

    loop = asyncio.get_running_loop()
    indices = sample_frame_indices(len(extraction.frames), config.max_frames)
    sampled = [extraction.frames[i] for i in indices]
    width, height = config.target_width, config.target_height

    canvases = await asyncio.gather(*(
        loop.run_in_executor(
            executor, render_to_canvas, f.raster, width, height, config.scale_mode, config.background_rgba
        )
        for f in sampled
    ))

    if config.palette_strategy == "global":
        pooled = np.concatenate([opaque_pixels(c, config.alpha_threshold) for c in canvases])
        colors = await loop.run_in_executor(executor, median_cut_pixels, pooled, config.max_colors)
    else:
        candidates = await asyncio.gather(*(
            loop.run_in_executor(executor, median_cut, c, config.max_colors, config.alpha_threshold)
            for c in canvases
        ))
        colors = union_palettes(candidates)
        if len(colors) >= config.max_colors:
            logger.info("Unified palette has %d candidate colors; truncating to %d", len(colors), config.max_colors)

    palette = finalize_palette(colors, config.background, config.max_colors)

    grids = await asyncio.gather(*(
        loop.run_in_executor(executor, map_to_palette, c, palette, config.alpha_threshold)
        for c in canvases
    ))
    durations = frame_durations(sampled, extraction.timing, extraction.total_duration)

    if config.loop_count is not None:
        loop_count = config.loop_count
    else:
        loop_count = extraction.loop_count or 0

    logger.info(
        "Assembled %d of %d frame(s) via %s, %d colors, %s timing",
        len(sampled), extraction.source_frame_count, extraction.strategy, len(palette), extraction.timing.value,
    )
    return PixelAnimation(
        title=title or DEFAULT_TITLE,
        width=width,
        height=height,
        palette=palette,
        frame_delay=config.frame_delay,
        loop_count=loop_count,
        frames=[AnimationFrame(pixels=g, duration_ms=d) for g, d in zip(grids, durations)],
        timing=extraction.timing,
    )
