"""Format sniffing and the ordered chain of frame extraction strategies.

Every strategy returns a tagged outcome: an ``ExtractionResult`` with at least
one frame, or a ``Failure``. The orchestrator walks the chain for the sniffed
format and stops at the first success. Only a fatal failure (no rendering
surface) or running out of strategies ends the chain early.
"""
from __future__ import annotations

import asyncio
import io
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

import cv2
from PIL import Image, ImageSequence, UnidentifiedImageError

from core.capture import TimedCapture, build_checkpoints
from core.config import ConversionConfig
from core.context import PipelineContext, SurfaceUnavailableError
from core.frame_reconstructor import reconstruct_frames
from core.frame_sampler import sample_frame_indices
from core.gif_decoder import GifDecodeError, decode_gif
from core.gif_parser import (
    DEFAULT_DELAY_MS,
    GIF_SIGNATURES,
    estimate_frame_count,
    is_webp,
    leading_frame_without_gce,
    scan_frame_metadata,
    scan_webp_frames,
)
from core.models import FrameMetadata, RasterFrame, TimingSource
from core.results import ExtractionResult, Failure, FailureKind, StrategyOutcome
from core.static_importer import decode_image
from utils.image_utils import pil_to_rgba

logger = logging.getLogger(__name__)

# Errors a strategy may hit on bad input; anything else is a bug and propagates
_STRATEGY_ERRORS = (
    GifDecodeError,
    ValueError,
    OSError,
    EOFError,
    RuntimeError,
    UnidentifiedImageError,
    asyncio.TimeoutError,
    cv2.error,
)


class SourceFormat(Enum):
    GIF = "gif"
    WEBP = "webp"
    UNKNOWN = "unknown"


def sniff_format(data: bytes) -> SourceFormat:
    if data[:6] in GIF_SIGNATURES:
        return SourceFormat.GIF
    if is_webp(data):
        return SourceFormat.WEBP
    return SourceFormat.UNKNOWN


Strategy = Callable[[bytes, SourceFormat], Awaitable[StrategyOutcome]]


class ExtractionOrchestrator:
    def __init__(self, context: PipelineContext, config: ConversionConfig) -> None:
        self.context = context
        self.config = config

    def strategies_for(self, fmt: SourceFormat) -> List[Tuple[str, Strategy]]:
        if fmt == SourceFormat.GIF:
            return [
                ("indexed_gif", self.indexed_gif),
                ("pillow_rgba", self.pillow_rgba),
                ("timed_capture", self.timed_capture),
                ("single_frame", self.single_frame),
            ]
        if fmt == SourceFormat.WEBP:
            return [
                ("pillow_rgba", self.pillow_rgba),
                ("timed_capture", self.timed_capture),
                ("single_frame", self.single_frame),
            ]
        # Other containers Pillow can animate (APNG, MPO); then the WebP-style capture path
        return [
            ("pillow_rgba", self.pillow_rgba),
            ("timed_capture", self.timed_capture),
        ]

    async def extract(self, data: bytes) -> Tuple[StrategyOutcome, List[str]]:
        """
        Run the strategy chain for ``data``.

        Returns:
            The first successful ``ExtractionResult`` (or the terminal
            ``Failure``) and the names of the strategies attempted, in order.
        """
        attempts: List[str] = []
        if self.context.closed:
            return Failure(FailureKind.RENDER_SURFACE_UNAVAILABLE, "Pipeline context is closed"), attempts

        fmt = sniff_format(data)
        logger.info("Extracting frames from %d bytes (format: %s)", len(data), fmt.value)

        for name, strategy in self.strategies_for(fmt):
            attempts.append(name)
            outcome = await self._run(name, strategy, data, fmt)
            if isinstance(outcome, ExtractionResult):
                logger.info(
                    "Strategy %s produced %d frame(s) of %d", name, len(outcome.frames), outcome.source_frame_count
                )
                return outcome, attempts
            if outcome.fatal:
                logger.error("Strategy %s failed fatally: %s", name, outcome.message)
                return outcome, attempts
            logger.info("Strategy %s failed: %s", name, outcome.message)

        return (
            Failure(FailureKind.NO_FRAMES_EXTRACTED, f"All strategies failed: {', '.join(attempts)}"),
            attempts,
        )

    async def _run(self, name: str, strategy: Strategy, data: bytes, fmt: SourceFormat) -> StrategyOutcome:
        try:
            outcome = await strategy(data, fmt)
        except SurfaceUnavailableError as e:
            return Failure(FailureKind.RENDER_SURFACE_UNAVAILABLE, str(e))
        except _STRATEGY_ERRORS as e:
            logger.debug("Strategy %s raised", name, exc_info=True)
            return Failure(FailureKind.NO_FRAMES_EXTRACTED, f"{type(e).__name__}: {e}")
        if isinstance(outcome, ExtractionResult) and not outcome.frames:
            return Failure(FailureKind.NO_FRAMES_EXTRACTED, "no frames")
        return outcome

    async def _offload(self, fn, *args, timeout: Optional[float] = None):
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(self.context.executor, fn, *args),
            timeout or self.config.decoder_timeout,
        )

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------
    async def indexed_gif(self, data: bytes, fmt: SourceFormat) -> StrategyOutcome:
        """Structured decode to indexed frames, composed with disposal and transparency."""
        if fmt != SourceFormat.GIF:
            return Failure(FailureKind.UNSUPPORTED_FORMAT, "indexed decode handles GIF only")

        def work():
            decoded = decode_gif(data)
            return decoded, reconstruct_frames(decoded)

        decoded, frames = await self._offload(work)
        return ExtractionResult(
            strategy="indexed_gif",
            frames=frames,
            timing=TimingSource.DECODED,
            loop_count=decoded.loop_count,
        )

    async def pillow_rgba(self, data: bytes, fmt: SourceFormat) -> StrategyOutcome:
        """Pillow decode; frames come back already composited as RGBA."""

        def work():
            frames: List[RasterFrame] = []
            with Image.open(io.BytesIO(data)) as img:
                loop_count = img.info.get("loop")
                for frame in ImageSequence.Iterator(img):
                    duration = int(frame.info.get("duration") or DEFAULT_DELAY_MS)
                    frames.append(RasterFrame(raster=pil_to_rgba(frame), duration_ms=duration))
            return frames, loop_count

        frames, loop_count = await self._offload(work)
        return ExtractionResult(
            strategy="pillow_rgba",
            frames=frames,
            timing=TimingSource.DECODED,
            loop_count=loop_count,
        )

    def capture_metadata(self, data: bytes, fmt: SourceFormat) -> List[FrameMetadata]:
        delay = self.config.frame_delay
        if fmt == SourceFormat.GIF:
            metadata = scan_frame_metadata(data, DEFAULT_DELAY_MS)
            if not metadata:
                count = max(1, estimate_frame_count(data))
                metadata = [FrameMetadata(index=i, delay_ms=delay) for i in range(count)]
            elif leading_frame_without_gce(data):
                # The extra frame behind the GCE count + 1 estimate plays first
                metadata.insert(0, FrameMetadata(index=0, delay_ms=delay))
                for i, meta in enumerate(metadata):
                    meta.index = i
            return metadata
        # WebP timing is not reliably parseable from chunk boundaries; use the nominal delay
        return scan_webp_frames(data, delay) or [FrameMetadata(index=0, delay_ms=delay)]

    async def timed_capture(self, data: bytes, fmt: SourceFormat) -> StrategyOutcome:
        """Play the bytes back and snapshot at the sampled frame start times."""
        metadata = self.capture_metadata(data, fmt)
        checkpoints, total_duration = build_checkpoints(metadata)
        indices = sample_frame_indices(len(checkpoints), self.config.max_frames)

        suffix = ".gif" if fmt == SourceFormat.GIF else ".webp"
        blob = self.context.create_blob(data, suffix)
        capture = TimedCapture(
            surface_factory=self.context.surface_factory,
            open_timeout=self.config.decoder_timeout,
            frame_load_timeout=self.config.frame_load_timeout,
            checkpoint_timeout=self.config.checkpoint_timeout,
        )
        rasters = await capture.capture(blob, [checkpoints[i] for i in indices], total_duration)
        if not rasters:
            return Failure(FailureKind.NO_FRAMES_EXTRACTED, "capture produced no frames")

        per_frame = max(1, total_duration // len(rasters))
        return ExtractionResult(
            strategy="timed_capture",
            frames=[RasterFrame(raster=r, duration_ms=per_frame) for r in rasters],
            timing=TimingSource.UNIFORM,
            source_frame_count=len(checkpoints),
            total_duration=total_duration,
        )

    async def single_frame(self, data: bytes, fmt: SourceFormat) -> StrategyOutcome:
        """Decode just the first frame and show it for the nominal delay."""
        raster = await self._offload(decode_image, data)
        delay = self.config.frame_delay
        return ExtractionResult(
            strategy="single_frame",
            frames=[RasterFrame(raster=raster, duration_ms=delay)],
            timing=TimingSource.UNIFORM,
            total_duration=delay,
        )
