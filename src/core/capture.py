"""Metadata-guided timed capture from a playback surface.

Fallback for sources the structured decoders reject. The bytes are played
back through an OpenCV ``VideoCapture``; frames are snapshotted whenever the
reported playback position crosses a checkpoint derived from the parsed
per-frame delays. Timing is approximate by nature.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from core.models import FrameMetadata

logger = logging.getLogger(__name__)

# Re-reads allowed when a snapshot comes back entirely black
MAX_BLANK_RETRIES = 3
# Times the surface may be rewound while chasing a single checkpoint
MAX_REWINDS = 2
# Upper bound on waiting for the surface to be released after a capture
RELEASE_TIMEOUT = 5.0
HASH_SAMPLE_SIZE = 1024


def content_hash(raster: np.ndarray, samples: int = HASH_SAMPLE_SIZE) -> int:
    """Additive hash over a strided sample of the RGB bytes; 0 means nothing was painted."""
    flat = raster[:, :, :3].reshape(-1)
    step = max(1, flat.size // samples)
    return int(flat[::step].sum(dtype=np.int64))


def build_checkpoints(metadata: Sequence[FrameMetadata]) -> Tuple[List[int], int]:
    """Start time of every frame and the total loop duration, in milliseconds."""
    starts = []
    elapsed = 0
    for meta in metadata:
        starts.append(elapsed)
        elapsed += meta.delay_ms
    return starts, elapsed


class VideoCaptureSurface:
    """OpenCV playback of a blob file. ``CAP_PROP_POS_MSEC`` is the elapsed playback time."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._capture: Optional[cv2.VideoCapture] = cv2.VideoCapture(str(self.path))

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def read(self) -> Optional[Tuple[float, np.ndarray]]:
        if not self.is_open:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        elapsed = float(self._capture.get(cv2.CAP_PROP_POS_MSEC))
        if frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        elif frame.shape[2] == 4:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        return elapsed, rgba

    def rewind(self) -> None:
        if self.is_open:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self.path.unlink(missing_ok=True)


SurfaceFactory = Callable[[Path], VideoCaptureSurface]


def _release_surface(open_future, blob_path: Path) -> None:
    if open_future.done() and not open_future.cancelled() and open_future.exception() is None:
        open_future.result().release()
    blob_path.unlink(missing_ok=True)


class TimedCapture:
    """
    Snapshot a playing surface at a list of checkpoint times.

    All surface calls run on a private single-thread executor, so a read that
    overruns its timeout can never overlap the next call, and the final
    ``release`` always runs after any straggling read.
    """

    def __init__(
        self,
        surface_factory: SurfaceFactory = VideoCaptureSurface,
        open_timeout: float = 15.0,
        frame_load_timeout: float = 1.6,
        checkpoint_timeout: float = 20.0,
        release_timeout: float = RELEASE_TIMEOUT,
    ) -> None:
        self.surface_factory = surface_factory
        self.open_timeout = open_timeout
        self.frame_load_timeout = frame_load_timeout
        self.checkpoint_timeout = checkpoint_timeout
        self.release_timeout = release_timeout
        self._executor: Optional[ThreadPoolExecutor] = None
        self._surface = None
        self._stalled = False

    async def _call(self, fn, timeout: float):
        future = self._executor.submit(fn)
        return await asyncio.wait_for(asyncio.wrap_future(future), timeout)

    async def capture(
        self, blob_path: Path, checkpoints: Sequence[int], total_duration: int
    ) -> List[np.ndarray]:
        """
        Capture one raster per checkpoint.

        Returns fewer rasters than checkpoints only when the surface produced
        nothing at all; a stalled or slow surface repeats the best frame so far.

        Raises:
            RuntimeError: If the surface cannot be opened for ``blob_path``.
        """
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._stalled = False
        open_future = self._executor.submit(self.surface_factory, blob_path)
        try:
            try:
                self._surface = await asyncio.wait_for(
                    asyncio.wrap_future(open_future), self.open_timeout
                )
            except asyncio.TimeoutError as e:
                raise RuntimeError("Playback surface did not become ready in time") from e
            if not self._surface.is_open:
                raise RuntimeError(f"Playback surface could not open {Path(blob_path).name}")

            return await self._capture_all(checkpoints, total_duration)
        finally:
            # Queued behind the open call and any straggling read on the same worker thread
            release = self._executor.submit(_release_surface, open_future, Path(blob_path))
            self._executor.shutdown(wait=False)
            # asyncio.wait leaves the release running if it overruns
            done, _ = await asyncio.wait({asyncio.wrap_future(release)}, timeout=self.release_timeout)
            if not done:
                logger.warning(
                    "Playback surface not released within %.1fs; it is freed once the stuck call returns",
                    self.release_timeout,
                )
            self._executor = None
            self._surface = None

    async def _capture_all(self, checkpoints: Sequence[int], total_duration: int) -> List[np.ndarray]:
        frames: List[np.ndarray] = []
        last: Optional[Tuple[float, np.ndarray]] = None
        previous_hash: Optional[int] = None

        for n, target in enumerate(checkpoints):
            if self._stalled:
                if last is None:
                    break
                frames.append(last[1].copy())
                continue

            if last is not None and self._position(last[0], total_duration) >= target > 0 and n > 0:
                # Already past this checkpoint on the previous read
                snapshot = last[1]
            else:
                last = await self._advance_to(target, total_duration, last)
                if last is None:
                    break
                snapshot = await self._validated(last[1])

            frame_hash = content_hash(snapshot)
            if previous_hash is not None and frame_hash == previous_hash:
                logger.warning("Captured frame %d is identical to the previous one", n)
            previous_hash = frame_hash
            frames.append(snapshot.copy())

        return frames

    @staticmethod
    def _position(elapsed: float, total_duration: int) -> float:
        return elapsed % total_duration if total_duration > 0 else elapsed

    async def _read(self) -> Optional[Tuple[float, np.ndarray]]:
        try:
            return await self._call(self._surface.read, self.frame_load_timeout)
        except asyncio.TimeoutError:
            logger.warning("Frame read exceeded %.1fs; keeping best-effort frames", self.frame_load_timeout)
            self._stalled = True
            return None

    async def _advance_to(self, target: int, total_duration: int, best):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.checkpoint_timeout
        last_position = self._position(best[0], total_duration) if best is not None else -1.0
        rewinds = 0

        while loop.time() < deadline:
            result = await self._read()
            if result is None:
                if self._stalled or rewinds >= MAX_REWINDS:
                    break
                rewinds += 1
                try:
                    await self._call(self._surface.rewind, self.frame_load_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Rewind exceeded %.1fs; keeping best-effort frames", self.frame_load_timeout)
                    self._stalled = True
                    break
                continue

            best = result
            position = self._position(result[0], total_duration)
            # A position lower than the last one means playback wrapped past the loop end
            if position >= target or position < last_position:
                return best
            last_position = position
        else:
            logger.warning("Checkpoint at %dms not reached within %.1fs", target, self.checkpoint_timeout)

        return best

    async def _validated(self, raster: np.ndarray) -> np.ndarray:
        for attempt in range(MAX_BLANK_RETRIES):
            if content_hash(raster) != 0:
                return raster
            logger.debug("Blank snapshot, retry %d/%d", attempt + 1, MAX_BLANK_RETRIES)
            result = await self._read()
            if result is None:
                break
            raster = result[1]
        return raster
