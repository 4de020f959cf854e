from __future__ import annotations

import logging
import tempfile
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from core.capture import SurfaceFactory, VideoCaptureSurface

logger = logging.getLogger(__name__)


class SurfaceUnavailableError(RuntimeError):
    """No rendering surface can be created: the context is closed or its scratch space is unusable."""


class PipelineContext:
    """
    Shared resources for conversion calls.

    Construct once, pass to every pipeline entry point, and tear down with
    ``close()`` (or use it as a sync/async context manager). Owns the worker
    pool used for decoding and quantization, and a scratch directory for the
    blob files handed to playback surfaces.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        surface_factory: SurfaceFactory = VideoCaptureSurface,
        scratch_dir: Optional[str] = None,
    ) -> None:
        self.surface_factory = surface_factory
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pixelframe"
        )
        self._scratch: Optional[tempfile.TemporaryDirectory] = tempfile.TemporaryDirectory(
            prefix="pixelframe-", dir=scratch_dir
        )

    @property
    def closed(self) -> bool:
        return self._executor is None

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            raise SurfaceUnavailableError("Pipeline context is closed")
        return self._executor

    def create_blob(self, data: bytes, suffix: str = "") -> Path:
        """Write ``data`` to a fresh scratch file; the caller deletes it when done."""
        if self._scratch is None:
            raise SurfaceUnavailableError("Pipeline context is closed")
        path = Path(self._scratch.name) / f"blob-{uuid.uuid4().hex}{suffix}"
        try:
            path.write_bytes(data)
        except OSError as e:
            raise SurfaceUnavailableError(f"Cannot write blob file: {e}") from e
        return path

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self._scratch is not None:
            self._scratch.cleanup()
            self._scratch = None
        logger.debug("Pipeline context closed")

    def __enter__(self) -> "PipelineContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    async def __aenter__(self) -> "PipelineContext":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()
