"""Public entry points: bytes in, ``StaticPixelArt`` or ``PixelAnimation`` out."""
from __future__ import annotations

import asyncio
import functools
import io
import logging
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from core.animation_assembler import assemble_animation
from core.config import ConversionConfig
from core.context import PipelineContext, SurfaceUnavailableError
from core.extraction import ExtractionOrchestrator
from core.results import ConversionResult, ExtractionResult, FailureKind
from core.static_importer import StaticImporter
from utils.file_handler import SourceLoadError, load_source_bytes

logger = logging.getLogger(__name__)


def probe_animated(data: bytes) -> Optional[bool]:
    """``True``/``False`` if Pillow can identify the image, ``None`` if it cannot."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return bool(getattr(img, "is_animated", False))
    except (UnidentifiedImageError, OSError, EOFError, ValueError):
        return None


async def import_image(
    data: bytes,
    config: ConversionConfig,
    context: PipelineContext,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> ConversionResult:
    if not data:
        return ConversionResult.failed(FailureKind.SOURCE_LOAD_FAILED, "Image data is empty")
    importer = StaticImporter(config)
    loop = asyncio.get_running_loop()
    try:
        art = await loop.run_in_executor(
            context.executor, importer.import_image, data, title, description, tags
        )
    except SurfaceUnavailableError as e:
        return ConversionResult.failed(FailureKind.RENDER_SURFACE_UNAVAILABLE, str(e))
    except ValueError as e:
        logger.warning("Static import failed: %s", e)
        return ConversionResult.failed(FailureKind.UNSUPPORTED_FORMAT, str(e), ["static"])
    return ConversionResult(art=art, attempts=["static"])


async def import_text(
    text: str,
    config: ConversionConfig,
    context: PipelineContext,
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    color: str = "#ffffff",
    font_path: Optional[str] = None,
) -> ConversionResult:
    """Render text or an emoji and pixelize it like a still image."""
    importer = StaticImporter(config)
    loop = asyncio.get_running_loop()
    try:
        art = await loop.run_in_executor(
            context.executor,
            functools.partial(
                importer.import_text, text, title, description, tags, color=color, font_path=font_path
            ),
        )
    except SurfaceUnavailableError as e:
        return ConversionResult.failed(FailureKind.RENDER_SURFACE_UNAVAILABLE, str(e))
    except ValueError as e:
        logger.warning("Text import failed: %s", e)
        return ConversionResult.failed(FailureKind.SOURCE_LOAD_FAILED, str(e), ["text"])
    return ConversionResult(art=art, attempts=["text"])


async def import_animation(
    data: bytes,
    config: ConversionConfig,
    context: PipelineContext,
    title: Optional[str] = None,
) -> ConversionResult:
    if not data:
        return ConversionResult.failed(FailureKind.SOURCE_LOAD_FAILED, "Image data is empty")

    orchestrator = ExtractionOrchestrator(context, config.validate())
    outcome, attempts = await orchestrator.extract(data)
    if not isinstance(outcome, ExtractionResult):
        logger.error("Animation extraction failed: %s", outcome.message)
        return ConversionResult(error=outcome, attempts=attempts)

    try:
        animation = await assemble_animation(outcome, config, context.executor, title)
    except SurfaceUnavailableError as e:
        return ConversionResult.failed(FailureKind.RENDER_SURFACE_UNAVAILABLE, str(e), attempts)
    return ConversionResult(animation=animation, attempts=attempts)


async def convert(
    data: bytes,
    config: ConversionConfig,
    context: PipelineContext,
    title: Optional[str] = None,
) -> ConversionResult:
    """
    Convert image bytes to pixel art.

    Single-frame images go through the static importer. Animated GIF/WebP,
    and payloads Pillow cannot identify, go through frame extraction.
    """
    if not data:
        return ConversionResult.failed(FailureKind.SOURCE_LOAD_FAILED, "Image data is empty")

    animated = probe_animated(data)
    if animated is False:
        return await import_image(data, config, context, title=title)
    return await import_animation(data, config, context, title=title)


def convert_file(
    source: str,
    config: Optional[ConversionConfig] = None,
    title: Optional[str] = None,
) -> ConversionResult:
    """Load ``source`` (path or http(s) URL) and convert it with a short-lived context."""
    config = (config or ConversionConfig()).validate()
    try:
        data = load_source_bytes(source)
    except SourceLoadError as e:
        logger.error("Failed to load %s: %s", source, e)
        return ConversionResult.failed(FailureKind.SOURCE_LOAD_FAILED, str(e))

    async def run() -> ConversionResult:
        with PipelineContext() as context:
            return await convert(data, config, context, title=title)

    return asyncio.run(run())


def convert_text(
    text: str,
    config: Optional[ConversionConfig] = None,
    title: Optional[str] = None,
    color: str = "#ffffff",
    font_path: Optional[str] = None,
) -> ConversionResult:
    config = (config or ConversionConfig()).validate()

    async def run() -> ConversionResult:
        with PipelineContext() as context:
            return await import_text(text, config, context, title=title, color=color, font_path=font_path)

    return asyncio.run(run())
