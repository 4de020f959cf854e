"""Pixel art data structures and their JSON payload shapes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

FORMAT_VERSION = "1.0"
ANIMATION_FORMAT_TAG = "pixel_animation"

# Grid value for pixels that were transparent in the source
TRANSPARENT_INDEX = -1

PixelGrid = List[List[int]]


class DisposalMethod(Enum):
    """How a frame's region is treated before the next frame is drawn."""
    NONE = "none"  # leave in place
    RESTORE_BACKGROUND = "restore_background"
    RESTORE_PREVIOUS = "restore_previous"

    @classmethod
    def from_gif_code(cls, code: int) -> "DisposalMethod":
        # 0 (unspecified), 1 (do not dispose) and the reserved codes 4-7 all leave the canvas
        if code == 2:
            return cls.RESTORE_BACKGROUND
        if code == 3:
            return cls.RESTORE_PREVIOUS
        return cls.NONE


class ScaleMode(Enum):
    FIT = "fit"
    FILL = "fill"
    STRETCH = "stretch"


class TimingSource(Enum):
    """Where the durations of an animation's frames came from."""
    DECODED = "decoded"  # each frame keeps its own decoded delay
    UNIFORM = "uniform"  # total loop duration spread evenly over the frames


@dataclass
class FrameMetadata:
    index: int
    delay_ms: int = 100
    disposal: DisposalMethod = DisposalMethod.NONE
    has_transparency: bool = False
    transparent_index: Optional[int] = None
    left: int = 0
    top: int = 0
    width: int = 0
    height: int = 0


@dataclass
class RasterFrame:
    """A full-canvas RGBA raster, shape ``(height, width, 4)``, and its display time."""
    raster: np.ndarray
    duration_ms: int

    @property
    def width(self) -> int:
        return int(self.raster.shape[1])

    @property
    def height(self) -> int:
        return int(self.raster.shape[0])


def _resolve_colors(palette: List[str], pixels: PixelGrid) -> List[List[Optional[str]]]:
    return [
        [palette[i] if 0 <= i < len(palette) else None for i in row]
        for row in pixels
    ]


def _validate_grid(width: int, height: int, palette: List[str], pixels: PixelGrid) -> None:
    if len(pixels) != height or any(len(row) != width for row in pixels):
        raise ValueError(f"Pixel grid does not match {width}x{height}")
    limit = len(palette)
    for row in pixels:
        for value in row:
            if value != TRANSPARENT_INDEX and not 0 <= value < limit:
                raise ValueError(f"Palette index {value} out of range (palette has {limit} colors)")


@dataclass(frozen=True)
class StaticPixelArt:
    width: int
    height: int
    palette: List[str]
    pixels: PixelGrid
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    def __post_init__(self) -> None:
        _validate_grid(self.width, self.height, self.palette, self.pixels)

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "version": FORMAT_VERSION,
            "width": self.width,
            "height": self.height,
            "palette": list(self.palette),
            "pixels": [list(row) for row in self.pixels],
        }
        metadata = {}
        if self.title:
            metadata["title"] = self.title
        if self.description:
            metadata["description"] = self.description
        if self.tags:
            metadata["tags"] = list(self.tags)
        if metadata:
            payload["metadata"] = metadata
        return payload

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "StaticPixelArt":
        metadata = data.get("metadata") or {}
        return StaticPixelArt(
            width=int(data["width"]),
            height=int(data["height"]),
            palette=list(data["palette"]),
            pixels=[[int(v) for v in row] for row in data["pixels"]],
            title=metadata.get("title"),
            description=metadata.get("description"),
            tags=metadata.get("tags"),
        )

    def to_color_matrix(self) -> List[List[Optional[str]]]:
        """Resolve every pixel to its hex color (``None`` where transparent)."""
        return _resolve_colors(self.palette, self.pixels)


@dataclass(frozen=True)
class AnimationFrame:
    pixels: PixelGrid
    duration_ms: int


@dataclass(frozen=True)
class PixelAnimation:
    title: str
    width: int
    height: int
    palette: List[str]
    frame_delay: int
    loop_count: int
    frames: List[AnimationFrame]
    timing: TimingSource = TimingSource.DECODED
    format_tag: str = ANIMATION_FORMAT_TAG
    format_version: str = FORMAT_VERSION
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not 1 <= len(self.frames) <= 6:
            raise ValueError(f"An animation holds 1 to 6 frames, got {len(self.frames)}")
        for frame in self.frames:
            _validate_grid(self.width, self.height, self.palette, frame.pixels)

    @property
    def total_duration(self) -> int:
        return sum(f.duration_ms for f in self.frames)

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.format_tag,
            "version": self.format_version,
            "title": self.title,
            "width": self.width,
            "height": self.height,
            "palette": list(self.palette),
            "frame_delay": self.frame_delay,
            "loop_count": self.loop_count,
            "timing": self.timing.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "frames": [
                {
                    "frame_index": i,
                    "pixels": [list(row) for row in frame.pixels],
                    "duration": frame.duration_ms,
                }
                for i, frame in enumerate(self.frames)
            ],
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "PixelAnimation":
        if data.get("type", ANIMATION_FORMAT_TAG) != ANIMATION_FORMAT_TAG:
            raise ValueError(f"Not a pixel animation payload: {data.get('type')!r}")
        created = data.get("created_at")
        frames = sorted(data.get("frames", []), key=lambda f: f.get("frame_index", 0))
        try:
            timing = TimingSource(data.get("timing", TimingSource.DECODED.value))
        except ValueError:
            timing = TimingSource.DECODED
        return PixelAnimation(
            title=data.get("title", ""),
            width=int(data["width"]),
            height=int(data["height"]),
            palette=list(data["palette"]),
            frame_delay=int(data.get("frame_delay", 100)),
            loop_count=int(data.get("loop_count", 0)),
            frames=[
                AnimationFrame(
                    pixels=[[int(v) for v in row] for row in f["pixels"]],
                    duration_ms=int(f.get("duration", data.get("frame_delay", 100))),
                )
                for f in frames
            ],
            timing=timing,
            format_version=data.get("version", FORMAT_VERSION),
            created_at=datetime.fromisoformat(created) if created else datetime.now(timezone.utc),
        )

    def to_color_matrix(self) -> List[List[List[Optional[str]]]]:
        """Resolve every frame's pixels to hex colors, one matrix per frame."""
        return [_resolve_colors(self.palette, frame.pixels) for frame in self.frames]
