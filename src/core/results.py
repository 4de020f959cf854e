"""Tagged results passed between the extraction strategies and returned to callers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from core.models import PixelAnimation, RasterFrame, StaticPixelArt, TimingSource


class FailureKind(Enum):
    NO_FRAMES_EXTRACTED = "no_frames_extracted"
    RENDER_SURFACE_UNAVAILABLE = "render_surface_unavailable"
    SOURCE_LOAD_FAILED = "source_load_failed"
    UNSUPPORTED_FORMAT = "unsupported_format"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str = ""

    @property
    def fatal(self) -> bool:
        """Fatal failures stop the strategy chain instead of falling through."""
        return self.kind is FailureKind.RENDER_SURFACE_UNAVAILABLE


@dataclass
class ExtractionResult:
    """Frames produced by one extraction strategy."""
    strategy: str
    frames: List[RasterFrame]
    timing: TimingSource
    loop_count: Optional[int] = None
    # Frame count of the full source sequence, before any sampling
    source_frame_count: int = 0
    # Playback time of one loop; drives uniform durations
    total_duration: int = 0

    def __post_init__(self) -> None:
        if not self.source_frame_count:
            self.source_frame_count = len(self.frames)
        if not self.total_duration:
            self.total_duration = sum(f.duration_ms for f in self.frames)


StrategyOutcome = Union[ExtractionResult, Failure]


@dataclass
class ConversionResult:
    art: Optional[StaticPixelArt] = None
    animation: Optional[PixelAnimation] = None
    error: Optional[Failure] = None
    # Diagnostic trail of the strategies that were tried, in order
    attempts: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and (self.art is not None or self.animation is not None)

    @classmethod
    def failed(cls, kind: FailureKind, message: str = "", attempts=None) -> "ConversionResult":
        return cls(error=Failure(kind, message), attempts=list(attempts or []))

    def to_json(self):
        if self.animation is not None:
            return self.animation.to_json()
        if self.art is not None:
            return self.art.to_json()
        return {"error": self.error.kind.value if self.error else None,
                "message": self.error.message if self.error else ""}
