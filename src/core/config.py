from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from core.models import ScaleMode
from utils.image_utils import hex_to_rgb

# Upper bound on frames kept in an animation payload
MAX_ANIMATION_FRAMES = 6

PALETTE_STRATEGIES = ("union", "global")

# Named grid sizes, as ``(width, height)``
FORMAT_PRESETS = {
    "32x32": (32, 32),
    "32x16": (32, 16),
}


@dataclass
class ConversionConfig:
    target_width: int = 32
    target_height: int = 32
    max_colors: int = 16
    dither: bool = False
    scale_mode: ScaleMode = ScaleMode.FIT
    frame_delay: int = 100
    # None takes the loop count stored in the source (0 when it has none)
    loop_count: Optional[int] = None
    max_frames: int = MAX_ANIMATION_FRAMES
    background: str = "#000000"
    alpha_threshold: int = 128
    smoothing: bool = False
    palette_strategy: str = "union"
    # Timeouts in seconds
    decoder_timeout: float = 15.0
    frame_load_timeout: float = 1.6
    checkpoint_timeout: float = 20.0

    def __post_init__(self) -> None:
        if isinstance(self.scale_mode, str):
            self.scale_mode = ScaleMode(self.scale_mode.lower())

    def validate(self) -> "ConversionConfig":
        if self.target_width <= 0 or self.target_height <= 0:
            raise ValueError("Target dimensions must be positive")
        if not 1 <= self.max_colors <= 256:
            raise ValueError("max_colors must be between 1 and 256")
        if not 1 <= self.max_frames <= MAX_ANIMATION_FRAMES:
            raise ValueError(f"max_frames must be between 1 and {MAX_ANIMATION_FRAMES}")
        if self.frame_delay <= 0:
            raise ValueError("frame_delay must be positive")
        if self.loop_count is not None and self.loop_count < 0:
            raise ValueError("loop_count cannot be negative")
        if not 0 <= self.alpha_threshold <= 255:
            raise ValueError("alpha_threshold must be between 0 and 255")
        if self.palette_strategy not in PALETTE_STRATEGIES:
            raise ValueError(f"palette_strategy must be one of {PALETTE_STRATEGIES}")
        hex_to_rgb(self.background)
        return self

    @property
    def background_rgba(self):
        r, g, b = hex_to_rgb(self.background)
        return (r, g, b, 255)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["scale_mode"] = self.scale_mode.value
        return data

    @classmethod
    def for_format(cls, name: str, **overrides: Any) -> "ConversionConfig":
        """Config sized to a named grid preset; explicit overrides win."""
        if name not in FORMAT_PRESETS:
            raise ValueError(f"Unknown format {name!r}; expected one of {sorted(FORMAT_PRESETS)}")
        width, height = FORMAT_PRESETS[name]
        overrides.setdefault("target_width", width)
        overrides.setdefault("target_height", height)
        return cls(**overrides)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversionConfig":
        """Build a config from a settings mapping, ignoring unknown keys.

        A ``format`` key names a grid preset; explicit dimensions override it.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if data.get("format"):
            return cls.for_format(data["format"], **values)
        return cls(**values)
