"""User settings persistence (conversion defaults, log location)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from core.config import ConversionConfig

CONFIG_DIR = Path.home() / ".pixelframe"
SETTINGS_FILE = CONFIG_DIR / "settings.json"
LOG_FILE = CONFIG_DIR / "pixelframe.log"

DEFAULTS: Dict[str, Any] = {
    "conversion": ConversionConfig().to_dict(),
}


def load_settings() -> Dict[str, Any]:
    """Load settings from disk, layered over ``DEFAULTS``."""
    settings = json.loads(json.dumps(DEFAULTS))
    try:
        if SETTINGS_FILE.exists():
            with open(SETTINGS_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    conversion = data.pop("conversion", None)
                    settings.update(data)
                    if isinstance(conversion, dict):
                        settings["conversion"].update(conversion)
    except (json.JSONDecodeError, OSError):
        pass
    return settings


def save_settings(settings: Dict[str, Any]) -> None:
    """Save settings to disk."""
    try:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2)
    except OSError:
        pass


def get_conversion_defaults() -> ConversionConfig:
    """Conversion config built from the saved settings (invalid values fall back to defaults)."""
    settings = load_settings()
    try:
        return ConversionConfig.from_dict(settings.get("conversion", {})).validate()
    except (TypeError, ValueError):
        return ConversionConfig()


def set_conversion_defaults(config: ConversionConfig) -> None:
    settings = load_settings()
    settings["conversion"] = config.validate().to_dict()
    save_settings(settings)
