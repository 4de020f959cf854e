from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import requests

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".gif", ".webp", ".png", ".jpg", ".jpeg", ".bmp")


class SourceLoadError(OSError):
    """The source bytes could not be read from disk or fetched."""


def is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def fetch_url(url: str, timeout_seconds: float = 30.0) -> bytes:
    try:
        r = requests.get(url, timeout=timeout_seconds)
        r.raise_for_status()
    except requests.RequestException as e:
        raise SourceLoadError(f"Failed to fetch {url}: {e}") from e
    return r.content


def load_source_bytes(source: Union[str, Path], timeout_seconds: float = 30.0) -> bytes:
    """
    Read raw image bytes from a local path or an http(s) URL.

    Raises:
        SourceLoadError: If the file is missing/unreadable, the fetch fails,
            or the payload is empty.
    """
    source = str(source)
    if is_url(source):
        data = fetch_url(source, timeout_seconds)
    else:
        path = Path(source).expanduser()
        if not path.is_file():
            raise SourceLoadError(f"File not found: {path}")
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            logger.info("Unrecognized extension %s; relying on content sniffing", path.suffix)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise SourceLoadError(f"Failed to read {path}: {e}") from e

    if not data:
        raise SourceLoadError(f"Source is empty: {source}")
    logger.debug("Loaded %d bytes from %s", len(data), source)
    return data


def save_payload(payload: Dict[str, Any], file_path: Union[str, Path]) -> Path:
    """Write a JSON payload, creating parent directories as needed."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return path
