"""Byte-level scanning of animated image containers for per-frame metadata.

These scans do not decode pixel data. They walk the raw bytes looking for
GIF Graphic Control Extensions / Image Descriptors (or WebP RIFF chunks)
and are tolerant of truncated or slightly malformed input.
"""
from __future__ import annotations

import logging
import struct
from typing import List, Optional, Tuple

from core.models import DisposalMethod, FrameMetadata

logger = logging.getLogger(__name__)

GIF_SIGNATURES = (b"GIF87a", b"GIF89a")
GCE_MARKER = b"\x21\xf9\x04"  # Extension Introducer, GCE label, block size
IMAGE_SEPARATOR = b"\x2c"
DEFAULT_DELAY_MS = 100
MAX_SANE_DIMENSION = 10000

# GCE layout after the marker: packed, delay lo, delay hi, transparent index, terminator
_GCE_LENGTH = 8
_DESCRIPTOR_LENGTH = 10


def read_logical_screen(data: bytes) -> Optional[Tuple[int, int]]:
    """Return the GIF logical screen ``(width, height)``, or ``None`` if not a GIF."""
    if len(data) < 10 or data[:6] not in GIF_SIGNATURES:
        return None
    return struct.unpack_from("<HH", data, 6)


def _plausible(width: int, height: int) -> bool:
    return 0 < width < MAX_SANE_DIMENSION and 0 < height < MAX_SANE_DIMENSION


def _read_descriptor(data: bytes, pos: int) -> Optional[Tuple[int, int, int, int]]:
    if pos + _DESCRIPTOR_LENGTH > len(data):
        return None
    left, top, width, height = struct.unpack_from("<HHHH", data, pos + 1)
    if not _plausible(width, height):
        return None
    return left, top, width, height


def scan_frame_metadata(data: bytes, default_delay_ms: int = DEFAULT_DELAY_MS) -> List[FrameMetadata]:
    """
    Scan raw GIF bytes for Graphic Control Extensions.

    Each GCE yields one ``FrameMetadata``: disposal method (bits 2-4 of the
    packed byte), transparency flag (bit 0) and index, and the little-endian
    delay in centiseconds converted to milliseconds (0 becomes
    ``default_delay_ms``). The region comes from the next Image Descriptor.
    """
    frames: List[FrameMetadata] = []
    pos = data.find(GCE_MARKER)
    while pos != -1 and pos + _GCE_LENGTH <= len(data):
        packed = data[pos + 3]
        delay_cs = struct.unpack_from("<H", data, pos + 4)[0]
        has_transparency = bool(packed & 0x01)
        meta = FrameMetadata(
            index=len(frames),
            delay_ms=delay_cs * 10 if delay_cs else default_delay_ms,
            disposal=DisposalMethod.from_gif_code((packed >> 2) & 0x07),
            has_transparency=has_transparency,
            transparent_index=data[pos + 6] if has_transparency else None,
        )

        descriptor_pos = data.find(IMAGE_SEPARATOR, pos + _GCE_LENGTH)
        if descriptor_pos != -1:
            region = _read_descriptor(data, descriptor_pos)
            if region is not None:
                meta.left, meta.top, meta.width, meta.height = region

        frames.append(meta)
        pos = data.find(GCE_MARKER, pos + _GCE_LENGTH)

    logger.debug("GCE scan found %d frame(s)", len(frames))
    return frames


def estimate_frame_count(data: bytes) -> int:
    """
    Approximate the number of frames in a GIF.

    GCE count + 1, as the first frame may lack its own extension. Without any
    GCE, count byte patterns shaped like Image Descriptors with sane sizes.
    """
    gce_count = data.count(GCE_MARKER)
    if gce_count:
        return gce_count + 1

    count = 0
    pos = data.find(IMAGE_SEPARATOR, 13 if read_logical_screen(data) else 0)
    while pos != -1:
        if _read_descriptor(data, pos) is not None:
            count += 1
            pos = data.find(IMAGE_SEPARATOR, pos + _DESCRIPTOR_LENGTH)
        else:
            pos = data.find(IMAGE_SEPARATOR, pos + 1)
    return count


def leading_frame_without_gce(data: bytes) -> bool:
    """
    True when an Image Descriptor precedes the first GCE.

    That first frame has no extension of its own, so a GCE scan misses it.
    The header and global color table are skipped before looking.
    """
    if read_logical_screen(data) is None or len(data) < 13:
        return False
    start = 13
    if data[10] & 0x80:
        start += 3 * (1 << ((data[10] & 0x07) + 1))

    first_gce = data.find(GCE_MARKER, start)
    if first_gce == -1:
        return False
    pos = data.find(IMAGE_SEPARATOR, start, first_gce)
    while pos != -1:
        if _read_descriptor(data, pos) is not None:
            return True
        pos = data.find(IMAGE_SEPARATOR, pos + 1, first_gce)
    return False


def is_webp(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def scan_webp_frames(data: bytes, default_delay_ms: int = DEFAULT_DELAY_MS) -> List[FrameMetadata]:
    """
    Best-effort WebP frame count from RIFF chunk boundaries.

    Every ``ANMF`` chunk counts as one frame with the default delay; a WebP
    without animation chunks is one frame. If the chunk walk breaks down,
    fall back to counting ``ANMF`` tags anywhere in the payload.
    """
    count = 0
    walk_ok = is_webp(data)
    if walk_ok:
        pos = 12
        while pos + 8 <= len(data):
            fourcc = data[pos:pos + 4]
            size = struct.unpack_from("<I", data, pos + 4)[0]
            if pos + 8 + size > len(data):
                walk_ok = False
                break
            if fourcc == b"ANMF":
                count += 1
            # Chunk payloads are padded to an even length
            pos += 8 + size + (size & 1)

    if not walk_ok:
        count = data.count(b"ANMF")
    elif count == 0:
        count = 1

    return [FrameMetadata(index=i, delay_ms=default_delay_ms) for i in range(count)]
