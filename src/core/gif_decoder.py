"""Structured GIF decoder returning raw indexed frames.

Unlike Pillow, which hands back frames already composited, this decoder keeps
each frame as it is stored in the file: its palette indices, its own region,
local color table, disposal method and transparency. ``core.frame_reconstructor``
turns these into full-canvas rasters.
"""
from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from core.gif_parser import DEFAULT_DELAY_MS, GIF_SIGNATURES
from core.models import DisposalMethod, FrameMetadata

logger = logging.getLogger(__name__)

MAX_LZW_BITS = 12
_LOOPING_APPLICATIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")


class GifDecodeError(ValueError):
    """Raised when GIF bytes cannot be decoded into at least one frame."""


@dataclass
class IndexedFrame:
    metadata: FrameMetadata
    # Palette indices, shape (metadata.height, metadata.width)
    indices: np.ndarray
    # Local color table as (n, 3) uint8, or None to use the global table
    color_table: Optional[np.ndarray] = None


@dataclass
class DecodedGif:
    width: int
    height: int
    global_color_table: Optional[np.ndarray] = None
    background_index: int = 0
    loop_count: Optional[int] = None
    frames: List[IndexedFrame] = field(default_factory=list)


def _read(stream: io.BytesIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) < size:
        raise GifDecodeError("Unexpected end of GIF data")
    return data


def _read_sub_blocks(stream: io.BytesIO) -> bytes:
    """Concatenate a chain of data sub-blocks, stopping at the terminator or EOF."""
    out = bytearray()
    while True:
        size_byte = stream.read(1)
        if not size_byte or size_byte[0] == 0:
            break
        chunk = stream.read(size_byte[0])
        out += chunk
        if len(chunk) < size_byte[0]:
            break
    return bytes(out)


def _read_color_table(stream: io.BytesIO, packed: int) -> np.ndarray:
    count = 1 << ((packed & 0x07) + 1)
    raw = _read(stream, count * 3)
    return np.frombuffer(raw, dtype=np.uint8).reshape(count, 3).copy()


def lzw_decode(data: bytes, min_code_size: int, pixel_count: int) -> np.ndarray:
    """
    Decode GIF LZW image data into ``pixel_count`` palette indices.

    Short streams are padded with index 0; surplus output is dropped.
    """
    if not 1 <= min_code_size <= 11:
        raise GifDecodeError(f"Invalid LZW minimum code size: {min_code_size}")

    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    base_table = [bytes([i]) for i in range(clear_code)] + [b"", b""]

    table = list(base_table)
    code_size = min_code_size + 1
    prev: Optional[bytes] = None
    out = bytearray()

    bit_buffer = 0
    bit_count = 0
    pos = 0
    length = len(data)

    while len(out) < pixel_count:
        while bit_count < code_size and pos < length:
            bit_buffer |= data[pos] << bit_count
            bit_count += 8
            pos += 1
        if bit_count < code_size:
            break

        code = bit_buffer & ((1 << code_size) - 1)
        bit_buffer >>= code_size
        bit_count -= code_size

        if code == clear_code:
            table = list(base_table)
            code_size = min_code_size + 1
            prev = None
            continue
        if code == end_code:
            break

        if prev is None:
            if code >= len(table):
                raise GifDecodeError(f"Invalid LZW code {code} after clear")
            entry = table[code]
            out += entry
            prev = entry
            continue

        if code < len(table):
            entry = table[code]
            new_entry = prev + entry[:1]
        elif code == len(table):
            entry = prev + prev[:1]
            new_entry = entry
        else:
            raise GifDecodeError(f"Invalid LZW code {code}")

        out += entry
        if len(table) < (1 << MAX_LZW_BITS):
            table.append(new_entry)
            if len(table) == (1 << code_size) and code_size < MAX_LZW_BITS:
                code_size += 1
        prev = entry

    if len(out) < pixel_count:
        logger.debug("LZW stream ended %d pixels short", pixel_count - len(out))
        out += bytes(pixel_count - len(out))
    return np.frombuffer(bytes(out[:pixel_count]), dtype=np.uint8)


def deinterlace(indices: np.ndarray) -> np.ndarray:
    """Reorder rows stored in the four-pass GIF interlace order."""
    height = indices.shape[0]
    rows = []
    for start, step in ((0, 8), (4, 8), (2, 4), (1, 2)):
        rows.extend(range(start, height, step))
    out = np.empty_like(indices)
    out[rows] = indices
    return out


def decode_gif(data: bytes) -> DecodedGif:
    """
    Decode GIF bytes into a ``DecodedGif`` of indexed frames.

    Raises:
        GifDecodeError: If the header is invalid or no frame could be read.
    """
    stream = io.BytesIO(data)
    if _read(stream, 6) not in GIF_SIGNATURES:
        raise GifDecodeError("Not a GIF file")

    width, height, packed, background_index, _aspect = struct.unpack("<HHBBB", _read(stream, 7))
    gif = DecodedGif(width=width, height=height, background_index=background_index)
    if packed & 0x80:
        gif.global_color_table = _read_color_table(stream, packed)

    pending: Optional[FrameMetadata] = None
    try:
        while True:
            block = stream.read(1)
            if not block or block == b";":
                break

            if block == b"!":
                label = _read(stream, 1)[0]
                body = _read_sub_blocks(stream)
                if label == 0xF9 and len(body) >= 4:
                    flags = body[0]
                    delay_cs = struct.unpack_from("<H", body, 1)[0]
                    has_transparency = bool(flags & 0x01)
                    pending = FrameMetadata(
                        index=len(gif.frames),
                        delay_ms=delay_cs * 10 if delay_cs else DEFAULT_DELAY_MS,
                        disposal=DisposalMethod.from_gif_code((flags >> 2) & 0x07),
                        has_transparency=has_transparency,
                        transparent_index=body[3] if has_transparency else None,
                    )
                elif label == 0xFF and body[:11] in _LOOPING_APPLICATIONS and len(body) >= 14 and body[11] == 1:
                    gif.loop_count = struct.unpack_from("<H", body, 12)[0]
                continue

            if block == b",":
                left, top, w, h, flags = struct.unpack("<HHHHB", _read(stream, 9))
                color_table = _read_color_table(stream, flags) if flags & 0x80 else None
                min_code_size = _read(stream, 1)[0]
                payload = _read_sub_blocks(stream)

                meta = pending or FrameMetadata(index=len(gif.frames))
                pending = None
                if w == 0 or h == 0:
                    logger.debug("Skipping empty image block at offset %d", stream.tell())
                    continue

                indices = lzw_decode(payload, min_code_size, w * h).reshape(h, w)
                if flags & 0x40:
                    indices = deinterlace(indices)

                meta.index = len(gif.frames)
                meta.left, meta.top, meta.width, meta.height = left, top, w, h
                gif.frames.append(IndexedFrame(metadata=meta, indices=indices, color_table=color_table))
                continue

            # Unknown block: treat the rest of the stream as garbage
            logger.debug("Unknown GIF block 0x%02x at offset %d", block[0], stream.tell() - 1)
            break
    except GifDecodeError:
        if not gif.frames:
            raise
        logger.warning("GIF data truncated after %d frame(s); keeping what was decoded", len(gif.frames))

    if not gif.frames:
        raise GifDecodeError("GIF contains no image data")
    return gif
