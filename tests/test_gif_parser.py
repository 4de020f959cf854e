"""
Tests for byte-level GIF and WebP frame scanning.
"""

import struct

from core.gif_parser import (
    DEFAULT_DELAY_MS,
    estimate_frame_count,
    is_webp,
    leading_frame_without_gce,
    read_logical_screen,
    scan_frame_metadata,
    scan_webp_frames,
)
from core.models import DisposalMethod

HEADER = b"GIF89a" + struct.pack("<HHBBB", 20, 10, 0, 0, 0)


def gce(packed, delay_cs, transparent_index=0):
    return b"\x21\xf9\x04" + struct.pack("<BHB", packed, delay_cs, transparent_index) + b"\x00"


def descriptor(left, top, width, height):
    return b"\x2c" + struct.pack("<HHHHB", left, top, width, height, 0)


def chunk(fourcc, payload):
    data = fourcc + struct.pack("<I", len(payload)) + payload
    return data + (b"\x00" if len(payload) % 2 else b"")


def riff(*chunks):
    body = b"WEBP" + b"".join(chunks)
    return b"RIFF" + struct.pack("<I", len(body)) + body


class TestGraphicControlScan:
    def test_fields_decoded(self):
        # disposal 2, transparency flag set, 12cs delay
        data = HEADER + gce(0b00001001, 12, transparent_index=5) + descriptor(2, 3, 4, 5) + b"\x02\x00"
        (meta,) = scan_frame_metadata(data)

        assert meta.index == 0
        assert meta.delay_ms == 120
        assert meta.disposal == DisposalMethod.RESTORE_BACKGROUND
        assert meta.has_transparency is True
        assert meta.transparent_index == 5
        assert (meta.left, meta.top, meta.width, meta.height) == (2, 3, 4, 5)

    def test_zero_delay_uses_default(self):
        data = HEADER + gce(0, 0) + descriptor(0, 0, 1, 1)
        assert scan_frame_metadata(data)[0].delay_ms == DEFAULT_DELAY_MS
        assert scan_frame_metadata(data, default_delay_ms=70)[0].delay_ms == 70

    def test_restore_previous_and_no_transparency(self):
        data = HEADER + gce(0b00001100, 3, transparent_index=9) + descriptor(0, 0, 1, 1)
        meta = scan_frame_metadata(data)[0]
        assert meta.disposal == DisposalMethod.RESTORE_PREVIOUS
        assert meta.has_transparency is False
        assert meta.transparent_index is None

    def test_implausible_descriptor_leaves_region_empty(self):
        data = HEADER + gce(0, 5) + descriptor(0, 0, 0, 40000)
        meta = scan_frame_metadata(data)[0]
        assert (meta.width, meta.height) == (0, 0)

    def test_truncated_extension_ignored(self):
        data = HEADER + gce(0, 5) + descriptor(0, 0, 1, 1) + b"\x21\xf9\x04\x00"
        assert len(scan_frame_metadata(data)) == 1

    def test_pillow_gif(self, make_gif):
        data = make_gif([(255, 0, 0), (0, 255, 0), (0, 0, 255)], [100, 150, 200])
        assert [m.delay_ms for m in scan_frame_metadata(data)] == [100, 150, 200]


class TestFrameCountEstimate:
    def test_gce_count_plus_one(self):
        data = HEADER + gce(0, 5) + descriptor(0, 0, 1, 1) + gce(0, 5) + descriptor(0, 0, 1, 1)
        assert estimate_frame_count(data) == 3

    def test_descriptor_fallback(self):
        data = HEADER + descriptor(0, 0, 4, 4) + b"\x02\x00" + descriptor(0, 0, 4, 4) + b"\x02\x00"
        assert estimate_frame_count(data) == 2

    def test_nothing_recognizable(self):
        assert estimate_frame_count(b"\x00" * 32) == 0

    def test_logical_screen(self):
        assert read_logical_screen(HEADER) == (20, 10)
        assert read_logical_screen(b"PNG....") is None

    def test_leading_frame_without_extension(self):
        data = HEADER + descriptor(0, 0, 4, 4) + b"\x02\x00" + gce(0, 5) + descriptor(0, 0, 4, 4) + b"\x02\x00"
        assert leading_frame_without_gce(data) is True

    def test_global_color_table_skipped(self):
        # 0x2c inside a 2-entry color table is not a descriptor
        header = b"GIF89a" + struct.pack("<HHBBB", 20, 10, 0x80, 0, 0) + b"\x2c\x00\x00\x04\x00\x04"
        data = header + gce(0, 5) + descriptor(0, 0, 4, 4) + b"\x02\x00"
        assert leading_frame_without_gce(data) is False

    def test_every_frame_has_extension(self, make_gif):
        assert leading_frame_without_gce(make_gif([(255, 0, 0), (0, 0, 255)], [100, 200])) is False
        assert leading_frame_without_gce(b"PNG....") is False


class TestWebpScan:
    def test_counts_animation_chunks(self):
        data = riff(chunk(b"VP8X", b"\x00" * 10), chunk(b"ANIM", b"\x00" * 6),
                    chunk(b"ANMF", b"\x01" * 17), chunk(b"ANMF", b"\x02" * 20))
        assert is_webp(data)
        frames = scan_webp_frames(data, default_delay_ms=80)
        assert [f.index for f in frames] == [0, 1]
        assert all(f.delay_ms == 80 for f in frames)

    def test_still_webp_is_one_frame(self):
        assert len(scan_webp_frames(riff(chunk(b"VP8L", b"\x00" * 9)))) == 1

    def test_broken_chunk_walk_falls_back_to_tag_count(self):
        data = riff(chunk(b"ANMF", b"\x00" * 4), chunk(b"ANMF", b"\x00" * 4))
        truncated = data[:-2]
        assert len(scan_webp_frames(truncated)) == 2

    def test_not_webp(self):
        assert not is_webp(b"GIF89a......")
        assert scan_webp_frames(b"garbage") == []
