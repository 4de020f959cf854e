"""
Tests for the structured GIF decoder.

Pillow-encoded GIFs are decoded and compared pixel for pixel against
Pillow's own decode of the same bytes.
"""

import io

import numpy as np
import pytest
from PIL import Image

from core.frame_reconstructor import indices_to_rgba
from core.gif_decoder import GifDecodeError, decode_gif, deinterlace, lzw_decode
from core.models import DisposalMethod


def _pattern_gif(size=(24, 20), interlace=True):
    width, height = size
    y, x = np.mgrid[0:height, 0:width]
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    rgb[:, :, 0] = (x * 10) % 256
    rgb[:, :, 1] = (y * 12) % 256
    rgb[:, :, 2] = ((x + y) % 4) * 60
    image = Image.fromarray(rgb).quantize(colors=32)
    buf = io.BytesIO()
    image.save(buf, format="GIF", interlace=interlace)
    return buf.getvalue()


def _pillow_rgb(data):
    with Image.open(io.BytesIO(data)) as img:
        return np.array(img.convert("RGB"))


class TestDecodeGif:
    @pytest.mark.parametrize("interlace", [True, False])
    def test_matches_pillow(self, interlace):
        data = _pattern_gif(interlace=interlace)
        gif = decode_gif(data)

        assert (gif.width, gif.height) == (24, 20)
        frame = gif.frames[0]
        table = frame.color_table if frame.color_table is not None else gif.global_color_table
        rgb = indices_to_rgba(frame.indices, table)[:, :, :3]
        np.testing.assert_array_equal(rgb, _pillow_rgb(data))

    def test_animation_metadata(self, make_gif):
        data = make_gif([(255, 0, 0), (0, 255, 0), (0, 0, 255)], [100, 150, 200], loop=3)
        gif = decode_gif(data)

        assert len(gif.frames) == 3
        assert [f.metadata.delay_ms for f in gif.frames] == [100, 150, 200]
        assert [f.metadata.index for f in gif.frames] == [0, 1, 2]
        assert gif.loop_count == 3

    def test_no_loop_extension(self, make_gif):
        gif = decode_gif(make_gif([(255, 0, 0), (0, 0, 255)], [100, 100], loop=None))
        assert gif.loop_count is None

    def test_truncated_keeps_decoded_frames(self, make_gif):
        data = make_gif([(255, 0, 0), (0, 255, 0), (0, 0, 255)], [100, 100, 100])
        gif = decode_gif(data[: len(data) - 12])
        assert 1 <= len(gif.frames) <= 3
        assert gif.frames[0].metadata.index == 0

    def test_not_a_gif(self):
        with pytest.raises(GifDecodeError):
            decode_gif(b"\x89PNG\r\n\x1a\n" + b"\x00" * 20)

    def test_header_only(self):
        with pytest.raises(GifDecodeError):
            decode_gif(b"GIF89a\x01\x00\x01\x00\x00\x00\x00;")

    def test_disposal_parsed(self):
        # 1x1 GIF, global table of 2 colors, GCE with disposal 2 and transparent index 1
        data = (
            b"GIF89a\x01\x00\x01\x00\x80\x00\x00"
            b"\xff\x00\x00\x00\x00\x00"
            b"\x21\xf9\x04\x09\x05\x00\x01\x00"
            b"\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00"
            b"\x02\x02\x44\x01\x00"
            b";"
        )
        gif = decode_gif(data)
        meta = gif.frames[0].metadata
        assert meta.disposal == DisposalMethod.RESTORE_BACKGROUND
        assert meta.transparent_index == 1
        assert meta.delay_ms == 50
        assert gif.frames[0].indices.tolist() == [[0]]


class TestLzw:
    def test_short_stream_padded(self):
        # clear code, index 1, end code with min code size 2: 0b101 001 100
        out = lzw_decode(bytes([0b01001100, 0b00000001]), 2, 4)
        assert out.tolist() == [1, 0, 0, 0]

    def test_invalid_code_size(self):
        with pytest.raises(GifDecodeError):
            lzw_decode(b"\x00", 0, 1)


def test_deinterlace_row_order():
    stored = np.arange(8).reshape(8, 1)
    # Stored order is rows 0, 4, 2, 6, 1, 3, 5, 7
    assert deinterlace(stored).ravel().tolist() == [0, 4, 2, 5, 1, 6, 3, 7]
