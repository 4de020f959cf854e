"""
Tests for rendering pixel art back to rasters and preview GIFs.
"""

from PIL import Image, ImageSequence

from core.gif_generator import GifGenerator
from core.models import AnimationFrame, PixelAnimation, StaticPixelArt

PALETTE = ["#ff0000", "#0000ff"]


class TestRender:
    def test_render_pixels(self):
        out = GifGenerator().render_pixels(PALETTE, [[0, 1], [-1, 0]])
        assert out.shape == (2, 2, 4)
        assert tuple(out[0, 0]) == (255, 0, 0, 255)
        assert tuple(out[0, 1]) == (0, 0, 255, 255)
        assert out[1, 0, 3] == 0

    def test_upscale(self):
        generator = GifGenerator(scale=3)
        out = generator.upscale(generator.render_pixels(PALETTE, [[0, 1]]))
        assert out.shape == (3, 6, 4)
        assert tuple(out[2, 2]) == (255, 0, 0, 255)
        assert tuple(out[0, 3]) == (0, 0, 255, 255)


class TestGenerateGif:
    def test_animation(self, tmp_path):
        animation = PixelAnimation(
            title="Blink",
            width=2,
            height=2,
            palette=PALETTE,
            frame_delay=100,
            loop_count=0,
            frames=[AnimationFrame([[0, 0], [0, 0]], 100), AnimationFrame([[1, 1], [1, 1]], 200)],
        )
        path = GifGenerator(scale=4).generate_gif(animation, tmp_path / "blink.gif")

        with Image.open(path) as img:
            assert img.size == (8, 8)
            frames = [f.convert("RGB").getpixel((0, 0)) for f in ImageSequence.Iterator(img)]
        assert frames == [(255, 0, 0), (0, 0, 255)]

    def test_static(self, tmp_path):
        art = StaticPixelArt(width=2, height=1, palette=PALETTE, pixels=[[0, 1]])
        path = GifGenerator(scale=2).generate_gif(art, tmp_path / "still.gif")
        with Image.open(path) as img:
            assert img.size == (4, 2)
            assert img.convert("RGB").getpixel((3, 1)) == (0, 0, 255)

    def test_single_frame_animation(self, tmp_path):
        animation = PixelAnimation(
            title="Still",
            width=1,
            height=1,
            palette=PALETTE,
            frame_delay=100,
            loop_count=0,
            frames=[AnimationFrame([[1]], 250)],
        )
        path = GifGenerator(scale=1).generate_gif(animation, tmp_path / "one.gif")
        with Image.open(path) as img:
            assert img.info.get("duration") == 250
            assert img.convert("RGB").getpixel((0, 0)) == (0, 0, 255)
