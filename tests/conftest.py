"""Shared fixtures: synthetic images and a scripted playback surface."""

import io
import time

import numpy as np
import pytest
from PIL import Image


def _encode(frames, fmt, **params):
    buf = io.BytesIO()
    frames[0].save(buf, format=fmt, **params)
    return buf.getvalue()


@pytest.fixture
def make_gif():
    """Factory for animated GIF bytes with one solid color per frame."""

    def factory(colors, durations=None, size=(16, 16), loop=0):
        frames = [Image.new("RGB", size, c) for c in colors]
        params = {"save_all": True, "append_images": frames[1:]}
        if durations is not None:
            params["duration"] = list(durations)
        if loop is not None:
            params["loop"] = loop
        return _encode(frames, "GIF", **params)

    return factory


@pytest.fixture
def make_png():
    """Factory for still PNG bytes of a solid color."""

    def factory(color=(255, 0, 0), size=(100, 100), mode="RGB"):
        return _encode([Image.new(mode, size, color)], "PNG")

    return factory


def solid(color, size=(8, 8), alpha=255):
    raster = np.zeros((size[1], size[0], 4), dtype=np.uint8)
    raster[:, :, :3] = color
    raster[:, :, 3] = alpha
    return raster


@pytest.fixture
def solid_raster():
    """Factory for a solid RGBA raster ``(height, width, 4)``."""
    return solid


class FakeSurface:
    """Playback surface that replays a scripted list of ``(elapsed_ms, raster)`` reads."""

    def __init__(self, reads, opened=True, delays=None, rewind_delay=0.0):
        self.reads = list(reads)
        self.opened = opened
        self.delays = list(delays or [])
        self.rewind_delay = rewind_delay
        self.position = 0
        self.read_calls = 0
        self.rewinds = 0
        self.released = False

    @property
    def is_open(self):
        return self.opened

    def read(self):
        if self.read_calls < len(self.delays) and self.delays[self.read_calls]:
            time.sleep(self.delays[self.read_calls])
        self.read_calls += 1
        if self.position >= len(self.reads):
            return None
        result = self.reads[self.position]
        self.position += 1
        return result

    def rewind(self):
        if self.rewind_delay:
            time.sleep(self.rewind_delay)
        self.rewinds += 1
        self.position = 0

    def release(self):
        self.released = True


@pytest.fixture
def fake_surface():
    """The ``FakeSurface`` class, for tests that script their own reads."""
    return FakeSurface


@pytest.fixture
def closed_surface_factory():
    """Surface factory whose surfaces never open, like OpenCV on unreadable bytes."""
    created = []

    def factory(path):
        surface = FakeSurface([], opened=False)
        created.append(surface)
        return surface

    factory.created = created
    return factory
