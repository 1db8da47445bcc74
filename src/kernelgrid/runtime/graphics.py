"""
Graphical sink: color buffer and image surfaces.

Kernels address pixels with the origin at the bottom-left; image surfaces
store rows top-down. ColorBuffer.write flips y so the packed buffer can be
copied into a surface verbatim.
"""

import math
from typing import Any, Tuple

import numpy as np
from typing_extensions import Protocol, runtime_checkable

from ..utils.config import COLOR_CHANNELS, COLOR_MAX, DEFAULT_ALPHA


@runtime_checkable
class ImageSurface(Protocol):
    """Anything that can receive a packed RGBA pixel buffer."""
    width: int
    height: int

    def write_pixel_buffer(self, data: bytes) -> None:
        ...


def color_byte(value: Any) -> int:
    """floor(clamp01(value) * 255); NaN maps to 0."""
    v = float(value)
    if math.isnan(v):
        return 0
    v = min(max(v, 0.0), 1.0)
    return int(math.floor(v * COLOR_MAX))


class ColorBuffer:
    """Packed RGBA bytes for one kernel call (width * height * 4, zeroed)."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.data = np.zeros(width * height * COLOR_CHANNELS, dtype=np.uint8)

    def byte_offset(self, x: int, y: int) -> int:
        flipped_y = self.height - y - 1
        return (x + flipped_y * self.width) * COLOR_CHANNELS

    def write(self, x: int, y: int, r: Any, g: Any, b: Any, a: Any = DEFAULT_ALPHA) -> None:
        offset = self.byte_offset(x, y)
        self.data[offset:offset + COLOR_CHANNELS] = (
            color_byte(r), color_byte(g), color_byte(b), color_byte(a)
        )

    def flush(self, surface: ImageSurface) -> None:
        surface.write_pixel_buffer(self.data.tobytes())


class ArraySurface:
    """
    In-memory image surface backed by a (height, width, 4) uint8 array.

    Row 0 is the top of the image, matching the packed buffer layout.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, COLOR_CHANNELS), dtype=np.uint8)
        self.flush_count = 0

    def write_pixel_buffer(self, data: bytes) -> None:
        expected = self.width * self.height * COLOR_CHANNELS
        if len(data) != expected:
            raise ValueError(f"Pixel buffer has {len(data)} bytes, expected {expected}")
        self.pixels = np.frombuffer(data, dtype=np.uint8).reshape(self.height, self.width, COLOR_CHANNELS).copy()
        self.flush_count += 1

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_array(self) -> np.ndarray:
        return self.pixels.copy()

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()
