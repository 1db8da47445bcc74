#!/usr/bin/env python3
"""
Tests for the graphical sink: byte conversion, y-flipped buffer layout,
per-call buffers and surface flushing.
"""

import math

import numpy as np
import pytest
from kernelgrid import ArraySurface, ImageSurface, Kernel, KernelConfigError, KernelState
from kernelgrid.runtime.graphics import ColorBuffer, color_byte


def paint_two(this):
    if this.thread.x == 0:
        this.color(1, 0, 0, 1)
    else:
        this.color(0, 1, 0)


def paint_when(this, on):
    if on:
        this.color(1, 1, 1, 1)


class TestColorByte:
    @pytest.mark.parametrize("value,expected", [
        (0, 0),
        (1, 255),
        (0.5, 127),
        (-3, 0),
        (7, 255),
        (math.nan, 0),
        (math.inf, 255),
    ])
    def test_clamp_and_floor(self, value, expected):
        assert color_byte(value) == expected


class TestColorBuffer:
    def test_two_by_one_layout(self):
        buffer = ColorBuffer(2, 1)
        buffer.write(0, 0, 1, 0, 0, 1)
        buffer.write(1, 0, 0, 1, 0, 1)
        assert buffer.data.tolist() == [255, 0, 0, 255, 0, 255, 0, 255]

    def test_zero_initialised(self):
        assert ColorBuffer(3, 2).data.tolist() == [0] * 24

    def test_y_is_flipped(self):
        buffer = ColorBuffer(1, 2)
        buffer.write(0, 0, 1, 1, 1, 1)
        assert buffer.data[:4].tolist() == [0, 0, 0, 0]
        assert buffer.data[4:].tolist() == [255, 255, 255, 255]

    @pytest.mark.parametrize("x,y", [(0, 0), (2, 0), (1, 1), (2, 1)])
    def test_index_law(self, x, y):
        buffer = ColorBuffer(3, 2)
        assert buffer.byte_offset(x, y) == (x + (2 - y - 1) * 3) * 4

    def test_default_alpha_is_opaque(self):
        buffer = ColorBuffer(1, 1)
        buffer.write(0, 0, 0, 0, 0)
        assert buffer.data[3] == 255


class TestArraySurface:
    def test_is_an_image_surface(self):
        assert isinstance(ArraySurface(2, 2), ImageSurface)

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            ArraySurface(2, 2).write_pixel_buffer(b"\x00" * 3)

    def test_pixels_are_rows_top_down(self):
        surface = ArraySurface(1, 2)
        surface.write_pixel_buffer(bytes([1, 2, 3, 4, 5, 6, 7, 8]))
        assert surface.pixels[0, 0].tolist() == [1, 2, 3, 4]
        assert surface.pixels[1, 0].tolist() == [5, 6, 7, 8]


class TestGraphicalKernels:
    def test_two_pixels(self):
        kernel = Kernel(paint_two, dimensions=[2, 1], graphical=True)
        assert kernel() is None
        assert kernel.surface.to_bytes() == bytes([255, 0, 0, 255, 0, 255, 0, 255])
        assert kernel.surface.flush_count == 1

    def test_source_body(self):
        kernel = Kernel("this.color(this.thread.x, 0, 0, 1);", dimensions=[2, 1], graphical=True)
        kernel()
        assert kernel.surface.pixels[0].tolist() == [[0, 0, 0, 255], [255, 0, 0, 255]]

    def test_supplied_surface_receives_pixels(self, surface_factory):
        surface = surface_factory(2, 1)
        kernel = Kernel(paint_two, dimensions=[2, 1], graphical=True, surface=surface)
        kernel()
        assert kernel.surface is surface
        assert surface.pixels[0, 1].tolist() == [0, 255, 0, 255]

    def test_buffer_is_fresh_per_call(self):
        kernel = Kernel(paint_when, dimensions=[2, 2], graphical=True)
        kernel(1)
        assert np.all(kernel.surface.pixels == 255)
        kernel(0)
        assert np.all(kernel.surface.pixels == 0)
        assert kernel.surface.flush_count == 2

    def test_surface_size_mismatch(self, surface_factory):
        kernel = Kernel(paint_two, dimensions=[2, 1], graphical=True, surface=surface_factory(3, 3))
        with pytest.raises(KernelConfigError):
            kernel()
        assert kernel.state is KernelState.UNBUILT

    def test_color_outside_graphical_mode(self):
        kernel = Kernel("this.color(1, 0, 0); return 1;", dimensions=[1])
        with pytest.raises(KernelConfigError):
            kernel()


if __name__ == "__main__":
    pytest.main([__file__])
