"""
Runtime: argument checks, dimension resolution, grid traversal and graphics.
"""

from .arguments import ArgumentKind, classify_argument, validate_arguments
from .dimensions import resolve_dimensions, pad_dimensions
from .graphics import ArraySurface, ColorBuffer, ImageSurface
from .grid import GridProgram, KernelContext, SubKernelOutputs, ThreadContext, walk_grid
from .texture import Texture

__all__ = [
    "ArgumentKind",
    "classify_argument",
    "validate_arguments",
    "resolve_dimensions",
    "pad_dimensions",
    "ArraySurface",
    "ColorBuffer",
    "ImageSurface",
    "GridProgram",
    "KernelContext",
    "SubKernelOutputs",
    "ThreadContext",
    "walk_grid",
    "Texture",
]
