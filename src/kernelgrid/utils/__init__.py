"""
kernelgrid utilities package
"""

from .io_utils import read_source_file, write_image

__all__ = ["read_source_file", "write_image"]
