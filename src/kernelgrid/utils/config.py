"""
Configuration constants to replace magic numbers throughout kernelgrid
"""

import os
import tempfile

# Grid configuration constants
MAX_DIMENSIONS = 3  # x, y, z
PADDED_EXTENT = 1   # Extent used for undeclared trailing axes
DEFAULT_OUTPUT_DTYPE = "float64"
DEFAULT_KERNEL_NAME = "kernel"
DEFAULT_MODE = "cpu"

# Graphical output constants
COLOR_CHANNELS = 4  # RGBA
COLOR_MAX = 255
DEFAULT_ALPHA = 1.0

# Sub-kernel constants
SUB_KERNEL_RESULT_SUFFIX = "Result"
PRIMARY_RESULT_KEY = "result"

# Parser configuration constants (cache under temp dir to avoid cluttering project root)
DEFAULT_PARSER_CACHE_FILE = os.path.join(tempfile.gettempdir(), "kernelgrid_parser.cache")
DEFAULT_SOURCE_NAME = "<kernel>"

# Export format constants
EXPORT_FORMAT_TAG = "kernelgrid"
EXPORT_FORMAT_VERSION = 1
BODY_REF_SEPARATOR = ":"

# File encoding constants
DEFAULT_FILE_ENCODING = "utf-8"

# Environment switches
DEBUG_ENV_VAR = "KERNELGRID_DEBUG"
COLOR_ENV_VAR = "KERNELGRID_COLOR"

_FALSY = ("", "0", "false", "no", "never", "off")


def debug_from_env() -> bool:
    """True when KERNELGRID_DEBUG asks for debug logging on every kernel."""
    return os.environ.get(DEBUG_ENV_VAR, "").lower() not in _FALSY
