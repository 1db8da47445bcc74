"""
Centralized file I/O utilities.

- Single place for encoding
- Use Path.read_text() consistently (no raw open/read)
"""

from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from .config import DEFAULT_FILE_ENCODING


def read_source_file(path: Union[Path, str]) -> str:
    """Read kernel source or exported kernel text with standard encoding."""
    p = Path(path) if not isinstance(path, Path) else path
    return p.read_text(encoding=DEFAULT_FILE_ENCODING)


def write_image(path: Union[Path, str], pixels: np.ndarray) -> None:
    """Save a (height, width, 4) uint8 RGBA array; the format follows the suffix."""
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError(f"expected (height, width, 4) pixels, got shape {pixels.shape}")
    # uint8 arrays with four channels load as RGBA
    image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    image.save(path)
