"""
Dimension resolution.

Declared dimensions win. Without them the grid shape comes from the single
call argument: an array's shape read innermost-first (x is the last numpy
axis), or a texture's own dimensions.
"""

import logging
from typing import Any, List, Sequence, Tuple

import numpy as np

from .arguments import ArgumentKind, classify_argument
from ..shared.descriptor import normalize_dimensions
from ..shared.errors import AmbiguousDimensions, KernelConfigError, UnsupportedAutoDimensionType
from ..utils.config import MAX_DIMENSIONS, PADDED_EXTENT

logger = logging.getLogger("kernelgrid.runtime.dimensions")


def array_shape(array: Any) -> Tuple[int, ...]:
    """Shape of an ndarray or nested list/tuple, following first elements."""
    if isinstance(array, np.ndarray):
        return tuple(int(n) for n in array.shape)
    shape: List[int] = []
    current = array
    while isinstance(current, (list, tuple, np.ndarray)):
        if isinstance(current, np.ndarray):
            shape.extend(int(n) for n in current.shape)
            break
        shape.append(len(current))
        if not current:
            break
        current = current[0]
    return tuple(shape)


def dimensions_of_array(array: Any) -> Tuple[int, ...]:
    """Grid dimensions for an array: numpy shape reversed, so x is innermost."""
    shape = array_shape(array)
    if len(shape) > MAX_DIMENSIONS:
        raise KernelConfigError(
            f"Cannot infer dimensions from an array with {len(shape)} axes (max {MAX_DIMENSIONS})"
        )
    return tuple(reversed(shape))


def resolve_dimensions(declared: Sequence[int], args: Sequence[Any]) -> Tuple[int, ...]:
    if declared:
        return tuple(declared)
    if len(args) != 1:
        raise AmbiguousDimensions(len(args))

    sole = args[0]
    kind = classify_argument(sole)
    if kind == ArgumentKind.ARRAY:
        dims = dimensions_of_array(sole)
    elif kind == ArgumentKind.TEXTURE:
        dims = tuple(sole.dimensions)
    else:
        raise UnsupportedAutoDimensionType(kind.value)
    dims = normalize_dimensions(dims)
    logger.debug(f"Inferred dimensions {dims} from {kind.value} argument")
    return dims


def pad_dimensions(dimensions: Sequence[int]) -> Tuple[int, int, int]:
    """Right-pad with 1 to exactly (x, y, z)."""
    dims = list(dimensions)
    while len(dims) < MAX_DIMENSIONS:
        dims.append(PADDED_EXTENT)
    x, y, z = dims[:MAX_DIMENSIONS]
    return x, y, z
