"""
Argument classification.

Coarse validation of call arguments before a kernel is assembled. Kinds are
deliberately few: the engine only needs to know whether something is a
number, something indexable, or a texture that can become an array.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Sequence

import numpy as np

from ..shared.errors import UnsupportedInputType

logger = logging.getLogger("kernelgrid.runtime.arguments")

_NUMERIC_DTYPE_KINDS = "biuf"


class ArgumentKind(Enum):
    """Argument kinds recognised by the cpu backend"""
    NUMBER = "Number"
    ARRAY = "Array"
    TEXTURE = "Texture"
    UNKNOWN = "Unknown"


def is_texture(value: Any) -> bool:
    """Texture-like: exposes to_array() and its own declared dimensions."""
    return callable(getattr(value, "to_array", None)) and hasattr(value, "dimensions")


def classify_argument(value: Any) -> ArgumentKind:
    if isinstance(value, (bool, np.bool_)):
        return ArgumentKind.UNKNOWN
    if isinstance(value, (int, float, np.integer, np.floating)):
        return ArgumentKind.NUMBER
    if is_texture(value):
        return ArgumentKind.TEXTURE
    if isinstance(value, np.ndarray):
        return ArgumentKind.ARRAY if value.dtype.kind in _NUMERIC_DTYPE_KINDS else ArgumentKind.UNKNOWN
    if isinstance(value, (list, tuple)):
        return ArgumentKind.ARRAY
    return ArgumentKind.UNKNOWN


def validate_arguments(args: Sequence[Any], param_names: Optional[Sequence[str]] = None) -> List[Any]:
    """
    Check every argument against the supported kinds.

    Textures are converted eagerly so conversion failures surface before
    assembly. The converted list is returned for inspection only; kernels
    still run with the caller's original arguments.
    """
    checked: List[Any] = []
    for position, value in enumerate(args):
        kind = classify_argument(value)
        if kind in (ArgumentKind.NUMBER, ArgumentKind.ARRAY):
            checked.append(value)
        elif kind == ArgumentKind.TEXTURE:
            checked.append(value.to_array())
        else:
            name = param_names[position] if param_names and position < len(param_names) else None
            raise UnsupportedInputType(position, value, name)
    logger.debug(f"Validated {len(checked)} argument(s): {[classify_argument(a).value for a in args]}")
    return checked


def argument_kinds(args: Sequence[Any]) -> List[ArgumentKind]:
    return [classify_argument(a) for a in args]
