"""Numeric built-ins visible to kernel-language bodies."""
import math
from types import SimpleNamespace
from typing import Any, Dict

import numpy as np


def builtin_round(x: Any) -> float:
    # half-up, like the shader/JS rounding kernels are written against
    return float(np.floor(x + 0.5))

def builtin_min(*args: Any) -> Any:
    if not args: return math.inf
    return min(args)

def builtin_max(*args: Any) -> Any:
    if not args: return -math.inf
    return max(args)

def builtin_clamp(x: Any, lo: Any, hi: Any) -> Any:
    return min(max(x, lo), hi)

def builtin_mix(a: Any, b: Any, t: Any) -> Any:
    return a + (b - a) * t

def builtin_step(edge: Any, x: Any) -> float:
    return 0.0 if x < edge else 1.0

def builtin_sign(x: Any) -> float:
    return float(np.sign(x))

def builtin_fract(x: Any) -> float:
    return float(x - np.floor(x))

def builtin_random() -> float:
    return float(np.random.random_sample())

def remainder(a: Any, b: Any) -> float:
    """C remainder: result takes the sign of the dividend; x % 0 is NaN."""
    if b == 0:
        return math.nan
    return math.fmod(a, b)


MATH_FUNCTIONS: Dict[str, Any] = {
    "abs": abs,
    "floor": np.floor,
    "ceil": np.ceil,
    "round": builtin_round,
    "trunc": np.trunc,
    "sqrt": np.sqrt,
    "cbrt": np.cbrt,
    "exp": np.exp,
    "log": np.log,
    "log2": np.log2,
    "log10": np.log10,
    "pow": np.power,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "atan2": np.arctan2,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "hypot": np.hypot,
    "min": builtin_min,
    "max": builtin_max,
    "sign": builtin_sign,
    "random": builtin_random,
}

MATH_CONSTANTS: Dict[str, float] = {
    "PI": math.pi,
    "E": math.e,
    "LN2": math.log(2),
    "LN10": math.log(10),
    "SQRT2": math.sqrt(2),
}

# `Math.floor(x)` style access
MATH_NAMESPACE = SimpleNamespace(**MATH_FUNCTIONS, **MATH_CONSTANTS)

# Bare names resolvable in kernel bodies after locals, params, constants and helpers
GLOBAL_BUILTINS: Dict[str, Any] = {
    **MATH_FUNCTIONS,
    "clamp": builtin_clamp,
    "mix": builtin_mix,
    "step": builtin_step,
    "fract": builtin_fract,
    "Math": MATH_NAMESPACE,
    "Infinity": math.inf,
    "NaN": math.nan,
}
