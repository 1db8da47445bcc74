"""
Test utilities for the kernelgrid test suite.

Helpers for the build-then-run pattern and for comparing nested results.
"""

import re
import sys
from dataclasses import dataclass, field
from typing import Any, List, Optional
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from kernelgrid import Kernel
from kernelgrid.shared.errors import KernelError

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


@dataclass
class ExecutionResult:
    """Outcome of building and running a kernel once."""
    value: Any = None
    success: bool = False
    error: Optional[KernelError] = None
    errors: List[str] = field(default_factory=list)


def run_kernel(body: Any, *args: Any, **options: Any) -> ExecutionResult:
    """Build a kernel from `body` and call it once, capturing kernel errors."""
    param_names = options.pop("param_names", None)
    try:
        kernel = Kernel(body, param_names, **options)
        value = kernel(*args)
    except KernelError as e:
        return ExecutionResult(success=False, error=e, errors=[strip_ansi(str(e))])
    return ExecutionResult(value=value, success=True)


# A hand-written reference for elementwise kernels: f(x, y, z) over a padded grid
def reference_grid(fn, dimensions):
    dims = list(dimensions) + [1] * (3 - len(dimensions))
    out = np.zeros((dims[2], dims[1], dims[0]))
    for z in range(dims[2]):
        for y in range(dims[1]):
            for x in range(dims[0]):
                out[z, y, x] = fn(x, y, z)
    if len(dimensions) == 1:
        return out[0, 0]
    if len(dimensions) == 2:
        return out[0]
    return out


def assert_grid_equal(actual: Any, expected: Any) -> None:
    np.testing.assert_array_equal(np.asarray(actual), np.asarray(expected))


# Module-level Python bodies: importable, so they survive export/load
def add_arrays(this, a, b):
    t = this.thread
    return a[t.x] + b[t.x]


def double(this, v):
    return v * 2


def square_cell(this):
    return this.thread.x * this.thread.x
