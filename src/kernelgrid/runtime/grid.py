"""
Grid Execution Engine

Sequential z/y/x traversal of the iteration grid. Everything mutable during
a call (thread position, color buffer, sub-kernel channels) lives in a
KernelContext created for that call and dropped afterwards.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np

from .dimensions import pad_dimensions
from .graphics import ColorBuffer, ImageSurface
from ..shared.descriptor import KernelDescriptor, SubKernelList, SubKernelMap
from ..shared.errors import KernelArgumentError, KernelConfigError, KernelImplementationError
from ..utils.config import DEFAULT_ALPHA, PRIMARY_RESULT_KEY

logger = logging.getLogger("kernelgrid.runtime.grid")


@dataclass
class ThreadContext:
    """Coordinate of the cell currently executing."""
    x: int = 0
    y: int = 0
    z: int = 0


@dataclass(frozen=True)
class Extent:
    """Padded thread extents."""
    x: int
    y: int
    z: int

    @property
    def shape(self) -> Tuple[int, int, int]:
        """numpy shape of the [z][y][x] result container"""
        return self.z, self.y, self.x

    def __iter__(self) -> Iterator[int]:
        return iter((self.x, self.y, self.z))


class ConstantsView:
    """Read-only attribute and item access over a kernel's constants."""

    def __init__(self, constants: Mapping[str, Any]):
        self._constants = constants

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_constants"][name]
        except KeyError:
            raise AttributeError(f"no constant named `{name}`") from None

    def __getitem__(self, name: str) -> Any:
        return self._constants[name]

    def __contains__(self, name: str) -> bool:
        return name in self._constants

    def __repr__(self) -> str:
        return f"ConstantsView({dict(self._constants)!r})"


class KernelContext:
    """
    The `this` value seen by kernel bodies for one call.

    Exposes `thread`, `dimensions` (alias `output`), `constants`, `color()`
    in graphical mode, and every helper or sub-kernel as a bound method.
    """

    def __init__(
        self,
        extent: Extent,
        constants: Mapping[str, Any],
        functions: Mapping[str, Callable[..., Any]],
        color_buffer: Optional[ColorBuffer] = None,
        channels: Optional[Dict[str, np.ndarray]] = None,
    ):
        self.thread = ThreadContext()
        self.dimensions = extent
        self.output = extent
        self.constants = ConstantsView(constants)
        self._functions = functions
        self._color_buffer = color_buffer
        self._channels = channels if channels is not None else {}

    @property
    def graphical(self) -> bool:
        return self._color_buffer is not None

    def color(self, r: Any, g: Any, b: Any, a: Any = DEFAULT_ALPHA) -> None:
        if self._color_buffer is None:
            raise KernelConfigError("color() is only available in graphical mode")
        self._color_buffer.write(self.thread.x, self.thread.y, r, g, b, a)

    def record(self, channel: str, value: Any) -> None:
        """Store a sub-kernel value at the current cell of its output channel."""
        if value is None:
            return
        t = self.thread
        self._channels[channel][t.z, t.y, t.x] = value

    def __getattr__(self, name: str) -> Any:
        functions = self.__dict__.get("_functions") or {}
        if name in functions:
            return partial(functions[name], self)
        raise AttributeError(f"kernel context has no attribute `{name}`")


def walk_grid(extent: Extent, thread: ThreadContext) -> Iterator[ThreadContext]:
    """
    Visit every cell, z slowest and x fastest, updating `thread` in place
    before each yield.
    """
    for z in range(extent.z):
        thread.z = z
        for y in range(extent.y):
            thread.y = y
            for x in range(extent.x):
                thread.x = x
                yield thread


def collapse(array: np.ndarray, rank: int) -> np.ndarray:
    """Drop the padded outer levels: rank 1 -> [x], rank 2 -> [y][x]."""
    if rank == 1:
        return array[0, 0]
    if rank == 2:
        return array[0]
    return array


class SubKernelOutputs(list):
    """List-form sub-kernel outputs; `.result` holds the primary output."""

    def __init__(self, outputs: Sequence[Any], result: Any):
        super().__init__(outputs)
        self.result = result


class GridProgram:
    """
    The compiled artifact: a runnable grid traversal for one kernel.

    Built once by the cpu backend and then called directly for every
    invocation. Holds no per-call state.
    """

    def __init__(
        self,
        descriptor: KernelDescriptor,
        dimensions: Tuple[int, ...],
        cell: Callable[..., Any],
        functions: Mapping[str, Callable[..., Any]],
        channels: Sequence[Tuple[str, str]] = (),
        surface: Optional[ImageSurface] = None,
        arg_kinds: Sequence[str] = (),
    ):
        self.descriptor = descriptor
        self.dimensions = tuple(dimensions)
        self.extent = Extent(*pad_dimensions(dimensions))
        self.cell = cell
        self.functions = dict(functions)
        # (result key, output channel name) in declaration order
        self.channels = list(channels)
        self.surface = surface
        self.arg_kinds = tuple(arg_kinds)
        self.dtype = np.dtype(descriptor.output_dtype)
        if descriptor.graphical:
            if surface is None:
                raise KernelConfigError("Graphical kernels need an image surface")
            if (surface.width, surface.height) != (self.extent.x, self.extent.y):
                raise KernelConfigError(
                    f"Surface is {surface.width}x{surface.height}, "
                    f"kernel renders {self.extent.x}x{self.extent.y}"
                )

    @property
    def rank(self) -> int:
        return len(self.dimensions)

    @property
    def thread_dim(self) -> Tuple[int, int, int]:
        return self.extent.x, self.extent.y, self.extent.z

    @property
    def graphical(self) -> bool:
        return self.descriptor.graphical

    def __call__(self, *args: Any) -> Any:
        params = self.descriptor.param_names
        if params is not None and len(args) != len(params):
            raise KernelArgumentError(
                f"Kernel `{self.descriptor.name}` expects {len(params)} argument(s), got {len(args)}"
            )

        extent = self.extent
        ret = np.zeros(extent.shape, dtype=self.dtype)
        outputs = {name: np.zeros(extent.shape, dtype=self.dtype) for _, name in self.channels}
        color_buffer = ColorBuffer(extent.x, extent.y) if self.graphical else None
        ctx = KernelContext(extent, self.descriptor.constants, self.functions, color_buffer, outputs)

        cell = self.cell
        for t in walk_grid(extent, ctx.thread):
            value = cell(ctx, *args)
            if value is not None:
                ret[t.z, t.y, t.x] = value

        logger.debug(f"Ran {self.descriptor.name} over {extent.x}x{extent.y}x{extent.z} cells")
        if color_buffer is not None:
            color_buffer.flush(self.surface)
            return None

        rank = self.rank
        ret = collapse(ret, rank)
        outputs = {name: collapse(array, rank) for name, array in outputs.items()}
        return self._package(ret, outputs)

    def _package(self, ret: np.ndarray, outputs: Dict[str, np.ndarray]) -> Any:
        declaration = self.descriptor.sub_kernels
        if declaration is None:
            return ret
        if isinstance(declaration, SubKernelList):
            return SubKernelOutputs([outputs[name] for _, name in self.channels], ret)
        if isinstance(declaration, SubKernelMap):
            packed = {PRIMARY_RESULT_KEY: ret}
            for key, name in self.channels:
                packed[key] = outputs[name]
            return packed
        raise KernelImplementationError(f"Unknown sub-kernel declaration {type(declaration).__name__}")

    def describe(self) -> Dict[str, Any]:
        return {
            **self.descriptor.describe(),
            "dimensions": self.dimensions,
            "thread_dim": self.thread_dim,
            "channels": [name for _, name in self.channels],
            "functions": sorted(self.functions),
            "arg_kinds": self.arg_kinds,
        }

    def __repr__(self) -> str:
        return f"GridProgram({self.descriptor.name!r}, dimensions={self.dimensions}, graphical={self.graphical})"
