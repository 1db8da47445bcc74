"""
Kernel entry point.

A Kernel starts UNBUILT. Its first call resolves dimensions, classifies the
arguments and assembles a GridProgram; only when all three succeed does it
become BUILT, and every later call runs the cached program directly.
"""

import dataclasses
import logging
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from .backends import FunctionBuilder, get_backend
from .backends.base import Backend, FunctionBuilderProtocol
from .export import PrecompiledKernel, compile_kernel as _compile_kernel, precompile_descriptor
from .runtime.graphics import ImageSurface
from .runtime.grid import GridProgram
from .shared.descriptor import KernelBody, KernelDescriptor
from .shared.errors import KernelConfigError
from .utils.config import DEFAULT_KERNEL_NAME, DEFAULT_MODE, DEFAULT_OUTPUT_DTYPE, debug_from_env

logger = logging.getLogger("kernelgrid.kernel")


class KernelState(Enum):
    UNBUILT = "unbuilt"
    BUILT = "built"


class Kernel:
    """
    A callable elementwise kernel.

    Calling it runs `body` once per grid cell and returns the shaped result
    (or None for graphical kernels, whose pixels go to `surface`).
    """

    def __init__(
        self,
        body: KernelBody,
        param_names: Optional[Sequence[str]] = None,
        *,
        dimensions: Optional[Sequence[int]] = None,
        constants: Optional[Mapping[str, Any]] = None,
        graphical: bool = False,
        sub_kernels: Any = None,
        output_dtype: str = DEFAULT_OUTPUT_DTYPE,
        name: Optional[str] = None,
        debug: Optional[bool] = None,
        function_builder: Optional[FunctionBuilderProtocol] = None,
        surface: Optional[ImageSurface] = None,
        mode: str = DEFAULT_MODE,
    ):
        if name is None:
            name = getattr(body, "__name__", None) if callable(body) else None
            if not name or name == "<lambda>":
                name = DEFAULT_KERNEL_NAME
        self.descriptor = KernelDescriptor(
            body=body,
            param_names=tuple(param_names) if param_names is not None else None,
            dimensions=tuple(dimensions) if dimensions is not None else (),
            constants=dict(constants or {}),
            graphical=graphical,
            sub_kernels=sub_kernels,
            output_dtype=output_dtype,
            debug=debug_from_env() if debug is None else bool(debug),
            name=name,
        )
        self.function_builder = function_builder if function_builder is not None else FunctionBuilder()
        self.backend: Backend = get_backend(mode, self.function_builder, surface)
        self.mode = mode
        self._program: Optional[GridProgram] = None
        self._exported: Optional[str] = None
        self.build_count = 0

    # ---- state -----------------------------------------------------------

    @property
    def state(self) -> KernelState:
        return KernelState.BUILT if self._program is not None else KernelState.UNBUILT

    @property
    def is_built(self) -> bool:
        return self._program is not None

    @property
    def program(self) -> Optional[GridProgram]:
        return self._program

    @property
    def surface(self) -> Optional[ImageSurface]:
        return self.backend.surface

    # ---- building --------------------------------------------------------

    def build(self, *args: Any) -> GridProgram:
        """
        Resolve, classify and assemble on the first call; later calls return
        the cached program. The kernel stays UNBUILT if any step fails.
        """
        if self._program is not None:
            return self._program
        descriptor = self.descriptor
        if descriptor.debug:
            logger.info(f"Building kernel {descriptor.name}: {descriptor.describe()}")
        program = self.backend.build(descriptor, args)
        self._program = program
        self.build_count += 1
        if descriptor.debug:
            logger.info(f"Built kernel {descriptor.name}: {program.describe()}")
        else:
            logger.debug(f"Built kernel {descriptor.name}")
        return program

    def ensure_built(self, *args: Any) -> GridProgram:
        return self.build(*args)

    def __call__(self, *args: Any) -> Any:
        return self.ensure_built(*args)(*args)

    # ---- configuration ---------------------------------------------------

    def _replace(self, **changes: Any) -> "Kernel":
        self.descriptor = dataclasses.replace(self.descriptor, **changes)
        return self

    def set_dimensions(self, dimensions: Sequence[int]) -> "Kernel":
        return self._replace(dimensions=tuple(dimensions))

    def set_constants(self, constants: Mapping[str, Any]) -> "Kernel":
        return self._replace(constants=dict(constants))

    def set_graphical(self, graphical: bool = True) -> "Kernel":
        return self._replace(graphical=bool(graphical))

    def set_output_dtype(self, output_dtype: str) -> "Kernel":
        return self._replace(output_dtype=output_dtype)

    def set_debug(self, debug: bool = True) -> "Kernel":
        return self._replace(debug=bool(debug))

    def add_function(self, name: str, body: KernelBody,
                     param_names: Optional[Sequence[str]] = None) -> "Kernel":
        add = getattr(self.function_builder, "add_function", None)
        if add is None:
            raise KernelConfigError("This function builder does not accept helper functions")
        add(name, body, param_names)
        return self

    # ---- export ----------------------------------------------------------

    def _registered_functions(self):
        registered = getattr(self.function_builder, "registered_functions", None)
        return registered() if registered is not None else ()

    def to_source(self) -> str:
        """
        Exported S-expression text of the built kernel.

        Builds (with no arguments) if needed. Computed once: later calls
        return the same text even after the kernel's settings change.
        """
        if self._exported is None:
            program = self.ensure_built()
            precompiled = precompile_descriptor(
                program.descriptor, program.dimensions, program.arg_kinds, self._registered_functions()
            )
            self._exported = precompiled.to_source()
            logger.debug(f"Exported kernel {self.descriptor.name}")
        return self._exported

    def precompile(self, *arg_types: str) -> PrecompiledKernel:
        """Phase one of two-phase compilation; needs declared or already built dimensions."""
        dimensions = self.descriptor.dimensions or (self._program.dimensions if self._program else ())
        return precompile_descriptor(self.descriptor, dimensions, arg_types, self._registered_functions())

    @staticmethod
    def compile_kernel(precompiled: PrecompiledKernel, builder: Optional[FunctionBuilderProtocol] = None,
                       surface: Optional[ImageSurface] = None, mode: str = DEFAULT_MODE) -> GridProgram:
        return _compile_kernel(precompiled, builder, surface, mode)

    def __repr__(self) -> str:
        return f"Kernel({self.descriptor.name!r}, state={self.state.value})"


def create_kernel(body: KernelBody, **options: Any) -> Kernel:
    """Create a kernel; `options` are the Kernel keyword arguments."""
    param_names = options.pop("param_names", None)
    return Kernel(body, param_names, **options)


def create_kernel_map(sub_kernels: Any, body: KernelBody, **options: Any) -> Kernel:
    """
    Create a kernel with sub-kernel outputs.

    A list of sub-kernels returns outputs as a list with `.result`; a
    mapping returns a dict keyed like the mapping plus "result".
    """
    options["sub_kernels"] = sub_kernels
    return create_kernel(body, **options)
