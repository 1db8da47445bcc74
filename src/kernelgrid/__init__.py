"""
kernelgrid: CPU execution engine for elementwise grid kernels.
"""

__version__ = "0.1.0"

from .kernel import Kernel, KernelState, create_kernel, create_kernel_map
from .export import PrecompiledKernel, compile_kernel, load_kernel
from .backends import CPUBackend, FunctionBuilder
from .runtime import ArraySurface, ImageSurface, SubKernelOutputs, Texture
from .shared import (
    KernelError,
    KernelSourceError,
    KernelConfigError,
    KernelArgumentError,
    UnsupportedInputType,
    AmbiguousDimensions,
    UnsupportedAutoDimensionType,
    SubKernel,
    SubKernelList,
    SubKernelMap,
)

__all__ = [
    "Kernel",
    "KernelState",
    "create_kernel",
    "create_kernel_map",
    "PrecompiledKernel",
    "compile_kernel",
    "load_kernel",
    "CPUBackend",
    "FunctionBuilder",
    "ArraySurface",
    "ImageSurface",
    "SubKernelOutputs",
    "Texture",
    "KernelError",
    "KernelSourceError",
    "KernelConfigError",
    "KernelArgumentError",
    "UnsupportedInputType",
    "AmbiguousDimensions",
    "UnsupportedAutoDimensionType",
    "SubKernel",
    "SubKernelList",
    "SubKernelMap",
]
