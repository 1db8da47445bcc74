"""
Shared components: descriptor types, source locations and errors.
"""

from .source_location import SourceLocation
from .errors import (
    Diagnostic,
    KernelError,
    KernelSourceError,
    KernelConfigError,
    KernelArgumentError,
    KernelImplementationError,
    UnsupportedInputType,
    AmbiguousDimensions,
    UnsupportedAutoDimensionType,
)
from .descriptor import (
    KernelBody,
    KernelDescriptor,
    SubKernel,
    SubKernelList,
    SubKernelMap,
    SubKernelDeclaration,
    declare_sub_kernels,
)
