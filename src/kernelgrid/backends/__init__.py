"""
Execution backends.
"""

from typing import Dict, Optional, Type

from .base import Backend, FunctionBuilderProtocol
from .cpu import CPUBackend
from .function_builder import FunctionBuilder
from ..runtime.graphics import ImageSurface
from ..shared.errors import KernelConfigError

_BACKENDS: Dict[str, Type[Backend]] = {
    CPUBackend.name: CPUBackend,
}


def get_backend(mode: str, function_builder: Optional[FunctionBuilderProtocol] = None,
                surface: Optional[ImageSurface] = None) -> Backend:
    """Instantiate the backend registered for `mode`."""
    try:
        backend_cls = _BACKENDS[mode]
    except KeyError:
        raise KernelConfigError(
            f"Unknown backend mode `{mode}` (available: {', '.join(sorted(_BACKENDS))})"
        ) from None
    return backend_cls(function_builder if function_builder is not None else FunctionBuilder(), surface)


__all__ = ["Backend", "CPUBackend", "FunctionBuilder", "FunctionBuilderProtocol", "get_backend"]
