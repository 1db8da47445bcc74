"""
Backend Interface

Every execution backend turns a kernel descriptor into a runnable
GridProgram. The cpu backend is the only one shipped here.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, MutableMapping, Optional, Sequence, Tuple

from typing_extensions import Protocol

from ..frontend.lowering import KernelFunction
from ..runtime.graphics import ImageSurface
from ..runtime.grid import GridProgram
from ..shared.descriptor import KernelDescriptor, SubKernel


class FunctionBuilderProtocol(Protocol):
    """What a backend needs from the function builder collaborator."""

    def add_sub_kernel(self, sub_kernel: SubKernel) -> None:
        ...

    def get_prototypes(
        self,
        constants: Mapping[str, Any],
        table: Optional[MutableMapping[str, KernelFunction]] = None,
    ) -> MutableMapping[str, KernelFunction]:
        ...


class Backend(ABC):
    """
    Backend interface.

    - build(): resolve dimensions, validate arguments, assemble
    - assemble(): produce the GridProgram for already resolved dimensions
    Backends never run a kernel during build.
    """
    name: str = ""

    def __init__(self, function_builder: FunctionBuilderProtocol, surface: Optional[ImageSurface] = None):
        self.function_builder = function_builder
        self.surface = surface

    @abstractmethod
    def build(self, descriptor: KernelDescriptor, args: Sequence[Any]) -> GridProgram:
        raise NotImplementedError

    @abstractmethod
    def assemble(
        self,
        descriptor: KernelDescriptor,
        dimensions: Tuple[int, ...],
        arg_kinds: Sequence[str] = (),
    ) -> GridProgram:
        raise NotImplementedError
