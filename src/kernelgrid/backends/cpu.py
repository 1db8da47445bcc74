"""
CPU backend: the code assembler.

Turns a KernelDescriptor into a GridProgram once per kernel. Nothing is
executed here; source bodies are parsed and lowered to closures, Python
bodies are used as they are.
"""

import logging
from typing import Any, Callable, List, MutableMapping, Sequence, Tuple

from .base import Backend
from ..frontend.lowering import KernelFunction, compile_function
from ..runtime.arguments import argument_kinds, validate_arguments
from ..runtime.dimensions import pad_dimensions, resolve_dimensions
from ..runtime.graphics import ArraySurface
from ..runtime.grid import GridProgram
from ..shared.descriptor import KernelDescriptor, SubKernelMap

logger = logging.getLogger("kernelgrid.backends.cpu")


def _recording(fn: KernelFunction, channel: str) -> KernelFunction:
    """Wrap a sub-kernel so every value it returns lands in its output channel."""
    def record_sub_kernel(ctx: Any, *args: Any) -> Any:
        value = fn(ctx, *args)
        ctx.record(channel, value)
        return value
    record_sub_kernel.__name__ = getattr(fn, "__name__", channel)
    return record_sub_kernel


class CPUBackend(Backend):
    """Sequential backend: assembles a z/y/x grid walk over plain callables."""
    name = "cpu"

    def build(self, descriptor: KernelDescriptor, args: Sequence[Any]) -> GridProgram:
        dimensions = resolve_dimensions(descriptor.dimensions, args)
        validate_arguments(args, descriptor.param_names)
        kinds = [kind.value for kind in argument_kinds(args)]
        return self.assemble(descriptor, dimensions, kinds)

    def _channels(self, descriptor: KernelDescriptor) -> List[Tuple[str, str, str]]:
        """(result key, sub-kernel name, channel name) in declaration order."""
        declaration = descriptor.sub_kernels
        if declaration is None:
            return []
        if isinstance(declaration, SubKernelMap):
            return [(key, sk.name, sk.output_name) for key, sk in declaration.entries.items()]
        return [(sk.name, sk.name, sk.output_name) for sk in declaration.sub_kernels()]

    def assemble(
        self,
        descriptor: KernelDescriptor,
        dimensions: Tuple[int, ...],
        arg_kinds: Sequence[str] = (),
    ) -> GridProgram:
        builder = self.function_builder
        constants = descriptor.constants
        channels = self._channels(descriptor)

        if descriptor.sub_kernels is not None:
            for sub_kernel in descriptor.sub_kernels.sub_kernels():
                builder.add_sub_kernel(sub_kernel)

        table: MutableMapping[str, KernelFunction] = {}
        builder.get_prototypes(constants, table)
        for _, sk_name, channel in channels:
            table[sk_name] = _recording(table[sk_name], channel)

        cell: Callable[..., Any] = compile_function(
            descriptor.body,
            descriptor.param_names,
            constants,
            table,
            set(table),
            source_name=descriptor.name,
        )

        surface = None
        if descriptor.graphical:
            x, y, _ = pad_dimensions(dimensions)
            if self.surface is None:
                self.surface = ArraySurface(x, y)
            surface = self.surface

        program = GridProgram(
            descriptor,
            dimensions,
            cell,
            table,
            channels=[(key, channel) for key, _, channel in channels],
            surface=surface,
            arg_kinds=arg_kinds,
        )
        logger.debug(f"Assembled {program!r} with functions {sorted(table)}")
        return program
