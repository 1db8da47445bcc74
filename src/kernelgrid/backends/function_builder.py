"""
Function builder

Collects the helper functions and sub-kernels a kernel body may call and
compiles them into `fn(this, *args)` prototypes for the assembler.
"""

import logging
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Set, Tuple

from ..frontend.lowering import KernelFunction, compile_function
from ..shared.descriptor import KernelBody, SubKernel, normalize_params
from ..shared.errors import KernelConfigError

logger = logging.getLogger("kernelgrid.backends.function_builder")


class FunctionBuilder:
    """
    Registry of callable helpers shared by a kernel and its sub-kernels.

    Registration is idempotent by name: re-adding a sub-kernel (as a retried
    build does) replaces the earlier entry.
    """

    def __init__(self):
        self._functions: Dict[str, Tuple[KernelBody, Optional[Tuple[str, ...]]]] = {}
        self._sub_kernels: Dict[str, SubKernel] = {}

    def add_function(self, name: str, body: KernelBody,
                     param_names: Optional[Sequence[str]] = None) -> "FunctionBuilder":
        if not name.isidentifier():
            raise KernelConfigError(f"Function name must be an identifier, got {name!r}")
        if name in self._sub_kernels:
            raise KernelConfigError(f"`{name}` is already registered as a sub-kernel")
        self._functions[name] = (body, normalize_params(body, param_names))
        logger.debug(f"Registered function {name}")
        return self

    def add_sub_kernel(self, sub_kernel: SubKernel) -> None:
        if sub_kernel.name in self._functions:
            raise KernelConfigError(f"`{sub_kernel.name}` is already registered as a function")
        self._sub_kernels[sub_kernel.name] = sub_kernel
        logger.debug(f"Registered sub-kernel {sub_kernel.name}")

    @property
    def function_names(self) -> Set[str]:
        return set(self._functions) | set(self._sub_kernels)

    def registered_functions(self) -> List[Tuple[str, KernelBody, Optional[Tuple[str, ...]]]]:
        """Plain helper functions as (name, body, param names), in registration order."""
        return [(name, body, params) for name, (body, params) in self._functions.items()]

    @property
    def sub_kernel_names(self) -> Tuple[str, ...]:
        return tuple(self._sub_kernels)

    def get_prototypes(
        self,
        constants: Mapping[str, Any],
        table: Optional[MutableMapping[str, KernelFunction]] = None,
    ) -> MutableMapping[str, KernelFunction]:
        """
        Compile every registered function into `table` (a new dict by default).

        Bodies look callees up in `table` when they run, so entries replaced
        after this call (e.g. sub-kernel recording wrappers) are what they see.
        """
        if table is None:
            table = {}
        names = self.function_names
        for name, (body, params) in self._functions.items():
            table[name] = compile_function(body, params, constants, table, names, source_name=name)
        for name, sub_kernel in self._sub_kernels.items():
            table[name] = compile_function(sub_kernel.body, sub_kernel.param_names, constants,
                                           table, names, source_name=name)
        return table
