"""
Kernel descriptor and sub-kernel declarations.

A descriptor is the immutable configuration of one kernel instance. The
kernel's setters build a new descriptor with dataclasses.replace rather than
mutating the old one.
"""

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import KernelConfigError
from ..utils.config import (
    DEFAULT_KERNEL_NAME,
    DEFAULT_OUTPUT_DTYPE,
    MAX_DIMENSIONS,
    PRIMARY_RESULT_KEY,
    SUB_KERNEL_RESULT_SUFFIX,
)

# Kernel-language source text, or a Python callable taking `this` first
KernelBody = Union[str, Callable[..., Any]]


def infer_param_names(body: Callable[..., Any]) -> Optional[Tuple[str, ...]]:
    """Positional parameter names of a Python body, skipping `this`.

    Returns None for variadic bodies, whose arity is not checked.
    """
    params = list(inspect.signature(body).parameters.values())[1:]
    names = []
    for p in params:
        if p.kind == inspect.Parameter.VAR_POSITIONAL:
            return None
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            names.append(p.name)
    return tuple(names)


def normalize_params(body: KernelBody, param_names: Optional[Sequence[str]]) -> Optional[Tuple[str, ...]]:
    if param_names is not None:
        names = tuple(param_names)
        if len(set(names)) != len(names):
            raise KernelConfigError(f"Duplicate parameter names: {names}")
        return names
    if isinstance(body, str):
        return ()
    if callable(body):
        return infer_param_names(body)
    raise KernelConfigError(f"Kernel body must be source text or a callable, got {type(body).__name__}")


def normalize_dimensions(dimensions: Optional[Sequence[int]]) -> Tuple[int, ...]:
    """Validate a declared dimension sequence; empty means "infer at first call"."""
    if dimensions is None:
        return ()
    dims = tuple(dimensions)
    if len(dims) > MAX_DIMENSIONS:
        raise KernelConfigError(f"At most {MAX_DIMENSIONS} dimensions are supported, got {len(dims)}")
    out = []
    for d in dims:
        if isinstance(d, bool) or not isinstance(d, (int, np.integer)) or d < 1:
            raise KernelConfigError(f"Dimensions must be positive integers, got {dims!r}")
        out.append(int(d))
    return tuple(out)


@dataclass(frozen=True)
class SubKernel:
    """An auxiliary function whose per-cell return values form an output channel."""
    name: str
    body: KernelBody
    param_names: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if not self.name or not self.name.isidentifier():
            raise KernelConfigError(f"Sub-kernel name must be an identifier, got {self.name!r}")
        object.__setattr__(self, "param_names", normalize_params(self.body, self.param_names))

    @property
    def output_name(self) -> str:
        return self.name + SUB_KERNEL_RESULT_SUFFIX


@dataclass(frozen=True)
class SubKernelList:
    """List form: outputs come back as an ordered list with a `.result` attribute."""
    entries: Tuple[SubKernel, ...]

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        _check_unique([sk.name for sk in self.entries])

    def sub_kernels(self) -> Iterator[SubKernel]:
        return iter(self.entries)


@dataclass(frozen=True)
class SubKernelMap:
    """Map form: outputs come back as a dict keyed like the declaration, plus "result"."""
    entries: Mapping[str, SubKernel]

    def __post_init__(self):
        entries = dict(self.entries)
        if PRIMARY_RESULT_KEY in entries:
            raise KernelConfigError(f"`{PRIMARY_RESULT_KEY}` is reserved for the primary output")
        _check_unique([sk.name for sk in entries.values()])
        object.__setattr__(self, "entries", MappingProxyType(entries))

    def sub_kernels(self) -> Iterator[SubKernel]:
        return iter(self.entries.values())

    def keys(self) -> Tuple[str, ...]:
        return tuple(self.entries.keys())


SubKernelDeclaration = Union[SubKernelList, SubKernelMap]


def _check_unique(names: Sequence[str]) -> None:
    if len(set(names)) != len(names):
        raise KernelConfigError(f"Sub-kernel names must be unique, got {list(names)}")


def _as_sub_kernel(entry: Any, key: Optional[str] = None) -> SubKernel:
    # Map keys name the output only; `this.<name>` uses the function's own name
    if isinstance(entry, SubKernel):
        return entry
    if isinstance(entry, str):
        where = f" for `{key}`" if key is not None else ""
        raise KernelConfigError(
            f"Source text{where} has no name or parameters; "
            f"wrap it as SubKernel(name, body, param_names)"
        )
    if callable(entry):
        return SubKernel(name=getattr(entry, "__name__", ""), body=entry)
    raise KernelConfigError(f"Cannot interpret {entry!r} as a sub-kernel")


def declare_sub_kernels(declaration: Any) -> Optional[SubKernelDeclaration]:
    """
    Normalize a user-supplied sub-kernel declaration into the tagged variant.

    Accepts an existing SubKernelList/SubKernelMap, a mapping (map form) or a
    sequence (list form) of SubKernel objects or named Python functions.
    Bare source text is rejected since it carries no name or parameters.
    """
    if declaration is None:
        return None
    if isinstance(declaration, (SubKernelList, SubKernelMap)):
        return declaration
    if isinstance(declaration, Mapping):
        return SubKernelMap({key: _as_sub_kernel(value, key) for key, value in declaration.items()})
    if isinstance(declaration, (list, tuple)):
        return SubKernelList(tuple(_as_sub_kernel(entry) for entry in declaration))
    raise KernelConfigError(f"Sub-kernels must be a list or a mapping, got {type(declaration).__name__}")


@dataclass(frozen=True)
class KernelDescriptor:
    """Immutable per-kernel configuration read by the resolver and the assembler."""
    body: KernelBody
    param_names: Optional[Tuple[str, ...]] = None
    dimensions: Tuple[int, ...] = ()
    constants: Mapping[str, Any] = field(default_factory=dict)
    graphical: bool = False
    sub_kernels: Optional[SubKernelDeclaration] = None
    output_dtype: str = DEFAULT_OUTPUT_DTYPE
    debug: bool = False
    name: str = DEFAULT_KERNEL_NAME

    def __post_init__(self):
        object.__setattr__(self, "param_names", normalize_params(self.body, self.param_names))
        object.__setattr__(self, "dimensions", normalize_dimensions(self.dimensions))
        object.__setattr__(self, "constants", MappingProxyType(dict(self.constants or {})))
        object.__setattr__(self, "sub_kernels", declare_sub_kernels(self.sub_kernels))
        for key in self.constants:
            if not isinstance(key, str) or not key.isidentifier():
                raise KernelConfigError(f"Constant names must be identifiers, got {key!r}")
        try:
            np.dtype(self.output_dtype)
        except TypeError as e:
            raise KernelConfigError(f"Unknown output dtype: {self.output_dtype!r}") from e

    @property
    def is_source(self) -> bool:
        """True when the body is kernel-language text."""
        return isinstance(self.body, str)

    def describe(self) -> Dict[str, Any]:
        """Plain summary used for debug logging."""
        return {
            "name": self.name,
            "params": self.param_names,
            "dimensions": self.dimensions,
            "constants": dict(self.constants),
            "graphical": self.graphical,
            "sub_kernels": [sk.name for sk in self.sub_kernels.sub_kernels()] if self.sub_kernels else None,
            "output_dtype": self.output_dtype,
        }
