"""
Kernel export and two-phase precompilation.

A PrecompiledKernel carries everything needed to assemble a kernel again
without its first call: the padded thread extent, declared dimensions,
parameter names, argument kinds, constants and the bodies themselves.
Kernel-language bodies travel as text; Python bodies travel as
`module:qualname` references that are re-imported on load.

Text form is a structured S-expression (nested lists + sexpdata.Symbol):

    (kernelgrid :version 1 :name "kernel"
      :thread-dim (3 2 1) :dimensions (3 2) :params ("a") :arg-types ("Array")
      :body (source "return a[this.thread.y][this.thread.x];")
      :constants () :graphical false :output-dtype "float64"
      :sub-kernel-form none :sub-kernels () :functions ())
"""

import importlib
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import sexpdata

from .backends import FunctionBuilder, get_backend
from .backends.base import FunctionBuilderProtocol
from .runtime.dimensions import pad_dimensions
from .runtime.graphics import ImageSurface
from .runtime.grid import GridProgram
from .shared.descriptor import (
    KernelBody,
    KernelDescriptor,
    SubKernel,
    SubKernelList,
    SubKernelMap,
)
from .shared.errors import KernelConfigError
from .utils.base import qualified_name
from .utils.config import (
    BODY_REF_SEPARATOR,
    DEFAULT_MODE,
    EXPORT_FORMAT_TAG,
    EXPORT_FORMAT_VERSION,
)

logger = logging.getLogger("kernelgrid.export")

_FORM_LIST = "list"
_FORM_MAP = "map"
_FORM_NONE = "none"
_VARIADIC = "variadic"


def _sym(s: str) -> sexpdata.Symbol:
    return sexpdata.Symbol(s)


def _sym_val(x: Any) -> Any:
    if isinstance(x, sexpdata.Symbol):
        return x.value()
    return x


# ---- bodies ------------------------------------------------------------------

def encode_body(body: KernelBody) -> Tuple[str, bool]:
    """(text, is_ref) for a kernel body; Python bodies must be importable."""
    if isinstance(body, str):
        return body, False
    ref = qualified_name(body)
    if ref is None:
        raise KernelConfigError(
            f"Cannot export {body!r}: Python bodies must be module-level functions "
            "(lambdas and closures cannot be re-imported)"
        )
    return ref, True


def resolve_body(text: str, is_ref: bool) -> KernelBody:
    """Inverse of encode_body: import `module:qualname` references."""
    if not is_ref:
        return text
    module_name, sep, qualname = text.partition(BODY_REF_SEPARATOR)
    if not sep or not module_name or not qualname:
        raise KernelConfigError(f"Malformed body reference {text!r}")
    try:
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as e:
        raise KernelConfigError(f"Cannot import kernel body {text!r}: {e}") from e
    if not callable(target):
        raise KernelConfigError(f"Kernel body {text!r} is not callable")
    return target


# ---- values ------------------------------------------------------------------

def _encode_value(value: Any) -> Any:
    if isinstance(value, (bool, np.bool_)):
        return _sym("true" if value else "false")
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value):
            return _sym("nan")
        if math.isinf(value):
            return _sym("+inf" if value > 0 else "-inf")
        return value
    if isinstance(value, (int, str)):
        return value
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, (list, tuple)):
        return [_sym("array")] + [_encode_value(v) for v in value]
    raise KernelConfigError(f"Cannot export constant value of type {type(value).__name__}")


def _decode_value(sexpr: Any) -> Any:
    # Check Symbol before str (sexpdata.Symbol subclasses str)
    if isinstance(sexpr, sexpdata.Symbol):
        v = sexpr.value()
        if v == "true":
            return True
        if v == "false":
            return False
        if v in ("nan", "+inf", "-inf", "inf"):
            return float(v)
        raise KernelConfigError(f"Unexpected symbol `{v}` in exported constants")
    if isinstance(sexpr, list):
        if sexpr and _sym_val(sexpr[0]) == "array":
            return [_decode_value(v) for v in sexpr[1:]]
        raise KernelConfigError(f"Unexpected list in exported constants: {sexpr!r}")
    return sexpr


def _encode_params(params: Optional[Sequence[str]]) -> Any:
    if params is None:
        return _sym(_VARIADIC)
    return list(params)


def _decode_params(sexpr: Any) -> Optional[Tuple[str, ...]]:
    if _sym_val(sexpr) == _VARIADIC:
        return None
    return tuple(str(p) for p in sexpr)


def _plist(tail: Sequence[Any]) -> Dict[str, Any]:
    """Keyword/value pairs `(:k v :k2 v2 ...)` into a dict keyed without the colon."""
    if len(tail) % 2:
        raise KernelConfigError("Exported kernel has an odd number of keyword entries")
    out: Dict[str, Any] = {}
    for i in range(0, len(tail), 2):
        key = _sym_val(tail[i])
        if not isinstance(key, str) or not key.startswith(":"):
            raise KernelConfigError(f"Expected a keyword, got {key!r}")
        out[key[1:]] = tail[i + 1]
    return out


def _require(opts: Mapping[str, Any], key: str) -> Any:
    if key not in opts:
        raise KernelConfigError(f"Exported kernel is missing `:{key}`")
    return opts[key]


def _pretty_dumps(sexpr: Any, indent: int = 0, indent_str: str = "  ", max_line: int = 100) -> str:
    """
    Pretty-print structured sexpr. Keeps short forms on one line; breaks only when needed.
    """
    if isinstance(sexpr, sexpdata.Symbol):
        return sexpr.value()
    if isinstance(sexpr, list):
        if not sexpr:
            return "()"
        parts = [_pretty_dumps(e, indent + 1, indent_str, max_line) for e in sexpr]
        one_line = "(" + " ".join(parts) + ")"
        if len(one_line) <= max_line and "\n" not in one_line:
            return one_line
        prefix = indent_str * indent
        next_prefix = indent_str * (indent + 1)
        rest = "\n".join(next_prefix + p for p in parts[1:])
        inner = parts[0] + ("\n" + rest if rest else "")
        return f"({inner}\n{prefix})"
    return sexpdata.dumps(sexpr)


# ---- records -----------------------------------------------------------------

@dataclass(frozen=True)
class ExportedFunction:
    """A helper or sub-kernel body in exportable form."""
    name: str
    body: str
    body_is_ref: bool = False
    param_names: Optional[Tuple[str, ...]] = ()
    key: Optional[str] = None

    @classmethod
    def from_body(cls, name: str, body: KernelBody, param_names: Optional[Sequence[str]],
                  key: Optional[str] = None) -> "ExportedFunction":
        text, is_ref = encode_body(body)
        params = tuple(param_names) if param_names is not None else None
        return cls(name, text, is_ref, params, key)

    def resolve(self) -> KernelBody:
        return resolve_body(self.body, self.body_is_ref)

    def to_sexpr(self, tag: str) -> List[Any]:
        out: List[Any] = [_sym(tag), _sym(":name"), self.name]
        if self.key is not None:
            out += [_sym(":key"), self.key]
        out += [
            _sym(":params"), _encode_params(self.param_names),
            _sym(":body"), [_sym("ref" if self.body_is_ref else "source"), self.body],
        ]
        return out

    @classmethod
    def from_sexpr(cls, sexpr: Any, tag: str) -> "ExportedFunction":
        if not isinstance(sexpr, list) or not sexpr or _sym_val(sexpr[0]) != tag:
            raise KernelConfigError(f"Expected a `{tag}` record, got {sexpr!r}")
        opts = _plist(sexpr[1:])
        body_is_ref, body = _decode_body(_require(opts, "body"))
        key = opts.get("key")
        return cls(
            name=str(_require(opts, "name")),
            body=body,
            body_is_ref=body_is_ref,
            param_names=_decode_params(_require(opts, "params")),
            key=str(key) if key is not None else None,
        )


def _decode_body(sexpr: Any) -> Tuple[bool, str]:
    if isinstance(sexpr, list) and len(sexpr) == 2 and _sym_val(sexpr[0]) in ("source", "ref"):
        return _sym_val(sexpr[0]) == "ref", str(sexpr[1])
    raise KernelConfigError(f"Malformed body record {sexpr!r}")


@dataclass(frozen=True)
class PrecompiledKernel:
    """Phase-one output: a serializable description of an assembled kernel."""
    name: str
    thread_dim: Tuple[int, int, int]
    dimensions: Tuple[int, ...]
    param_names: Optional[Tuple[str, ...]]
    arg_types: Tuple[str, ...]
    body: str
    body_is_ref: bool = False
    constants: Mapping[str, Any] = field(default_factory=dict)
    graphical: bool = False
    output_dtype: str = "float64"
    sub_kernel_form: Optional[str] = None
    sub_kernels: Tuple[ExportedFunction, ...] = ()
    functions: Tuple[ExportedFunction, ...] = ()

    def to_descriptor(self) -> KernelDescriptor:
        """Rebuild the descriptor, importing any referenced Python bodies."""
        sub_kernels: Any = None
        if self.sub_kernel_form == _FORM_LIST:
            sub_kernels = SubKernelList(tuple(
                SubKernel(sk.name, sk.resolve(), sk.param_names) for sk in self.sub_kernels
            ))
        elif self.sub_kernel_form == _FORM_MAP:
            sub_kernels = SubKernelMap({
                (sk.key or sk.name): SubKernel(sk.name, sk.resolve(), sk.param_names)
                for sk in self.sub_kernels
            })
        elif self.sub_kernel_form is not None:
            raise KernelConfigError(f"Unknown sub-kernel form `{self.sub_kernel_form}`")
        return KernelDescriptor(
            body=resolve_body(self.body, self.body_is_ref),
            param_names=self.param_names,
            dimensions=self.dimensions,
            constants=dict(self.constants),
            graphical=self.graphical,
            sub_kernels=sub_kernels,
            output_dtype=self.output_dtype,
            name=self.name,
        )

    def to_sexpr(self) -> List[Any]:
        return [
            _sym(EXPORT_FORMAT_TAG),
            _sym(":version"), EXPORT_FORMAT_VERSION,
            _sym(":name"), self.name,
            _sym(":thread-dim"), list(self.thread_dim),
            _sym(":dimensions"), list(self.dimensions),
            _sym(":params"), _encode_params(self.param_names),
            _sym(":arg-types"), list(self.arg_types),
            _sym(":body"), [_sym("ref" if self.body_is_ref else "source"), self.body],
            _sym(":constants"), [[name, _encode_value(v)] for name, v in self.constants.items()],
            _sym(":graphical"), _encode_value(self.graphical),
            _sym(":output-dtype"), self.output_dtype,
            _sym(":sub-kernel-form"), _sym(self.sub_kernel_form or _FORM_NONE),
            _sym(":sub-kernels"), [sk.to_sexpr("sub-kernel") for sk in self.sub_kernels],
            _sym(":functions"), [fn.to_sexpr("function") for fn in self.functions],
        ]

    def to_source(self, pretty: bool = True) -> str:
        sexpr = self.to_sexpr()
        if pretty:
            return _pretty_dumps(sexpr)
        return sexpdata.dumps(sexpr)

    @classmethod
    def from_sexpr(cls, sexpr: Any) -> "PrecompiledKernel":
        if not isinstance(sexpr, list) or not sexpr or _sym_val(sexpr[0]) != EXPORT_FORMAT_TAG:
            raise KernelConfigError(f"Not an exported kernel (expected `({EXPORT_FORMAT_TAG} ...)`)")
        opts = _plist(sexpr[1:])
        version = _require(opts, "version")
        if not isinstance(version, int) or version > EXPORT_FORMAT_VERSION:
            raise KernelConfigError(f"Unsupported export format version {version!r}")
        body_is_ref, body = _decode_body(_require(opts, "body"))
        form = _sym_val(opts.get("sub-kernel-form", _sym(_FORM_NONE)))
        constants = {}
        for entry in opts.get("constants") or []:
            if not isinstance(entry, list) or len(entry) != 2:
                raise KernelConfigError(f"Malformed constant entry {entry!r}")
            constants[str(entry[0])] = _decode_value(entry[1])
        thread_dim = tuple(int(n) for n in _require(opts, "thread-dim"))
        if len(thread_dim) != 3:
            raise KernelConfigError(f"`:thread-dim` must have 3 entries, got {thread_dim}")
        return cls(
            name=str(_require(opts, "name")),
            thread_dim=thread_dim,
            dimensions=tuple(int(n) for n in _require(opts, "dimensions")),
            param_names=_decode_params(_require(opts, "params")),
            arg_types=tuple(str(t) for t in opts.get("arg-types") or []),
            body=body,
            body_is_ref=body_is_ref,
            constants=constants,
            graphical=bool(_decode_value(opts.get("graphical", _sym("false")))),
            output_dtype=str(opts.get("output-dtype", "float64")),
            sub_kernel_form=None if form == _FORM_NONE else form,
            sub_kernels=tuple(ExportedFunction.from_sexpr(s, "sub-kernel") for s in opts.get("sub-kernels") or []),
            functions=tuple(ExportedFunction.from_sexpr(s, "function") for s in opts.get("functions") or []),
        )

    @classmethod
    def from_source(cls, text: str) -> "PrecompiledKernel":
        try:
            parsed = sexpdata.loads(text)
        except Exception as e:
            raise KernelConfigError(f"Cannot parse exported kernel: {e}") from e
        return cls.from_sexpr(parsed)


# ---- phases ------------------------------------------------------------------

def precompile_descriptor(
    descriptor: KernelDescriptor,
    dimensions: Sequence[int],
    arg_types: Sequence[str] = (),
    functions: Iterable[Tuple[str, KernelBody, Optional[Sequence[str]]]] = (),
) -> PrecompiledKernel:
    """Phase one: capture a descriptor plus resolved dimensions as a PrecompiledKernel."""
    dims = tuple(dimensions)
    if not dims:
        raise KernelConfigError("Precompiling needs dimensions: declare them or build the kernel first")
    body, body_is_ref = encode_body(descriptor.body)

    declaration = descriptor.sub_kernels
    form: Optional[str] = None
    sub_kernels: List[ExportedFunction] = []
    if isinstance(declaration, SubKernelList):
        form = _FORM_LIST
        sub_kernels = [ExportedFunction.from_body(sk.name, sk.body, sk.param_names)
                       for sk in declaration.sub_kernels()]
    elif isinstance(declaration, SubKernelMap):
        form = _FORM_MAP
        sub_kernels = [ExportedFunction.from_body(sk.name, sk.body, sk.param_names, key=key)
                       for key, sk in declaration.entries.items()]

    for value in descriptor.constants.values():
        _encode_value(value)

    precompiled = PrecompiledKernel(
        name=descriptor.name,
        thread_dim=pad_dimensions(dims),
        dimensions=dims,
        param_names=descriptor.param_names,
        arg_types=tuple(arg_types),
        body=body,
        body_is_ref=body_is_ref,
        constants=dict(descriptor.constants),
        graphical=descriptor.graphical,
        output_dtype=descriptor.output_dtype,
        sub_kernel_form=form,
        sub_kernels=tuple(sub_kernels),
        functions=tuple(ExportedFunction.from_body(name, fn_body, params)
                        for name, fn_body, params in functions),
    )
    logger.debug(f"Precompiled {descriptor.name} with thread_dim {precompiled.thread_dim}")
    return precompiled


def compile_kernel(
    precompiled: PrecompiledKernel,
    builder: Optional[FunctionBuilderProtocol] = None,
    surface: Optional[ImageSurface] = None,
    mode: str = DEFAULT_MODE,
) -> GridProgram:
    """Phase two: resume compilation of a PrecompiledKernel into a runnable GridProgram."""
    if builder is None:
        builder = FunctionBuilder()
    if precompiled.functions:
        add_function = getattr(builder, "add_function", None)
        if add_function is None:
            raise KernelConfigError("Exported helper functions need a builder with add_function()")
        for fn in precompiled.functions:
            add_function(fn.name, fn.resolve(), fn.param_names)
    descriptor = precompiled.to_descriptor()
    backend = get_backend(mode, builder, surface)
    program = backend.assemble(descriptor, precompiled.dimensions, precompiled.arg_types)
    logger.debug(f"Compiled precompiled kernel {precompiled.name}")
    return program


def load_kernel(
    text: str,
    builder: Optional[FunctionBuilderProtocol] = None,
    surface: Optional[ImageSurface] = None,
    mode: str = DEFAULT_MODE,
) -> GridProgram:
    """Parse exported kernel text and compile it."""
    return compile_kernel(PrecompiledKernel.from_source(text), builder, surface, mode)
