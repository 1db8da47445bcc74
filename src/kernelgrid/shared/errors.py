"""
Error Reporting

Exception taxonomy for kernel building and execution, plus a rustc-style
renderer for errors that point into kernel-language source.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .source_location import SourceLocation
from ..utils.config import COLOR_ENV_VAR


# ---------------------------------------------------------------------------
# ANSI color helpers (disabled when NO_COLOR is set)
# ---------------------------------------------------------------------------

def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    explicit = os.environ.get(COLOR_ENV_VAR, "").lower()
    if explicit in ("0", "false", "no", "never"):
        return False
    return True

_BOLD   = "\033[1m"
_RED    = "\033[31m"
_BLUE   = "\033[34m"
_CYAN   = "\033[36m"
_RESET  = "\033[0m"

def _style(text: str, *codes: str, color: bool = True) -> str:
    if not color:
        return text
    prefix = "".join(codes)
    return f"{prefix}{text}{_RESET}" if prefix else text


# ---------------------------------------------------------------------------
# Diagnostic dataclass
# ---------------------------------------------------------------------------

@dataclass
class Diagnostic:
    """A single renderable error: message, optional span and annotations."""
    message: str
    location: Optional[SourceLocation]
    code: Optional[str] = None
    help: Optional[str] = None
    label: Optional[str] = None


def format_diagnostic(
    diagnostic: Diagnostic,
    source_files: Dict[str, str],
    color: bool = False,
) -> str:
    """
    Render a diagnostic in rustc style.

    Example output (plain, no color)::

        error[K0425]: cannot find value `q` in this scope
         --> <kernel>:1:8
          |
        1 | return q + 1;
          |        ^ not found
    """
    out: List[str] = []

    code_str = f"[{diagnostic.code}]" if diagnostic.code else ""
    out.append(
        _style(f"error{code_str}", _BOLD, _RED, color=color)
        + _style(f": {diagnostic.message}", _BOLD, color=color)
    )

    loc = diagnostic.location
    if loc is None:
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + "<unknown location>")
        _append_help(out, diagnostic, 1, color)
        return "\n".join(out)

    source = source_files.get(loc.file)
    gw = max(len(str(loc.line)), 1)
    out.append(_style(" " * gw + "--> ", _BOLD, _BLUE, color=color) + str(loc))
    if source is None:
        _append_help(out, diagnostic, gw, color)
        return "\n".join(out)

    src_lines = source.split("\n")
    idx = loc.line - 1
    code_line = src_lines[idx] if 0 <= idx < len(src_lines) else ""
    gutter = _style(" " * (gw + 1) + "|", _BOLD, _BLUE, color=color)
    out.append(gutter)
    out.append(_style(str(loc.line).rjust(gw) + " | ", _BOLD, _BLUE, color=color) + code_line)

    col_start = max(loc.column, 1) - 1
    if loc.end_line == loc.line and loc.end_column > loc.column:
        span_len = loc.end_column - loc.column
    else:
        span_len = _guess_span(code_line, col_start)
    carets = " " * col_start + "^" * max(1, span_len)
    label_suffix = f" {diagnostic.label}" if diagnostic.label else ""
    out.append(gutter + " " + _style(carets + label_suffix, _BOLD, _RED, color=color))

    _append_help(out, diagnostic, gw, color)
    return "\n".join(out)


def _guess_span(code_line: str, col_start: int) -> int:
    """Guess token length when end_column is unavailable."""
    if col_start >= len(code_line):
        return 1
    length = 0
    for ch in code_line[col_start:]:
        if ch in (" ", "\t", ";", ",", ")", "]", "}"):
            break
        length += 1
    return max(1, length)


def _append_help(out: List[str], diagnostic: Diagnostic, gw: int, color: bool) -> None:
    if not diagnostic.help:
        return
    pad = " " * (gw + 1)
    out.append(_style(pad + "|", _BOLD, _BLUE, color=color))
    out.append(
        _style(f"{pad}= ", _BOLD, _CYAN, color=color)
        + _style("help: ", _BOLD, color=color)
        + diagnostic.help
    )


# ============================================================================
# Exception Classes
# ============================================================================

class KernelError(Exception):
    """Base exception for all kernelgrid errors"""
    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self):
        if self.location:
            return f"{self.message} ({self.location})"
        return self.message


class UnsupportedInputType(KernelError):
    """A call argument is not a number, a dense array or a texture."""
    def __init__(self, position: int, value: Any, param_name: Optional[str] = None):
        self.position = position
        self.param_name = param_name
        self.type_name = type(value).__name__
        where = f"argument {position}" + (f" (`{param_name}`)" if param_name else "")
        super().__init__(f"Input type not supported (cpu): {where} has type {self.type_name}")


class AmbiguousDimensions(KernelError):
    """Dimensions were not declared and cannot be inferred from the call."""
    def __init__(self, argument_count: int):
        self.argument_count = argument_count
        super().__init__(
            "Auto dimensions only supported for kernels with only one input "
            f"(got {argument_count})"
        )


class UnsupportedAutoDimensionType(KernelError):
    """The sole call argument has no shape to infer dimensions from."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Auto dimensions not supported for input type: {kind}")


class KernelConfigError(KernelError):
    """Invalid kernel settings or misuse of a mode-specific facility."""


class KernelArgumentError(KernelError):
    """A compiled kernel was called with the wrong number of arguments."""


class KernelSourceError(KernelError):
    """
    Error in kernel-language source with rustc-style rendering.

    Raised for syntax errors and for names that do not resolve when the
    body is lowered. Rendering shows the offending line when the source
    text is attached.
    """
    def __init__(self,
                 message: str,
                 location: Optional[SourceLocation] = None,
                 error_code: str = "K0001",
                 source_code: Optional[str] = None,
                 help: Optional[str] = None,
                 label: Optional[str] = None):
        super().__init__(message, location)
        self.error_code = error_code
        self.source_code = source_code
        self.help_text = help
        self.label_text = label

    def with_source(self, source_code: str) -> "KernelSourceError":
        self.source_code = source_code
        return self

    def __str__(self):
        source_files: Dict[str, str] = {}
        if self.source_code is not None and self.location:
            source_files[self.location.file] = self.source_code
        diagnostic = Diagnostic(
            message=self.message,
            location=self.location,
            code=self.error_code,
            help=self.help_text,
            label=self.label_text,
        )
        return format_diagnostic(diagnostic, source_files, color=_use_color())


class KernelImplementationError(Exception):
    """
    Error in kernelgrid itself (not in the user's kernel).

    Use this for broken internal invariants only; user mistakes raise a
    KernelError subclass instead.
    """
    def __init__(self, message: str, error_code: str = "K9999"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self):
        return f"[{self.error_code}] {self.message}"
