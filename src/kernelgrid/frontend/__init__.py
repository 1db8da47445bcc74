"""
Kernel body frontend: lark parser and closure lowering.
"""

from .parser import Parser, parse_kernel
from .lowering import ClosureLowering, compile_function

__all__ = ["Parser", "parse_kernel", "ClosureLowering", "compile_function"]
