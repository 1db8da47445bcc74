"""
Source Location (Span) for kernel-language bodies.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceLocation:
    """
    Position of a construct inside kernel body source.

    Line and column are 1-based, as reported by lark with propagate_positions.
    Immutable (frozen) so nodes carrying it stay hashable.
    """
    file: str
    line: int
    column: int
    end_line: int = 0
    end_column: int = 0

    def __str__(self) -> str:
        """Format as file:line:column"""
        return f"{self.file}:{self.line}:{self.column}"
