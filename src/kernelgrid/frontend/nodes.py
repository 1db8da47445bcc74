"""
Kernel body AST.

Produced by the lark transformer, consumed once by the closure lowering.
Nodes are frozen; every node carries the location of its first token.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..shared.source_location import SourceLocation


class BinaryOp(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="
    NE = "!="
    AND = "&&"
    OR = "||"


class UnaryOp(Enum):
    NEG = "-"
    POS = "+"
    NOT = "!"


@dataclass(frozen=True)
class Node:
    location: Optional[SourceLocation]


# ==================== EXPRESSIONS ====================

@dataclass(frozen=True)
class Expression(Node):
    pass

@dataclass(frozen=True)
class Literal(Expression):
    value: object

@dataclass(frozen=True)
class Identifier(Expression):
    name: str

@dataclass(frozen=True)
class ThisExpression(Expression):
    pass

@dataclass(frozen=True)
class MemberAccess(Expression):
    object: Expression
    name: str

@dataclass(frozen=True)
class IndexAccess(Expression):
    object: Expression
    index: Expression

@dataclass(frozen=True)
class Call(Expression):
    callee: Expression
    arguments: Tuple[Expression, ...]

@dataclass(frozen=True)
class BinaryExpression(Expression):
    op: BinaryOp
    left: Expression
    right: Expression

@dataclass(frozen=True)
class UnaryExpression(Expression):
    op: UnaryOp
    operand: Expression

@dataclass(frozen=True)
class ConditionalExpression(Expression):
    test: Expression
    then: Expression
    otherwise: Expression


# ==================== STATEMENTS ====================

@dataclass(frozen=True)
class Statement(Node):
    pass

@dataclass(frozen=True)
class Let(Statement):
    name: str
    value: Expression

@dataclass(frozen=True)
class Assign(Statement):
    """`name = value`, or `name op= value` when op is set (++/-- desugar to += 1 / -= 1)."""
    name: str
    value: Expression
    op: Optional[BinaryOp] = None

@dataclass(frozen=True)
class Return(Statement):
    value: Optional[Expression]

@dataclass(frozen=True)
class ExpressionStatement(Statement):
    expression: Expression

@dataclass(frozen=True)
class Block(Statement):
    statements: Tuple[Statement, ...]

@dataclass(frozen=True)
class If(Statement):
    test: Expression
    body: Block
    orelse: Optional[Statement] = None

@dataclass(frozen=True)
class For(Statement):
    init: Statement
    test: Expression
    update: Statement
    body: Block

@dataclass(frozen=True)
class Program(Node):
    statements: Tuple[Statement, ...]
