"""
Parser

Kernel-language source -> AST, using a cached LALR lark parser.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from typing_extensions import TypeAlias

from .nodes import (
    Assign, BinaryExpression, BinaryOp, Block, Call, ConditionalExpression,
    Expression, ExpressionStatement, For, Identifier, If, IndexAccess, Let,
    Literal, MemberAccess, Program, Return, Statement, ThisExpression,
    UnaryExpression, UnaryOp,
)
from ..shared.errors import KernelSourceError
from ..shared.source_location import SourceLocation
from ..utils.config import DEFAULT_PARSER_CACHE_FILE, DEFAULT_SOURCE_NAME

logger = logging.getLogger("kernelgrid.frontend.parser")

# Lark Meta carries line/column when propagate_positions is on
LarkMeta: TypeAlias = Any

_AUG_OPS = {
    "+=": BinaryOp.ADD,
    "-=": BinaryOp.SUB,
    "*=": BinaryOp.MUL,
    "/=": BinaryOp.DIV,
    "%=": BinaryOp.MOD,
}


def _binary(op: BinaryOp):
    def build(self, meta, left, right):
        return BinaryExpression(self._loc(meta), op, left, right)
    return build


def _unary(op: UnaryOp):
    def build(self, meta, operand):
        return UnaryExpression(self._loc(meta), op, operand)
    return build


@v_args(inline=True, meta=True)
class KernelTransformer(Transformer):
    """Converts the lark parse tree into kernel AST nodes"""

    def __init__(self, source_name: str = DEFAULT_SOURCE_NAME):
        super().__init__()
        self.source_name = source_name

    def _loc(self, meta: LarkMeta) -> Optional[SourceLocation]:
        if getattr(meta, "empty", True):
            return None
        return SourceLocation(
            file=self.source_name,
            line=meta.line,
            column=meta.column,
            end_line=getattr(meta, "end_line", 0) or 0,
            end_column=getattr(meta, "end_column", 0) or 0,
        )

    def _token_loc(self, token: Any) -> SourceLocation:
        return SourceLocation(
            file=self.source_name,
            line=token.line,
            column=token.column,
            end_line=getattr(token, "end_line", 0) or 0,
            end_column=getattr(token, "end_column", 0) or 0,
        )

    # ---- program & statements ------------------------------------------

    def program(self, meta, *statements: Statement) -> Program:
        return Program(self._loc(meta), tuple(s for s in statements if s is not None))

    def block(self, meta, *statements: Statement) -> Block:
        return Block(self._loc(meta), tuple(s for s in statements if s is not None))

    def let_stmt(self, meta, name, value) -> Let:
        return Let(self._loc(meta), str(name), value)

    def for_let(self, meta, name, value) -> Let:
        return Let(self._loc(meta), str(name), value)

    def assign(self, meta, name, value) -> Assign:
        return Assign(self._loc(meta), str(name), value)

    def aug_assign(self, meta, name, op, value) -> Assign:
        return Assign(self._loc(meta), str(name), value, _AUG_OPS[str(op)])

    def increment(self, meta, name) -> Assign:
        loc = self._loc(meta)
        return Assign(loc, str(name), Literal(loc, 1), BinaryOp.ADD)

    def decrement(self, meta, name) -> Assign:
        loc = self._loc(meta)
        return Assign(loc, str(name), Literal(loc, 1), BinaryOp.SUB)

    def return_stmt(self, meta, value: Optional[Expression] = None) -> Return:
        return Return(self._loc(meta), value)

    def if_stmt(self, meta, test, body, orelse=None) -> If:
        return If(self._loc(meta), test, body, orelse)

    def for_stmt(self, meta, init, test, update, body) -> For:
        return For(self._loc(meta), init, test, update, body)

    def expr_stmt(self, meta, expression) -> ExpressionStatement:
        return ExpressionStatement(self._loc(meta), expression)

    def empty_stmt(self, meta) -> None:
        return None

    # ---- expressions ---------------------------------------------------

    def conditional(self, meta, test, then, otherwise) -> ConditionalExpression:
        return ConditionalExpression(self._loc(meta), test, then, otherwise)

    or_op = _binary(BinaryOp.OR)
    and_op = _binary(BinaryOp.AND)
    eq = _binary(BinaryOp.EQ)
    ne = _binary(BinaryOp.NE)
    lt = _binary(BinaryOp.LT)
    le = _binary(BinaryOp.LE)
    gt = _binary(BinaryOp.GT)
    ge = _binary(BinaryOp.GE)
    add = _binary(BinaryOp.ADD)
    sub = _binary(BinaryOp.SUB)
    mul = _binary(BinaryOp.MUL)
    div = _binary(BinaryOp.DIV)
    mod = _binary(BinaryOp.MOD)
    neg = _unary(UnaryOp.NEG)
    pos = _unary(UnaryOp.POS)
    not_op = _unary(UnaryOp.NOT)

    def member(self, meta, obj, name) -> MemberAccess:
        return MemberAccess(self._token_loc(name), obj, str(name))

    def index(self, meta, obj, index) -> IndexAccess:
        return IndexAccess(self._loc(meta), obj, index)

    def call(self, meta, callee, arguments: Optional[List[Expression]] = None) -> Call:
        return Call(self._loc(meta), callee, tuple(arguments or ()))

    def arguments(self, meta, *args: Expression) -> List[Expression]:
        return list(args)

    def number(self, meta, token) -> Literal:
        text = str(token)
        if any(c in text for c in ".eE"):
            value: object = float(text)
        else:
            value = int(text)
        return Literal(self._token_loc(token), value)

    def true(self, meta) -> Literal:
        return Literal(self._loc(meta), True)

    def false(self, meta) -> Literal:
        return Literal(self._loc(meta), False)

    def this(self, meta) -> ThisExpression:
        return ThisExpression(self._loc(meta))

    def name(self, meta, token) -> Identifier:
        return Identifier(self._token_loc(token), str(token))


class Parser:
    """
    Parser for kernel bodies.

    One lark instance per Parser; the LALR tables are cached on disk so
    repeated construction is cheap.
    """

    def __init__(self, cache_file: Optional[str] = DEFAULT_PARSER_CACHE_FILE):
        grammar_path = Path(__file__).parent / "grammar.lark"
        self.parser = Lark.open(
            str(grammar_path),
            start="program",
            parser="lalr",
            cache=cache_file if cache_file else False,
            propagate_positions=True,
            maybe_placeholders=False,
        )

    def parse(self, source: str, source_name: str = DEFAULT_SOURCE_NAME) -> Program:
        try:
            tree = self.parser.parse(source)
        except UnexpectedInput as e:
            raise _syntax_error(e, source, source_name) from e
        program = KernelTransformer(source_name).transform(tree)
        logger.debug(f"Parsed {source_name}: {len(program.statements)} statement(s)")
        return program


def _syntax_error(e: UnexpectedInput, source: str, source_name: str) -> KernelSourceError:
    line = getattr(e, "line", -1)
    column = getattr(e, "column", -1)
    location = None
    if isinstance(line, int) and line > 0:
        location = SourceLocation(file=source_name, line=line, column=max(column, 1))
    if isinstance(e, UnexpectedToken):
        found = e.token.value if e.token.type != "$END" else "end of input"
        message = f"expected one of {sorted(e.expected)}, found `{found}`"
    elif isinstance(e, UnexpectedCharacters):
        message = f"unexpected character `{source[e.pos_in_stream]}`"
    elif isinstance(e, UnexpectedEOF):
        message = "unexpected end of input"
    else:
        message = str(e)
    return KernelSourceError(
        f"syntax error: {message}",
        location,
        error_code="K0100",
        source_code=source,
        label="here",
    )


_default_parser: Optional[Parser] = None


def parse_kernel(source: str, source_name: str = DEFAULT_SOURCE_NAME) -> Program:
    """Parse with a lazily created module-wide Parser."""
    global _default_parser
    if _default_parser is None:
        _default_parser = Parser()
    return _default_parser.parse(source, source_name)
