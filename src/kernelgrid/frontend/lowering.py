"""
Closure Lowering

Turns a kernel-body AST into a graph of Python closures, once, at assembly
time. Every name is resolved here: block locals, then parameters, then
constants, then helper functions, then built-ins. A name that resolves to
nothing is a KernelSourceError before any cell runs.
"""

import logging
import math
import operator
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set

from .nodes import (
    Assign, BinaryExpression, BinaryOp, Block, Call, ConditionalExpression,
    Expression, ExpressionStatement, For, Identifier, If, IndexAccess, Let,
    Literal, MemberAccess, Program, Return, Statement, ThisExpression,
    UnaryExpression, UnaryOp,
)
from .parser import parse_kernel
from ..runtime.builtins import GLOBAL_BUILTINS, remainder
from ..runtime.environment import LocalEnvironment
from ..shared.descriptor import KernelBody
from ..shared.errors import KernelArgumentError, KernelConfigError, KernelSourceError
from ..shared.source_location import SourceLocation
from ..utils.base import CONTINUE, ExecutionFlow
from ..utils.config import DEFAULT_SOURCE_NAME

logger = logging.getLogger("kernelgrid.frontend.lowering")


class Frame:
    """Evaluation state of one body invocation."""
    __slots__ = ("ctx", "args", "env")

    def __init__(self, ctx: Any, args: Sequence[Any]):
        self.ctx = ctx
        self.args = args
        self.env = LocalEnvironment()


ExprFn = Callable[[Frame], Any]
StmtFn = Callable[[Frame], ExecutionFlow]
# (this, *args) -> value; what helpers, sub-kernels and bodies compile to
KernelFunction = Callable[..., Any]


def _divide(a: Any, b: Any) -> Any:
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a)


def _index(obj: Any, i: Any) -> Any:
    i = int(i)
    if i < 0:
        raise IndexError(f"negative index {i}")
    return obj[i]


_BINARY_OPS: Dict[BinaryOp, Callable[[Any, Any], Any]] = {
    BinaryOp.ADD: operator.add,
    BinaryOp.SUB: operator.sub,
    BinaryOp.MUL: operator.mul,
    BinaryOp.DIV: _divide,
    BinaryOp.MOD: remainder,
    BinaryOp.LT: operator.lt,
    BinaryOp.LE: operator.le,
    BinaryOp.GT: operator.gt,
    BinaryOp.GE: operator.ge,
    BinaryOp.EQ: operator.eq,
    BinaryOp.NE: operator.ne,
}

_UNARY_OPS: Dict[UnaryOp, Callable[[Any], Any]] = {
    UnaryOp.NEG: operator.neg,
    UnaryOp.POS: operator.pos,
    UnaryOp.NOT: operator.not_,
}


class ClosureLowering:
    """
    Lowers one Program into a `(this, args) -> value` callable.

    `functions` may still be filling up while lowering runs (helpers can
    refer to each other); only `function_names` must be complete.
    """

    def __init__(
        self,
        param_names: Sequence[str],
        constants: Mapping[str, Any],
        functions: Mapping[str, KernelFunction],
        function_names: Optional[Set[str]] = None,
        source: Optional[str] = None,
    ):
        self.params = {name: i for i, name in enumerate(param_names)}
        self.constants = constants
        self.functions = functions
        self.function_names = set(function_names if function_names is not None else functions.keys())
        self.source = source
        self._scopes: List[Set[str]] = []

    # ---- errors ----------------------------------------------------------

    def _error(self, message: str, location: Optional[SourceLocation], code: str,
               label: Optional[str] = None, help: Optional[str] = None) -> KernelSourceError:
        return KernelSourceError(message, location, error_code=code,
                                 source_code=self.source, label=label, help=help)

    # ---- scopes ----------------------------------------------------------

    def _is_local(self, name: str) -> bool:
        return any(name in scope for scope in self._scopes)

    def _push(self) -> None:
        self._scopes.append(set())

    def _pop(self) -> None:
        self._scopes.pop()

    # ---- program ---------------------------------------------------------

    def lower_program(self, program: Program) -> Callable[[Any, Sequence[Any]], Any]:
        self._push()
        statements = [self.lower_statement(s) for s in program.statements]
        self._pop()

        def run(ctx: Any, args: Sequence[Any]) -> Any:
            frame = Frame(ctx, args)
            for stmt in statements:
                flow = stmt(frame)
                if flow.is_return():
                    return flow.value
            return None
        return run

    # ---- statements ------------------------------------------------------

    def lower_statement(self, node: Statement) -> StmtFn:
        if isinstance(node, Let):
            return self._lower_let(node)
        if isinstance(node, Assign):
            return self._lower_assign(node)
        if isinstance(node, Return):
            return self._lower_return(node)
        if isinstance(node, ExpressionStatement):
            expr = self.lower_expression(node.expression)
            def run_expr(frame: Frame) -> ExecutionFlow:
                expr(frame)
                return CONTINUE
            return run_expr
        if isinstance(node, Block):
            return self._lower_block(node)
        if isinstance(node, If):
            return self._lower_if(node)
        if isinstance(node, For):
            return self._lower_for(node)
        raise self._error(f"unsupported statement {type(node).__name__}", node.location, "K0001")

    def _lower_let(self, node: Let) -> StmtFn:
        value = self.lower_expression(node.value)
        self._scopes[-1].add(node.name)
        name = node.name
        def run_let(frame: Frame) -> ExecutionFlow:
            frame.env.declare(name, value(frame))
            return CONTINUE
        return run_let

    def _lower_assign(self, node: Assign) -> StmtFn:
        name = node.name
        if not self._is_local(name):
            what = "parameter" if name in self.params else "constant" if name in self.constants else None
            if what:
                raise self._error(f"cannot assign to {what} `{name}`", node.location, "K0384",
                                  label="not assignable", help=f"declare a local copy: `let {name}2 = {name};`")
            raise self._error(f"cannot find value `{name}` in this scope", node.location, "K0425",
                              label="not found in this scope", help=f"declare it first: `let {name} = ...;`")
        value = self.lower_expression(node.value)
        if node.op is None:
            def run_assign(frame: Frame) -> ExecutionFlow:
                frame.env.assign(name, value(frame))
                return CONTINUE
            return run_assign
        combine = _BINARY_OPS[node.op]
        def run_update(frame: Frame) -> ExecutionFlow:
            env = frame.env
            env.assign(name, combine(env.get_value(name), value(frame)))
            return CONTINUE
        return run_update

    def _lower_return(self, node: Return) -> StmtFn:
        if node.value is None:
            return lambda frame: ExecutionFlow.return_value(None)
        value = self.lower_expression(node.value)
        return lambda frame: ExecutionFlow.return_value(value(frame))

    def _lower_block(self, node: Block) -> StmtFn:
        self._push()
        statements = [self.lower_statement(s) for s in node.statements]
        self._pop()
        def run_block(frame: Frame) -> ExecutionFlow:
            with frame.env.scope():
                for stmt in statements:
                    flow = stmt(frame)
                    if flow.is_return():
                        return flow
            return CONTINUE
        return run_block

    def _lower_if(self, node: If) -> StmtFn:
        test = self.lower_expression(node.test)
        body = self._lower_block(node.body)
        orelse = self.lower_statement(node.orelse) if node.orelse is not None else None
        def run_if(frame: Frame) -> ExecutionFlow:
            if test(frame):
                return body(frame)
            if orelse is not None:
                return orelse(frame)
            return CONTINUE
        return run_if

    def _lower_for(self, node: For) -> StmtFn:
        self._push()
        init = self.lower_statement(node.init)
        test = self.lower_expression(node.test)
        update = self.lower_statement(node.update)
        body = self._lower_block(node.body)
        self._pop()
        def run_for(frame: Frame) -> ExecutionFlow:
            with frame.env.scope():
                init(frame)
                while test(frame):
                    flow = body(frame)
                    if flow.is_return():
                        return flow
                    update(frame)
            return CONTINUE
        return run_for

    # ---- expressions -----------------------------------------------------

    def lower_expression(self, node: Expression) -> ExprFn:
        if isinstance(node, Literal):
            value = node.value
            return lambda frame: value
        if isinstance(node, Identifier):
            return self._lower_identifier(node)
        if isinstance(node, ThisExpression):
            return lambda frame: frame.ctx
        if isinstance(node, MemberAccess):
            return self._lower_member(node)
        if isinstance(node, IndexAccess):
            obj = self.lower_expression(node.object)
            index = self.lower_expression(node.index)
            return lambda frame: _index(obj(frame), index(frame))
        if isinstance(node, Call):
            return self._lower_call(node)
        if isinstance(node, BinaryExpression):
            return self._lower_binary(node)
        if isinstance(node, UnaryExpression):
            operand = self.lower_expression(node.operand)
            op = _UNARY_OPS[node.op]
            return lambda frame: op(operand(frame))
        if isinstance(node, ConditionalExpression):
            test = self.lower_expression(node.test)
            then = self.lower_expression(node.then)
            otherwise = self.lower_expression(node.otherwise)
            return lambda frame: then(frame) if test(frame) else otherwise(frame)
        raise self._error(f"unsupported expression {type(node).__name__}", node.location, "K0001")

    def _lower_identifier(self, node: Identifier) -> ExprFn:
        name = node.name
        if self._is_local(name):
            return lambda frame: frame.env.get_value(name)
        if name in self.params:
            i = self.params[name]
            return lambda frame: frame.args[i]
        if name in self.constants:
            value = self.constants[name]
            return lambda frame: value
        if name in self.function_names:
            functions = self.functions
            return lambda frame: partial(functions[name], frame.ctx)
        if name in GLOBAL_BUILTINS:
            value = GLOBAL_BUILTINS[name]
            return lambda frame: value
        raise self._error(f"cannot find value `{name}` in this scope", node.location, "K0425",
                          label="not found in this scope")

    def _lower_member(self, node: MemberAccess) -> ExprFn:
        if node.name.startswith("_"):
            raise self._error(f"member `{node.name}` is private", node.location, "K0616",
                              label="private member")
        obj = self.lower_expression(node.object)
        name = node.name
        return lambda frame: getattr(obj(frame), name)

    def _lower_call(self, node: Call) -> ExprFn:
        args = [self.lower_expression(a) for a in node.arguments]
        callee = node.callee
        if (isinstance(callee, Identifier) and callee.name in self.function_names
                and not self._is_local(callee.name) and callee.name not in self.params
                and callee.name not in self.constants):
            functions = self.functions
            name = callee.name
            return lambda frame: functions[name](frame.ctx, *[a(frame) for a in args])
        target = self.lower_expression(callee)
        return lambda frame: target(frame)(*[a(frame) for a in args])

    def _lower_binary(self, node: BinaryExpression) -> ExprFn:
        left = self.lower_expression(node.left)
        right = self.lower_expression(node.right)
        if node.op == BinaryOp.AND:
            return lambda frame: left(frame) and right(frame)
        if node.op == BinaryOp.OR:
            return lambda frame: left(frame) or right(frame)
        op = _BINARY_OPS[node.op]
        return lambda frame: op(left(frame), right(frame))


def compile_function(
    body: KernelBody,
    param_names: Optional[Sequence[str]],
    constants: Mapping[str, Any],
    functions: Mapping[str, KernelFunction],
    function_names: Optional[Set[str]] = None,
    source_name: str = DEFAULT_SOURCE_NAME,
) -> KernelFunction:
    """
    Compile a kernel body (source text or Python callable) into `fn(this, *args)`.

    Python callables are returned unchanged. Source text is parsed and
    lowered; its arity is checked on every call.
    """
    if callable(body) and not isinstance(body, str):
        return body
    if not isinstance(body, str):
        raise KernelConfigError(f"Kernel body must be source text or a callable, got {type(body).__name__}")

    program = parse_kernel(body, source_name)
    params = tuple(param_names or ())
    lowering = ClosureLowering(params, constants, functions, function_names, source=body)
    run = lowering.lower_program(program)
    logger.debug(f"Lowered {source_name} with params {params}")

    arity = len(params)
    def kernel_function(ctx: Any, *args: Any) -> Any:
        if len(args) != arity:
            raise KernelArgumentError(f"`{source_name}` expects {arity} argument(s), got {len(args)}")
        return run(ctx, args)
    kernel_function.__name__ = source_name
    return kernel_function
