"""
Local Environment

Scope stack for kernel-language locals. Blocks push a scope; `let` binds in
the innermost scope; assignment updates the nearest scope that already holds
the name. Parameters, constants and helpers are resolved when the body is
lowered and never live here.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List


class LocalEnvironment:
    """
    - enter_scope(): push new scope (block or loop)
    - exit_scope(): pop
    - declare(name, value): bind in current (top) scope
    - assign(name, value): rebind in nearest scope holding name
    - get_value(name): lookup from top scope outward
    """
    _scope_stack: List[Dict[str, Any]]

    def __init__(self):
        self._scope_stack = [{}]

    def enter_scope(self) -> None:
        self._scope_stack.append({})

    def exit_scope(self) -> None:
        if len(self._scope_stack) <= 1:
            raise RuntimeError("Cannot exit scope: only the body scope is active")
        self._scope_stack.pop()

    @contextmanager
    def scope(self) -> Iterator[None]:
        """Enter scope on enter, exit scope on exit (always, including on exception)."""
        self.enter_scope()
        try:
            yield
        finally:
            self.exit_scope()

    def declare(self, name: str, value: Any) -> None:
        self._scope_stack[-1][name] = value

    def assign(self, name: str, value: Any) -> None:
        for scope in reversed(self._scope_stack):
            if name in scope:
                scope[name] = value
                return
        raise RuntimeError(f"assign: `{name}` is not declared")

    def get_value(self, name: str) -> Any:
        for scope in reversed(self._scope_stack):
            if name in scope:
                return scope[name]
        raise RuntimeError(f"get_value: `{name}` is not declared")

    def depth(self) -> int:
        return len(self._scope_stack)
