"""
Query parser.

The parser evaluates a query (or a transaction, i.e. a query holding
mutation calls) against an environment by dispatching every expression to a
``read`` or ``mutate`` function. Read and mutate functions are called as
``fn(env, key, params)`` and return a dict with these optional entries:

- ``value``: the local result for the key
- ``action``: (mutations only) a zero-argument callable doing the mutation
- ``<remote>``: ``True`` to forward the expression unchanged to that remote
  target, or an ``AstNode`` to forward a rewritten expression

Called without a target, the parser runs mutation actions and returns a map
of key to value. Called with a target, it runs nothing and returns the list
of expressions to send to that remote.

Example:
    >>> def read(env, key, params):
    ...     return {"value": env.state.get(key)}
    >>> parser = Parser(read=read)
    >>> parser(Env(state={"count": 1}), ["count"])
    {'count': 1}

Invariants:
    - Local mode never includes keys whose value is None
    - Remote mode never runs mutation actions
    - A failing mutation action is logged and reported under its key, the
      rest of the transaction still runs

How to change safely:
    - Keep read/mutate signatures stable, applications implement them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from .query.ast import AstNode, AstType, ast_to_expr, expr_to_ast
from .query.expr import RECURSION

logger = logging.getLogger(__name__)

ReadFn = Callable[["Env", Any, Dict[str, Any]], Optional[Dict[str, Any]]]


@dataclass
class Env:
    """Parse environment handed to read and mutate functions.

    Attributes:
        state: The application state cell
        shared: Shared values for the component tree
        parser: The parser currently running
        pathopt: Whether components with identity may be read by ref
        reconciler: Reconciler running the parse, if any
        component: Component that issued a transaction, if any
        ref: Ref the transaction is about, if any
        ast: AST of the expression being evaluated
        query: Subquery of the expression being evaluated
        target: Remote target being collected, None for local evaluation
        path: Keys of the joins enclosing the current expression
    """

    state: Any = None
    shared: Any = None
    parser: Any = None
    pathopt: bool = False
    reconciler: Any = None
    component: Any = None
    ref: Any = None
    ast: Optional[AstNode] = None
    query: Any = None
    target: Any = None
    path: List[Any] = field(default_factory=list)


class Dispatcher:
    """Key-dispatched read or mutate function.

    Example:
        >>> read = Dispatcher()
        >>> @read.register("count")
        ... def read_count(env, key, params):
        ...     return {"value": 1}
        >>> read(Env(), "count", {})
        {'value': 1}
    """

    def __init__(self, default: Optional[ReadFn] = None) -> None:
        self._methods: Dict[Any, ReadFn] = {}
        self._default = default

    def register(self, key: Any) -> Callable[[ReadFn], ReadFn]:
        def decorator(fn: ReadFn) -> ReadFn:
            self._methods[key] = fn
            return fn

        return decorator

    def __call__(self, env: Env, key: Any, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        fn = self._methods.get(key, self._default)
        if fn is None:
            raise KeyError(f"No method registered for key {key!r}")
        return fn(env, key, params)


class Parser:
    """Evaluates queries through read and mutate functions.

    Attributes:
        read: Function answering property, join and union reads
        mutate: Function answering mutation calls
    """

    def __init__(self, read: ReadFn, mutate: Optional[ReadFn] = None) -> None:
        self.read = read
        self.mutate = mutate

    def __call__(self, env: Env, query: Any, target: Any = None) -> Any:
        """Parse ``query``.

        Args:
            env: Parse environment
            query: Query or transaction
            target: Remote target to collect expressions for, or None

        Returns:
            Dict of results in local mode, list of expressions in remote mode
        """
        env = replace(env, parser=self, target=target)
        ret: Any = {} if target is None else []

        for expr in query or ():
            ast = expr_to_ast(expr)
            sub = ast.query
            expr_env = replace(
                env,
                ast=ast,
                query=query if sub == RECURSION else sub,
                path=env.path + [ast.key] if isinstance(sub, list) else env.path,
            )

            if ast.type == AstType.CALL:
                if self.mutate is None:
                    raise ValueError(f"Parser has no mutate function for {ast.key!r}")
                res = self.mutate(expr_env, ast.dispatch_key, ast.params or {}) or {}
            else:
                res = self.read(expr_env, ast.dispatch_key, ast.params or {}) or {}

            if target is not None:
                remote = res.get(target)
                if remote is True:
                    ret.append(expr)
                elif isinstance(remote, AstNode):
                    ret.append(ast_to_expr(remote))
                continue

            if ast.type == AstType.CALL:
                self._run_mutation(ret, ast, res)
            elif res.get("value") is not None:
                ret[ast.key] = res["value"]

        return ret

    def _run_mutation(self, ret: Dict[Any, Any], ast: AstNode, res: Dict[str, Any]) -> None:
        error = None
        action = res.get("action")
        if action is not None:
            try:
                action()
            except Exception as e:
                logger.error(f"Mutation {ast.key} failed: {e}", exc_info=True)
                error = e

        value = res.get("value")
        if value is not None and not isinstance(value, dict):
            raise ValueError(f"Mutation {ast.key} must return a dict value, got {value!r}")
        if error is not None:
            ret[ast.key] = {**(value or {}), "error": error}
        elif value is not None:
            ret[ast.key] = value
