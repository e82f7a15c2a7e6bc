"""
Query expression types and structural helpers.

A query is a list of expressions. Each expression is one of:
- property: a plain ``str`` key, e.g. ``"name"``
- join: a one-entry dict ``{key: subquery}``; ``subquery`` is a list,
  a union dict, or the recursion marker ``RECURSION``
- union: a dict with more than one entry ``{table: subquery}``, valid
  wherever a join subquery is valid (and as a root query)
- call: ``Call(expr, params)`` wrapping a property, a join or a mutation
  ``Symbol``; params may hold ``Var`` placeholders

Example:
    >>> q = ["name", {"friends": ["name"]}, Call("photo", {"size": Var("size")})]
    >>> bind_query(q, {"size": 64})
    ['name', {'friends': ['name']}, Call(expr='photo', params={'size': 64})]

Invariants:
    - Refs are 2-tuples ``(table, key)``; sequences are lists
    - Origin tags and query-root marks are never part of equality
    - Every structural rewrite here returns new containers and carries tags
      over to the rebuilt node

How to change safely:
    - New expression forms must be handled by ``walk`` and by the AST module
    - Keep helpers pure, callers rely on inputs being left untouched
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

# Subquery marker meaning "the enclosing query again, unbounded depth"
RECURSION = "..."

# Property selecting every key of an entity
WILDCARD = "*"

# Extra key carried by a focused union
UNION_FOCUS = "graphsync/union"


class Symbol(str):
    """Name of a mutation. Symbols are never treated as read keys."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"Symbol({str.__repr__(self)})"


@dataclass(frozen=True)
class Var:
    """Parameter placeholder bound by ``bind_query``."""

    name: str


@dataclass
class Call:
    """A parameterized expression.

    Attributes:
        expr: Property, join or mutation symbol being called
        params: Parameter map
    """

    expr: Any
    params: Dict[str, Any] = field(default_factory=dict)


class _Tagged:
    component: Any = None
    query_root: bool = False

    def _copy_marks(self, other: Any) -> None:
        self.component = getattr(other, "component", None)
        self.query_root = getattr(other, "query_root", False)


class TaggedQuery(_Tagged, list):
    """A query sequence carrying an origin tag."""


class TaggedMap(_Tagged, dict):
    """A union (or join) map carrying an origin tag."""


def tag(x: Any, component: Any) -> Any:
    """Return a copy of query ``x`` tagged with its owning ``component``."""
    if isinstance(x, list):
        ret = TaggedQuery(x)
    elif isinstance(x, dict):
        ret = TaggedMap(x)
    else:
        raise TypeError(f"Cannot tag {type(x).__name__}, only query sequences and maps")
    ret._copy_marks(x)
    ret.component = component
    return ret


def component_of(x: Any) -> Any:
    """Owning component class of a tagged query, or None."""
    return getattr(x, "component", None)


def mark_query_root(join: Dict[Any, Any]) -> TaggedMap:
    """Mark a join as a query root for ``process_roots``."""
    ret = TaggedMap(join)
    ret._copy_marks(join)
    ret.query_root = True
    return ret


def is_query_root(x: Any) -> bool:
    return bool(getattr(x, "query_root", False))


def like(node: Any, items: Any) -> Any:
    """Rebuild ``node``'s container type from ``items``, keeping its marks."""
    ret = type(node)(items)
    if isinstance(node, _Tagged):
        ret._copy_marks(node)
    return ret


def is_ref(x: Any) -> bool:
    return isinstance(x, tuple) and len(x) == 2 and isinstance(x[0], str)


def is_union(x: Any) -> bool:
    return isinstance(x, dict) and len(x) > 1


def is_join(x: Any) -> bool:
    if isinstance(x, Call):
        x = x.expr
    return isinstance(x, dict)


def join_key(node: Any) -> Any:
    if isinstance(node, dict):
        return next(iter(node))
    if isinstance(node, Call):
        return join_key(node.expr)
    return node


def join_entry(node: Any) -> Tuple[Any, Any]:
    if isinstance(node, Call):
        node = node.expr
    return next(iter(node.items()))


def join_value(node: Any) -> Any:
    return join_entry(node)[1]


def node_key(node: Any) -> Optional[Any]:
    """Join key of a join or called join, None for anything else."""
    if isinstance(node, dict):
        return next(iter(node))
    if isinstance(node, Call) and isinstance(node.expr, dict):
        return next(iter(node.expr))
    return None


def expr_key(expr: Any) -> Any:
    """Read key of any query expression."""
    return join_key(expr)


def is_mutation(expr: Any) -> bool:
    if isinstance(expr, Call):
        expr = expr.expr
    return isinstance(expr, Symbol)


def walk(node: Any, fn: Callable[[Any], Any]) -> Any:
    """Pre-order rebuild of ``node``: apply ``fn`` then descend."""
    node = fn(node)
    if isinstance(node, list):
        return like(node, [walk(x, fn) for x in node])
    if isinstance(node, dict):
        return like(node, [(walk(k, fn), walk(v, fn)) for k, v in node.items()])
    if isinstance(node, tuple):
        return tuple(walk(x, fn) for x in node)
    if isinstance(node, Call):
        return Call(walk(node.expr, fn), walk(node.params, fn))
    return node


def bind_query(query: Any, params: Optional[Dict[str, Any]]) -> Any:
    """Replace every ``Var`` in ``query`` bound in ``params``.

    Unbound placeholders are left in place. ``query`` is not modified.
    """
    params = params or {}

    def replace_var(node: Any) -> Any:
        if isinstance(node, Var):
            return params.get(node.name, node)
        return node

    return walk(query, replace_var)
