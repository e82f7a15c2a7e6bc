"""
Query focusing and template splicing.

- ``focus_query`` narrows a query to the part reachable along a path of keys
- ``query_template`` locates the node a path designates and returns a cursor
- ``splice`` replaces the node under a cursor and rebuilds the whole query
- ``path_from_focused`` recovers the path a focused query was built from

Together these keep the absolute query of a component in sync when its
relative query changes: the indexer records a template for every component
position while indexing the root query, and later splices the component's
freshly bound query into it.

Example:
    >>> focus_query([{"foo": ["bar", "baz"]}, "woz"], ["foo", "bar"])
    [{'foo': ['bar']}]
    >>> q = [{"foo": ["bar"]}]
    >>> splice(query_template(q, ["foo"]), ["bar", "baz"])
    [{'foo': ['bar', 'baz']}]

Invariants:
    - ``splice(t, t.node) == q`` for ``t = query_template(q, p)`` when no
      union lies on ``p``; splicing never touches siblings or ancestors
    - Origin tags of every rebuilt container are preserved
    - Cursors are immutable; ``replace`` returns a new cursor

How to change safely:
    - Keep ``focus_query`` and ``query_template`` agreeing on how unions,
      joins and calls are descended, the indexer depends on it
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .expr import (
    RECURSION,
    UNION_FOCUS,
    Call,
    is_join,
    is_union,
    join_entry,
    join_key,
    like,
    node_key,
)

# Cursor steps
_INDEX = "index"
_KEY = "key"
_CALL = "call"


def _get(node: Any, step: Tuple[Any, ...]) -> Any:
    kind = step[0]
    if kind == _INDEX or kind == _KEY:
        return node[step[1]]
    return node.expr


def _assoc(node: Any, steps: Sequence[Tuple[Any, ...]], value: Any) -> Any:
    if not steps:
        return value
    step, rest = steps[0], steps[1:]
    kind = step[0]
    if kind == _INDEX:
        items = list(node)
        items[step[1]] = _assoc(node[step[1]], rest, value)
        return like(node, items)
    if kind == _KEY:
        ret = like(node, node.items())
        ret[step[1]] = _assoc(node[step[1]], rest, value)
        return ret
    return Call(_assoc(node.expr, rest, value), node.params)


@dataclass(frozen=True)
class QueryCursor:
    """A position inside a query.

    Attributes:
        query: The whole (possibly rewritten) query
        steps: Steps from the root to the current node
    """

    query: Any
    steps: Tuple[Tuple[Any, ...], ...] = ()

    @property
    def node(self) -> Any:
        node = self.query
        for step in self.steps:
            node = _get(node, step)
        return node

    def down(self) -> QueryCursor:
        """Move to the first element of the current sequence."""
        node = self.node
        if not isinstance(node, list) or not node:
            raise ValueError(f"Cannot descend into {node!r}")
        return QueryCursor(self.query, self.steps + ((_INDEX, 0),))

    def right(self) -> QueryCursor:
        """Move to the next sibling in the enclosing sequence."""
        if not self.steps or self.steps[-1][0] != _INDEX:
            raise ValueError("Cursor is not positioned inside a sequence")
        i = self.steps[-1][1] + 1
        parent = QueryCursor(self.query, self.steps[:-1]).node
        if i >= len(parent):
            raise ValueError("No sibling to the right")
        return QueryCursor(self.query, self.steps[:-1] + ((_INDEX, i),))

    def value_of(self, k: Any) -> QueryCursor:
        """Move to the value of key ``k`` in the current map."""
        return QueryCursor(self.query, self.steps + ((_KEY, k),))

    def call_expr(self) -> QueryCursor:
        """Move to the expression wrapped by the current call."""
        return QueryCursor(self.query, self.steps + ((_CALL,),))

    def replace(self, node: Any) -> QueryCursor:
        return QueryCursor(_assoc(self.query, self.steps, node), self.steps)

    def root(self) -> Any:
        return self.query


def focus_query(query: Any, path: Sequence[Any]) -> Any:
    """Focus ``query`` along ``path``.

    Examples:
        >>> focus_query(["foo", "bar", "baz"], ["foo"])
        ['foo']
        >>> focus_query({"photo": ["url"], "video": ["src"]}, ["video"])
        {'video': ['src'], 'graphsync/union': True}

    Args:
        query: Query sequence or union map
        path: Keys to follow

    Returns:
        The focused query; an empty list when nothing matches
    """
    if not path:
        return query
    k, ks = path[0], list(path[1:])
    if isinstance(query, dict):
        return {k: focus_query(query.get(k), ks), UNION_FOCUS: True}
    for node in query or ():
        if join_key(node) == k:
            return [_focused_join(node, ks)]
    return []


def _focused_join(node: Any, ks: List[Any]) -> Any:
    if isinstance(node, dict):
        ((k, v),) = node.items()
        return {k: focus_query(v, ks)}
    if isinstance(node, Call):
        return Call(_focused_join(node.expr, ks), node.params)
    return node


def query_template(query: Any, path: Sequence[Any]) -> QueryCursor:
    """Return a cursor at the node ``path`` designates in ``query``.

    Sequences are descended into, union maps are replaced by the branch the
    next key selects, and joins (plain or called) move to their subquery.

    Raises:
        ValueError: If ``path`` does not exist in ``query``
    """
    loc = QueryCursor(query)
    path = list(path)
    while path:
        node = loc.node
        if isinstance(node, list):
            loc = loc.down()
            continue
        k = path[0]
        if is_union(node):
            if k not in node:
                raise ValueError(f"Union has no branch {k!r}")
            loc = loc.replace(node[k])
            path = path[1:]
            continue
        if node_key(node) == k:
            if isinstance(node, dict):
                loc = loc.value_of(k)
            else:
                loc = loc.call_expr().value_of(k)
            path = path[1:]
        else:
            loc = loc.right()
    return loc


def splice(template: QueryCursor, new_query: Any) -> Any:
    """Replace the node under ``template`` and return the rebuilt query."""
    return template.replace(new_query).root()


def path_from_focused(focus: Any, bound: Optional[Sequence[Any]] = None) -> List[Any]:
    """Recover the path of a query produced by ``focus_query``.

    Walks single-join wrappers downwards. A recursive join repeats its key
    while a bound asks for more; without a bound it ends the walk.

    Args:
        focus: A focused query
        bound: Maximum (or exact) path to follow, None for unbounded

    Returns:
        The recovered path
    """
    path: List[Any] = []
    bound = list(bound) if bound is not None else None
    while (
        (bound is None or (path != bound and len(path) < len(bound)))
        and isinstance(focus, list)
        and len(focus) == 1
        and is_join(focus[0])
    ):
        k, sub = join_entry(focus[0])
        path.append(k)
        if sub == RECURSION:
            if bound is None:
                break
        else:
            focus = sub
    return path
