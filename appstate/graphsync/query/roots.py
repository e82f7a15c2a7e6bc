"""
Query-root rewriting for remote sends.

A component deep in the tree may mark one of its joins as a query root with
``mark_query_root``. Before sending, ``process_roots`` hoists marked joins to
the top of the query so the remote sees only the part it must answer, and
returns a ``rewrite`` function that moves the response back to the original
paths before it is merged.

Example:
    >>> q = [{"app": [mark_query_root({"items": ["id"]})]}]
    >>> roots = process_roots(q)
    >>> roots.query
    [{'items': ['id']}]
    >>> roots.rewrite({"items": [1]})
    {'app': {'items': [1]}}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

from .expr import is_join, is_query_root, join_entry, join_key


@dataclass
class RootedQuery:
    """Result of ``process_roots``.

    Attributes:
        query: Query to send
        rewrite: Function mapping a response for ``query`` back to the
            shape of the original query
    """

    query: List[Any]
    rewrite: Callable[[Dict[Any, Any]], Dict[Any, Any]]


def rewrite(paths: Dict[Any, Sequence[Any]]) -> Callable[[Dict[Any, Any]], Dict[Any, Any]]:
    """Build a response rewriter moving each key to its original path."""

    def step(res: Dict[Any, Any]) -> Dict[Any, Any]:
        res = dict(res)
        for k, orig_path in paths.items():
            if k not in res:
                continue
            v = res.pop(k)
            node = res
            for p in orig_path[:-1]:
                child = node.get(p)
                child = dict(child) if isinstance(child, dict) else {}
                node[p] = child
                node = child
            node[orig_path[-1]] = v
        return res

    return step


def process_roots(query: Sequence[Any]) -> RootedQuery:
    """Hoist joins marked as query roots to the top of ``query``.

    Returns the query unchanged with an identity rewrite when nothing is
    marked.
    """
    hoisted: List[Any] = []
    paths: Dict[Any, List[Any]] = {}

    def walk(q: Sequence[Any], path: List[Any]) -> None:
        for expr in q:
            if is_query_root(expr):
                jk = join_key(expr)
                hoisted.append(expr)
                paths[jk] = path + [jk]
                continue
            if is_join(expr):
                jk, jv = join_entry(expr)
                if isinstance(jv, list):
                    walk(jv, path + [jk])

    walk(query, [])
    if hoisted:
        return RootedQuery(query=hoisted, rewrite=rewrite(paths))
    return RootedQuery(query=list(query), rewrite=lambda res: res)
