"""
Query AST.

Converts query expressions to a structural, inspectable form and back.

Node types:
- root: a query sequence, children are its expressions
- prop: a property read, optionally with params
- join: a join read, ``query`` holds the raw subquery
- union: a union map, children are union_entry nodes
- union_entry: one union branch keyed by ``union_key``
- call: a mutation call

Example:
    >>> ast = query_to_ast(["name", {"friends": ["name"]}])
    >>> [c.type.value for c in ast.children]
    ['prop', 'join']
    >>> ast_to_query(ast)
    ['name', {'friends': ['name']}]

Invariants:
    - ``ast_to_query(query_to_ast(q)) == q`` for every query, modulo
      ``Call(x, {})`` which comes back as ``x``
    - Origin tags and query-root marks survive the round trip

How to change safely:
    - A new node type needs both directions and a round-trip test
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .expr import (
    RECURSION,
    Call,
    Symbol,
    component_of,
    is_query_root,
    is_ref,
    mark_query_root,
    tag,
)


class AstType(str, Enum):
    """AST node types."""

    ROOT = "root"
    PROP = "prop"
    JOIN = "join"
    UNION = "union"
    UNION_ENTRY = "union_entry"
    CALL = "call"


@dataclass
class AstNode:
    """A query AST node.

    Attributes:
        type: Node type
        key: Read key, join key or mutation symbol
        dispatch_key: Key used to dispatch reads and mutations (the table
            for ref keys, the key itself otherwise)
        params: Call parameters, None when not called
        query: Raw subquery of a join, union or union entry
        children: Child nodes for root, join, union and union entries
        union_key: Branch table of a union entry
        component: Origin tag of ``query`` (or of the root query)
        query_root: Whether the join is marked as a query root
    """

    type: AstType
    key: Any = None
    dispatch_key: Any = None
    params: Optional[Dict[str, Any]] = None
    query: Any = None
    children: Optional[List[AstNode]] = None
    union_key: Any = None
    component: Any = None
    query_root: bool = False


def _dispatch_key(key: Any) -> Any:
    return key[0] if is_ref(key) else key


def _union_to_ast(union: Dict[Any, Any]) -> AstNode:
    entries = []
    for k, v in union.items():
        entries.append(
            AstNode(
                type=AstType.UNION_ENTRY,
                union_key=k,
                query=v,
                component=component_of(v),
                children=[expr_to_ast(x) for x in v] if isinstance(v, list) else None,
            )
        )
    return AstNode(
        type=AstType.UNION,
        query=union,
        component=component_of(union),
        children=entries,
    )


def _join_to_ast(join: Dict[Any, Any]) -> AstNode:
    k, v = next(iter(join.items()))
    node = AstNode(
        type=AstType.JOIN,
        key=k,
        dispatch_key=_dispatch_key(k),
        query=v,
        component=component_of(v),
        query_root=is_query_root(join),
    )
    if isinstance(v, dict):
        node.children = [_union_to_ast(v)]
    elif isinstance(v, list):
        node.children = [expr_to_ast(x) for x in v]
    return node


def expr_to_ast(expr: Any) -> AstNode:
    """Convert one query expression to an AST node.

    Raises:
        ValueError: If ``expr`` is not a query expression
    """
    if isinstance(expr, Symbol):
        return AstNode(type=AstType.CALL, key=expr, dispatch_key=expr)
    if isinstance(expr, str) or is_ref(expr):
        return AstNode(type=AstType.PROP, key=expr, dispatch_key=_dispatch_key(expr))
    if isinstance(expr, dict):
        if len(expr) != 1:
            raise ValueError(f"Join must have exactly one entry, got {expr!r}")
        return _join_to_ast(expr)
    if isinstance(expr, Call):
        node = expr_to_ast(expr.expr)
        node.params = dict(expr.params)
        if isinstance(expr.expr, Symbol):
            node.type = AstType.CALL
        return node
    raise ValueError(f"Invalid query expression: {expr!r}")


def query_to_ast(query: Any) -> AstNode:
    """Convert a query sequence (or a root union) to an AST."""
    if isinstance(query, dict):
        return _union_to_ast(query)
    return AstNode(
        type=AstType.ROOT,
        query=query,
        component=component_of(query),
        children=[expr_to_ast(x) for x in query],
    )


def _with_tag(x: Any, component: Any) -> Any:
    return tag(x, component) if component is not None else x


def _children_to_query(children: List[AstNode], component: Any, unparse: bool) -> Any:
    return _with_tag([ast_to_expr(c, unparse) for c in children], component)


def _union_to_expr(node: AstNode, unparse: bool) -> Dict[Any, Any]:
    ret = {}
    for entry in node.children or []:
        if entry.children is None:
            ret[entry.union_key] = entry.query
        else:
            ret[entry.union_key] = _children_to_query(entry.children, entry.component, unparse)
    return _with_tag(ret, node.component)


def ast_to_expr(node: AstNode, unparse: bool = True) -> Any:
    """Convert an AST node back into a query expression.

    Args:
        node: AST node
        unparse: Rebuild join subqueries from ``children`` (True) or reuse
            the raw ``query`` stored on the node (False)

    Returns:
        The query expression
    """
    if node.type == AstType.ROOT:
        return _children_to_query(node.children or [], node.component, unparse)

    if node.type == AstType.UNION:
        return _union_to_expr(node, unparse)

    if node.type == AstType.UNION_ENTRY:
        return _children_to_query(node.children or [], node.component, unparse)

    if node.type == AstType.CALL:
        return Call(node.key, dict(node.params or {}))

    if node.type == AstType.JOIN:
        if node.query == RECURSION or not unparse or node.children is None:
            sub = node.query
        elif node.children and node.children[0].type == AstType.UNION:
            sub = _union_to_expr(node.children[0], unparse)
        else:
            sub = _children_to_query(node.children, node.component, unparse)
        expr: Any = {node.key: sub}
        if node.query_root:
            expr = mark_query_root(expr)
        if node.params:
            return Call(expr, dict(node.params))
        return expr

    if node.params:
        return Call(node.key, dict(node.params))
    return node.key


def ast_to_query(node: AstNode) -> Any:
    """Convert a root AST back into a query."""
    return ast_to_expr(node, unparse=True)
