"""
Query module for GraphSync - query expressions, AST, focusing and codec.

This module handles:
- Query expression types (properties, joins, unions, calls)
- Lossless conversion between expressions and AST nodes
- Parameter binding
- Focusing a query along a path and splicing subqueries back
- JSON text form for queries, refs and tempids

Invariants:
    - Every function here is pure; queries are never modified in place
    - Origin tags survive every structural rewrite

How to change safely:
    - Keep focus_query and query_template in agreement
    - Round-trip test any new expression form through AST and codec
"""

from .ast import AstNode, AstType, ast_to_expr, ast_to_query, expr_to_ast, query_to_ast
from .codec import CodecError, dumps, loads
from .expr import (
    RECURSION,
    UNION_FOCUS,
    WILDCARD,
    Call,
    Symbol,
    TaggedMap,
    TaggedQuery,
    Var,
    bind_query,
    component_of,
    is_join,
    is_ref,
    is_union,
    join_entry,
    join_key,
    mark_query_root,
    tag,
)
from .focus import QueryCursor, focus_query, path_from_focused, query_template, splice
from .roots import RootedQuery, process_roots, rewrite

__all__ = [
    # Expressions
    "RECURSION",
    "UNION_FOCUS",
    "WILDCARD",
    "Call",
    "Symbol",
    "Var",
    "TaggedQuery",
    "TaggedMap",
    "tag",
    "component_of",
    "bind_query",
    "is_join",
    "is_ref",
    "is_union",
    "join_entry",
    "join_key",
    "mark_query_root",
    # AST
    "AstNode",
    "AstType",
    "expr_to_ast",
    "query_to_ast",
    "ast_to_expr",
    "ast_to_query",
    # Focus
    "QueryCursor",
    "focus_query",
    "query_template",
    "splice",
    "path_from_focused",
    # Roots
    "RootedQuery",
    "process_roots",
    "rewrite",
    # Codec
    "CodecError",
    "dumps",
    "loads",
]
