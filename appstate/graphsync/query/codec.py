"""
JSON text form for queries, refs and tempids.

Plain JSON cannot tell a join from a union, a ref from a list, or a symbol
from a property, so those forms are written as single-key tagged objects:

    {"$join":   [key, subquery]}
    {"$union":  [[table, subquery], ...]}
    {"$call":   [expr, params]}
    {"$sym":    "name"}
    {"$var":    "name"}
    {"$ref":    [table, key]}
    {"$tempid": "uuid"}
    {"$map":    [[key, value], ...]}      (any other dict)

Example:
    >>> dumps(["name", {"friends": ["name"]}])
    '["name", {"$join": ["friends", ["name"]]}]'

Invariants:
    - ``loads(dumps(x)) == x`` for queries, refs, tempids and JSON scalars
    - Origin tags are not serialized (classes do not cross process borders)
"""

from __future__ import annotations

import json
from typing import Any

from ..tempid import TempId
from .expr import Call, Symbol, Var, is_ref


class CodecError(ValueError):
    """Failed to encode or decode a value."""

    pass


def encode(x: Any) -> Any:
    """Convert a value into a JSON-compatible structure."""
    if isinstance(x, Symbol):
        return {"$sym": str(x)}
    if isinstance(x, (str, int, float, bool)) or x is None:
        return x
    if isinstance(x, TempId):
        return {"$tempid": x.id}
    if isinstance(x, Var):
        return {"$var": x.name}
    if isinstance(x, Call):
        return {"$call": [encode(x.expr), encode(x.params)]}
    if is_ref(x):
        return {"$ref": [encode(x[0]), encode(x[1])]}
    if isinstance(x, (list, tuple)):
        return [encode(v) for v in x]
    if isinstance(x, dict):
        return {"$map": [[encode(k), encode(v)] for k, v in x.items()]}
    raise CodecError(f"Cannot encode value of type {type(x).__name__}: {x!r}")


def encode_query(query: Any) -> Any:
    """Encode a query, writing one-entry dicts as joins and others as unions."""
    if isinstance(query, dict):
        return {"$union": [[encode(k), encode_query(v)] for k, v in query.items()]}
    if isinstance(query, list):
        return [encode_expr(x) for x in query]
    return encode(query)


def encode_expr(expr: Any) -> Any:
    if isinstance(expr, dict):
        ((k, v),) = expr.items()
        return {"$join": [encode(k), encode_query(v)]}
    if isinstance(expr, Call):
        return {"$call": [encode_expr(expr.expr), encode(expr.params)]}
    return encode(expr)


def decode(x: Any) -> Any:
    """Inverse of ``encode``/``encode_query``."""
    if isinstance(x, list):
        return [decode(v) for v in x]
    if not isinstance(x, dict):
        return x
    if len(x) != 1:
        raise CodecError(f"Tagged object must have exactly one key: {x!r}")
    ((t, v),) = x.items()
    if t == "$sym":
        return Symbol(v)
    if t == "$var":
        return Var(v)
    if t == "$tempid":
        return TempId(v)
    if t == "$ref":
        return (decode(v[0]), decode(v[1]))
    if t == "$call":
        return Call(decode(v[0]), decode(v[1]))
    if t == "$join":
        return {decode(v[0]): decode(v[1])}
    if t in ("$union", "$map"):
        return {decode(k): decode(val) for k, val in v}
    raise CodecError(f"Unknown tag {t!r}")


def dumps(x: Any, **kwargs: Any) -> str:
    """Serialize a query (or any supported value) to JSON text."""
    return json.dumps(encode_query(x), **kwargs)


def loads(text: str) -> Any:
    """Parse JSON text produced by ``dumps``.

    Raises:
        CodecError: If the text is not valid JSON or uses an unknown tag
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CodecError(f"Failed to parse query text: {e}")
    return decode(data)
