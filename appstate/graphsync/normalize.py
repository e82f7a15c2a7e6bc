"""
Tree <-> graph normalization.

``normalize`` walks a tree of data guided by a query and moves every node
whose class resolves an identity into a table keyed by that identity,
leaving the ref in its place. ``db_to_tree`` walks the other way: given a
query, some normalized data and the whole store, it follows refs back into
nested data.

Example:
    >>> tree, delta = normalize(query, {"people": [{"id": 1, "name": "Ann"}]})
    >>> tree
    {'people': [('person', 1)]}
    >>> delta
    {'person': {1: {'id': 1, 'name': 'Ann'}}}
    >>> db_to_tree(query, tree, delta)
    {'people': [{'id': 1, 'name': 'Ann'}]}

Invariants:
    - ``db_to_tree(q, normalize(q, t)[0], delta) == t`` whenever every
      identity in ``t`` is computed from fields of ``t`` itself
    - None values and refs missing from the store denormalize to absent,
      never to an error
    - Inputs are never modified

How to change safely:
    - Keep union branch selection identical in both directions, it always
      goes through the ident of the class owning the union
"""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from .component import get_ident, get_query
from .errors import UnionWithoutIdentity
from .query.expr import (
    RECURSION,
    WILDCARD,
    Call,
    Symbol,
    component_of,
    is_join,
    is_ref,
    join_entry,
)

# Key listing the tables produced by tree_to_db
TABLES = "graphsync/tables"

Store = Dict[Any, Any]


def _ident_of(cls: Any, data: Any) -> Any:
    if cls is None or not isinstance(data, dict):
        return None
    return get_ident(cls, data)


def _merge_entity(refs: Store, ref: Any, entity: Any) -> None:
    table = refs.setdefault(ref[0], {})
    current = table.get(ref[1])
    if isinstance(current, dict) and isinstance(entity, dict):
        table[ref[1]] = {**current, **entity}
    else:
        table[ref[1]] = entity


def _prop_key(expr: Any) -> Any:
    return expr.expr if isinstance(expr, Call) else expr


def _normalize(query: Any, data: Any, refs: Store) -> Any:
    if query == [WILDCARD]:
        return data

    if isinstance(query, dict):
        cls = component_of(query)
        ref = _ident_of(cls, data)
        if ref is None:
            raise UnionWithoutIdentity(cls, data)
        return _normalize(query.get(ref[0]), data, refs)

    # refs and sequences are already normalized
    if not isinstance(data, dict):
        return data

    ret = {k: v for k, v in data.items() if v is not None}
    for node in query or ():
        if not is_join(node):
            continue
        k, sel = join_entry(node)
        if sel == RECURSION:
            sel = query
        cls = component_of(sel)
        v = data.get(k)

        if isinstance(v, dict):
            x = _normalize(sel, v, refs)
            ref = _ident_of(cls, v)
            if ref is not None:
                _merge_entity(refs, ref, x)
                ret[k] = ref
            else:
                ret[k] = x

        elif isinstance(v, list):
            items = []
            for el in v:
                if is_ref(el):
                    items.append(el)
                    continue
                x = _normalize(sel, el, refs)
                ref = _ident_of(cls, el)
                if ref is not None:
                    _merge_entity(refs, ref, x)
                    items.append(ref)
                else:
                    items.append(x)
            ret[k] = items

    return ret


def normalize(query: Any, tree: Any) -> Tuple[Any, Store]:
    """Normalize ``tree`` against ``query``.

    Args:
        query: Query (sequence or union) shaping ``tree``
        tree: Nested data

    Returns:
        Tuple of (normalized tree, graph delta). The delta maps each table to
        a dict of key -> normalized entity.

    Raises:
        UnionWithoutIdentity: If a union is applied to data its class cannot
            resolve an identity for
    """
    refs: Store = {}
    ret = _normalize(query, tree, refs)
    return ret, refs


def tree_to_db(x: Any, data: Any) -> Store:
    """Normalize ``data`` into store form.

    Args:
        x: A query, or a component class or instance whose query is used

    Returns:
        The normalized tree merged with the produced tables, plus a
        ``TABLES`` entry naming those tables so a later merge can merge them
        entity by entity
    """
    query = x if isinstance(x, (list, dict)) else get_query(x)
    ret, refs = normalize(query, data)
    if not isinstance(ret, dict):
        ret = {}
    return {**ret, **refs, TABLES: set(refs)}


def _lookup(store: Store, ref: Any) -> Any:
    table = store.get(ref[0])
    if not isinstance(table, dict):
        return None
    return table.get(ref[1])


def _select_branch(query: Any, data: Any, ref: Any = None) -> Any:
    """Branch of union ``query`` for an entity, or None."""
    if ref is None:
        ref = _ident_of(component_of(query), data)
    if ref is None:
        return None
    return query.get(ref[0])


def db_to_tree(
    query: Any,
    data: Any,
    store: Store,
    map_ref: Optional[Callable[[Any], Any]] = None,
) -> Any:
    """Denormalize ``data`` against ``query`` following refs into ``store``.

    Args:
        query: Query (sequence or union)
        data: Normalized data, a ref, or a sequence of refs
        store: The whole graph store
        map_ref: Function applied to every ref before it is looked up

    Returns:
        The nested tree. Refs missing from ``store`` are left out. A
        recursive join reaching an entity it is already inside keeps the
        ref instead of looping.
    """
    return _db_to_tree(query, data, store, map_ref or _identity, frozenset(), False)


def _db_to_tree(
    query: Any,
    data: Any,
    store: Store,
    map_ref: Callable[[Any], Any],
    seen: FrozenSet[Any],
    recursive: bool,
) -> Any:
    if is_ref(data):
        ref = data
        if recursive and ref in seen:
            return ref
        seen = seen | {ref}
        data = _lookup(store, map_ref(ref))
        if isinstance(query, dict) and data is not None:
            query = _select_branch(query, data, ref)

    if data is None:
        return None

    if isinstance(data, list):
        ret = []
        for el in data:
            if is_ref(el):
                if recursive and el in seen:
                    ret.append(el)
                    continue
                entity = _lookup(store, map_ref(el))
                if entity is None:
                    continue
                q = query.get(el[0]) if isinstance(query, dict) else query
                ret.append(_db_to_tree(q, entity, store, map_ref, seen | {el}, recursive))
            else:
                ret.append(_db_to_tree(query, el, store, map_ref, seen, recursive))
        return ret

    if not isinstance(data, dict):
        return data

    if isinstance(query, dict):
        branch = _select_branch(query, data)
        if branch is None:
            return dict(data)
        query = branch

    if query is None:
        return dict(data)

    ret: Dict[Any, Any] = {}
    joins = []
    for expr in query:
        if is_join(expr):
            joins.append(expr)
            continue
        k = _prop_key(expr)
        if isinstance(k, Symbol):
            continue
        if k == WILDCARD:
            ret.update((dk, dv) for dk, dv in data.items() if dv is not None)
        elif data.get(k) is not None:
            ret[k] = data[k]

    for join in joins:
        k, sel = join_entry(join)
        recur = sel == RECURSION
        if recur:
            sel = query
        v = data.get(k)
        if v is None:
            continue
        x = _db_to_tree(sel, v, store, map_ref, seen, recur)
        if x is not None:
            ret[k] = x
        else:
            ret.pop(k, None)

    return ret


def _identity(x: Any) -> Any:
    return x
