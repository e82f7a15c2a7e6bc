"""
Merging novelty into the graph store.

A delta handed to ``Reconciler.merge`` is a dict mixing three kinds of
entries:

- ref-keyed entries ``{("person", 1): {...}}``: patches for one entity
- mutation results keyed by ``Symbol``: may carry a ``tempids`` mapping
- plain keys: novelty shaped like the root query

``default_merge`` applies the first and last kinds and collects tempid
mappings; ``migrate`` then moves entities from temporary refs to the refs
the remote assigned and rewrites every ref to them anywhere in the store.

Invariants:
    - The store passed in is never modified, every helper returns a new one
    - ``migrate`` is a no-op unless mappings are non-empty
    - Tables produced by normalization merge entity by entity, other keys
      replace the previous value

How to change safely:
    - Keep MergeResult.keys free of mutation symbols, the indexer cannot
      resolve them
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..component import get_query, iquery
from ..errors import InvalidRef
from ..normalize import TABLES, tree_to_db
from ..query.expr import Symbol, is_ref

logger = logging.getLogger(__name__)

# Top-level delta key carrying tempid mappings
TEMPIDS = "tempids"

Store = Dict[Any, Any]


@dataclass
class MergeResult:
    """Outcome of merging one delta.

    Attributes:
        keys: Keys to queue for re-render
        next: The next store value
        tempids: Temporary ref -> permanent ref mappings found in the delta
    """

    keys: List[Any] = field(default_factory=list)
    next: Store = field(default_factory=dict)
    tempids: Dict[Any, Any] = field(default_factory=dict)


def merge_ref(tree: Store, ref: Any, props: Any) -> Store:
    """Merge ``props`` into the entity at ``ref``."""
    if not is_ref(ref):
        raise InvalidRef(ref)
    table = dict(tree.get(ref[0]) or {})
    current = table.get(ref[1])
    if isinstance(current, dict) and isinstance(props, dict):
        table[ref[1]] = {**current, **props}
    else:
        table[ref[1]] = props
    return {**tree, ref[0]: table}


def merge_tree(a: Any, b: Any) -> Any:
    """Merge novelty ``b`` into store ``a``.

    Keys listed under ``TABLES`` in ``b`` are merged entity by entity, every
    other key replaces the previous value.
    """
    if not isinstance(a, dict) or not isinstance(b, dict):
        return b
    tables = b.get(TABLES) or ()
    ret = dict(a)
    for k, v in b.items():
        if k == TABLES:
            continue
        current = ret.get(k)
        if k in tables and isinstance(current, dict) and isinstance(v, dict):
            table = dict(current)
            for key, entity in v.items():
                prev = table.get(key)
                if isinstance(prev, dict) and isinstance(entity, dict):
                    table[key] = {**prev, **entity}
                else:
                    table[key] = entity
            ret[k] = table
        else:
            ret[k] = v
    return ret


def sift_refs(res: Dict[Any, Any]) -> Tuple[Dict[Any, Any], Dict[Any, Any]]:
    """Split ``res`` into (ref-keyed entries, everything else)."""
    refs: Dict[Any, Any] = {}
    rest: Dict[Any, Any] = {}
    for k, v in res.items():
        if is_ref(k):
            refs[k] = v
        else:
            rest[k] = v
    return refs, rest


def merge_refs(
    tree: Store,
    refs: Dict[Any, Any],
    normalize: bool = False,
    ref_to_any: Optional[Callable[[Any], Any]] = None,
) -> Store:
    """Apply ref-keyed patches.

    With ``normalize`` set, each patch is normalized with the query of a
    live component bound to its ref before being merged.
    """
    for ref, props in refs.items():
        c = ref_to_any(ref) if (normalize and ref_to_any is not None) else None
        if c is not None and iquery(c) and isinstance(props, dict):
            props = tree_to_db(get_query(c), props)
            tables = {k: props.pop(k) for k in list(props.pop(TABLES, ()))}
            tree = merge_tree(merge_ref(tree, ref, props), {**tables, TABLES: set(tables)})
        else:
            tree = merge_ref(tree, ref, props)
    return tree


def merge_novelty(
    state: Store,
    res: Dict[Any, Any],
    root_query: Any = None,
    normalize: bool = False,
    ref_to_any: Optional[Callable[[Any], Any]] = None,
) -> Store:
    """Merge ref patches and plain novelty from ``res`` into ``state``."""
    refs, rest = sift_refs(res)
    rest = {k: v for k, v in rest.items() if not isinstance(k, Symbol)}
    if normalize and root_query is not None:
        rest = tree_to_db(root_query, rest)
    return merge_tree(merge_refs(state, refs, normalize, ref_to_any), rest)


def collect_tempids(res: Dict[Any, Any]) -> Dict[Any, Any]:
    """Tempid mappings carried by mutation results and a top-level entry."""
    ret: Dict[Any, Any] = {}
    for k, v in res.items():
        if isinstance(k, Symbol) and isinstance(v, dict):
            ret.update(v.get(TEMPIDS) or {})
    if isinstance(res.get(TEMPIDS), dict):
        ret.update(res[TEMPIDS])
    return ret


def default_merge(
    state: Store,
    delta: Dict[Any, Any],
    root_query: Any = None,
    normalize: bool = False,
    ref_to_any: Optional[Callable[[Any], Any]] = None,
) -> MergeResult:
    """Merge ``delta`` into ``state``.

    Args:
        state: Current store
        delta: Novelty, ref patches, mutation results and tempids
        root_query: Root query used to normalize novelty
        normalize: Whether novelty is normalized before merging
        ref_to_any: Lookup of a live component bound to a ref

    Returns:
        MergeResult with the keys to re-render, the next store, and the
        tempid mappings to migrate
    """
    tempids = collect_tempids(delta)
    res = {k: v for k, v in delta.items() if k != TEMPIDS}
    return MergeResult(
        keys=[k for k in res if not isinstance(k, Symbol)],
        next=merge_novelty(state, res, root_query, normalize, ref_to_any),
        tempids=tempids,
    )


def _rewrite_refs(x: Any, tempids: Dict[Any, Any]) -> Any:
    if is_ref(x):
        if isinstance(x[1], Hashable):
            return tempids.get(x, x)
        return x
    if isinstance(x, dict):
        return {_rewrite_refs(k, tempids) if is_ref(k) else k: _rewrite_refs(v, tempids) for k, v in x.items()}
    if isinstance(x, list):
        return [_rewrite_refs(v, tempids) for v in x]
    return x


def migrate(store: Store, tempids: Dict[Any, Any], id_key: Any = None) -> Store:
    """Move entities from temporary refs to permanent ones.

    Each entity at an old ref is removed and merged into the entity at its
    new ref. When ``id_key`` is set the new key is also written into that
    field. Every ref to an old ref anywhere in the store is then rewritten.

    Raises:
        InvalidRef: If a mapping is not ref -> ref
    """
    if not tempids:
        return store

    ret = dict(store)
    for old, new in tempids.items():
        if not is_ref(old):
            raise InvalidRef(old)
        if not is_ref(new):
            raise InvalidRef(new)
        old_table = dict(ret.get(old[0]) or {})
        old_entity = old_table.pop(old[1], None)
        if old[0] in ret:
            ret[old[0]] = old_table
        new_table = dict(ret.get(new[0]) or {})
        new_entity = new_table.get(new[1])
        if old_entity is None and new_entity is None:
            continue
        merged = {**(old_entity or {}), **(new_entity or {})}
        if id_key is not None:
            merged[id_key] = new[1]
        new_table[new[1]] = merged
        ret[new[0]] = new_table

    logger.debug("Migrated tempids", extra={"count": len(tempids)})
    return _rewrite_refs(ret, tempids)
