"""
Indexer for GraphSync.

The Indexer maps queries, component classes, identities and live component
instances to one another. It maintains four tables:

- prop_to_classes: property key -> classes whose query reads it directly
- class_path_to_query: class-path -> query templates recorded while indexing
  the root query (one per data path the class-path is reachable through)
- ref_to_components: ref -> live components bound to that ref
- class_to_components: class -> live components of that class

The first two are rebuilt wholesale by ``index_root`` whenever the root query
changes; the last two are maintained incrementally by ``index_component`` and
``drop_component`` as the host mounts and unmounts components.

Invariants:
    - An indexed component with an identity sits in exactly one ref bucket
      and exactly one class bucket; dropping it removes it from both
    - Recursive class-paths are not expanded more than once
    - Templates stored under one class-path are unique

How to change safely:
    - Keep class_path() and the class-path built in index_root() in
      agreement, full_query() looks templates up by the former
    - Test recursive and union queries when touching index_root()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Hashable
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..component import component_class, get_ident, get_query, iquery
from ..errors import InvalidKey, NoQueriesForPath
from ..query.ast import expr_to_ast
from ..query.expr import (
    RECURSION,
    UNION_FOCUS,
    component_of,
    is_join,
    is_ref,
    join_entry,
)
from ..query.focus import QueryCursor, focus_query, path_from_focused, query_template, splice

logger = logging.getLogger(__name__)

ClassPath = Tuple[Any, ...]


class Indexer:
    """Maps queries, classes, refs and live components to one another.

    Attributes:
        host: Host runtime answering type/props/parent/path questions
            about component instances

    Example:
        >>> indexer = Indexer(host)
        >>> indexer.index_root(Root)
        >>> indexer.index_component(person)
        >>> indexer.key_to_components(("person", 1))
        {<Person ...>}
    """

    def __init__(
        self,
        host: Any,
        get_query: Callable[[Any], Any] = get_query,
    ) -> None:
        """Initialize an empty indexer.

        Args:
            host: Host runtime
            get_query: Function returning the bound query of a component
                class or instance
        """
        self.host = host
        self._get_query = get_query
        self._prop_to_classes: Dict[Any, Set[Any]] = {}
        self._class_path_to_query: Dict[ClassPath, List[QueryCursor]] = {}
        self._ref_to_components: Dict[Any, Set[Any]] = {}
        self._class_to_components: Dict[Any, Set[Any]] = {}
        self._component_refs: Dict[Any, Any] = {}

    @property
    def indexes(self) -> Dict[str, Any]:
        """Read-only view of the index tables."""
        return {
            "prop_to_classes": self._prop_to_classes,
            "class_path_to_query": self._class_path_to_query,
            "ref_to_components": self._ref_to_components,
            "class_to_components": self._class_to_components,
        }

    def _type_of(self, x: Any) -> Any:
        if self.host.is_component(x):
            return self.host.component_type(x)
        return component_class(x)

    def index_root(self, x: Any) -> None:
        """Index the query of a root component class or instance.

        Rebuilds prop_to_classes and class_path_to_query. Component tables
        are left untouched.
        """
        prop_to_classes: Dict[Any, Set[Any]] = defaultdict(set)
        class_path_to_query: Dict[ClassPath, List[QueryCursor]] = defaultdict(list)
        rootq = self._get_query(x)

        def build(cls: Any, query: Any, path: List[Any], classpath: ClassPath) -> None:
            recursive = cls is not None and cls in classpath
            if cls is not None and not recursive:
                classpath = classpath + (cls,)

            if cls is not None:
                template = query_template(focus_query(rootq, path), path)
                if template not in class_path_to_query[classpath]:
                    class_path_to_query[classpath].append(template)

            if recursive:
                return

            if isinstance(query, list):
                for expr in query:
                    if not is_join(expr):
                        if cls is not None:
                            prop_to_classes[expr_to_ast(expr).key].add(cls)
                        continue
                    prop, sub = join_entry(expr)
                    if sub == RECURSION:
                        sub = query
                    if cls is not None:
                        prop_to_classes[prop].add(cls)
                    build(component_of(sub), sub, path + [prop], classpath)

            elif isinstance(query, dict):
                for prop, sub in query.items():
                    if prop == UNION_FOCUS:
                        continue
                    build(component_of(sub), sub, path + [prop], classpath)

        build(self._type_of(x), rootq, [], ())

        self._prop_to_classes = dict(prop_to_classes)
        self._class_path_to_query = dict(class_path_to_query)
        logger.debug(
            "Indexed root query",
            extra={
                "props": len(self._prop_to_classes),
                "class_paths": len(self._class_path_to_query),
            },
        )

    def index_component(self, c: Any) -> None:
        """Add a mounted component to the class and ref tables."""
        cls = self.host.component_type(c)
        self._class_to_components.setdefault(cls, set()).add(c)

        ref = get_ident(c, self.host.props(c))
        previous = self._component_refs.get(c)
        if previous is not None and previous != ref:
            self._discard_ref(previous, c)
        if ref is not None:
            self._ref_to_components.setdefault(ref, set()).add(c)
            self._component_refs[c] = ref

    def drop_component(self, c: Any) -> None:
        """Remove a component from the class and ref tables."""
        cls = self.host.component_type(c)
        bucket = self._class_to_components.get(cls)
        if bucket is not None:
            bucket.discard(c)
            if not bucket:
                del self._class_to_components[cls]

        ref = self._component_refs.pop(c, None)
        if ref is not None:
            self._discard_ref(ref, c)

    def _discard_ref(self, ref: Any, c: Any) -> None:
        bucket = self._ref_to_components.get(ref)
        if bucket is not None:
            bucket.discard(c)
            if not bucket:
                del self._ref_to_components[ref]

    def key_to_components(self, key: Any) -> Set[Any]:
        """Resolve a work-queue key to the components it affects.

        Args:
            key: A component, a ref, or a property key

        Returns:
            Set of components

        Raises:
            InvalidKey: If the key is not a component, not a ref with live
                components, and not a property read by any indexed class
        """
        if self.host.is_component(key):
            return {key}

        if is_ref(key):
            cs = self._ref_to_components.get(key)
            if cs:
                return set(cs)

        if isinstance(key, Hashable):
            classes = self._prop_to_classes.get(key)
            if classes is not None:
                ret: Set[Any] = set()
                for cls in classes:
                    ret |= self._class_to_components.get(cls, set())
                return ret

        raise InvalidKey(key)

    def ref_to_components(self, ref: Any) -> Set[Any]:
        return self.key_to_components(ref)

    def ref_to_any(self, ref: Any) -> Optional[Any]:
        """Any live component bound to ``ref``, or None."""
        return next(iter(self._ref_to_components.get(ref, ())), None)

    def class_to_any(self, cls: Any) -> Optional[Any]:
        """Any live component of class ``cls``, or None."""
        return next(iter(self._class_to_components.get(cls, ())), None)

    def class_path(self, c: Any) -> ClassPath:
        """Classes from the root down to ``c``, cut at the first repeat.

        Ancestors without a query are skipped.
        """
        ret = [self.host.component_type(c)]
        p = self.host.parent(c)
        while p is not None:
            if iquery(p):
                ret.insert(0, self.host.component_type(p))
            p = self.host.parent(p)

        seen: Set[Any] = set()
        path = []
        for cls in ret:
            if cls in seen:
                break
            seen.add(cls)
            path.append(cls)
        return tuple(path)

    def class_path_to_query(self, x: Any) -> List[Any]:
        """Absolute (focused) queries recorded for a class-path or component."""
        cp = self.class_path(x) if self.host.is_component(x) else tuple(x)
        ret: List[Any] = []
        for template in self._class_path_to_query.get(cp, ()):
            q = template.root()
            if q not in ret:
                ret.append(q)
        return ret

    def full_query(self, c: Any, query: Any = None) -> Any:
        """Return the absolute query of component ``c``.

        Args:
            c: Mounted component
            query: Relative query to splice in, defaults to the component's
                current bound query

        Returns:
            The absolute query, or None if ``c`` declares no query

        Raises:
            NoQueriesForPath: If no template was recorded for the class-path
                of ``c``, or none matches its data path
        """
        if not iquery(c):
            return None
        cp = self.class_path(c)
        templates = self._class_path_to_query.get(cp)
        if not templates:
            raise NoQueriesForPath(cp)
        if query is None:
            query = self._get_query(c)

        data_path = self.host.data_path(c)
        if data_path is None:
            return splice(templates[0], query)

        # the same class-path may be reached through several data paths
        data_path = [k for k in data_path if not isinstance(k, int)]
        for template in templates:
            if path_from_focused(template.root(), data_path) == data_path:
                return splice(template, query)
        raise NoQueriesForPath(cp, data_path)
