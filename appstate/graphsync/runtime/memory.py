"""
In-memory component host for testing.

This module provides a headless HostRuntime for:
- Unit and integration tests
- Driving a reconciler without a UI toolkit

Components are plain classes with a no-argument constructor. The host
instantiates them and keeps their props, tree position and mount state in its
own tables, so component classes only declare capabilities (query, ident,
params, tx_intercept).

Invariants:
    - Mounting indexes a component with its reconciler, unmounting drops it
      from the index and from the host
    - Unmounting a component unmounts its descendants first
    - One root per target

How to change safely:
    - This is test-only code, keep it compatible with HostRuntime
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from .base import RenderContext

logger = logging.getLogger(__name__)


@dataclass
class MountedComponent:
    """Host-side record of one component instance."""

    props: Any
    context: RenderContext
    path: Optional[List[Any]] = None
    mounted: bool = True
    render_count: int = 1
    children: List[Any] = field(default_factory=list)


class InMemoryHost:
    """HostRuntime keeping every component in memory.

    Attributes:
        roots: Root component per target

    Example:
        >>> host = InMemoryHost()
        >>> reconciler = Reconciler(state, parser, host)
        >>> root = reconciler.add_root(Root)
        >>> person = host.mount(Person, {"id": 1}, parent=root, path=["people", 0])
        >>> host.depth(person)
        1
    """

    def __init__(self) -> None:
        self.roots: Dict[Any, Any] = {}
        self._components: Dict[Any, MountedComponent] = {}
        self._component_types: Set[Any] = set()

    def _record(self, c: Any) -> MountedComponent:
        try:
            return self._components[c]
        except KeyError:
            raise ValueError(f"{c!r} is not a component of this host") from None

    # Lifecycle

    def mount(
        self,
        cls: Any,
        props: Any,
        parent: Any = None,
        path: Optional[Sequence[Any]] = None,
        context: Optional[RenderContext] = None,
    ) -> Any:
        """Instantiate and mount a component.

        Args:
            cls: Component class
            props: Initial props
            parent: Parent component; its render context is inherited
            path: Data path of ``props`` inside the root props
            context: Render context, required for a component without parent

        Returns:
            The mounted component instance
        """
        if parent is not None:
            context = self._record(parent).context.child(parent)
        elif context is None:
            raise ValueError("A component without parent needs a render context")

        c = cls()
        self._component_types.add(cls)
        self._components[c] = MountedComponent(
            props=props,
            context=context,
            path=list(path) if path is not None else None,
        )
        if parent is not None:
            self._record(parent).children.append(c)

        indexer = getattr(context.reconciler, "indexer", None)
        if indexer is not None:
            indexer.index_component(c)
        logger.debug(f"Mounted {cls.__name__} at depth {context.depth}")
        return c

    def unmount(self, c: Any) -> None:
        """Unmount ``c`` and its descendants and forget their records."""
        record = self._components.get(c)
        if record is None:
            return
        for child in list(record.children):
            self.unmount(child)
        record.mounted = False
        indexer = getattr(record.context.reconciler, "indexer", None)
        if indexer is not None:
            indexer.drop_component(c)
        parent = record.context.parent
        if parent is not None and parent in self._components:
            siblings = self._components[parent].children
            if c in siblings:
                siblings.remove(c)
        del self._components[c]

    def set_props(self, c: Any, props: Any) -> None:
        """Replace props of ``c`` as a parent re-render would."""
        self._record(c).props = props

    def children(self, c: Any) -> List[Any]:
        return list(self._record(c).children)

    def render_count(self, c: Any) -> int:
        return self._record(c).render_count

    # HostRuntime

    def is_component(self, x: Any) -> bool:
        # Unmounted instances still count, their class was mounted here
        return (
            isinstance(x, Hashable)
            and not isinstance(x, (str, tuple))
            and (x in self._components or type(x) in self._component_types)
        )

    def component_type(self, c: Any) -> Any:
        return type(c)

    def props(self, c: Any) -> Any:
        return self._record(c).props

    def parent(self, c: Any) -> Any:
        return self._record(c).context.parent

    def depth(self, c: Any) -> int:
        return self._record(c).context.depth

    def data_path(self, c: Any) -> Optional[List[Any]]:
        return self._record(c).path

    def is_mounted(self, c: Any) -> bool:
        record = self._components.get(c)
        return record is not None and record.mounted

    def rendered_value(self, c: Any) -> Any:
        return self._record(c).props

    def should_update(self, c: Any, next_props: Any) -> bool:
        if hasattr(c, "should_update"):
            return bool(c.should_update(self.props(c), next_props))
        return next_props != self.props(c)

    def force_rerender(self, c: Any, next_props: Any) -> None:
        record = self._record(c)
        if next_props is not None:
            record.props = next_props
        record.render_count += 1

    def render_root(self, root_class: Any, data: Any, target: Any, context: RenderContext) -> Any:
        root = self.roots.get(target)
        if root is not None and self.is_mounted(root):
            self.force_rerender(root, data)
            return root
        root = self.mount(root_class, data, context=context)
        self.roots[target] = root
        return root

    def unmount_root(self, target: Any) -> None:
        root = self.roots.pop(target, None)
        if root is not None:
            self.unmount(root)
