"""
Root registry.

Maps render targets to the reconciler managing them. Adding a root to a
target already owned by a reconciler removes that root first, so a target
is never rendered by two reconcilers.

Invariants:
    - A target maps to at most one reconciler
    - Removing a target unmounts its root

Example:
    >>> roots = RootRegistry()
    >>> roots.add_root(reconciler, Root, "app")
    >>> roots.get("app") is reconciler
    True
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class RootRegistry:
    """Explicit target -> reconciler map."""

    def __init__(self) -> None:
        self._roots: Dict[Any, Any] = {}

    def add_root(self, reconciler: Any, root_class: Any, target: Any) -> Any:
        """Render ``root_class`` at ``target`` with ``reconciler``.

        Returns:
            The root component instance
        """
        old = self._roots.get(target)
        if old is not None:
            logger.debug(f"Replacing root at target {target!r}")
            old.remove_root()
        self._roots[target] = reconciler
        return reconciler.add_root(root_class, target)

    def remove_root(self, target: Any) -> None:
        reconciler = self._roots.pop(target, None)
        if reconciler is not None:
            reconciler.remove_root()

    def get(self, target: Any) -> Optional[Any]:
        return self._roots.get(target)

    def __contains__(self, target: object) -> bool:
        return target in self._roots

    def __iter__(self) -> Iterator[Any]:
        return iter(self._roots)

    def __len__(self) -> int:
        return len(self._roots)
