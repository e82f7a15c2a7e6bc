"""
Application state cell.

AppState holds the graph store. Every change goes through ``reset`` or
``swap`` and notifies the registered watchers with the old and new values,
which is how roots learn that they must re-render.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

Watcher = Callable[[Any, "AppState", Any, Any], None]


class AppState:
    """A mutable reference to an immutable-by-convention value.

    Example:
        >>> state = AppState({"count": 0})
        >>> state.swap(lambda s: {**s, "count": s["count"] + 1})
        {'count': 1}
    """

    def __init__(self, value: Any = None) -> None:
        self._value = value
        self._watchers: Dict[Any, Watcher] = {}

    @property
    def value(self) -> Any:
        return self._value

    def reset(self, value: Any) -> Any:
        """Replace the value and notify watchers."""
        old = self._value
        self._value = value
        for key, watcher in list(self._watchers.items()):
            watcher(key, self, old, value)
        return value

    def swap(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Replace the value with ``fn(value, *args)``."""
        return self.reset(fn(self._value, *args))

    def add_watch(self, key: Any, fn: Watcher) -> None:
        self._watchers[key] = fn

    def remove_watch(self, key: Any) -> None:
        self._watchers.pop(key, None)

    def __repr__(self) -> str:
        return f"AppState({self._value!r})"
