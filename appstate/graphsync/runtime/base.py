"""
Collaborator protocols for the reconciler.

The reconciler never manages component lifecycles itself. It talks to:

- a HostRuntime that owns component instances (props, tree position,
  mount state, rendering)
- a Scheduler that runs deferred flushes
- a Transport that ships remote queries and reports results

This module defines those protocols along with the RenderContext handed to
the host when a root is rendered.

Invariants:
    - The reconciler only reads host state through HostRuntime
    - A Transport may invoke its callback any number of times per send
    - Scheduler callbacks run on the same thread as the reconciler

How to change safely:
    - Protocol changes require updating every host implementation
    - Add new host methods as optional and feature-detect them
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

# Remote sends keyed by remote target
Sends = Dict[Any, List[Any]]


@dataclass(frozen=True)
class RenderContext:
    """Values threaded through a render pass.

    Attributes:
        reconciler: Reconciler driving the render
        shared: Shared values for the whole component tree
        parent: Parent component of the component being rendered
        depth: Render depth, 0 for the root
    """

    reconciler: Any
    shared: Any = None
    parent: Any = None
    depth: int = 0

    def child(self, parent: Any) -> RenderContext:
        """Context for the children of ``parent``."""
        return RenderContext(
            reconciler=self.reconciler,
            shared=self.shared,
            parent=parent,
            depth=self.depth + 1,
        )


@runtime_checkable
class HostRuntime(Protocol):
    """Protocol for component hosts.

    Example:
        >>> host = InMemoryHost()
        >>> reconciler = Reconciler(state, parser, host)
        >>> root = reconciler.add_root(Root)
        >>> host.is_mounted(root)
        True
    """

    @abstractmethod
    def is_component(self, x: Any) -> bool:
        """Whether ``x`` is a component instance of this host, mounted or not."""
        ...

    @abstractmethod
    def component_type(self, c: Any) -> Any:
        """Class of component ``c``."""
        ...

    @abstractmethod
    def props(self, c: Any) -> Any:
        ...

    @abstractmethod
    def parent(self, c: Any) -> Any:
        """Parent component of ``c``, or None for a root."""
        ...

    @abstractmethod
    def depth(self, c: Any) -> int:
        ...

    @abstractmethod
    def data_path(self, c: Any) -> Optional[Sequence[Any]]:
        """Path of ``c``'s props inside the root props, None for a root."""
        ...

    @abstractmethod
    def is_mounted(self, c: Any) -> bool:
        ...

    @abstractmethod
    def rendered_value(self, c: Any) -> Any:
        """Props ``c`` was last rendered with."""
        ...

    @abstractmethod
    def should_update(self, c: Any, next_props: Any) -> bool:
        ...

    @abstractmethod
    def force_rerender(self, c: Any, next_props: Any) -> None:
        """Re-render ``c``, with ``next_props`` unless it is None."""
        ...

    @abstractmethod
    def render_root(self, root_class: Any, data: Any, target: Any, context: RenderContext) -> Any:
        """Render (or re-render) the root at ``target``.

        Returns:
            The root component instance
        """
        ...

    @abstractmethod
    def unmount_root(self, target: Any) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Runs a callback later."""

    @abstractmethod
    def defer(self, callback: Callable[[], Any], delay_ms: int = 0) -> None:
        ...


@runtime_checkable
class Transport(Protocol):
    """Ships remote queries.

    ``on_result`` merges a response (or a part of one) and may be called
    once per target, any number of times.
    """

    @abstractmethod
    def __call__(self, sends: Sends, on_result: Callable[[Dict[Any, Any]], Any]) -> None:
        ...
