"""
Component capabilities.

Components are plain classes. What the engine can do with one is decided
structurally from the methods it defines:

- ``query()`` (classmethod): the unbound query; makes the class an IQuery
- ``params()`` (classmethod): parameter bindings for ``Var`` placeholders
- ``ident(props)`` (classmethod): the ref the component's props resolve to
- ``tx_intercept(tx)`` (instance method): rewrite transactions issued by
  descendants before they reach the reconciler

Example:
    >>> class Person:
    ...     @classmethod
    ...     def ident(cls, props):
    ...         return ("person", props["id"])
    ...     @classmethod
    ...     def query(cls):
    ...         return ["id", "name"]
    >>> get_query(Person).component is Person
    True

Invariants:
    - ``get_query`` always returns a fresh query tagged with its owner
    - A class may never return another owner's tagged query from ``query()``
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .errors import QueryReuseViolation
from .query.expr import bind_query, component_of, tag


@runtime_checkable
class IQuery(Protocol):
    """A component that declares a query."""

    def query(self) -> Any: ...


@runtime_checkable
class IQueryParams(Protocol):
    """A component that declares query parameters."""

    def params(self) -> Optional[Dict[str, Any]]: ...


@runtime_checkable
class Ident(Protocol):
    """A component whose props resolve to an identity ref."""

    def ident(self, props: Any) -> Any: ...


@runtime_checkable
class ITxIntercept(Protocol):
    """A component that rewrites transactions of its descendants."""

    def tx_intercept(self, tx: Any) -> Any: ...


def iquery(x: Any) -> bool:
    return x is not None and isinstance(x, IQuery)


def has_ident(x: Any) -> bool:
    return x is not None and isinstance(x, Ident)


def component_class(x: Any) -> Any:
    """The class of a component instance, or ``x`` itself for a class."""
    return x if isinstance(x, type) else type(x)


def get_params(x: Any, local: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Query parameters of ``x``, honouring ``local`` overrides."""
    if local and "params" in local:
        return local["params"]
    if isinstance(x, IQueryParams):
        return x.params()
    return None


def get_unbound_query(x: Any, local: Optional[Dict[str, Any]] = None) -> Any:
    """Unbound query of ``x``, honouring ``local`` overrides."""
    if local and local.get("query") is not None:
        return local["query"]
    return x.query()


def get_query(x: Any, local: Optional[Dict[str, Any]] = None) -> Any:
    """Return the bound query of a component class or instance.

    Args:
        x: Component class or instance
        local: Per-instance overrides with optional ``query`` and ``params``
            keys, as stored by ``Reconciler.set_query``

    Returns:
        The query with parameters bound and tagged with the component
        class, or None if ``x`` declares no query

    Raises:
        QueryReuseViolation: If the unbound query is already owned
    """
    if not iquery(x):
        return None
    cls = component_class(x)
    q = get_unbound_query(x, local)
    owner = component_of(q)
    if owner is not None:
        raise QueryReuseViolation(cls, owner)
    return tag(bind_query(q, get_params(x, local)), cls)


def get_ident(x: Any, props: Any) -> Any:
    """Ref for ``props`` under component ``x``, or None without identity."""
    if not has_ident(x):
        return None
    return x.ident(props)
