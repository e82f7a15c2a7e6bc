"""
Error types for GraphSync.

This module defines all exception types raised by the engine:
- GraphSyncError: Base exception
- InvalidKey: Indexer lookup with a key it cannot resolve
- QueryReuseViolation: A query expression bound to a second owning class
- NoQueriesForPath: No recorded template for a component's class-path
- UnionWithoutIdentity: Union normalization without an identity
- InvalidRef: Malformed identity reference
- ReconcilerError: Reconciler used without a required collaborator

Invariants:
    - All errors inherit from GraphSyncError
    - Errors include context for debugging
    - Error messages name the offending key, class or path

How to change safely:
    - Add new error types as subclasses with their own code
    - Never reuse an error code for a different condition
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class GraphSyncError(Exception):
    """Base exception for all GraphSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GRAPHSYNC_ERROR"
        self.details = details or {}


class InvalidKey(GraphSyncError):
    """Indexer cannot resolve a key to components.

    Raised when:
    - Key is not a component instance
    - Key is a ref with no indexed components
    - Key is a property name no indexed class reads
    """

    def __init__(self, key: Any) -> None:
        super().__init__(
            f"Invalid key {key!r}, key must be a component, an indexed ref "
            "or a property read by an indexed class",
            code="INVALID_KEY",
            details={"key": key},
        )
        self.key = key


class QueryReuseViolation(GraphSyncError):
    """A query expression was bound to a second owning class.

    Raised when a class returns, from its own ``query()``, a query already
    tagged with another owner (usually the result of another class's
    ``get_query``).
    """

    def __init__(self, owner: Any, previous_owner: Any) -> None:
        super().__init__(
            f"Query violation, {owner!r} reuses {previous_owner!r} query",
            code="QUERY_REUSE",
            details={"owner": owner, "previous_owner": previous_owner},
        )
        self.owner = owner
        self.previous_owner = previous_owner


class NoQueriesForPath(GraphSyncError):
    """No query template is recorded for a component.

    Attributes:
        class_path: Class-path of the component
        data_path: Data path of the component (None when the class-path
            itself has no templates)
    """

    def __init__(
        self,
        class_path: Sequence[Any],
        data_path: Optional[Sequence[Any]] = None,
    ) -> None:
        names = [getattr(c, "__name__", repr(c)) for c in class_path]
        msg = f"No queries exist for component path {names}"
        if data_path is not None:
            msg += f" or data path {list(data_path)}"
        super().__init__(
            msg,
            code="NO_QUERIES",
            details={
                "class_path": list(class_path),
                "data_path": list(data_path) if data_path is not None else None,
            },
        )
        self.class_path = tuple(class_path)
        self.data_path = data_path


class UnionWithoutIdentity(GraphSyncError):
    """A union query was applied to data whose class has no identity."""

    def __init__(self, component: Any, data: Any = None) -> None:
        super().__init__(
            f"Union components must implement ident, {component!r} does not "
            "resolve an identity",
            code="UNION_WITHOUT_IDENTITY",
            details={"component": component, "data": data},
        )
        self.component = component


class InvalidRef(GraphSyncError):
    """Malformed identity reference."""

    def __init__(self, ref: Any) -> None:
        super().__init__(
            f"Invalid ref {ref!r}, expected a (table, key) pair",
            code="INVALID_REF",
            details={"ref": ref},
        )
        self.ref = ref


class ReconcilerError(GraphSyncError):
    """Reconciler misuse.

    Raised when:
    - Sends are flushed without a transport
    - A transaction names no reconciler-owned origin
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="RECONCILER_ERROR")
