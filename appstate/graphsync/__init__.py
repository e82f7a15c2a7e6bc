"""
GraphSync - a query-driven data layer for component trees.

Components declare the data they need as queries. GraphSync keeps the
application state as a flat graph of entities addressed by refs, works out
which components a change affects, and re-reads only those.

Architecture:
    ┌─────────────┐  query()   ┌─────────────┐  templates  ┌─────────────┐
    │ Components  │───────────▶│   Indexer   │◀────────────│ Focus/Splice│
    │  (host)     │  mount     │             │             │   engine    │
    └──────┬──────┘            └──────┬──────┘             └─────────────┘
           │ transact                 │ key -> components
           ▼                          ▼
    ┌─────────────┐  parse     ┌─────────────┐   merge     ┌─────────────┐
    │   Parser    │◀───────────│ Reconciler  │◀────────────│  Transport  │
    │ read/mutate │            │ queue/flush │────────────▶│  (remotes)  │
    └──────┬──────┘            └──────┬──────┘   send      └─────────────┘
           │                          │
           ▼                          ▼
    ┌─────────────────────────────────────────┐
    │   AppState: graph store (normalized)    │
    └─────────────────────────────────────────┘

Invariants:
    - The graph store is only replaced through AppState, never edited
    - Every live component with an identity is indexed under its ref
    - Re-renders and sends are coalesced into deferred flushes

How to change safely:
    - New query forms need AST, codec, focus and normalizer support together
    - Keep collaborator protocols in runtime.base stable, hosts implement them
"""

from ._version import __version__
from .component import IQuery, IQueryParams, Ident, ITxIntercept, get_ident, get_query
from .config import GraphSyncConfig, ObservabilityConfig, ReconcilerConfig
from .errors import (
    GraphSyncError,
    InvalidKey,
    InvalidRef,
    NoQueriesForPath,
    QueryReuseViolation,
    ReconcilerError,
    UnionWithoutIdentity,
)
from .index import Indexer
from .normalize import TABLES, db_to_tree, normalize, tree_to_db
from .parser import Dispatcher, Env, Parser
from .reconcile import AppState, History, Reconciler, RootRegistry
from .tempid import TempId, is_tempid, tempid

__all__ = [
    "__version__",
    # Components
    "IQuery",
    "IQueryParams",
    "Ident",
    "ITxIntercept",
    "get_query",
    "get_ident",
    # Config
    "GraphSyncConfig",
    "ReconcilerConfig",
    "ObservabilityConfig",
    # Errors
    "GraphSyncError",
    "InvalidKey",
    "InvalidRef",
    "NoQueriesForPath",
    "QueryReuseViolation",
    "ReconcilerError",
    "UnionWithoutIdentity",
    # Engine
    "Indexer",
    "TABLES",
    "normalize",
    "tree_to_db",
    "db_to_tree",
    "Parser",
    "Dispatcher",
    "Env",
    "AppState",
    "History",
    "Reconciler",
    "RootRegistry",
    # Tempids
    "TempId",
    "tempid",
    "is_tempid",
]
