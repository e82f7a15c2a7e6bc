"""
Reconciler for GraphSync.

The Reconciler owns the application state and keeps mounted components in
sync with it. It:
- Runs transactions through the parser and queues the keys they touch
- Merges novelty from remotes (including tempid migration)
- Coalesces re-renders and remote sends into deferred flushes
- Re-reads only the components affected by queued keys, ancestors first

Flow:
    transact/merge -> queue keys -> request_render -> (deferred) reconcile
    transact/set_query -> queue sends -> request_sends -> (deferred) send
    transport -> merge -> ...

Invariants:
    - schedule_render()/schedule_sends() return True only on the transition
      from idle to scheduled; only that caller defers a flush
    - A flush snapshots and clears its queue before doing any work, so
      anything queued while it runs lands in the next flush
    - Components unmounted before a flush are skipped at flush time, and a
      flush deferred before remove_root() does nothing
    - A component whose query cannot be rebuilt is logged and skipped, the
      rest of the flush still runs

How to change safely:
    - Keep every state change going through AppState so watchers fire
    - Test coalescing with a ManualScheduler before changing the flags
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..component import ITxIntercept, get_ident, get_query, has_ident, iquery
from ..config import ReconcilerConfig
from ..errors import InvalidKey, NoQueriesForPath, ReconcilerError
from ..index.indexer import Indexer
from ..normalize import TABLES, tree_to_db
from ..parser import Env
from ..query.expr import Symbol, is_ref
from ..query.focus import focus_query
from ..runtime.base import RenderContext, Sends
from ..runtime.scheduler import ManualScheduler
from .history import History
from .merge import MergeResult, default_merge, migrate
from .state import AppState

logger = logging.getLogger(__name__)


class _Skip:
    def __repr__(self) -> str:
        return "SKIP"


# Queued after initial normalization; alone in the queue it re-renders the root
SKIP = _Skip()


def get_in(data: Any, path: Iterable[Any]) -> Any:
    """Follow ``path`` into nested dicts and lists, None when missing."""
    for k in path:
        if isinstance(data, dict):
            data = data.get(k)
        elif isinstance(data, list) and isinstance(k, int) and -len(data) <= k < len(data):
            data = data[k]
        else:
            return None
    return data


def merge_sends(a: Sends, b: Sends) -> Sends:
    """Concatenate queued sends target by target."""
    ret = {k: list(v) for k, v in a.items()}
    for target, exprs in b.items():
        ret.setdefault(target, []).extend(exprs)
    return ret


class Reconciler:
    """Keeps mounted components in sync with the application state.

    Attributes:
        config: Reconciler configuration
        app_state: State cell holding the graph store
        parser: Parser answering reads and mutations
        host: Component host
        indexer: Index of queries, refs and live components
        history: Store snapshots taken before each transaction

    Example:
        >>> host = InMemoryHost()
        >>> scheduler = ManualScheduler()
        >>> reconciler = Reconciler(
        ...     state={"people": [{"id": 1, "name": "Ann"}]},
        ...     parser=Parser(read=read, mutate=mutate),
        ...     host=host,
        ...     scheduler=scheduler,
        ... )
        >>> root = reconciler.add_root(Root)
        >>> reconciler.transact(root, [Call(Symbol("person/rename"), {"id": 1})])
        >>> scheduler.run_pending()
    """

    def __init__(
        self,
        state: Any = None,
        parser: Optional[Callable[..., Any]] = None,
        host: Any = None,
        config: Optional[ReconcilerConfig] = None,
        *,
        transport: Optional[Callable[..., Any]] = None,
        scheduler: Any = None,
        shared: Any = None,
        shared_fn: Optional[Callable[[Any], Any]] = None,
        ui_to_props: Optional[Callable[[Env, Any], Any]] = None,
        merge: Optional[Callable[[Reconciler, Any, Dict[Any, Any]], MergeResult]] = None,
        merge_sends: Callable[[Sends, Sends], Sends] = merge_sends,
        optimize: Optional[Callable[[Iterable[Any]], Iterable[Any]]] = None,
        indexer: Optional[Indexer] = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            state: Initial state. Plain data is normalized against the root
                query when the first root is added (if ``config.normalize``);
                an AppState is taken as already normalized.
            parser: Parser called as ``parser(env, query, target=None)``
            host: HostRuntime owning component instances
            config: Reconciler configuration
            transport: Callable ``transport(sends, on_result)``
            scheduler: Scheduler for deferred flushes, a ManualScheduler
                by default
            shared: Values shared with the whole component tree
            shared_fn: Computes more shared values from the root data
            ui_to_props: Computes the next props of a component
            merge: Replaces ``default_merge``
            merge_sends: Combines queued sends
            optimize: Orders affected components, by depth by default
            indexer: Replaces the default Indexer
        """
        if parser is None:
            raise ReconcilerError("A reconciler needs a parser")
        if host is None:
            raise ReconcilerError("A reconciler needs a host runtime")

        self.config = config or ReconcilerConfig()
        self.parser = parser
        self.host = host
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()
        self.shared = shared
        self._shared_fn = shared_fn
        self._transport = transport
        self._ui_to_props = ui_to_props or self.default_ui_to_props
        self._merge = merge
        self._merge_sends = merge_sends
        self._optimize = optimize or (lambda cs: sorted(cs, key=self.host.depth))

        if isinstance(state, AppState):
            self.app_state = state
            self._normalized = True
        else:
            self.app_state = AppState(state if state is not None else {})
            self._normalized = not self.config.normalize

        self.indexer = indexer or Indexer(host, get_query=self.get_query)
        self.history = History(self.config.history_size)

        self._queue: List[Any] = []
        self._queued = False
        self._queued_sends: Sends = {}
        self._sends_queued = False
        self._t = 0
        self._queries: Dict[Any, Dict[str, Any]] = {}

        self._root: Any = None
        self._root_class: Any = None
        self._target: Any = None
        self._watch_key: Any = None

    # Queries

    def get_query(self, x: Any) -> Any:
        """Bound query of a component class or instance.

        Instances honour overrides stored by ``set_query``.
        """
        local = self._queries.get(x) if self.host.is_component(x) else None
        return get_query(x, local)

    def full_query(self, c: Any, query: Any = None) -> Any:
        return self.indexer.full_query(c, query)

    def set_query(self, c: Any, query: Any = None, params: Optional[Dict[str, Any]] = None) -> None:
        """Change the query and/or params of a mounted component.

        Records a history snapshot, re-indexes the root, queues ``c`` for
        re-render and queues remote sends for its new full query.

        Raises:
            ValueError: If neither ``query`` nor ``params`` is given
        """
        if query is None and params is None:
            raise ValueError("set_query needs a query or params")

        tx_id = str(uuid.uuid4())
        self.history.record(tx_id, copy.deepcopy(self.app_state.value))
        ref = get_ident(c, self.host.props(c)) if has_ident(c) else None
        logger.info(
            "Changed query",
            extra={
                "ref": repr(ref),
                "query": repr(query),
                "params": repr(params),
                "tx_id": tx_id,
            },
        )

        local = dict(self._queries.get(c, {}))
        if query is not None:
            local["query"] = query
        if params is not None:
            local["params"] = params
        self._queries[c] = local

        self.queue([c])
        self.reindex()
        sends = self.gather_sends(self._env(), self.full_query(c))
        if sends:
            self.queue_sends(sends)
            self.request_sends()
        self.request_render()

    # Roots

    def add_root(self, root_class: Any, target: Any = None) -> Any:
        """Index, normalize and render ``root_class``.

        A reconciler has one root; adding another replaces it.

        Returns:
            The root component instance
        """
        if self._root_class is not None:
            self.remove_root()

        if iquery(root_class):
            self.indexer.index_root(root_class)

        if not self._normalized:
            new_state = tree_to_db(root_class, self.app_state.value)
            new_state.pop(TABLES, None)
            self.app_state.reset(new_state)
            self._normalized = True
            self.queue([SKIP])

        self._root_class = root_class
        self._target = target
        self._watch_key = target if target is not None else uuid.uuid4()
        self.app_state.add_watch(self._watch_key, self._on_state_change)

        self._render_root()

        sel = self.get_query(self._root or root_class)
        if sel is not None:
            env = self._env()
            sends = self.gather_sends(env, sel)
            if sends and self._transport is not None:

                def on_result(res: Dict[Any, Any]) -> None:
                    self.merge(res)
                    self._render(self.parser(env, sel))

                self._transport(sends, on_result)
        logger.info(
            "Added root",
            extra={"root": getattr(root_class, "__name__", repr(root_class)), "target": repr(target)},
        )
        return self._root

    def remove_root(self) -> None:
        """Stop reconciling the current root and unmount it.

        Queued keys and sends are dropped; a flush already deferred finds
        no root and does nothing.
        """
        if self._root_class is None:
            return
        target = self._target
        self.app_state.remove_watch(self._watch_key)
        self._root = None
        self._root_class = None
        self._target = None
        self._watch_key = None
        self._queue = []
        self._queued_sends = {}
        self.host.unmount_root(target)
        logger.info("Removed root", extra={"target": repr(target)})

    def reindex(self) -> None:
        """Rebuild query indexes from the current root."""
        if iquery(self._root):
            self.indexer.index_root(self._root)

    @property
    def root(self) -> Any:
        return self._root

    def _on_state_change(self, key: Any, ref: AppState, old: Any, new: Any) -> None:
        self._t += 1
        self.request_render()

    def _render(self, data: Any) -> None:
        shared = self.shared
        if self._shared_fn is not None:
            shared = {**(shared or {}), **(self._shared_fn(data) or {})}
        context = RenderContext(reconciler=self, shared=shared, parent=None, depth=0)
        c = self.host.render_root(self._root_class, data, self._target, context)
        if self._root is None and c is not None:
            self._root = c

    def _render_root(self) -> None:
        sel = self.get_query(self._root or self._root_class)
        if sel is None:
            self._render(self.app_state.value)
            return
        v = self.parser(self._env(), sel)
        if v:
            self._render(v)

    # Transactions

    def transact(self, origin: Any, tx: List[Any], ref: Any = None) -> Dict[Any, Any]:
        """Run transaction ``tx``.

        Args:
            origin: Component issuing the transaction, a ref, or None
            tx: Mutations followed by the reads to re-render
            ref: Ref the transaction is about, when ``origin`` is not one

        Returns:
            The local parse result

        Raises:
            ReconcilerError: If a component origin declares no query
        """
        if origin is None or is_ref(origin):
            return self._transact(None, origin if is_ref(origin) else ref, tx)

        c = origin
        if not iquery(c):
            raise ReconcilerError(f"transact invoked by component {c!r} that does not implement IQuery")
        p = self.host.parent(c)
        while p is not None:
            if isinstance(p, ITxIntercept):
                c = p
                tx = p.tx_intercept(tx)
            p = self.host.parent(p)
        return self._transact(c, ref, self.transform_reads(tx))

    def _transact(self, c: Any, ref: Any, tx: List[Any]) -> Dict[Any, Any]:
        if c is not None and ref is None and has_ident(c):
            ref = get_ident(c, self.host.props(c))
        env = self._env(component=c, ref=ref)

        tx_id = str(uuid.uuid4())
        self.history.record(tx_id, copy.deepcopy(self.app_state.value))
        logger.info("Transacted", extra={"ref": repr(ref), "tx": repr(tx), "tx_id": tx_id})

        v = self.parser(env, tx)
        sends = self.gather_sends(env, tx)

        keys: List[Any] = []
        if c is not None:
            keys.append(c)
        if ref is not None:
            keys.append(ref)
        keys.extend(k for k in v if not isinstance(k, Symbol))
        self.queue(keys)

        if sends:
            self.queue_sends(sends)
            self.request_sends()
        self.request_render()
        return v

    def transform_reads(self, tx: List[Any]) -> List[Any]:
        """Replace plain key reads with the full queries of their readers."""
        ret: List[Any] = []
        for expr in tx:
            if not isinstance(expr, str) or isinstance(expr, Symbol):
                ret.append(expr)
                continue
            try:
                cs = self.indexer.key_to_components(expr)
            except InvalidKey:
                ret.append(expr)
                continue
            for c in cs:
                try:
                    fq = self.full_query(c, focus_query(self.get_query(c), [expr]))
                except NoQueriesForPath as e:
                    logger.debug(f"Read {expr!r} not expanded for {c!r}: {e.message}")
                    continue
                for x in fq or ():
                    if x not in ret:
                        ret.append(x)
        return ret

    def gather_sends(self, env: Env, query: Any, remotes: Optional[Iterable[Any]] = None) -> Sends:
        """Remote fragments of ``query`` keyed by remote target."""
        ret: Sends = {}
        if not query:
            return ret
        for remote in remotes if remotes is not None else self.config.remotes:
            exprs = self.parser(env, query, remote)
            if exprs:
                ret[remote] = exprs
        return ret

    def _env(self, **kwargs: Any) -> Env:
        return Env(
            state=self.app_state,
            shared=self.shared,
            parser=self.parser,
            pathopt=self.config.pathopt,
            reconciler=self,
            **kwargs,
        )

    # Merging

    def merge(self, delta: Dict[Any, Any]) -> None:
        """Merge a state delta; affected components re-render."""
        if self._merge is not None:
            result = self._merge(self, self.app_state.value, delta)
        else:
            root = self._root if self._root is not None else self._root_class
            result = default_merge(
                self.app_state.value,
                delta,
                root_query=self.get_query(root) if iquery(root) else None,
                normalize=self.config.normalize,
                ref_to_any=self.indexer.ref_to_any,
            )
        self.queue(result.keys)
        next_state = result.next
        if result.tempids:
            next_state = migrate(next_state, result.tempids, self.config.id_key)
        logger.debug(
            "Merged delta",
            extra={"keys": len(result.keys), "tempids": len(result.tempids)},
        )
        self.app_state.reset(next_state)

    # Queues and scheduling

    def queue(self, keys: Iterable[Any]) -> None:
        self._queue.extend(keys)

    def queue_sends(self, sends: Sends) -> None:
        self._queued_sends = self._merge_sends(self._queued_sends, sends)

    def schedule_render(self) -> bool:
        """Arm the render flag; True only if it was not armed."""
        if self._queued:
            return False
        self._queued = True
        return True

    def schedule_sends(self) -> bool:
        """Arm the send flag; True only if it was not armed."""
        if self._sends_queued:
            return False
        self._sends_queued = True
        return True

    def request_render(self) -> None:
        if self.schedule_render():
            self.scheduler.defer(self.reconcile, self.config.render_delay_ms)

    def request_sends(self) -> None:
        if self._transport is None:
            logger.warning("Sends queued but no transport is configured")
            return
        if self.schedule_sends():
            self.scheduler.defer(self.send, self.config.send_delay_ms)

    @property
    def basis_t(self) -> int:
        """Number of state changes observed since the root was added."""
        return self._t

    def reconcile(self) -> None:
        """Flush the work queue.

        Re-renders from the root when the queue is empty, holds only SKIP,
        or affects a depth-zero component. Otherwise re-reads each affected
        mounted component, ancestors first, and re-renders the ones whose
        props changed. Does nothing once the root is removed.

        Raises:
            InvalidKey: If a queued key that is not a ref names no component
                or property
        """
        q, self._queue = self._queue, []
        self._queued = False

        if self._root_class is None:
            logger.debug("No root to reconcile", extra={"keys": len(q)})
            return

        if not q or all(k is SKIP for k in q):
            self._render_root()
            return

        cs: Set[Any] = set()
        for k in q:
            if k is SKIP:
                continue
            try:
                cs |= self.indexer.key_to_components(k)
            except InvalidKey:
                # Every component bound to this ref unmounted before the flush
                if not is_ref(k):
                    raise
                logger.debug(f"No live components for {k!r}")
        cs = {c for c in cs if self.host.is_mounted(c)}

        if any(self.host.depth(c) == 0 for c in cs):
            self._render_root()
            return

        env = self._env()
        for c in self._optimize(cs):
            if not self.host.is_mounted(c):
                continue
            try:
                next_props = self._ui_to_props(env, c)
            except NoQueriesForPath as e:
                logger.warning(f"Cannot re-render {c!r}: {e.message}")
                continue
            if self.host.should_update(c, next_props):
                self.host.force_rerender(c, next_props)
        logger.debug("Reconciled", extra={"keys": len(q), "components": len(cs)})

    def send(self) -> None:
        """Flush queued sends to the transport.

        Raises:
            ReconcilerError: If sends are queued but no transport is set
        """
        self._sends_queued = False
        sends = self._queued_sends
        if not sends:
            return
        if self._transport is None:
            raise ReconcilerError("Cannot send without a transport")
        self._queued_sends = {}
        logger.debug("Sending", extra={"targets": [repr(t) for t in sends]})
        self._transport(sends, self.merge)

    def default_ui_to_props(self, env: Env, c: Any) -> Any:
        """Read the next props of ``c``.

        With ``pathopt`` a component with identity is read through its ref
        first; otherwise (or if that yields nothing) its full query is read
        from the root and the result followed down its data path.
        """
        if self.config.pathopt and has_ident(c) and iquery(c):
            ref = get_ident(c, self.host.props(c))
            if ref is not None:
                ui = self.parser(env, [{ref: self.get_query(c)}]).get(ref)
                if ui is not None:
                    return ui

        fq = self.full_query(c)
        if fq is None:
            return None
        start = time.perf_counter()
        ui = self.parser(env, fq)
        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > self.config.slow_query_ms:
            logger.warning(f"{c!r} query took {elapsed_ms:.1f} msecs")
        return get_in(ui, self.host.data_path(c) or ())

    # History

    def from_history(self, tx_id: Any) -> Any:
        return self.history.get(tx_id)

    def get_history(self) -> List[Tuple[Any, Any]]:
        return self.history.get_all()

    def last_state(self) -> Optional[Tuple[Any, Any]]:
        return self.history.last()
