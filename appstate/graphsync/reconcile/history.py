"""
Bounded transaction history.

History keeps the store snapshot taken before each transaction, keyed by
transaction id, so applications can step back to an earlier state.

Invariants:
    - At most ``capacity`` entries are kept
    - Overflow evicts the oldest entry first
    - Re-recording an existing id replaces the snapshot in place
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Hashable, List, Optional, Tuple


class History:
    """Fixed-capacity FIFO cache of store snapshots.

    Attributes:
        capacity: Maximum number of snapshots kept

    Example:
        >>> history = History(2)
        >>> history.record("a", {"n": 1})
        >>> history.record("b", {"n": 2})
        >>> history.record("c", {"n": 3})
        >>> [tx_id for tx_id, _ in history.get_all()]
        ['b', 'c']
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()

    def record(self, tx_id: Hashable, snapshot: Any) -> None:
        """Store ``snapshot`` under ``tx_id``, evicting the oldest if full."""
        if tx_id in self._entries:
            self._entries[tx_id] = snapshot
            return
        self._entries[tx_id] = snapshot
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def get(self, tx_id: Hashable) -> Any:
        return self._entries.get(tx_id)

    def get_all(self) -> List[Tuple[Hashable, Any]]:
        """All (id, snapshot) pairs, oldest first."""
        return list(self._entries.items())

    def last(self) -> Optional[Tuple[Hashable, Any]]:
        if not self._entries:
            return None
        tx_id = next(reversed(self._entries))
        return tx_id, self._entries[tx_id]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._entries
