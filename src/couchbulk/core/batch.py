"""
Batch model.

Represents pending writes waiting to be flushed in one bulk request.
"""

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

CostFunction = Callable[[Any], int]


def json_cost(item: Any) -> int:
    """
    Approximate the cost of an item as its JSON-encoded size in bytes.

    This is an estimate: the actual request body also carries separators
    and the ``{"docs": [...]}`` envelope.
    """
    return len(json.dumps(item).encode("utf-8"))


@dataclass
class ErrorRow:
    """
    A per-item failure reported by a bulk request.

    Attributes:
        id: Id of the affected document, when reported
        error: Error code, e.g. "conflict"
        reason: Human-readable explanation
        key: Row key, for failures reported by bulk reads
    """

    id: Optional[str]
    error: str
    reason: Optional[str] = None
    key: Optional[Any] = None

    @classmethod
    def from_row(cls, row: dict) -> "ErrorRow":
        """Create an ErrorRow from a response row carrying ``error``."""
        return cls(
            id=row.get("id"),
            error=row["error"],
            reason=row.get("reason"),
            key=row.get("key"),
        )


@dataclass
class Batch:
    """
    An ordered buffer of pending write items.

    The batch is owned by the caller and may live across many
    accumulate calls. Items and cost are guarded by ``lock``; anything that
    reads and then clears the batch must hold it for the whole operation.

    Attributes:
        items: Pending items in insertion order
        cost: Running approximate size of the items in bytes
    """

    items: List[Any] = field(default_factory=list)
    cost: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def add(self, item: Any, cost: int) -> None:
        """Append an item and add its cost."""
        with self.lock:
            self.items.append(item)
            self.cost += cost

    def clear(self) -> None:
        """Drop every item and reset the running cost."""
        with self.lock:
            self.items.clear()
            self.cost = 0

    def discard(self, count: int, cost: int) -> None:
        """Drop the first ``count`` items and subtract their cost."""
        with self.lock:
            del self.items[:count]
            self.cost = max(self.cost - cost, 0) if self.items else 0

    def exceeds(self, size_threshold_bytes: float, count_threshold: int) -> bool:
        """Check whether either flush threshold has been reached."""
        with self.lock:
            return self.cost >= size_threshold_bytes or len(self.items) >= count_threshold

    @property
    def size(self) -> int:
        """Get the number of pending items."""
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        """Check if the batch has no items."""
        return len(self.items) == 0

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __repr__(self) -> str:
        return f"Batch(size={self.size}, cost={self.cost})"
