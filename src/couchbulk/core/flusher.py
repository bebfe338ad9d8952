"""
Batch Flusher - writes buffered documents through the bulk endpoint.

Keeps bulk request bodies bounded by flushing whenever a batch reaches a
size or item-count threshold.
"""

from typing import Any, Callable, Iterable, List, Optional

import httpx
import structlog

from couchbulk.core.batch import Batch, CostFunction, ErrorRow, json_cost
from couchbulk.transport.client import build_path
from couchbulk.transport.interface import RequestInterface

logger = structlog.get_logger(__name__)

OnFlush = Callable[[httpx.Response], None]


def bulk_docs_path(database: str) -> str:
    """Get the bulk-write path for a database."""
    return build_path(database, "_bulk_docs")


def parse_error_rows(response: httpx.Response) -> List[ErrorRow]:
    """
    Collect the per-item failures from a bulk-write response.

    Args:
        response: Response to a ``_bulk_docs`` request

    Returns:
        One ErrorRow per entry carrying an ``error`` field
    """
    if not response.content:
        return []
    return [ErrorRow.from_row(row) for row in response.json() if row.get("error")]


class BatchFlusher:
    """
    Accumulates documents into batches and flushes them to one database.

    A flush that gets a response always clears the batch, even if some
    items were rejected; those come back as ErrorRows. A flush whose
    request fails raises and leaves the batch untouched.
    """

    def __init__(
        self,
        client: RequestInterface,
        database: str,
        cost_fn: CostFunction = json_cost,
    ):
        """
        Initialize the flusher.

        Args:
            client: Request client used to post bulk requests
            database: Target database name
            cost_fn: Estimates the size of one item in bytes
        """
        self.client = client
        self.database = database
        self.cost_fn = cost_fn

    def accumulate(self, batch: Batch, item: Any) -> None:
        """Append an item to the batch and update its running cost."""
        batch.add(item, self.cost_fn(item))

    def post_bulk(self, docs: List[Any]) -> httpx.Response:
        """Post documents to the bulk endpoint in a single request."""
        return self.client.post(bulk_docs_path(self.database), {"docs": docs})

    def flush(self, batch: Batch, on_flush: Optional[OnFlush] = None) -> List[ErrorRow]:
        """
        Write the whole batch in one bulk request and clear it.

        Args:
            batch: Batch to flush
            on_flush: Called with the raw response after a successful request

        Returns:
            Per-item failures reported by the server
        """
        with batch.lock:
            if batch.is_empty:
                return []

            response = self.post_bulk(batch.items)
            errors = parse_error_rows(response)

            if errors:
                logger.warning(
                    "bulk_flush_errors",
                    database=self.database,
                    size=batch.size,
                    error_count=len(errors),
                )
            else:
                logger.debug("bulk_flushed", database=self.database, size=batch.size)

            if on_flush:
                on_flush(response)

            batch.clear()
            return errors

    def flush_if_threshold_exceeded(
        self,
        batch: Batch,
        size_threshold_bytes: float,
        count_threshold: int,
    ) -> bool:
        """
        Flush the batch if it has reached either threshold.

        An over-full batch is split at the same thresholds, so no single
        request exceeds them. Each part leaves the batch once its request
        succeeds; if a later request fails, only the unsent items remain.

        Returns:
            True if the batch was flushed
        """
        with batch.lock:
            if not batch.exceeds(size_threshold_bytes, count_threshold):
                return False

            part = Batch()
            for item in list(batch.items):
                self.accumulate(part, item)
                if part.exceeds(size_threshold_bytes, count_threshold):
                    self._flush_part(batch, part)
            if not part.is_empty:
                self._flush_part(batch, part)
            return True

    def _flush_part(self, batch: Batch, part: Batch) -> None:
        """Flush the leading part of a batch, then drop it from the batch."""
        count, cost = part.size, part.cost
        self.flush(part)
        batch.discard(count, cost)

    def flush_throttled(
        self,
        items: Iterable[Any],
        size_threshold_bytes: float,
        count_threshold: int,
        on_flush: Optional[OnFlush] = None,
    ) -> List[ErrorRow]:
        """
        Write a collection of items in bounded bulk requests.

        Items are flushed in order, splitting whenever the working batch
        reaches either threshold. The remainder goes out in a final request.

        Args:
            items: Documents to write
            size_threshold_bytes: Batch cost that triggers a flush
            count_threshold: Item count that triggers a flush
            on_flush: Called with the raw response of every request

        Returns:
            Per-item failures across all requests
        """
        bulk = Batch()
        errors: List[ErrorRow] = []
        flushes = 0

        for item in items:
            self.accumulate(bulk, item)
            if bulk.exceeds(size_threshold_bytes, count_threshold):
                errors.extend(self.flush(bulk, on_flush))
                flushes += 1

        if not bulk.is_empty:
            errors.extend(self.flush(bulk, on_flush))
            flushes += 1

        logger.info(
            "bulk_throttled_done",
            database=self.database,
            flushes=flushes,
            error_count=len(errors),
        )
        return errors

    def bulk_delete(self, docs: List[dict]) -> httpx.Response:
        """
        Delete documents in one unthrottled bulk request.

        Each document must carry ``_id`` and ``_rev``; it is marked with
        ``_deleted`` in place.
        """
        for doc in docs:
            doc["_deleted"] = True
        response = self.post_bulk(docs)
        errors = parse_error_rows(response)
        if errors:
            logger.warning("bulk_delete_errors", database=self.database, error_count=len(errors))
        return response
