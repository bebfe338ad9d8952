"""
Core bulk components.

This module contains the cursor pagination engine and the bounded batch
flusher that the server facade is built on.
"""

from couchbulk.core.batch import Batch, ErrorRow, json_cost
from couchbulk.core.flusher import BatchFlusher
from couchbulk.core.pagination import SENTINEL, iter_pages, make_cursor, paginate

__all__ = [
    "Batch",
    "ErrorRow",
    "json_cost",
    "BatchFlusher",
    "SENTINEL",
    "iter_pages",
    "make_cursor",
    "paginate",
]
