"""
CouchDB Bulk Client

A synchronous CouchDB client with cursor-based bulk reads and size- and
count-bounded bulk writes.
"""

__version__ = "0.1.0"

from couchbulk.server import CouchServer
from couchbulk.core.batch import Batch, ErrorRow
from couchbulk.core.flusher import BatchFlusher
from couchbulk.core.pagination import iter_pages, paginate
from couchbulk.transport.interface import CouchError, RequestFailedError, TransportError

__all__ = [
    "CouchServer",
    "Batch",
    "ErrorRow",
    "BatchFlusher",
    "iter_pages",
    "paginate",
    "CouchError",
    "RequestFailedError",
    "TransportError",
]
