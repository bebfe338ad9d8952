"""
CouchDB server facade.

Composes the request client, the cursor paginator and the batch flusher
into the public document and bulk operations.
"""

from typing import Any, Dict, Iterable, List, Optional

import httpx
import structlog

from couchbulk.config import CouchConfig, get_config
from couchbulk.core.batch import Batch, CostFunction, ErrorRow, json_cost
from couchbulk.core.flusher import BatchFlusher, OnFlush
from couchbulk.core.pagination import OnPage, iter_pages, paginate
from couchbulk.transport.client import RequestClient, build_path
from couchbulk.transport.httpx_transport import HttpxTransport
from couchbulk.transport.interface import RequestInterface, Transport

logger = structlog.get_logger(__name__)

MEGABYTE = 1024 * 1024


def _view_segments(database: str, design_doc: str, view: str) -> tuple:
    return (database, "_design", design_doc, "_view", view)


def _docs_of_rows(rows: List[dict]) -> List[dict]:
    """Unwrap ``include_docs`` rows, logging and skipping those without a document."""
    docs = []
    for row in rows:
        if row.get("error") or not row.get("doc"):
            logger.warning(
                "bulk_row_error",
                id=row.get("id"),
                key=row.get("key"),
                error=row.get("error", "missing_doc"),
                reason=row.get("reason"),
            )
        else:
            docs.append(row["doc"])
    return docs


class CouchServer:
    """
    Client for one CouchDB server.

    Bulk reads page through results with a ``startkey`` cursor. They assume
    keys never contain the character U+FFF0; if one does, behaviour is
    undefined.

    Usage:
        ```python
        server = CouchServer("https://couch.example.com", name="admin", password="secret")
        for doc in server.all_docs("mydb"):
            ...
        server.post_bulk_throttled("mydb", docs)
        ```
    """

    def __init__(
        self,
        url: Optional[str] = None,
        name: Optional[str] = None,
        password: Optional[str] = None,
        config: Optional[CouchConfig] = None,
        transport: Optional[Transport] = None,
        client: Optional[RequestInterface] = None,
        cost_fn: CostFunction = json_cost,
    ):
        """
        Initialize the server facade.

        Args:
            url: Server base URL (overrides config)
            name: Username for basic auth (overrides config)
            password: Password for basic auth (overrides config)
            config: Client configuration. Uses global config if not provided.
            transport: Custom transport (an HttpxTransport is created if not provided)
            client: Custom request client (wraps the transport if not provided)
            cost_fn: Size estimate used when batching writes
        """
        config = config or get_config()
        overrides = {
            key: value
            for key, value in (("url", url), ("name", name), ("password", password))
            if value is not None
        }
        if overrides:
            config = config.model_copy(update=overrides)
        self.config = config

        if client is None:
            transport = transport or HttpxTransport(self.config)
            client = RequestClient(transport, self.config)
        self.transport = transport
        self.client = client
        self.cost_fn = cost_fn

    def close(self) -> None:
        """Close the underlying transport."""
        if self.transport is not None:
            self.transport.close()

    def __enter__(self) -> "CouchServer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def flusher(self, database: str) -> BatchFlusher:
        """Get a batch flusher bound to a database."""
        return BatchFlusher(self.client, database, self.cost_fn)

    # Single documents

    def get_doc(self, database: str, doc_id: str) -> dict:
        """Get a parsed document."""
        return self.client.get(build_path(database, doc_id)).json()

    def get_rev(self, database: str, doc_id: str) -> Optional[str]:
        """
        Get the current revision of a document.

        Returns:
            The revision from the ETag header, or None if the document
            does not exist
        """
        response = self.client.head(build_path(database, doc_id))
        if response.status_code != 200:
            return None
        return response.headers["etag"].strip('"')

    def get_attachment_str(self, database: str, doc_id: str, attachment: str) -> str:
        """Get an attachment body as text."""
        return self.client.get(build_path(database, doc_id, attachment)).text

    # Single pages

    def get_all_docs(self, database: str, params: Optional[Dict[str, Any]] = None) -> List[dict]:
        """
        Get one page of full documents from ``_all_docs``.

        ``include_docs`` is added unless already given. Rows carrying an
        error or no document are logged and skipped. Prefer all_docs.
        """
        params = dict(params or {})
        params.setdefault("include_docs", True)
        result = self.client.get(build_path(database, "_all_docs", params=params)).json()
        return _docs_of_rows(result["rows"])

    def get_rows_for_view(
        self,
        database: str,
        design_doc: str,
        view: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[dict]:
        """Get one page of rows for a view. Prefer rows_for_view."""
        path = build_path(*_view_segments(database, design_doc, view), params=params)
        return self.client.get(path).json()["rows"]

    def get_all_ids(self, database: str, params: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Get one page of document ids.

        Rows carrying an error are logged and excluded. Prefer all_ids.
        """
        result = self.client.get(build_path(database, "_all_docs", params=params)).json()

        ids = []
        for row in result["rows"]:
            if row.get("error"):
                logger.warning(
                    "bulk_row_error",
                    key=row.get("key"),
                    error=row["error"],
                    reason=row.get("reason"),
                )
            else:
                ids.append(row["id"])
        return ids

    def get_docs_for_view(
        self,
        database: str,
        design_doc: str,
        view: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[dict]:
        """
        Get one page of full documents for a view.

        Rows without a document are logged and skipped. Prefer docs_for_view.
        """
        params = {**(params or {}), "include_docs": True}
        return _docs_of_rows(self.get_rows_for_view(database, design_doc, view, params))

    # Paginated reads

    def all_docs(
        self,
        database: str,
        limit: Optional[int] = None,
        opts: Optional[Dict[str, Any]] = None,
        on_page: Optional[OnPage] = None,
    ) -> List[dict]:
        """
        Get every document in a database, ``limit`` documents per request.

        With ``on_page`` each page is handed over as it arrives and an empty
        list is returned; otherwise all documents are returned.
        """
        return paginate(
            lambda options: self.get_all_docs(database, options),
            self.config.page_size if limit is None else limit,
            opts,
            on_page,
            cursor_field="_id",
        )

    def rows_for_view(
        self,
        database: str,
        design_doc: str,
        view: str,
        limit: Optional[int] = None,
        opts: Optional[Dict[str, Any]] = None,
        on_page: Optional[OnPage] = None,
    ) -> List[dict]:
        """
        Get every row of a view, ``limit`` rows per request.

        The cursor is the row id, so this walks views whose keys sort in
        document id order.
        """
        return paginate(
            lambda options: self.get_rows_for_view(database, design_doc, view, options),
            self.config.page_size if limit is None else limit,
            opts,
            on_page,
            cursor_field="id",
        )

    def all_ids(
        self,
        database: str,
        limit: Optional[int] = None,
        opts: Optional[Dict[str, Any]] = None,
        on_page: Optional[OnPage] = None,
    ) -> List[str]:
        """Get every document id in a database, ``limit`` ids per request."""
        return paginate(
            lambda options: self.get_all_ids(database, options),
            self.config.page_size if limit is None else limit,
            opts,
            on_page,
            cursor_field=lambda doc_id: doc_id,
        )

    def docs_for_view(
        self,
        database: str,
        design_doc: str,
        view: str,
        limit: Optional[int] = None,
        opts: Optional[Dict[str, Any]] = None,
        on_page: Optional[OnPage] = None,
    ) -> List[dict]:
        """
        Get every document emitted by a view, ``limit`` rows per request.

        Pages are walked over the view rows with the row id as cursor, then
        unwrapped, so linked documents and rows without a document do not
        move the cursor. Pages left empty after unwrapping are not passed
        to ``on_page``.
        """
        options = {**(opts or {}), "include_docs": True}
        docs: List[dict] = []
        for rows in iter_pages(
            lambda page_options: self.get_rows_for_view(database, design_doc, view, page_options),
            self.config.page_size if limit is None else limit,
            options,
            cursor_field="id",
        ):
            page = _docs_of_rows(rows)
            if on_page is not None:
                if page:
                    on_page(page)
            else:
                docs.extend(page)
        return docs

    # Bulk writes

    def post_bulk(self, database: str, docs: List[Any]) -> httpx.Response:
        """Write documents in a single bulk request."""
        return self.flusher(database).post_bulk(docs)

    def bulk_delete(self, database: str, docs: List[dict]) -> httpx.Response:
        """Delete documents (each with ``_id`` and ``_rev``) in one bulk request."""
        return self.flusher(database).bulk_delete(docs)

    def post_bulk_throttled(
        self,
        database: str,
        docs: Iterable[Any],
        max_size_mb: Optional[float] = None,
        max_array_length: Optional[int] = None,
        on_flush: Optional[OnFlush] = None,
    ) -> List[ErrorRow]:
        """
        Write documents in bulk requests bounded by size and count.

        Args:
            database: Target database
            docs: Documents to write, sent in order
            max_size_mb: Approximate size per request (defaults to config)
            max_array_length: Documents per request (defaults to config)
            on_flush: Called with the raw response of every request

        Returns:
            Per-document failures reported by the server
        """
        if max_size_mb is None:
            max_size_mb = self.config.throttle_size_mb
        if max_array_length is None:
            max_array_length = self.config.max_array_length
        return self.flusher(database).flush_throttled(
            docs,
            max_size_mb * MEGABYTE,
            max_array_length,
            on_flush,
        )

    def post_bulk_if_big_enough(
        self,
        database: str,
        batch: Batch,
        flush_size_mb: Optional[float] = None,
        max_array_length: Optional[int] = None,
    ) -> bool:
        """
        Flush a caller-owned batch once it is big enough.

        Add documents with ``flusher(database).accumulate(batch, doc)`` so
        the running cost stays current.

        Returns:
            True if the batch was written and cleared
        """
        if flush_size_mb is None:
            flush_size_mb = self.config.flush_size_mb
        if max_array_length is None:
            max_array_length = self.config.max_array_length
        return self.flusher(database).flush_if_threshold_exceeded(
            batch,
            flush_size_mb * MEGABYTE,
            max_array_length,
        )
