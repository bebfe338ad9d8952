"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import unquote

import httpx
import pytest

from couchbulk.cli import setup_logging
from couchbulk.config import CouchConfig
from couchbulk.server import CouchServer
from couchbulk.transport.client import RequestClient
from couchbulk.transport.httpx_transport import HttpxTransport


# ============================================================================
# Logging Fixture
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def structured_logging():
    """Send structlog output through stdlib logging so stdout stays clean."""
    setup_logging("DEBUG")


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> CouchConfig:
    """Create a test configuration."""
    return CouchConfig(
        url="http://couch.test:5984",
        name="admin",
        password="secret",
        page_size=500,
        flush_size_mb=10,
        throttle_size_mb=15,
        max_array_length=300,
        log_level="DEBUG",
    )


# ============================================================================
# Test Data Generators
# ============================================================================

def make_doc(index: int, **fields) -> dict:
    """Create a document with a zero-padded, sortable id."""
    return {"_id": f"doc-{index:05d}", "n": index, **fields}


def make_docs(count: int, **fields) -> List[dict]:
    """Create ``count`` documents in id order."""
    return [make_doc(i, **fields) for i in range(count)]


# ============================================================================
# Fake CouchDB
# ============================================================================

class FakeCouch:
    """
    In-memory CouchDB served through httpx.MockTransport.

    Supports _all_docs, views keyed by document id, single documents,
    attachments and _bulk_docs. Every request is recorded.
    """

    def __init__(self):
        self.databases: Dict[str, Dict[str, dict]] = {}
        self.views: Dict[Tuple[str, str, str], List[str]] = {}
        self.attachments: Dict[Tuple[str, str, str], str] = {}
        self.view_links: Dict[Tuple[str, str, str], Dict[str, str]] = {}
        self.broken_ids: Set[str] = set()
        self.conflicts: Set[str] = set()
        self.requests: List[httpx.Request] = []
        self.page_sizes: List[int] = []
        self.bulk_sizes: List[int] = []
        self._revs = 0

    # Setup helpers

    def add_docs(self, database: str, docs: List[dict]) -> None:
        db = self.databases.setdefault(database, {})
        for doc in docs:
            stored = dict(doc)
            stored["_rev"] = self._next_rev()
            db[stored["_id"]] = stored

    def add_view(
        self,
        database: str,
        design_doc: str,
        view: str,
        ids: List[str],
        links: Optional[Dict[str, str]] = None,
    ) -> None:
        """Register a view; ``links`` maps a row id to the doc it emits as ``_id``."""
        self.views[(database, design_doc, view)] = sorted(ids)
        self.view_links[(database, design_doc, view)] = dict(links or {})

    def _next_rev(self) -> str:
        self._revs += 1
        return f"{self._revs}-abc"

    # Request handling

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raw_path = request.url.raw_path.split(b"?")[0].decode("ascii")
        segments = [unquote(s) for s in raw_path.strip("/").split("/")]
        params = request.url.params

        if request.method == "POST" and len(segments) == 2 and segments[1] == "_bulk_docs":
            return self._bulk_docs(segments[0], json.loads(request.content))

        if request.method not in ("GET", "HEAD"):
            return httpx.Response(405, json={"error": "method_not_allowed"})

        if len(segments) == 2 and segments[1] == "_all_docs":
            return self._all_docs(segments[0], params)
        if len(segments) == 5 and segments[1] == "_design" and segments[3] == "_view":
            return self._view(segments[0], segments[2], segments[4], params)
        if len(segments) == 2:
            return self._doc(request.method, segments[0], segments[1])
        if len(segments) == 3:
            text = self.attachments.get(tuple(segments))
            if text is None:
                return _not_found()
            return httpx.Response(200, text=text)
        return _not_found()

    def _window(self, ids: List[str], params: httpx.QueryParams) -> List[str]:
        if "startkey" in params:
            startkey = json.loads(params["startkey"])
            ids = [i for i in ids if i >= startkey]
        if "limit" in params:
            ids = ids[: int(params["limit"])]
        return ids

    def _all_docs(self, database: str, params: httpx.QueryParams) -> httpx.Response:
        db = self.databases.get(database)
        if db is None:
            return _not_found()
        include_docs = params.get("include_docs") == "true"

        rows = []
        for doc_id in self._window(sorted(db), params):
            if doc_id in self.broken_ids:
                rows.append({"key": doc_id, "error": "not_found", "reason": "deleted"})
                continue
            row = {"id": doc_id, "key": doc_id, "value": {"rev": db[doc_id]["_rev"]}}
            if include_docs:
                row["doc"] = db[doc_id]
            rows.append(row)

        self.page_sizes.append(len(rows))
        return httpx.Response(200, json={"total_rows": len(db), "offset": 0, "rows": rows})

    def _view(self, database: str, design_doc: str, view: str, params: httpx.QueryParams) -> httpx.Response:
        ids = self.views.get((database, design_doc, view))
        if ids is None:
            return _not_found()
        include_docs = params.get("include_docs") == "true"
        db = self.databases.get(database, {})
        links = self.view_links.get((database, design_doc, view), {})

        rows = []
        for doc_id in self._window(ids, params):
            row = {"id": doc_id, "key": doc_id, "value": 1}
            if include_docs:
                row["doc"] = db.get(links.get(doc_id, doc_id))
            rows.append(row)

        self.page_sizes.append(len(rows))
        return httpx.Response(200, json={"total_rows": len(ids), "offset": 0, "rows": rows})

    def _doc(self, method: str, database: str, doc_id: str) -> httpx.Response:
        doc = self.databases.get(database, {}).get(doc_id)
        if doc is None:
            return _not_found()
        headers = {"ETag": f'"{doc["_rev"]}"'}
        if method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, json=doc, headers=headers)

    def _bulk_docs(self, database: str, body: dict) -> httpx.Response:
        db = self.databases.setdefault(database, {})
        self.bulk_sizes.append(len(body["docs"]))

        results = []
        for doc in body["docs"]:
            doc_id = doc.get("_id") or f"auto-{len(db):05d}"
            if doc_id in self.conflicts:
                results.append({"id": doc_id, "error": "conflict", "reason": "Document update conflict."})
                continue
            rev = self._next_rev()
            if doc.get("_deleted"):
                db.pop(doc_id, None)
            else:
                db[doc_id] = {**doc, "_id": doc_id, "_rev": rev}
            results.append({"ok": True, "id": doc_id, "rev": rev})
        return httpx.Response(201, json=results)


def _not_found() -> httpx.Response:
    return httpx.Response(404, json={"error": "not_found", "reason": "missing"})


@pytest.fixture
def fake_couch() -> FakeCouch:
    """Create an empty fake CouchDB."""
    return FakeCouch()


@pytest.fixture
def transport(test_config, fake_couch) -> HttpxTransport:
    """Create an httpx transport routed to the fake CouchDB."""
    transport = HttpxTransport(test_config, transport=httpx.MockTransport(fake_couch.handler))
    yield transport
    transport.close()


@pytest.fixture
def client(transport, test_config) -> RequestClient:
    """Create a request client over the fake transport."""
    return RequestClient(transport, test_config)


@pytest.fixture
def server(test_config, transport) -> CouchServer:
    """Create a server facade over the fake transport."""
    return CouchServer(config=test_config, transport=transport)
