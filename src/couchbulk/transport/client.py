"""
Request client.

Builds basic-auth requests for each HTTP verb and classifies responses.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog

from couchbulk.config import CouchConfig, get_config
from couchbulk.transport.interface import (
    RequestFailedError,
    RequestInterface,
    Transport,
)

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json;charset=utf-8"


def encode_body(body: Any) -> bytes:
    """Encode a request body; bytes and str pass through, anything else becomes JSON."""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def build_path(*segments: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Build an escaped request path.

    Each segment is escaped on its own, so ids containing slashes stay in
    one segment. A query string is appended when params are given.

    Args:
        segments: Path segments, e.g. ("mydb", "_all_docs")
        params: Query options; booleans render as true/false

    Returns:
        Absolute path such as ``/mydb/_all_docs?limit=500``
    """
    path = "/" + "/".join(quote(str(segment), safe="") for segment in segments)
    if params:
        path = f"{path}?{httpx.QueryParams(params)}"
    return path


def is_success(response: httpx.Response) -> bool:
    """Check whether a response carries a 2xx status."""
    return 200 <= response.status_code < 300


class RequestClient(RequestInterface):
    """
    Authenticated request client.

    Every verb raises RequestFailedError on a non-2xx status unless
    ``fail_silent`` is set. HEAD is silent by default, since it is used to
    probe for existence where 404 is an expected answer.
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[CouchConfig] = None,
    ):
        """
        Initialize the request client.

        Args:
            transport: Transport that performs the HTTP exchange
            config: Client configuration. Uses global config if not provided.
        """
        self.transport = transport
        self.config = config or get_config()

    def get(
        self,
        path: str,
        *,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = False,
    ) -> httpx.Response:
        return self.request("GET", path, None, open_timeout, read_timeout, fail_silent)

    def head(
        self,
        path: str,
        *,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = True,
    ) -> httpx.Response:
        return self.request("HEAD", path, None, open_timeout, read_timeout, fail_silent)

    def delete(
        self,
        path: str,
        *,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = False,
    ) -> httpx.Response:
        return self.request("DELETE", path, None, open_timeout, read_timeout, fail_silent)

    def put(
        self,
        path: str,
        body: Any,
        *,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = False,
    ) -> httpx.Response:
        return self.request("PUT", path, body, open_timeout, read_timeout, fail_silent)

    def post(
        self,
        path: str,
        body: Any,
        *,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = False,
    ) -> httpx.Response:
        return self.request("POST", path, body, open_timeout, read_timeout, fail_silent)

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        fail_silent: bool = False,
    ) -> httpx.Response:
        """
        Dispatch a request and classify the response.

        Args:
            method: HTTP method
            path: Request path
            body: Request body (PUT/POST only)
            open_timeout: Connect timeout in seconds (defaults to config)
            read_timeout: Read timeout in seconds (defaults to config)
            fail_silent: Return non-2xx responses instead of raising

        Returns:
            The raw response

        Raises:
            RequestFailedError: On a non-2xx status when not silent
            TransportError: When no response was received
        """
        if open_timeout is None:
            open_timeout = self.config.open_timeout
        if read_timeout is None:
            read_timeout = self.config.read_timeout

        headers = {}
        content = None
        if body is not None:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            content = encode_body(body)

        response = self.transport.send(
            method,
            path,
            body=content,
            headers=headers,
            auth=self.config.auth,
            open_timeout=open_timeout,
            read_timeout=read_timeout,
        )

        if not fail_silent and not is_success(response):
            self.handle_error(method, path, response)
        return response

    def handle_error(self, method: str, path: str, response: httpx.Response) -> None:
        """Log and raise a structured failure for a non-2xx response."""
        logger.error(
            "couch_request_failed",
            method=method,
            path=path,
            status=response.status_code,
        )
        raise RequestFailedError(
            method=method,
            path=path,
            status_code=response.status_code,
            reason=response.reason_phrase,
            body=response.text,
        )
