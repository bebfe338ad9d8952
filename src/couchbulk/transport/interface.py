"""
Abstract interfaces for talking to a CouchDB server.

Defines the transport contract (one HTTP exchange) and the request
capability that the bulk readers and writers depend on.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import httpx

DEFAULT_TIMEOUT = 5 * 30.0


class Transport(ABC):
    """
    Abstract HTTP transport.

    Performs exactly one request and returns the raw response. Connection
    setup, TLS and timeouts are the transport's business.
    """

    @abstractmethod
    def send(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
        open_timeout: float = DEFAULT_TIMEOUT,
        read_timeout: float = DEFAULT_TIMEOUT,
    ) -> httpx.Response:
        """
        Send a single request.

        Args:
            method: HTTP method
            path: Path relative to the server base URL (may carry a query string)
            body: Encoded request body
            headers: Extra request headers
            auth: Basic-auth (name, password) pair
            open_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds

        Returns:
            The server response, whatever its status

        Raises:
            TransportError: On network, connect or timeout failures
        """
        pass

    def close(self) -> None:
        """Release any held connections."""
        pass


class RequestInterface(ABC):
    """
    Request capability consumed by pagination and batching.

    Every verb accepts the keyword-only options ``open_timeout``,
    ``read_timeout`` and ``fail_silent``.
    """

    @abstractmethod
    def get(self, path: str, **kwargs) -> httpx.Response:
        pass

    @abstractmethod
    def head(self, path: str, **kwargs) -> httpx.Response:
        pass

    @abstractmethod
    def put(self, path: str, body: Any, **kwargs) -> httpx.Response:
        pass

    @abstractmethod
    def post(self, path: str, body: Any, **kwargs) -> httpx.Response:
        pass

    @abstractmethod
    def delete(self, path: str, **kwargs) -> httpx.Response:
        pass


class CouchError(Exception):
    """Base class for client errors."""
    pass


class TransportError(CouchError):
    """Raised when the request never got a response."""
    pass


class RequestFailedError(CouchError):
    """Raised when the server answers a non-silent request with a non-2xx status."""

    def __init__(
        self,
        method: str,
        path: str,
        status_code: int,
        reason: str = "",
        body: str = "",
    ):
        super().__init__(f"{status_code}:{reason}\nMETHOD:{method}\nURI:{path}\n{body}")
        self.method = method
        self.path = path
        self.status_code = status_code
        self.reason = reason
        self.body = body
