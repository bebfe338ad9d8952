"""
httpx-backed transport.

Provides the concrete HTTP exchange used by the request client.
"""

from typing import Dict, Optional, Tuple

import httpx
import structlog

from couchbulk.config import CouchConfig, get_config
from couchbulk.transport.interface import DEFAULT_TIMEOUT, Transport, TransportError

logger = structlog.get_logger(__name__)


class HttpxTransport(Transport):
    """
    Transport built on a synchronous httpx client.

    TLS follows the scheme of the configured base URL.
    """

    def __init__(
        self,
        config: Optional[CouchConfig] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the transport.

        Args:
            config: Client configuration. Uses global config if not provided.
            base_url: Override for the server base URL
            transport: Custom httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.config = config or get_config()
        self.base_url = base_url or self.config.base_url
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        """Get the underlying httpx client, creating it on first use."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                transport=self._transport,
            )
            logger.debug("couch_transport_opened", base_url=self.base_url)
        return self._client

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
        """Send one request through httpx."""
        timeout = httpx.Timeout(read_timeout, connect=open_timeout)
        request = self.client.build_request(
            method,
            path,
            content=body,
            headers=headers,
            timeout=timeout,
        )
        try:
            return self.client.send(request, auth=auth)
        except httpx.RequestError as e:
            logger.error("couch_transport_error", method=method, path=path, error=str(e))
            raise TransportError(f"{method} {path} failed: {e}") from e

    def close(self) -> None:
        """Close the httpx client."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug("couch_transport_closed", base_url=self.base_url)

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
