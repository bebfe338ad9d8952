"""
Transport Layer.

Provides the HTTP exchange with the CouchDB server and the authenticated
request client built on top of it.
"""

from couchbulk.transport.interface import (
    CouchError,
    RequestFailedError,
    RequestInterface,
    Transport,
    TransportError,
)
from couchbulk.transport.httpx_transport import HttpxTransport
from couchbulk.transport.client import RequestClient, build_path

__all__ = [
    "CouchError",
    "RequestFailedError",
    "RequestInterface",
    "Transport",
    "TransportError",
    "HttpxTransport",
    "RequestClient",
    "build_path",
]
