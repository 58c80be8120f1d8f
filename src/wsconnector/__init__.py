from __future__ import annotations

from .client import Client, HandshakeSession, connect
from .config import ClientConfig
from .connection import Connection, State
from .datastructures import Headers, HeadersLike, MultipleValuesError
from .exceptions import (
    ConcurrencyError,
    ConnectFailed,
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    HandshakeFailed,
    InvalidHandshake,
    InvalidHeader,
    InvalidHeaderFormat,
    InvalidHeaderValue,
    InvalidProxy,
    InvalidProxyMessage,
    InvalidProxyStatus,
    InvalidScheme,
    InvalidState,
    InvalidStatus,
    InvalidUpgrade,
    InvalidURI,
    NegotiationError,
    PayloadTooBig,
    ProtocolError,
    ProxyError,
    SecurityError,
    SubprotocolMismatch,
    SubprotocolMissing,
    WebSocketException,
)
from .handshake import ClientHandshake, HandshakeState
from .transport import Transport
from .uri import WebSocketURI, parse_uri
from .version import version as __version__  # noqa: F401


__all__ = [
    # .client
    "Client",
    "HandshakeSession",
    "connect",
    # .config
    "ClientConfig",
    # .connection
    "Connection",
    "State",
    # .datastructures
    "Headers",
    "HeadersLike",
    "MultipleValuesError",
    # .exceptions
    "ConcurrencyError",
    "ConnectFailed",
    "ConnectionClosed",
    "ConnectionClosedError",
    "ConnectionClosedOK",
    "HandshakeFailed",
    "InvalidHandshake",
    "InvalidHeader",
    "InvalidHeaderFormat",
    "InvalidHeaderValue",
    "InvalidProxy",
    "InvalidProxyMessage",
    "InvalidProxyStatus",
    "InvalidScheme",
    "InvalidState",
    "InvalidStatus",
    "InvalidUpgrade",
    "InvalidURI",
    "NegotiationError",
    "PayloadTooBig",
    "ProtocolError",
    "ProxyError",
    "SecurityError",
    "SubprotocolMismatch",
    "SubprotocolMissing",
    "WebSocketException",
    # .handshake
    "ClientHandshake",
    "HandshakeState",
    # .transport
    "Transport",
    # .uri
    "WebSocketURI",
    "parse_uri",
]
