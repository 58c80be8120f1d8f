"""
:mod:`wsconnector.exceptions` defines the following exception hierarchy:

* :exc:`WebSocketException`
    * :exc:`ConnectionClosed`
        * :exc:`ConnectionClosedOK`
        * :exc:`ConnectionClosedError`
    * :exc:`InvalidURI`
        * :exc:`InvalidScheme`
    * :exc:`InvalidProxy`
    * :exc:`ConnectFailed`
    * :exc:`ProxyError`
        * :exc:`InvalidProxyMessage`
        * :exc:`InvalidProxyStatus`
    * :exc:`InvalidHandshake`
        * :exc:`HandshakeFailed`
        * :exc:`SecurityError`
        * :exc:`InvalidStatus`
        * :exc:`InvalidHeader`
            * :exc:`InvalidHeaderFormat`
            * :exc:`InvalidHeaderValue`
            * :exc:`InvalidUpgrade`
        * :exc:`NegotiationError`
            * :exc:`SubprotocolMissing`
            * :exc:`SubprotocolMismatch`
    * :exc:`InvalidState`
    * :exc:`PayloadTooBig`
    * :exc:`ProtocolError`
    * :exc:`ConcurrencyError`

:meth:`~wsconnector.client.Client.connect` fails with exactly one of
:exc:`InvalidURI`, :exc:`InvalidProxy`, :exc:`ConnectFailed`,
:exc:`HandshakeFailed`, :exc:`SubprotocolMissing`, or
:exc:`SubprotocolMismatch`. Lower-level exceptions are chained as their
``__cause__``.

"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .http11 import Response


__all__ = [
    "WebSocketException",
    "ConnectionClosed",
    "ConnectionClosedOK",
    "ConnectionClosedError",
    "InvalidURI",
    "InvalidScheme",
    "InvalidProxy",
    "ConnectFailed",
    "ProxyError",
    "InvalidProxyMessage",
    "InvalidProxyStatus",
    "InvalidHandshake",
    "HandshakeFailed",
    "SecurityError",
    "InvalidStatus",
    "InvalidHeader",
    "InvalidHeaderFormat",
    "InvalidHeaderValue",
    "InvalidUpgrade",
    "NegotiationError",
    "SubprotocolMissing",
    "SubprotocolMismatch",
    "InvalidState",
    "PayloadTooBig",
    "ProtocolError",
    "ConcurrencyError",
]


class WebSocketException(Exception):
    """
    Base class for all exceptions defined by wsconnector.

    """


class ConnectionClosed(WebSocketException):
    """
    Raised when trying to interact with a closed connection.

    Attributes:
        code: Close code of the connection, 1006 if it was lost without a
            closing handshake.
        reason: Close reason, possibly empty.

    """

    def __init__(self, code: int, reason: str) -> None:
        self.code = code
        self.reason = reason

    def __str__(self) -> str:
        # Avoid a circular import at module level.
        from .frames import Close

        return f"connection closed: {Close(self.code, self.reason)}"


class ConnectionClosedOK(ConnectionClosed):
    """
    Like :exc:`ConnectionClosed`, when the connection terminated properly.

    The close code is 1000 (OK), 1001 (going away), or 1005 (no status code).

    """


class ConnectionClosedError(ConnectionClosed):
    """
    Like :exc:`ConnectionClosed`, when the connection terminated with an error.

    """


class InvalidURI(WebSocketException):
    """
    Raised when connecting to a URI that isn't a valid WebSocket URI.

    """

    def __init__(self, uri: str, msg: str) -> None:
        self.uri = uri
        self.msg = msg

    def __str__(self) -> str:
        return f"{self.uri} isn't a valid URI: {self.msg}"


class InvalidScheme(InvalidURI):
    """
    Raised when the scheme of a URI is neither ``ws`` nor ``wss``.

    It's detected before any network activity.

    """

    def __init__(self, uri: str, scheme: str) -> None:
        super().__init__(uri, f"scheme {scheme!r} isn't ws or wss")
        self.scheme = scheme

    def __str__(self) -> str:
        return f"URI is not a websocket: {self.uri}"


class InvalidProxy(WebSocketException):
    """
    Raised when a proxy found in the environment isn't a valid proxy.

    """

    def __init__(self, proxy: str, msg: str) -> None:
        self.proxy = proxy
        self.msg = msg

    def __str__(self) -> str:
        return f"{self.proxy} isn't a valid proxy: {self.msg}"


class ConnectFailed(WebSocketException):
    """
    Raised when the TCP connection, the proxy tunnel, or the TLS handshake
    cannot be established.

    The underlying error is available in ``__cause__``.

    """

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def __str__(self) -> str:
        return f"connect error: {self.reason}"


class ProxyError(WebSocketException):
    """
    Raised when connecting through a proxy fails.

    """


class InvalidProxyMessage(ProxyError):
    """
    Raised when an HTTP proxy response is malformed.

    """


class InvalidProxyStatus(ProxyError):
    """
    Raised when an HTTP proxy rejects the connection.

    """

    def __init__(self, response: Response) -> None:
        self.response = response

    def __str__(self) -> str:
        return f"proxy rejected connection: HTTP {self.response.status_code:d}"


class InvalidHandshake(WebSocketException):
    """
    Raised during the handshake when the WebSocket connection fails.

    """


class HandshakeFailed(InvalidHandshake):
    """
    Raised when the opening handshake response cannot be accepted.

    ``detail`` describes the problem reported by the handshake parser.

    """

    def __init__(self, detail: str) -> None:
        self.detail = detail

    def __str__(self) -> str:
        return f"handshake error: {self.detail}"


class SecurityError(InvalidHandshake):
    """
    Raised when a handshake response breaks a security rule.

    Security limits can be configured with environment variables.

    """


class InvalidStatus(InvalidHandshake):
    """
    Raised when a handshake response rejects the WebSocket upgrade.

    """

    def __init__(self, response: Response) -> None:
        self.response = response

    def __str__(self) -> str:
        return (
            "server rejected WebSocket connection: "
            f"HTTP {self.response.status_code:d}"
        )


class InvalidHeader(InvalidHandshake):
    """
    Raised when an HTTP header doesn't have a valid format or value.

    """

    def __init__(self, name: str, value: str | None = None) -> None:
        self.name = name
        self.value = value

    def __str__(self) -> str:
        if self.value is None:
            return f"missing {self.name} header"
        elif self.value == "":
            return f"empty {self.name} header"
        else:
            return f"invalid {self.name} header: {self.value}"


class InvalidHeaderFormat(InvalidHeader):
    """
    Raised when an HTTP header cannot be parsed.

    The format of the header doesn't match the grammar for that header.

    """

    def __init__(self, name: str, error: str, header: str, pos: int) -> None:
        super().__init__(name, f"{error} at {pos} in {header}")


class InvalidHeaderValue(InvalidHeader):
    """
    Raised when an HTTP header has a wrong value.

    The format of the header is correct but the value isn't acceptable.

    """


class InvalidUpgrade(InvalidHeader):
    """
    Raised when the Upgrade or Connection header isn't correct.

    """


class NegotiationError(InvalidHandshake):
    """
    Raised when negotiating a subprotocol fails.

    """


class SubprotocolMissing(NegotiationError):
    """
    Raised when subprotocols were requested but the server selected none.

    """

    def __str__(self) -> str:
        return "no subprotocol in response"


class SubprotocolMismatch(NegotiationError):
    """
    Raised when the server selected a subprotocol that wasn't requested.

    """

    def __init__(self, requested: Sequence[str], subprotocol: str) -> None:
        self.requested = list(requested)
        self.subprotocol = subprotocol

    def __str__(self) -> str:
        return (
            f"subprotocol mismatch, requested: {', '.join(self.requested)}, "
            f"got: {self.subprotocol}"
        )


class InvalidState(WebSocketException, AssertionError):
    """
    Raised when an operation is forbidden in the current state.

    This exception is an implementation detail.

    It should never be raised in normal circumstances.

    """


class PayloadTooBig(WebSocketException):
    """
    Raised when a message exceeds the configured size or fragment limits.

    """


class ProtocolError(WebSocketException):
    """
    Raised when a frame breaks the protocol.

    """


class ConcurrencyError(WebSocketException, RuntimeError):
    """
    Raised when receiving messages concurrently on the same connection.

    """
