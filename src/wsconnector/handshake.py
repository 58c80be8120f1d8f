"""
Opening handshake of the WebSocket protocol, client side.

See `section 4 of RFC 6455`_.

.. _section 4 of RFC 6455: https://datatracker.ietf.org/doc/html/rfc6455#section-4

:class:`ClientHandshake` doesn't perform any I/O. Callers send the bytes
returned by :meth:`~ClientHandshake.to_bytes` and feed the bytes they receive
to :meth:`~ClientHandshake.parse` until :attr:`~ClientHandshake.state` is
:attr:`HandshakeState.COMPLETE` or :attr:`HandshakeState.ERROR`.

"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence

from .datastructures import Headers, MultipleValuesError
from .exceptions import (
    InvalidHandshake,
    InvalidHeader,
    InvalidHeaderValue,
    InvalidState,
    InvalidStatus,
    InvalidUpgrade,
)
from .headers import (
    build_authorization_basic,
    build_host,
    build_subprotocol,
    parse_connection,
    parse_upgrade,
)
from .http11 import USER_AGENT, Request, Response
from .streams import StreamReader
from .typing import ConnectionOption, Subprotocol, UpgradeProtocol
from .uri import WebSocketURI
from .utils import accept_key, generate_key


__all__ = [
    "ClientHandshake",
    "HandshakeState",
    "PROTOCOL_VERSIONS",
    "normalize_version",
]


class HandshakeState(enum.IntEnum):
    """A WebSocket opening handshake moves from PENDING to ERROR or COMPLETE."""

    PENDING, ERROR, COMPLETE = range(3)


PENDING = HandshakeState.PENDING
ERROR = HandshakeState.ERROR
COMPLETE = HandshakeState.COMPLETE


# Map protocol names and versions to the value of Sec-WebSocket-Version.
PROTOCOL_VERSIONS = {
    "draft-ietf-hybi-17": "13",
    "13": "13",
    "draft-ietf-hybi-10": "8",
    "8": "8",
}

DEFAULT_VERSION = "13"


def normalize_version(version: str | int) -> str:
    """
    Return the ``Sec-WebSocket-Version`` value for a protocol version.

    Raises:
        ValueError: If the protocol version isn't supported.

    """
    try:
        return PROTOCOL_VERSIONS[str(version)]
    except KeyError:
        raise ValueError(f"unsupported protocol version: {version}") from None


class ClientHandshake:
    """
    Opening handshake of a WebSocket client connection.

    Args:
        uri: URI of the WebSocket server.
        version: Value of the ``Sec-WebSocket-Version`` header.
        headers: Additional request headers, in order.
        subprotocols: Subprotocols to request, in order of preference.
        user_agent: Value of the ``User-Agent`` header. :obj:`None` removes
            it. It's ignored when ``headers`` contains a ``User-Agent``.

    """

    def __init__(
        self,
        uri: WebSocketURI,
        *,
        version: str = DEFAULT_VERSION,
        headers: Iterable[tuple[str, str]] = (),
        subprotocols: Sequence[Subprotocol] = (),
        user_agent: str | None = USER_AGENT,
    ) -> None:
        self.uri = uri
        self.version = normalize_version(version)
        self.headers = list(headers)
        self.subprotocols = list(subprotocols)
        self.user_agent = user_agent
        self.key = generate_key()

        self.state = PENDING
        self.request: Request | None = None
        self.response: Response | None = None
        self.exception: Exception | None = None

        self.reader = StreamReader()
        self.parser = Response.parse(self.reader.read_line)
        # Run the parser until it needs data.
        next(self.parser)

    def connect(self) -> Request:
        """
        Create the handshake request.

        """
        headers = Headers()
        headers["Host"] = build_host(self.uri.host, self.uri.port, self.uri.secure)
        headers["Upgrade"] = "websocket"
        headers["Connection"] = "Upgrade"
        headers["Sec-WebSocket-Key"] = self.key
        headers["Sec-WebSocket-Version"] = self.version
        if self.subprotocols:
            headers["Sec-WebSocket-Protocol"] = build_subprotocol(self.subprotocols)
        if self.uri.user_info:
            headers["Authorization"] = build_authorization_basic(*self.uri.user_info)
        for name, value in self.headers:
            headers[name] = value
        if self.user_agent is not None and "User-Agent" not in headers:
            headers["User-Agent"] = self.user_agent
        return Request(self.uri.resource_name, headers)

    def to_bytes(self) -> bytes:
        """
        Return the handshake request to send to the server.

        The request is built once; later calls return the same bytes.

        """
        if self.request is None:
            self.request = self.connect()
        return self.request.serialize()

    def parse(self, data: bytes) -> None:
        """
        Receive bytes from the server and advance the handshake.

        Args:
            data: Bytes received from the network, or ``b""`` when the
                server closed the connection.

        Raises:
            InvalidState: If the handshake already completed or failed.

        """
        if self.state is not PENDING:
            raise InvalidState(f"handshake is {self.state.name.lower()}")
        if data:
            self.reader.feed_data(data)
        else:
            self.reader.feed_eof()
        try:
            next(self.parser)
        except StopIteration as exc:
            self.response = exc.value
            assert self.response is not None
            try:
                self.process_response(self.response)
            except InvalidHandshake as exc:
                self.fail(exc)
            else:
                self.state = COMPLETE
        except (EOFError, ValueError, InvalidHandshake) as exc:
            self.fail(exc)

    def fail(self, exc: Exception) -> None:
        self.exception = exc
        self.state = ERROR
        del self.parser

    @property
    def error(self) -> str | None:
        """
        Description of the problem when :attr:`state` is :attr:`ERROR`.

        """
        if self.exception is None:
            return None
        return str(self.exception)

    @property
    def subprotocol(self) -> Subprotocol | None:
        """
        Subprotocol selected by the server, if any.

        It isn't checked against the requested subprotocols.

        """
        if self.response is None:
            return None
        values = self.response.headers.get_all("Sec-WebSocket-Protocol")
        if not values:
            return None
        return Subprotocol(", ".join(values))

    @property
    def remaining(self) -> bytes:
        """
        Bytes received after the end of the handshake response.

        """
        return bytes(self.reader.buffer)

    def process_response(self, response: Response) -> None:
        """
        Check a handshake response.

        Raises:
            InvalidHandshake: If the handshake response is invalid.

        """
        if response.status_code != 101:
            raise InvalidStatus(response)

        headers = response.headers

        connection: list[ConnectionOption] = sum(
            [parse_connection(value) for value in headers.get_all("Connection")], []
        )
        if not any(value.lower() == "upgrade" for value in connection):
            raise InvalidUpgrade(
                "Connection", ", ".join(connection) if connection else None
            )

        upgrade: list[UpgradeProtocol] = sum(
            [parse_upgrade(value) for value in headers.get_all("Upgrade")], []
        )
        # For compatibility with non-strict implementations, ignore case when
        # checking the Upgrade header. It's supposed to be 'WebSocket'.
        if not (len(upgrade) == 1 and upgrade[0].lower() == "websocket"):
            raise InvalidUpgrade("Upgrade", ", ".join(upgrade) if upgrade else None)

        try:
            s_w_accept = headers["Sec-WebSocket-Accept"]
        except KeyError:
            raise InvalidHeader("Sec-WebSocket-Accept") from None
        except MultipleValuesError:
            raise InvalidHeader("Sec-WebSocket-Accept", "multiple values") from None
        if s_w_accept != accept_key(self.key):
            raise InvalidHeaderValue("Sec-WebSocket-Accept", s_w_accept)
