from __future__ import annotations

import asyncio
import logging
import socket
import ssl as ssl_module
from collections.abc import Sequence
from typing import Any

from .config import ClientConfig
from .connection import Connection
from .exceptions import (
    ConnectFailed,
    HandshakeFailed,
    InvalidState,
    ProxyError,
    SubprotocolMismatch,
    SubprotocolMissing,
)
from .handshake import ERROR, PENDING, ClientHandshake
from .proxy import Proxy, select_proxy
from .transport import UNIX_HOST, Transport
from .typing import LoggerLike, PrepareHook, Subprotocol
from .uri import WebSocketURI, parse_uri


__all__ = ["Client", "HandshakeSession", "connect"]


class HandshakeSession:
    """
    State of an opening handshake, from the connection to the result.

    The outcome is delivered exactly once, with :meth:`resolve` or
    :meth:`fail`. Then the session releases the handshake and the future.

    Args:
        handshake: Parser and serializer of the opening handshake.
        subprotocols: Subprotocols requested, in order of preference.
        future: Result of the connection attempt.

    """

    def __init__(
        self,
        handshake: ClientHandshake,
        subprotocols: Sequence[Subprotocol],
        future: asyncio.Future[Connection],
    ) -> None:
        self.handshake: ClientHandshake | None = handshake
        self.requested = tuple(subprotocols)
        self.subprotocols = frozenset(subprotocols)
        self.future: asyncio.Future[Connection] | None = future

    @property
    def done(self) -> bool:
        return self.future is None

    def accept_subprotocol(
        self,
        subprotocol: Subprotocol | None,
    ) -> Subprotocol | None:
        """
        Check the subprotocol selected by the server.

        When no subprotocol was requested, any answer is accepted.

        Raises:
            SubprotocolMissing: If subprotocols were requested and the server
                didn't select one.
            SubprotocolMismatch: If the server selected a subprotocol that
                wasn't requested.

        """
        if not self.subprotocols:
            return subprotocol
        if subprotocol is None:
            raise SubprotocolMissing()
        if subprotocol not in self.subprotocols:
            raise SubprotocolMismatch(self.requested, subprotocol)
        return subprotocol

    def resolve(self, connection: Connection) -> None:
        future = self.release()
        if future.done():
            # The future was cancelled. Nobody will use the connection.
            connection.abort()
        else:
            future.set_result(connection)

    def fail(self, exc: BaseException) -> None:
        future = self.release()
        if not future.done():
            future.set_exception(exc)

    def release(self) -> asyncio.Future[Connection]:
        if self.future is None:
            raise InvalidState("handshake session is already done")
        future, self.future = self.future, None
        self.handshake = None
        return future


def resolve_port(port: int | str) -> int:
    """
    Return the TCP port for a port number or a service name like ``"http"``.

    Raises:
        ConnectFailed: If ``port`` is an unknown service name.

    """
    if isinstance(port, int):
        return port
    if port.isdigit():
        return int(port)
    try:
        return socket.getservbyname(port, "tcp")
    except OSError as exc:
        raise ConnectFailed(f"unknown service: {port}") from exc


def describe(exc: BaseException) -> str:
    """
    Describe why a connection couldn't be established.

    """
    if isinstance(exc, asyncio.TimeoutError) and not str(exc):
        return "timed out"
    return str(exc) or "unable to connect"


class Client:
    """
    WebSocket client.

    A :class:`Client` opens connections to WebSocket servers with the same
    configuration. Options are those of
    :class:`~wsconnector.config.ClientConfig`::

        client = Client(subprotocols=["chat"], env_proxy=True)
        websocket = await client.connect("wss://example.com/chat")

    Args:
        config: Configuration. Alternatively, pass options as keyword
            arguments.
        transport: Opens network connections. It defaults to a
            :class:`~wsconnector.transport.Transport`.
        logger: Logger for this client.
            It defaults to ``logging.getLogger("wsconnector.client")``.

    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        logger: LoggerLike | None = None,
        **options: Any,
    ) -> None:
        if config is None:
            config = ClientConfig(**options)
        elif options:
            raise TypeError("pass either config or options, not both")
        self.config = config

        if logger is None:
            logger = logging.getLogger("wsconnector.client")
        self.logger = logger

        if transport is None:
            transport = Transport()
        self.transport = transport

        # Keep references to running attempts so they aren't garbage collected.
        self.attempts: set[asyncio.Task[None]] = set()

    def connect(
        self,
        uri: str | WebSocketURI,
        host: str | None = None,
        port: int | str | None = None,
        *,
        prepare: PrepareHook | None = None,
    ) -> asyncio.Future[Connection]:
        """
        Connect to a WebSocket server.

        :meth:`connect` returns immediately. Await the future it returns to
        get a :class:`~wsconnector.connection.Connection`::

            websocket = await client.connect("ws://localhost:8765/")

        Cancelling the future cancels the connection attempt.

        Args:
            uri: URI of the WebSocket server.
            host: Connect to this host instead of the host of ``uri``.
                The ``Host`` header and the TLS server name still come from
                ``uri``. ``"unix/"`` connects to a Unix socket.
            port: Connect to this port instead of the port of ``uri``. It may
                be a service name like ``"http"``. It is the path of the Unix
                socket when ``host`` is ``"unix/"``.
            prepare: Callback receiving each socket before it connects. It
                may set socket options. When it returns a number, this number
                replaces the ``timeout`` option for the connection.

        Returns:
            Future completed with the connection or with one of
            :exc:`~wsconnector.exceptions.InvalidURI`,
            :exc:`~wsconnector.exceptions.InvalidProxy`,
            :exc:`~wsconnector.exceptions.ConnectFailed`,
            :exc:`~wsconnector.exceptions.HandshakeFailed`,
            :exc:`~wsconnector.exceptions.SubprotocolMissing`, or
            :exc:`~wsconnector.exceptions.SubprotocolMismatch`.

        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Connection] = loop.create_future()

        try:
            ws_uri = parse_uri(uri) if isinstance(uri, str) else uri
            if host is None:
                host = ws_uri.host
            if port is None:
                port = ws_uri.port
            if host == UNIX_HOST:
                proxy = None
            else:
                port = resolve_port(port)
                proxy = select_proxy(ws_uri.scheme, host, port, self.config.env_proxy)
        except Exception as exc:
            self.logger.debug("! cannot connect to %s: %s", uri, exc)
            future.set_exception(exc)
            return future

        task = loop.create_task(
            self.attempt(future, ws_uri, host, port, proxy=proxy, prepare=prepare)
        )
        self.attempts.add(task)

        def cancel_attempt(future: asyncio.Future[Connection]) -> None:
            if future.cancelled():
                task.cancel()

        def cancel_future(task: asyncio.Task[None]) -> None:
            self.attempts.discard(task)
            if task.cancelled() and not future.done():
                future.cancel()

        future.add_done_callback(cancel_attempt)
        task.add_done_callback(cancel_future)
        return future

    async def attempt(
        self,
        future: asyncio.Future[Connection],
        ws_uri: WebSocketURI,
        host: str,
        port: int | str,
        *,
        proxy: Proxy | None = None,
        prepare: PrepareHook | None = None,
    ) -> None:
        """
        Run a connection attempt and deliver its result to ``future``.

        """
        config = self.config
        self.logger.debug("= connecting to %s", ws_uri)

        try:
            reader, writer = await self.transport.open_connection(
                host,
                port,
                proxy=proxy,
                prepare=prepare,
                timeout=config.timeout,
                ssl=self.ssl_context() if ws_uri.secure else None,
                server_hostname=ws_uri.host,
                user_agent=config.user_agent,
            )
        except (OSError, asyncio.TimeoutError, ProxyError) as exc:
            self.logger.debug("! connect error: %r", exc)
            error = ConnectFailed(describe(exc))
            error.__cause__ = exc
            self.deliver(future, error)
            return
        except Exception as exc:
            self.deliver(future, exc)
            return

        session = HandshakeSession(
            self.build_handshake(ws_uri),
            config.subprotocols,  # type: ignore[arg-type]
            future,
        )
        try:
            connection = await asyncio.wait_for(
                self.negotiate(session, reader, writer),
                config.handshake_timeout,
            )
        except asyncio.TimeoutError as exc:
            handshake_error: Exception = HandshakeFailed("timed out during handshake")
            handshake_error.__cause__ = exc
        except Exception as exc:
            handshake_error = exc
        except BaseException:
            self.close_writer(writer)
            raise
        else:
            self.logger.debug("= connection is OPEN")
            session.resolve(connection)
            return

        self.logger.debug("! %s", handshake_error)
        self.close_writer(writer)
        session.fail(handshake_error)

    async def negotiate(
        self,
        session: HandshakeSession,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> Connection:
        """
        Perform the opening handshake on a new connection.

        Raises:
            HandshakeFailed: If the handshake fails.
            NegotiationError: If the subprotocol isn't acceptable.

        """
        handshake = session.handshake
        assert handshake is not None

        try:
            writer.write(handshake.to_bytes())
            if self.logger.isEnabledFor(logging.DEBUG):
                assert handshake.request is not None
                self.logger.debug("> GET %s HTTP/1.1", handshake.request.path)
                for key, value in handshake.request.headers.raw_items():
                    self.logger.debug("> %s: %s", key, value)
            await writer.drain()

            while handshake.state is PENDING:
                data = await reader.read(4096)
                handshake.parse(data)
        except OSError as exc:
            raise HandshakeFailed(describe(exc)) from exc

        if handshake.state is ERROR:
            assert handshake.error is not None
            raise HandshakeFailed(handshake.error) from handshake.exception

        response = handshake.response
        assert response is not None
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "< HTTP/1.1 %d %s", response.status_code, response.reason_phrase
            )
            for key, value in response.headers.raw_items():
                self.logger.debug("< %s: %s", key, value)

        subprotocol = session.accept_subprotocol(handshake.subprotocol)

        return Connection(
            reader,
            writer,
            masked=True,
            subprotocol=subprotocol,
            max_payload_size=self.config.max_payload_size,
            max_fragments=self.config.max_fragments,
            close_timeout=self.config.close_timeout,
            buffered=handshake.remaining,
        )

    def build_handshake(self, ws_uri: WebSocketURI) -> ClientHandshake:
        config = self.config
        return ClientHandshake(
            ws_uri,
            version=config.version,
            headers=config.headers,  # type: ignore[arg-type]
            subprotocols=config.subprotocols,  # type: ignore[arg-type]
            user_agent=config.user_agent,
        )

    def ssl_context(self) -> ssl_module.SSLContext:
        """
        Create the TLS configuration for ``wss://`` connections.

        """
        context = ssl_module.create_default_context(cafile=self.config.tls_ca_file)
        if not self.config.tls_verify:
            context.check_hostname = False
            context.verify_mode = ssl_module.CERT_NONE
        return context

    def close_writer(self, writer: asyncio.StreamWriter) -> None:
        # Close the connection without a closing handshake.
        try:
            writer.transport.abort()
        except Exception:
            self.logger.warning("error while closing connection", exc_info=True)

    def deliver(self, future: asyncio.Future[Connection], exc: BaseException) -> None:
        if not future.done():
            future.set_exception(exc)


async def connect(
    uri: str | WebSocketURI,
    host: str | None = None,
    port: int | str | None = None,
    *,
    prepare: PrepareHook | None = None,
    logger: LoggerLike | None = None,
    **options: Any,
) -> Connection:
    """
    Connect to a WebSocket server with a one-off :class:`Client`.

    Options are those of :class:`~wsconnector.config.ClientConfig`::

        async with await connect("ws://localhost:8765/", timeout=5) as websocket:
            await websocket.send("Hello world!")

    """
    client = Client(logger=logger, **options)
    return await client.connect(uri, host, port, prepare=prepare)
