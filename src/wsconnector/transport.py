from __future__ import annotations

import asyncio
import logging
import socket
import ssl as ssl_module

from .exceptions import InvalidHandshake, InvalidProxyMessage, InvalidProxyStatus
from .http11 import USER_AGENT, Response
from .proxy import Proxy, prepare_connect_request
from .streams import StreamReader
from .typing import LoggerLike, PrepareHook


__all__ = ["Transport", "UNIX_HOST"]


# Connecting to this host opens a Unix socket whose path is given as the port.
UNIX_HOST = "unix/"


class Transport:
    """
    Open TCP or Unix connections, optionally through an HTTP proxy and TLS.

    Args:
        logger: Logger for this transport.
            It defaults to ``logging.getLogger("wsconnector.transport")``.

    """

    def __init__(self, *, logger: LoggerLike | None = None) -> None:
        if logger is None:
            logger = logging.getLogger("wsconnector.transport")
        self.logger = logger

    async def open_connection(
        self,
        host: str,
        port: int | str,
        *,
        proxy: Proxy | None = None,
        prepare: PrepareHook | None = None,
        timeout: float | None = None,
        ssl: ssl_module.SSLContext | None = None,
        server_hostname: str | None = None,
        user_agent: str | None = USER_AGENT,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        Connect to ``host`` and ``port`` and return asyncio streams.

        When ``host`` is ``"unix/"``, ``port`` is the path of a Unix socket.

        Args:
            host: Host name or IP address of the server.
            port: TCP port of the server.
            proxy: HTTP proxy to tunnel the connection through.
            prepare: Callback receiving each socket before it connects. When
                it returns a number, this number replaces ``timeout``.
            timeout: Bound in seconds on each step of the connection: the
                TCP connection, the proxy tunnel, and the TLS handshake.
            ssl: TLS configuration. :obj:`None` disables TLS.
            server_hostname: Host name for TLS SNI and certificate checks.
            user_agent: ``User-Agent`` header sent to the proxy.

        Raises:
            OSError: If the connection fails.
            TimeoutError: If a step of the connection times out.
            ProxyError: If the proxy refuses to open a tunnel.

        """
        if proxy is not None:
            sock, timeout = await self.connect_socket(
                proxy.host, proxy.port, prepare=prepare, timeout=timeout
            )
        else:
            sock, timeout = await self.connect_socket(
                host, port, prepare=prepare, timeout=timeout
            )

        try:
            if proxy is not None:
                request = prepare_connect_request(proxy, host, int(port), user_agent)
                await asyncio.wait_for(self.open_tunnel(sock, request), timeout)

            # Wrap the socket in streams. This performs the TLS handshake.
            return await asyncio.wait_for(
                asyncio.open_connection(
                    sock=sock,
                    ssl=ssl,
                    server_hostname=server_hostname if ssl is not None else None,
                ),
                timeout,
            )

        except BaseException:
            self.close_socket(sock)
            raise

    async def connect_socket(
        self,
        host: str,
        port: int | str,
        *,
        prepare: PrepareHook | None = None,
        timeout: float | None = None,
    ) -> tuple[socket.socket, float | None]:
        """
        Return a connected non-blocking socket and the timeout that applies.

        Each address returned by :meth:`~asyncio.loop.getaddrinfo` is tried in
        order until one connects. If none does, the last error is raised.

        """
        loop = asyncio.get_running_loop()

        if host == UNIX_HOST:
            addrinfos = [(socket.AF_UNIX, socket.SOCK_STREAM, 0, "", str(port))]
        else:
            addrinfos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
            if not addrinfos:
                raise OSError(f"getaddrinfo({host!r}) returned empty list")

        error: Exception | None = None
        for family, type_, proto, _, address in addrinfos:
            sock = socket.socket(family, type_, proto)
            try:
                sock.setblocking(False)
                if family in (socket.AF_INET, socket.AF_INET6):
                    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

                attempt_timeout = timeout
                if prepare is not None:
                    prepared = prepare(sock)
                    if prepared is not None:
                        attempt_timeout = prepared

                self.logger.debug("connecting to %s", address)
                await asyncio.wait_for(
                    loop.sock_connect(sock, address), attempt_timeout
                )

            except (OSError, asyncio.TimeoutError) as exc:
                self.logger.debug("failed to connect to %s: %r", address, exc)
                self.close_socket(sock)
                error = exc

            except BaseException:
                self.close_socket(sock)
                raise

            else:
                self.logger.debug("connected to %s", address)
                return sock, attempt_timeout

        assert error is not None
        raise error

    async def open_tunnel(self, sock: socket.socket, request: bytes) -> Response:
        """
        Send a ``CONNECT`` request on ``sock`` and read the proxy's response.

        Raises:
            InvalidProxyMessage: If the proxy doesn't send a valid response.
            InvalidProxyStatus: If the proxy doesn't accept the request.

        """
        loop = asyncio.get_running_loop()
        await loop.sock_sendall(sock, request)

        reader = StreamReader()
        parser = Response.parse(reader.read_line, proxy=True)
        next(parser)
        while True:
            data = await loop.sock_recv(sock, 4096)
            if data:
                reader.feed_data(data)
            else:
                reader.feed_eof()
            try:
                next(parser)
            except StopIteration as exc:
                assert isinstance(exc.value, Response)  # help mypy
                response = exc.value
                break
            except (EOFError, ValueError, InvalidHandshake) as exc:
                raise InvalidProxyMessage(
                    "did not receive a valid HTTP response from proxy"
                ) from exc

        if not 200 <= response.status_code < 300:
            raise InvalidProxyStatus(response)
        # The server speaks only after receiving the handshake request or the
        # TLS client hello. Nothing may follow the response of the proxy.
        if reader.buffer:
            raise InvalidProxyMessage("unexpected data after HTTP response from proxy")
        return response

    def close_socket(self, sock: socket.socket) -> None:
        try:
            sock.close()
        except OSError:
            self.logger.warning("failed to close socket", exc_info=True)
