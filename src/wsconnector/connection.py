from __future__ import annotations

import asyncio
import enum
import logging
import random
import struct
from collections.abc import AsyncIterator, Awaitable
from types import TracebackType
from typing import Any

from .exceptions import (
    ConcurrencyError,
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    PayloadTooBig,
    ProtocolError,
)
from .frames import (
    OK_CLOSE_CODES,
    OP_BINARY,
    OP_CLOSE,
    OP_CONT,
    OP_PING,
    OP_PONG,
    OP_TEXT,
    Close,
    CloseCode,
    Frame,
    prepare_ctrl,
    prepare_data,
)
from .streams import StreamReader
from .typing import BytesLike, Data, LoggerLike, Subprotocol


__all__ = ["Connection", "State"]


class State(enum.IntEnum):
    """A WebSocket connection is in one of these three states."""

    OPEN, CLOSING, CLOSED = range(1, 4)


OPEN = State.OPEN
CLOSING = State.CLOSING
CLOSED = State.CLOSED


class Connection:
    """
    :mod:`asyncio` implementation of an open WebSocket connection.

    A :class:`Connection` is returned by a successful opening handshake. It
    provides :meth:`recv` and :meth:`send` coroutines for receiving and
    sending messages.

    It supports asynchronous iteration to receive messages::

        async for message in websocket:
            await process(message)

    The iterator exits normally when the connection is closed with close code
    1000 (OK) or 1001 (going away) or without a close code. It raises a
    :exc:`~wsconnector.exceptions.ConnectionClosedError` when the connection
    is closed with any other code.

    Control frames are processed while :meth:`recv` waits for a message:
    pings are answered with pongs, pongs acknowledge pending pings, and
    close frames complete the closing handshake.

    Args:
        reader: Stream of bytes received from the server.
        writer: Stream of bytes sent to the server.
        masked: Whether outgoing frames are masked. Clients always mask.
        subprotocol: Subprotocol accepted during the opening handshake.
        max_payload_size: Maximum size of incoming messages in bytes.
        max_fragments: Maximum number of frames in an incoming message.
        close_timeout: Timeout for the closing handshake in seconds.
        buffered: Bytes received after the opening handshake response.
        logger: Logger for this connection.
            It defaults to ``logging.getLogger("wsconnector.connection")``.

    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        masked: bool = True,
        subprotocol: Subprotocol | None = None,
        max_payload_size: int | None = None,
        max_fragments: int | None = None,
        close_timeout: float | None = 10,
        buffered: bytes = b"",
        logger: LoggerLike | None = None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.masked = masked
        self._subprotocol = subprotocol
        self.max_payload_size = max_payload_size
        self.max_fragments = max_fragments
        self.close_timeout = close_timeout
        if logger is None:
            logger = logging.getLogger("wsconnector.connection")
        self.logger = logger

        self._state = OPEN
        self.close_rcvd: Close | None = None
        self.close_sent: Close | None = None

        # Frames are parsed from this buffer.
        self.stream = StreamReader()
        if buffered:
            self.stream.feed_data(buffered)

        # Protect against concurrent calls to recv().
        self.recv_in_progress = False

        # Set when the TCP connection is closed.
        self.closed = asyncio.Event()

        # Mapping of ping IDs to pong waiters, in chronological order.
        self.pending_pings: dict[bytes, tuple[asyncio.Future[float], float]] = {}

    # Public attributes

    @property
    def local_address(self) -> Any:
        """
        Local address of the connection.

        For IPv4 connections, this is a ``(host, port)`` tuple.

        """
        return self.writer.get_extra_info("sockname")

    @property
    def remote_address(self) -> Any:
        """
        Remote address of the connection.

        For IPv4 connections, this is a ``(host, port)`` tuple.

        """
        return self.writer.get_extra_info("peername")

    @property
    def state(self) -> State:
        """
        State of the WebSocket connection.

        """
        return self._state

    @property
    def subprotocol(self) -> Subprotocol | None:
        """
        Subprotocol negotiated during the opening handshake.

        :obj:`None` if no subprotocol was negotiated.

        """
        return self._subprotocol

    @property
    def close_code(self) -> int | None:
        """
        Close code of the connection.

        :obj:`None` until the connection is closed. 1006 if the connection
        was lost without a closing handshake.

        """
        if self._state is not CLOSED:
            return None
        return self.close_frame().code

    @property
    def close_reason(self) -> str | None:
        """
        Close reason of the connection.

        :obj:`None` until the connection is closed.

        """
        if self._state is not CLOSED:
            return None
        return self.close_frame().reason

    # Public methods

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self.close()
        else:
            await self.close(CloseCode.INTERNAL_ERROR)

    async def __aiter__(self) -> AsyncIterator[Data]:
        """
        Iterate on incoming messages.

        The iterator calls :meth:`recv` and yields messages asynchronously in an
        infinite loop.

        It exits when the connection is closed normally. It raises a
        :exc:`~wsconnector.exceptions.ConnectionClosedError` exception after a
        protocol error or a network failure.

        """
        try:
            while True:
                yield await self.recv()
        except ConnectionClosedOK:
            return

    async def recv(self) -> Data:
        """
        Receive the next message.

        Fragmented messages are reassembled. A text message is returned as a
        :class:`str`, a binary message as :class:`bytes`.

        Raises:
            ConnectionClosed: When the connection is closed.
            ConcurrencyError: If two coroutines call :meth:`recv`
                concurrently.
            PayloadTooBig: If the message exceeds ``max_payload_size`` or
                ``max_fragments``. The connection is closed with code 1009.

        """
        if self.recv_in_progress:
            raise ConcurrencyError(
                "cannot call recv while another coroutine "
                "is already running recv"
            )
        self.recv_in_progress = True
        try:
            return await self.recv_message()
        finally:
            self.recv_in_progress = False

    async def send(self, message: Data | BytesLike) -> None:
        """
        Send a message.

        A :class:`str` is sent as a Text_ frame. A bytestring or bytes-like
        object is sent as a Binary_ frame.

        .. _Text: https://datatracker.ietf.org/doc/html/rfc6455#section-5.6
        .. _Binary: https://datatracker.ietf.org/doc/html/rfc6455#section-5.6

        Raises:
            ConnectionClosed: When the connection is closed.
            TypeError: If ``message`` doesn't have a supported type.

        """
        if self._state is not OPEN:
            raise self.connection_closed_exc()
        opcode, data = prepare_data(message)
        await self.write_frame(Frame(opcode, data))

    async def ping(self, data: Data | BytesLike | None = None) -> Awaitable[float]:
        """
        Send a Ping_.

        .. _Ping: https://datatracker.ietf.org/doc/html/rfc6455#section-5.5.2

        Args:
            data: Payload of the ping. A :class:`str` will be encoded to UTF-8.
                If ``data`` is :obj:`None`, the payload is four random bytes.

        Returns:
            A future that will be completed when the corresponding pong is
            received. The result of the future is the latency of the
            connection in seconds. Pongs are only processed while
            :meth:`recv` runs.

        Raises:
            ConnectionClosed: When the connection is closed.
            ConcurrencyError: If another ping was sent with the same data and
                the corresponding pong wasn't received yet.

        """
        if self._state is not OPEN:
            raise self.connection_closed_exc()

        if data is not None:
            data = prepare_ctrl(data)

        # Protect against duplicates if a payload is explicitly set.
        if data in self.pending_pings:
            raise ConcurrencyError("already waiting for a pong with the same data")

        # Generate a unique random payload otherwise.
        while data is None or data in self.pending_pings:
            data = struct.pack("!I", random.getrandbits(32))

        loop = asyncio.get_running_loop()
        pong_received: asyncio.Future[float] = loop.create_future()
        self.pending_pings[data] = (pong_received, loop.time())
        await self.write_frame(Frame(OP_PING, data))
        return pong_received

    async def close(
        self,
        code: CloseCode | int = CloseCode.NORMAL_CLOSURE,
        reason: str = "",
    ) -> None:
        """
        Perform the closing handshake.

        :meth:`close` waits for the server to complete the handshake, up to
        ``close_timeout``, then closes the TCP connection.

        :meth:`close` is idempotent: it doesn't do anything once the
        connection is closed.

        Args:
            code: WebSocket close code.
            reason: WebSocket close reason.

        """
        if self._state is OPEN:
            close = Close(code, reason)
            data = close.serialize()
            self._state = CLOSING
            self.close_sent = close
            try:
                await self.write_frame(Frame(OP_CLOSE, data))
            except ConnectionClosed:
                pass

        if self._state is CLOSING:
            try:
                await asyncio.wait_for(self.wait_close_frame(), self.close_timeout)
            except asyncio.TimeoutError:
                self.logger.debug("timed out waiting for close frame")

        await self.close_transport()

    def abort(self) -> None:
        """
        Close the TCP connection immediately, without a closing handshake.

        """
        if self._state is CLOSED:
            return
        self._state = CLOSED
        self.terminate_pending_pings()
        self.writer.transport.abort()
        self.closed.set()

    # Private methods

    async def read_frame(self) -> Frame:
        """
        Read the next frame from the network.

        Raises:
            EOFError: If the connection is closed without a full frame.
            ProtocolError: If the frame is invalid.
            PayloadTooBig: If the frame exceeds ``max_payload_size``.

        """
        parser = Frame.parse(
            self.stream.read_exact,
            mask=not self.masked,
            max_size=self.max_payload_size,
        )
        try:
            next(parser)
            while True:
                data = await self.reader.read(65536)
                if data:
                    self.stream.feed_data(data)
                else:
                    self.stream.feed_eof()
                next(parser)
        except StopIteration as exc:
            frame: Frame = exc.value
        self.logger.debug("< %s", frame)
        return frame

    async def write_frame(self, frame: Frame) -> None:
        self.logger.debug("> %s", frame)
        try:
            self.writer.write(frame.serialize(mask=self.masked))
            await self.writer.drain()
        except OSError as exc:
            await self.close_transport(abort=True)
            raise self.connection_closed_exc() from exc

    async def recv_message(self) -> Data:
        fragments: list[bytes] = []
        size = 0
        opcode = None

        while True:
            frame = await self.recv_frame()

            if frame.opcode is OP_CONT:
                if opcode is None:
                    await self.fail(
                        CloseCode.PROTOCOL_ERROR, "unexpected continuation frame"
                    )
                    raise self.connection_closed_exc()
            elif opcode is not None:
                await self.fail(
                    CloseCode.PROTOCOL_ERROR, "expected a continuation frame"
                )
                raise self.connection_closed_exc()
            else:
                opcode = frame.opcode

            fragments.append(frame.data)
            size += len(frame.data)
            if self.max_fragments is not None and len(fragments) > self.max_fragments:
                await self.fail(CloseCode.MESSAGE_TOO_BIG, "too many fragments")
                raise PayloadTooBig(
                    f"over fragment limit ({len(fragments)} > {self.max_fragments})"
                )
            if self.max_payload_size is not None and size > self.max_payload_size:
                await self.fail(CloseCode.MESSAGE_TOO_BIG, "message too big")
                raise PayloadTooBig(
                    f"over size limit ({size} > {self.max_payload_size} bytes)"
                )

            if frame.fin:
                break

        data = b"".join(fragments)
        if opcode is OP_BINARY:
            return data
        assert opcode is OP_TEXT
        try:
            return data.decode()
        except UnicodeDecodeError as exc:
            await self.fail(
                CloseCode.INVALID_DATA, f"{exc.reason} at position {exc.start}"
            )
            raise self.connection_closed_exc() from exc

    async def recv_frame(self) -> Frame:
        """
        Return the next data frame, processing control frames on the way.

        """
        while True:
            if self._state is CLOSED:
                raise self.connection_closed_exc()

            try:
                frame = await self.read_frame()
            except (EOFError, OSError) as exc:
                await self.close_transport(abort=True)
                raise self.connection_closed_exc() from exc
            except ProtocolError as exc:
                await self.fail(CloseCode.PROTOCOL_ERROR, str(exc))
                raise self.connection_closed_exc() from exc
            except PayloadTooBig:
                await self.fail(CloseCode.MESSAGE_TOO_BIG, "frame too big")
                raise

            if frame.opcode is OP_PING:
                # Answer pings, unless a close frame was sent.
                if self._state is OPEN:
                    await self.write_frame(Frame(OP_PONG, frame.data))
            elif frame.opcode is OP_PONG:
                self.acknowledge_pings(frame.data)
            elif frame.opcode is OP_CLOSE:
                await self.process_close(frame)
                raise self.connection_closed_exc()
            elif self._state is OPEN:
                return frame
            # Data frames received after sending a close frame are discarded.

    async def wait_close_frame(self) -> None:
        """
        Wait until the server answers a close frame.

        """
        if self.recv_in_progress:
            # The coroutine running recv() receives the close frame.
            await self.closed.wait()
            return
        try:
            await self.recv_frame()
        except ConnectionClosed:
            pass

    async def process_close(self, frame: Frame) -> None:
        try:
            self.close_rcvd = Close.parse(frame.data)
        except (ProtocolError, UnicodeDecodeError) as exc:
            await self.fail(CloseCode.PROTOCOL_ERROR, str(exc))
            return
        if self._state is OPEN:
            # Echo the close frame to complete the closing handshake.
            self._state = CLOSING
            self.close_sent = Close(self.close_rcvd.code, self.close_rcvd.reason)
            if self.close_sent.code == CloseCode.NO_STATUS_RCVD:
                data = b""
            else:
                data = self.close_sent.serialize()
            try:
                await self.write_frame(Frame(OP_CLOSE, data))
            except ConnectionClosed:
                return
        await self.close_transport()

    async def fail(self, code: int, reason: str) -> None:
        """
        Send a close frame then close the TCP connection without waiting.

        """
        self.logger.debug("failing connection: %d %s", code, reason)
        if self._state is OPEN:
            self._state = CLOSING
            self.close_sent = Close(code, reason)
            try:
                await self.write_frame(Frame(OP_CLOSE, self.close_sent.serialize()))
            except ConnectionClosed:
                return
        await self.close_transport()

    async def close_transport(self, abort: bool = False) -> None:
        if self._state is CLOSED:
            return
        self._state = CLOSED
        self.terminate_pending_pings()
        if abort:
            self.writer.transport.abort()
        else:
            self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError:
            self.logger.debug("error while closing connection", exc_info=True)
        finally:
            self.closed.set()

    def close_frame(self) -> Close:
        if self.close_rcvd is not None:
            return self.close_rcvd
        if self.close_sent is not None:
            return self.close_sent
        return Close(CloseCode.ABNORMAL_CLOSURE, "")

    def connection_closed_exc(self) -> ConnectionClosed:
        close = self.close_frame()
        exc_type: type[ConnectionClosed]
        if close.code in OK_CLOSE_CODES:
            exc_type = ConnectionClosedOK
        else:
            exc_type = ConnectionClosedError
        return exc_type(close.code, close.reason)

    def acknowledge_pings(self, data: bytes) -> None:
        """
        Acknowledge pings when receiving a pong.

        """
        # Ignore unsolicited pong.
        if data not in self.pending_pings:
            return

        pong_timestamp = asyncio.get_running_loop().time()

        # Sending a pong for only the most recent ping is legal.
        # Acknowledge all previous pings too in that case.
        ping_ids = []
        for ping_id, (pong_received, ping_timestamp) in self.pending_pings.items():
            ping_ids.append(ping_id)
            if not pong_received.done():
                pong_received.set_result(pong_timestamp - ping_timestamp)
            if ping_id == data:
                break

        # Remove acknowledged pings from self.pending_pings.
        for ping_id in ping_ids:
            del self.pending_pings[ping_id]

    def terminate_pending_pings(self) -> None:
        """
        Raise ConnectionClosed in pending pings when the connection is closed.

        """
        exc = self.connection_closed_exc()

        for pong_received, _ping_timestamp in self.pending_pings.values():
            if not pong_received.done():
                pong_received.set_exception(exc)
            # If the exception is never retrieved, it will be logged when ping
            # is garbage-collected. Canceling the future prevents logging it.
            pong_received.cancel()

        self.pending_pings.clear()
