from __future__ import annotations

import argparse
import asyncio
import os
import sys
import threading


try:
    import readline  # noqa: F401
except ImportError:  # readline isn't available on all platforms
    pass

from .client import connect
from .connection import Connection
from .exceptions import ConnectionClosed
from .frames import Close
from .version import version as wsconnector_version


def print_during_input(string: str) -> None:
    sys.stdout.write(
        # Save cursor position
        "\N{ESC}7"
        # Add a new line
        "\N{LINE FEED}"
        # Move cursor up
        "\N{ESC}[A"
        # Insert blank line, scroll last line down
        "\N{ESC}[L"
        # Print string in the inserted blank line
        f"{string}\N{LINE FEED}"
        # Restore cursor position
        "\N{ESC}8"
        # Move cursor down
        "\N{ESC}[B"
    )
    sys.stdout.flush()


def print_over_input(string: str) -> None:
    sys.stdout.write(
        # Move cursor to beginning of line
        "\N{CARRIAGE RETURN}"
        # Delete current line
        "\N{ESC}[K"
        # Print string
        f"{string}\N{LINE FEED}"
    )
    sys.stdout.flush()


def parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected 'Name: value': {value}")
    return name.strip(), header_value.strip()


async def print_incoming_messages(websocket: Connection) -> None:
    try:
        async for message in websocket:
            if isinstance(message, str):
                print_during_input("< " + message)
            else:
                print_during_input("< (binary) " + message.hex())
    except ConnectionClosed:
        pass


def read_stdin(
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue[str | None],
) -> None:
    # input() blocks. It runs in a daemon thread so it doesn't prevent exiting.
    while True:
        try:
            line: str | None = input("> ")
        except EOFError:  # ^D
            line = None
        try:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        except RuntimeError:  # event loop is closed
            break
        if line is None:
            break


async def send_outgoing_messages(websocket: Connection) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    threading.Thread(target=read_stdin, args=(loop, queue), daemon=True).start()
    while True:
        message = await queue.get()
        if message is None:
            break
        try:
            await websocket.send(message)
        except ConnectionClosed:
            break


async def interact(websocket: Connection) -> None:
    incoming = asyncio.create_task(print_incoming_messages(websocket))
    outgoing = asyncio.create_task(send_outgoing_messages(websocket))
    try:
        await asyncio.wait([incoming, outgoing], return_when=asyncio.FIRST_COMPLETED)
    finally:
        outgoing.cancel()
        await websocket.close()
        await incoming


def main(argv: list[str] | None = None) -> None:
    # Parse command line arguments.
    parser = argparse.ArgumentParser(
        prog="python -m wsconnector",
        description="Interactive WebSocket client.",
    )
    parser.add_argument(
        "--subprotocol",
        action="append",
        dest="subprotocols",
        default=[],
        metavar="NAME",
        help="request a subprotocol; may be repeated",
    )
    parser.add_argument(
        "--header",
        action="append",
        dest="headers",
        default=[],
        type=parse_header,
        metavar="'NAME: VALUE'",
        help="add a request header; may be repeated",
    )
    parser.add_argument(
        "--env-proxy",
        action="store_true",
        help="use the proxy configured in environment variables",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="don't verify the TLS certificate of the server",
    )
    parser.add_argument("--ca-file", metavar="PATH", help="CA certificates file")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30,
        metavar="SECONDS",
        help="timeout for establishing the connection",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--version", action="store_true")
    group.add_argument("uri", metavar="<uri>", nargs="?")
    args = parser.parse_args(argv)

    if args.version:
        print(f"wsconnector {wsconnector_version}")
        return

    if args.uri is None:
        parser.error("the following arguments are required: <uri>")

    # Enable VT100 to support ANSI escape codes in Command Prompt on Windows.
    # See https://github.com/python/cpython/issues/74261 for why this works.
    if sys.platform == "win32":  # pragma: no cover
        os.system("")

    async def run() -> None:
        try:
            websocket = await connect(
                args.uri,
                subprotocols=args.subprotocols,
                headers=args.headers,
                env_proxy=args.env_proxy,
                tls_verify=not args.no_verify,
                tls_ca_file=args.ca_file,
                timeout=args.timeout,
            )
        except Exception as exc:
            print(f"Failed to connect to {args.uri}: {exc}.")
            sys.exit(1)
        else:
            print(f"Connected to {args.uri}.")

        await interact(websocket)

        assert websocket.close_code is not None
        assert websocket.close_reason is not None
        close_status = Close(websocket.close_code, websocket.close_reason)
        print_over_input(f"Connection closed: {close_status}.")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # ^C
        pass


if __name__ == "__main__":
    main()
