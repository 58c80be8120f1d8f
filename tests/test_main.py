import argparse
import asyncio
import contextlib
import io
import os
import re
import socket
import threading
import unittest
from unittest.mock import patch

from wsconnector.__main__ import *
from wsconnector.frames import OP_BINARY, OP_CLOSE, OP_TEXT, Close, Frame
from wsconnector.version import version

from .server import HandshakeServer


vt100_commands = re.compile(r"\x1b\[[A-Z]|\x1b[78]|\r")


def remove_commands_and_prompts(output):
    return vt100_commands.sub("", output).replace("> ", "")


def server_close():
    data = Close(1000, "").serialize()
    return Frame(OP_CLOSE, data).serialize(mask=False)


def add_connection_messages(output, server_uri):
    return f"Connected to {server_uri}.\n{output}Connection closed: 1000 (OK).\n"


@contextlib.contextmanager
def run_server_in_thread(**kwargs):
    # main() runs its own event loop, so the server runs in another thread.
    loop = asyncio.new_event_loop()
    server = HandshakeServer(**kwargs)
    loop.run_until_complete(server.__aenter__())
    thread = threading.Thread(target=loop.run_forever)
    thread.start()
    try:
        yield server
    finally:
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.run_until_complete(server.__aexit__(None, None, None))
        loop.close()


def unused_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class MainTests(unittest.TestCase):
    def run_main(self, argv, inputs="", close_input=True, expected_exit_code=None):
        # Use a pipe so that reading from stdin blocks until input is closed.
        read_fd, write_fd = os.pipe()
        stdin = open(read_fd, encoding="utf-8")
        os.write(write_fd, inputs.encode())
        if close_input:
            os.close(write_fd)
        # Replace sys.stdout with a file-like object to record outputs.
        stdout = io.StringIO()
        try:
            with patch("sys.stdin", new=stdin), patch("sys.stdout", new=stdout):
                # Catch sys.exit() calls when expected.
                if expected_exit_code is not None:
                    with self.assertRaises(SystemExit) as raised:
                        main(argv)
                    self.assertEqual(raised.exception.code, expected_exit_code)
                else:
                    main(argv)
        finally:
            # Unblock the thread reading from stdin.
            if not close_input:
                os.close(write_fd)
        return stdout.getvalue()

    def test_version(self):
        output = self.run_main(["--version"])
        self.assertEqual(output, f"wsconnector {version}\n")

    def test_receive_text_message(self):
        frame = Frame(OP_TEXT, "café".encode()).serialize(mask=False)
        with run_server_in_thread(after_handshake=frame + server_close()) as server:
            output = self.run_main([server.uri], close_input=False)
        self.assertEqual(
            remove_commands_and_prompts(output),
            add_connection_messages("\n< café\n", server.uri),
        )

    def test_receive_binary_message(self):
        frame = Frame(OP_BINARY, b"tea").serialize(mask=False)
        with run_server_in_thread(after_handshake=frame + server_close()) as server:
            output = self.run_main([server.uri], close_input=False)
        self.assertEqual(
            remove_commands_and_prompts(output),
            add_connection_messages("\n< (binary) 746561\n", server.uri),
        )

    def test_server_closes_connection(self):
        with run_server_in_thread(after_handshake=server_close()) as server:
            output = self.run_main([server.uri], close_input=False)
        self.assertEqual(
            remove_commands_and_prompts(output),
            add_connection_messages("", server.uri),
        )

    def test_close_input(self):
        with run_server_in_thread() as server:
            output = self.run_main([server.uri])
        self.assertEqual(
            remove_commands_and_prompts(output),
            add_connection_messages("", server.uri),
        )

    def test_options(self):
        with run_server_in_thread(subprotocol="chat") as server:
            self.run_main(
                [
                    server.uri,
                    "--subprotocol",
                    "chat",
                    "--header",
                    "X-Token: abc",
                    "--timeout",
                    "5",
                ]
            )
        [(_, headers)] = server.requests
        self.assertEqual(headers["Sec-WebSocket-Protocol"], "chat")
        self.assertEqual(headers["X-Token"], "abc")

    def test_connection_failure(self):
        uri = f"ws://127.0.0.1:{unused_port()}/"
        output = self.run_main([uri], expected_exit_code=1)
        self.assertTrue(output.startswith(f"Failed to connect to {uri}: "))

    def test_no_args(self):
        with patch("sys.stderr", new=io.StringIO()) as stderr:
            self.run_main([], expected_exit_code=2)
        self.assertIn(
            "the following arguments are required: <uri>", stderr.getvalue()
        )


class ParseHeaderTests(unittest.TestCase):
    def test_parse_header(self):
        self.assertEqual(parse_header("X-Token: abc"), ("X-Token", "abc"))
        self.assertEqual(parse_header("X-Empty:"), ("X-Empty", ""))

    def test_parse_header_invalid(self):
        with self.assertRaises(argparse.ArgumentTypeError):
            parse_header("X-Token abc")
