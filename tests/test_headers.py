import unittest

from wsconnector.exceptions import InvalidHeaderFormat
from wsconnector.headers import *


class HeadersTests(unittest.TestCase):
    def test_build_host(self):
        for (host, port, secure), result in [
            (("localhost", 80, False), "localhost"),
            (("localhost", 8000, False), "localhost:8000"),
            (("localhost", 443, True), "localhost"),
            (("localhost", 80, True), "localhost:80"),
            (("example.com", 443, False), "example.com:443"),
            (("127.0.0.1", 80, False), "127.0.0.1"),
            (("::1", 80, False), "[::1]"),
            (("::1", 8000, False), "[::1]:8000"),
        ]:
            with self.subTest(host=host, port=port, secure=secure):
                self.assertEqual(build_host(host, port, secure), result)

    def test_build_host_always_include_port(self):
        self.assertEqual(
            build_host("example.com", 80, False, always_include_port=True),
            "example.com:80",
        )
        self.assertEqual(
            build_host("::1", 443, True, always_include_port=True),
            "[::1]:443",
        )

    def test_parse_connection(self):
        for header, parsed in [
            # Realistic use cases
            ("Upgrade", ["Upgrade"]),  # Safari, Chrome
            ("keep-alive, Upgrade", ["keep-alive", "Upgrade"]),  # Firefox
            # Pathological example
            (",,\t,  , ,Upgrade  ,,", ["Upgrade"]),
        ]:
            with self.subTest(header=header):
                self.assertEqual(parse_connection(header), parsed)

    def test_parse_connection_invalid_header_format(self):
        for header in ["???", "keep-alive; Upgrade"]:
            with self.subTest(header=header):
                with self.assertRaises(InvalidHeaderFormat):
                    parse_connection(header)

    def test_parse_upgrade(self):
        for header, parsed in [
            # Realistic use case
            ("websocket", ["websocket"]),
            # Synthetic example
            ("http/3.0, websocket", ["http/3.0", "websocket"]),
            # Pathological example
            (",,  WebSocket,  \t,,", ["WebSocket"]),
        ]:
            with self.subTest(header=header):
                self.assertEqual(parse_upgrade(header), parsed)

    def test_parse_upgrade_invalid_header_format(self):
        for header in ["???", "websocket 2", "http/3.0; websocket"]:
            with self.subTest(header=header):
                with self.assertRaises(InvalidHeaderFormat):
                    parse_upgrade(header)

    def test_parse_subprotocol(self):
        for header, parsed in [
            # Synthetic examples
            ("foo", ["foo"]),
            ("foo, bar", ["foo", "bar"]),
            # Pathological example
            (",\t, ,  ,foo  ,,   bar,baz,,", ["foo", "bar", "baz"]),
        ]:
            with self.subTest(header=header):
                self.assertEqual(parse_subprotocol(header), parsed)

    def test_parse_subprotocol_invalid_header(self):
        for header in [
            # Truncated examples
            "",
            ",\t,",
            # Wrong delimiter
            "foo; bar",
        ]:
            with self.subTest(header=header):
                with self.assertRaises(InvalidHeaderFormat):
                    parse_subprotocol(header)

    def test_invalid_header_format_message(self):
        with self.assertRaises(InvalidHeaderFormat) as raised:
            parse_upgrade("websocket 2")
        self.assertEqual(
            str(raised.exception),
            "invalid Upgrade header: expected comma at 10 in websocket 2",
        )

    def test_build_subprotocol(self):
        for subprotocols, header in [
            (["foo"], "foo"),
            (["foo", "bar"], "foo, bar"),
        ]:
            with self.subTest(subprotocols=subprotocols):
                self.assertEqual(build_subprotocol(subprotocols), header)

    def test_validate_subprotocols(self):
        for subprotocols in [[], ["foo"], ["foo", "bar"]]:
            with self.subTest(subprotocols=subprotocols):
                validate_subprotocols(subprotocols)

    def test_validate_subprotocols_invalid(self):
        for subprotocols, exception in [
            ({"foo": None}, TypeError),
            ("foo", TypeError),
            ([b"foo"], TypeError),
            ([""], ValueError),
            (["foo bar"], ValueError),
        ]:
            with self.subTest(subprotocols=subprotocols):
                with self.assertRaises(exception):
                    validate_subprotocols(subprotocols)

    def test_build_authorization_basic(self):
        # https://datatracker.ietf.org/doc/html/rfc7617#section-2
        self.assertEqual(
            build_authorization_basic("Aladdin", "open sesame"),
            "Basic QWxhZGRpbjpvcGVuIHNlc2FtZQ==",
        )
        # https://datatracker.ietf.org/doc/html/rfc7617#section-2.1
        self.assertEqual(
            build_authorization_basic("test", "123£"),
            "Basic dGVzdDoxMjPCow==",
        )
