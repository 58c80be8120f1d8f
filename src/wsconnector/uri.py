from __future__ import annotations

import dataclasses
import urllib.parse

from .exceptions import InvalidScheme, InvalidURI


__all__ = ["parse_uri", "WebSocketURI"]


@dataclasses.dataclass(frozen=True)
class WebSocketURI:
    """
    WebSocket URI.

    Attributes:
        secure: :obj:`True` for a ``wss`` URI, :obj:`False` for a ``ws`` URI.
        host: Normalized to lower case.
        port: Always set even if it's the default.
        resource_name: Path and optional query.
        user_info: ``(username, password)`` when the URI contains
          `User Information`_.

    .. _User Information: https://datatracker.ietf.org/doc/html/rfc3986#section-3.2.1

    """

    secure: bool
    host: str
    port: int
    resource_name: str
    user_info: tuple[str, str] | None = None

    @property
    def scheme(self) -> str:
        return "wss" if self.secure else "ws"

    def __str__(self) -> str:
        netloc = self.host
        if ":" in netloc:
            netloc = f"[{netloc}]"
        if self.port != (443 if self.secure else 80):
            netloc = f"{netloc}:{self.port}"
        if self.user_info is not None:
            # Don't leak credentials in logs.
            netloc = f"{self.user_info[0]}:***@{netloc}"
        return f"{self.scheme}://{netloc}{self.resource_name}"


# All characters from the gen-delims and sub-delims sets in RFC 3987.
DELIMS = ":/?#[]@!$&'()*+,;="


def parse_uri(uri: str) -> WebSocketURI:
    """
    Parse and validate a WebSocket URI.

    Args:
        uri: WebSocket URI.

    Returns:
        Parsed WebSocket URI.

    Raises:
        InvalidScheme: If the scheme of ``uri`` isn't ``ws`` or ``wss``.
        InvalidURI: If ``uri`` isn't a valid WebSocket URI.

    """
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme not in ["ws", "wss"]:
        raise InvalidScheme(uri, parsed.scheme)
    if parsed.hostname is None:
        raise InvalidURI(uri, "hostname isn't provided")
    if parsed.fragment != "":
        raise InvalidURI(uri, "fragment identifier is meaningless")

    secure = parsed.scheme == "wss"
    host = parsed.hostname
    try:
        port = parsed.port or (443 if secure else 80)
    except ValueError as exc:
        # urllib.parse raises ValueError when the port is out of range.
        raise InvalidURI(uri, str(exc)) from None
    resource_name = parsed.path or "/"
    if parsed.query:
        resource_name += "?" + parsed.query
    user_info = None
    if parsed.username is not None:
        # urllib.parse.urlparse accepts URLs with a username but without a
        # password. This doesn't make sense for HTTP Basic Auth credentials.
        if parsed.password is None:
            raise InvalidURI(uri, "username provided without password")
        user_info = (parsed.username, parsed.password)

    try:
        uri.encode("ascii")
    except UnicodeEncodeError:
        # Input contains non-ASCII characters.
        # It must be an IRI. Convert it to a URI.
        host = host.encode("idna").decode()
        resource_name = urllib.parse.quote(resource_name, safe=DELIMS)
        if user_info is not None:
            user_info = (
                urllib.parse.quote(user_info[0], safe=DELIMS),
                urllib.parse.quote(user_info[1], safe=DELIMS),
            )

    return WebSocketURI(secure, host, port, resource_name, user_info)
