from __future__ import annotations

import dataclasses
import logging
import os
import urllib.parse
import urllib.request

from .datastructures import Headers
from .exceptions import InvalidProxy
from .headers import build_authorization_basic, build_host
from .http11 import USER_AGENT
from .uri import DELIMS


__all__ = [
    "Proxy",
    "ProxyConnector",
    "candidates_for",
    "parse_proxy",
    "prepare_connect_request",
    "select_proxy",
]


logger = logging.getLogger("wsconnector.client")


@dataclasses.dataclass(frozen=True)
class Proxy:
    """
    Proxy address.

    Attributes:
        scheme: Always ``"http"``.
        host: Normalized to lower case.
        port: Always set even if it's the default.
        username: Available when the proxy address contains `User Information`_.
        password: Available when the proxy address contains `User Information`_.

    .. _User Information: https://datatracker.ietf.org/doc/html/rfc3986#section-3.2.1

    """

    scheme: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None

    @property
    def user_info(self) -> tuple[str, str] | None:
        if self.username is None:
            return None
        assert self.password is not None
        return (self.username, self.password)

    def __str__(self) -> str:
        netloc = build_host(self.host, self.port, False, always_include_port=True)
        if self.username is not None:
            # Don't leak credentials in logs.
            netloc = f"{self.username}:***@{netloc}"
        return f"{self.scheme}://{netloc}"


def parse_proxy(proxy: str) -> Proxy:
    """
    Parse and validate a proxy.

    Only HTTP proxies are supported. The connection to the server is tunneled
    with the ``CONNECT`` method.

    Args:
        proxy: Proxy URL, like ``http://proxy.example.com:3128``.

    Returns:
        Parsed proxy.

    Raises:
        InvalidProxy: If ``proxy`` isn't a valid proxy.

    """
    parsed = urllib.parse.urlparse(proxy)
    if parsed.scheme != "http":
        raise InvalidProxy(proxy, f"scheme {parsed.scheme} isn't supported")
    if parsed.hostname is None:
        raise InvalidProxy(proxy, "hostname isn't provided")
    if parsed.path not in ["", "/"]:
        raise InvalidProxy(proxy, "path is meaningless")
    if parsed.query != "":
        raise InvalidProxy(proxy, "query is meaningless")
    if parsed.fragment != "":
        raise InvalidProxy(proxy, "fragment is meaningless")

    scheme = parsed.scheme
    host = parsed.hostname
    try:
        port = parsed.port or 80
    except ValueError as exc:
        raise InvalidProxy(proxy, str(exc)) from None
    username = parsed.username
    password = parsed.password
    # urllib.parse.urlparse accepts URLs with a username but without a
    # password. This doesn't make sense for HTTP Basic Auth credentials.
    if username is not None and password is None:
        raise InvalidProxy(proxy, "username provided without password")

    try:
        proxy.encode("ascii")
    except UnicodeEncodeError:
        # Input contains non-ASCII characters.
        # It must be an IRI. Convert it to a URI.
        host = host.encode("idna").decode()
        if username is not None:
            assert password is not None
            username = urllib.parse.quote(username, safe=DELIMS)
            password = urllib.parse.quote(password, safe=DELIMS)

    return Proxy(scheme, host, port, username, password)


def _getenv(name: str) -> str | None:
    # Empty values are the same as unset values.
    return os.environ.get(name) or None


class ProxyConnector:
    """
    Look up the proxy for one kind of connection in environment variables.

    ``ProxyConnector("http")`` reads ``http_proxy``, then ``HTTP_PROXY``.
    Hosts listed in ``no_proxy`` or ``NO_PROXY`` are reached directly.

    Like :func:`urllib.request.getproxies`, ``HTTP_PROXY`` is ignored in a
    CGI environment, that is when ``REQUEST_METHOD`` is set, because it
    could come from the ``Proxy`` request header.

    """

    def __init__(self, kind: str) -> None:
        self.kind = kind

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.kind!r})"

    def proxy_url(self) -> str | None:
        """
        Return the proxy URL configured for this kind of connection, if any.

        """
        url = _getenv(f"{self.kind.lower()}_proxy")
        if url is not None:
            return url
        if self.kind.lower() == "http" and "REQUEST_METHOD" in os.environ:
            return None
        return _getenv(f"{self.kind.upper()}_PROXY")

    def proxy_for(self, host: str, port: int) -> Proxy | None:
        """
        Return the proxy to use for connecting to ``host`` and ``port``.

        Return :obj:`None` when no proxy is configured or when ``host`` is
        excluded by ``no_proxy``.

        Raises:
            InvalidProxy: If the configured proxy isn't a valid proxy.

        """
        url = self.proxy_url()
        if url is None:
            return None
        no_proxy = _getenv("no_proxy") or _getenv("NO_PROXY")
        if no_proxy is not None and urllib.request.proxy_bypass_environment(
            f"{host}:{port}", {"no": no_proxy}
        ):
            return None
        return parse_proxy(url)


def candidates_for(scheme: str) -> list[ProxyConnector]:
    """
    Return proxy connectors to try for a ``ws`` or ``wss`` URI, in order.

    The proxy for WebSocket connections has the highest priority. Then the
    proxy for HTTP connections applies to ``ws`` and the proxy for HTTPS
    connections applies to ``wss``.

    """
    if scheme == "ws":
        kinds = ["ws", "http"]
    elif scheme == "wss":
        kinds = ["wss", "https"]
    else:
        raise ValueError(f"unsupported scheme: {scheme}")
    return [ProxyConnector(kind) for kind in kinds]


def select_proxy(
    scheme: str,
    host: str,
    port: int,
    env_proxy: bool,
) -> Proxy | None:
    """
    Return the proxy to use for connecting to a WebSocket server, if any.

    The first candidate that has a proxy for ``host`` and ``port`` wins.
    :obj:`None` means connecting directly.

    Raises:
        InvalidProxy: If the selected proxy isn't a valid proxy.

    """
    if not env_proxy:
        return None
    for connector in candidates_for(scheme):
        proxy = connector.proxy_for(host, port)
        if proxy is not None:
            logger.debug("using %s proxy %s", connector.kind, proxy)
            return proxy
    return None


def prepare_connect_request(
    proxy: Proxy,
    host: str,
    port: int,
    user_agent: str | None = USER_AGENT,
) -> bytes:
    """
    Build the request asking ``proxy`` to open a tunnel to ``host`` and ``port``.

    """
    target = build_host(host, port, False, always_include_port=True)
    headers = Headers()
    headers["Host"] = target
    if user_agent is not None:
        headers["User-Agent"] = user_agent
    if proxy.username is not None:
        assert proxy.password is not None  # enforced by parse_proxy()
        headers["Proxy-Authorization"] = build_authorization_basic(
            proxy.username, proxy.password
        )
    # We cannot use the Request class because it supports only GET requests.
    return f"CONNECT {target} HTTP/1.1\r\n".encode() + headers.serialize()
