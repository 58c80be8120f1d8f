from __future__ import annotations

import dataclasses
import os
import re
from collections.abc import Mapping, Sequence
from typing import Any, Union

from .datastructures import Headers, HeadersLike
from .handshake import normalize_version
from .headers import validate_subprotocols
from .http11 import USER_AGENT
from .typing import Subprotocol


__all__ = ["ClientConfig"]


_token_re = re.compile(r"[-!#$%&\'*+.^_`|~0-9a-zA-Z]+")

# Header values may not contain CR or LF. They would allow header injection.
_value_re = re.compile(r"[\x09\x20-\x7e\x80-\U0010ffff]*")


HeadersOption = Union[
    HeadersLike,
    Mapping[str, Union[str, Sequence[str]]],
]


def normalize_subprotocols(
    subprotocols: str | Sequence[str] | None,
) -> tuple[Subprotocol, ...]:
    """
    Turn the ``subprotocols`` option into a tuple of unique subprotocols.

    A single string is a single subprotocol. Order is preserved; only the
    first occurrence of a duplicate is kept.

    """
    if subprotocols is None:
        return ()
    if isinstance(subprotocols, str):
        subprotocols = [subprotocols]
    else:
        subprotocols = list(subprotocols)
    validate_subprotocols(subprotocols)
    return tuple(Subprotocol(value) for value in dict.fromkeys(subprotocols))


def normalize_headers(headers: HeadersOption | None) -> tuple[tuple[str, str], ...]:
    """
    Turn the ``headers`` option into a tuple of ``(name, value)`` pairs.

    * :class:`~wsconnector.datastructures.Headers` keep their order.
    * Other mappings are sorted by name. A list value adds one header per
      item, in order.
    * Sequences of pairs keep their order and may repeat names.

    """
    if headers is None:
        return ()
    if isinstance(headers, Headers):
        pairs = list(headers.raw_items())
    elif isinstance(headers, Mapping):
        pairs = []
        for name in sorted(headers):
            value = headers[name]
            if isinstance(value, str):
                pairs.append((name, value))
            else:
                pairs.extend((name, item) for item in value)
    elif isinstance(headers, Sequence) and not isinstance(headers, str):
        pairs = []
        for pair in headers:
            try:
                name, value = pair
            except (TypeError, ValueError):
                raise TypeError(f"header must be a (name, value) pair: {pair!r}")
            pairs.append((name, value))
    else:
        raise TypeError("headers must be a mapping or a list of pairs")

    for name, value in pairs:
        if not isinstance(name, str) or not isinstance(value, str):
            raise TypeError(f"header name and value must be str: {name!r}, {value!r}")
        if not _token_re.fullmatch(name):
            raise ValueError(f"invalid header name: {name}")
        if not _value_re.fullmatch(value):
            raise ValueError(f"invalid header value: {value!r}")
    return tuple(pairs)


def _check_positive(name: str, value: Any, *, integer: bool) -> None:
    if value is None:
        return
    if integer:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{name} must be an int or None")
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number or None")
    if value <= 0:
        raise ValueError(f"{name} must be positive or None: {value}")


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """
    Options of a :class:`~wsconnector.client.Client`.

    Options are validated and normalized once, when the configuration is
    created. A configuration cannot be changed afterwards; it may be shared
    by concurrent connection attempts.

    Args:
        timeout: Bound in seconds on establishing the connection: connecting
            the TCP socket, opening the tunnel through a proxy, and the TLS
            handshake. :obj:`None` disables the timeout. A ``prepare`` hook
            passed to :meth:`~wsconnector.client.Client.connect` may replace
            it for one connection attempt.
        tls_verify: Whether to verify the certificate and the host name of
            ``wss://`` servers.
        tls_ca_file: Path to a file of CA certificates used instead of the
            system's defaults.
        protocol_version: Version of the protocol to request, as a name like
            ``"draft-ietf-hybi-17"`` or as a number like ``13``. It's
            normalized to the value of the ``Sec-WebSocket-Version`` header.
        subprotocols: Subprotocols to request, in order of preference.
        headers: Additional request headers.
        max_payload_size: Maximum size of incoming messages in bytes.
            :obj:`None` disables the limit.
        max_fragments: Maximum number of frames in an incoming message.
            :obj:`None` disables the limit.
        env_proxy: Whether to discover a proxy in environment variables.
        user_agent: Value of the ``User-Agent`` request header. :obj:`None`
            removes the header.
        handshake_timeout: Bound in seconds on the opening handshake, after
            the connection is established. :obj:`None` disables the timeout.
        close_timeout: Bound in seconds on the closing handshake.

    Raises:
        TypeError: If an option has the wrong type.
        ValueError: If an option has an invalid value.

    """

    timeout: float | None = 30
    tls_verify: bool = True
    tls_ca_file: str | os.PathLike[str] | None = None
    protocol_version: str | int | None = None
    subprotocols: str | Sequence[str] | None = ()
    headers: HeadersOption | None = ()
    max_payload_size: int | None = None
    max_fragments: int | None = None
    env_proxy: bool = False
    user_agent: str | None = USER_AGENT
    handshake_timeout: float | None = None
    close_timeout: float | None = 10

    def __post_init__(self) -> None:
        # The dataclass is frozen. Normalized values are set with the
        # object.__setattr__ escape hatch, before anyone sees the instance.
        set_field = object.__setattr__

        set_field(self, "subprotocols", normalize_subprotocols(self.subprotocols))
        set_field(self, "headers", normalize_headers(self.headers))
        if self.protocol_version is not None:
            set_field(
                self, "protocol_version", normalize_version(self.protocol_version)
            )
        if self.tls_ca_file is not None:
            set_field(self, "tls_ca_file", os.fspath(self.tls_ca_file))

        _check_positive("timeout", self.timeout, integer=False)
        _check_positive("handshake_timeout", self.handshake_timeout, integer=False)
        _check_positive("close_timeout", self.close_timeout, integer=False)
        _check_positive("max_payload_size", self.max_payload_size, integer=True)
        _check_positive("max_fragments", self.max_fragments, integer=True)

        if self.user_agent is not None and not _value_re.fullmatch(self.user_agent):
            raise ValueError(f"invalid User-Agent: {self.user_agent!r}")

    @property
    def version(self) -> str:
        """
        Value of the ``Sec-WebSocket-Version`` request header.

        """
        return self.protocol_version or "13"  # type: ignore[return-value]
