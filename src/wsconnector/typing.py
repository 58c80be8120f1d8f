from __future__ import annotations

import logging
import socket
from typing import TYPE_CHECKING, Any, Callable, NewType


__all__ = [
    "Data",
    "LoggerLike",
    "PrepareHook",
    "Subprotocol",
]


# Public types used in the signature of public APIs

Data = str | bytes
"""Types supported in a WebSocket message:
:class:`str` for a Text_ frame, :class:`bytes` for a Binary_ frame.

.. _Text: https://datatracker.ietf.org/doc/html/rfc6455#section-5.6
.. _Binary : https://datatracker.ietf.org/doc/html/rfc6455#section-5.6

"""

BytesLike = bytes | bytearray | memoryview
"""Types accepted where :class:`bytes` is expected."""

if TYPE_CHECKING:
    LoggerLike = logging.Logger | logging.LoggerAdapter[Any]
    """Types accepted where a :class:`~logging.Logger` is expected."""
else:  # remove this branch when dropping support for Python < 3.11
    LoggerLike = logging.Logger | logging.LoggerAdapter
    """Types accepted where a :class:`~logging.Logger` is expected."""


PrepareHook = Callable[[socket.socket], "float | None"]
"""
Callback receiving a socket before it connects.

It may set socket options or bind a local address. When it returns a number,
that number replaces the configured connect timeout.

"""


Subprotocol = NewType("Subprotocol", str)
"""Subprotocol in a ``Sec-WebSocket-Protocol`` header."""


# Private types

ConnectionOption = NewType("ConnectionOption", str)
"""Connection option in a ``Connection`` header."""


UpgradeProtocol = NewType("UpgradeProtocol", str)
"""Upgrade protocol in an ``Upgrade`` header."""
