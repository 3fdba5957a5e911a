"""Wire protocol: pipe-separated fields, newline-terminated messages."""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass
from enum import IntEnum

BUFFER_SIZE = 4096
SEPARATOR = "|"
END_MESSAGE = "\n"
ENCODING = "utf-8"

_INT_PREFIX = re.compile(r"\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class OperationCode(IntEnum):
    """Operation codes carried at the head of every message."""

    LOGIN = 100
    LOGOUT = 101

    PELICULA_LIST = 200
    PELICULA_GET = 201
    PELICULA_CREATE = 202
    PELICULA_UPDATE = 203
    PELICULA_DELETE = 204
    PELICULA_SEARCH_TITULO = 205
    PELICULA_SEARCH_GENERO = 206

    SESION_LIST = 300
    SESION_GET = 301
    SESION_CREATE = 302
    SESION_UPDATE = 303
    SESION_DELETE = 304
    SESION_SEARCH_PELICULA = 305
    SESION_SEARCH_SALA = 306
    SESION_SEARCH_FECHA = 307

    SALA_LIST = 400
    SALA_GET = 401
    ASIENTO_LIST_BY_SALA = 402

    BILLETE_CREATE = 500
    BILLETE_DISPONIBILIDAD = 501
    VENTA_CREATE = 502
    VENTA_LIST_BY_USER = 503
    VENTA_GET = 504
    VENTA_GET_BILLETES = 505

    OK = 900
    ERROR = 901


class ConnectionClosed(ConnectionError):
    """Raised when the peer closes the connection or the socket fails."""


def _coerce_code(code: int) -> int:
    """Return the matching OperationCode, or the plain int for unknown codes."""
    try:
        return OperationCode(code)
    except ValueError:
        return int(code)


def _parse_prefix(pattern: re.Pattern[str], text: str, kind: str) -> str:
    match = pattern.match(text)
    if match is None:
        raise ValueError(f"invalid {kind} field: {text!r}")
    return match.group(0)


@dataclass
class Message:
    """A protocol message: an operation code and a field payload.

    Fields are appended with the ``add_*`` methods and consumed in order
    with the ``read_*`` methods.
    """

    op_code: int
    data: str = ""

    def __post_init__(self) -> None:
        self.op_code = _coerce_code(self.op_code)

    def add_string(self, value: str) -> None:
        self.data += f"{value}{SEPARATOR}"

    def add_int(self, value: int) -> None:
        self.data += f"{int(value)}{SEPARATOR}"

    def add_float(self, value: float) -> None:
        self.data += f"{value:f}{SEPARATOR}"

    def add_bool(self, value: bool) -> None:
        self.data += ("1" if value else "0") + SEPARATOR

    def read_string(self) -> str:
        """Consume and return the next field; the rest if no separator is left."""
        field, sep, rest = self.data.partition(SEPARATOR)
        self.data = rest if sep else ""
        return field

    def read_int(self) -> int:
        return int(_parse_prefix(_INT_PREFIX, self.read_string(), "integer"))

    def read_float(self) -> float:
        return float(_parse_prefix(_FLOAT_PREFIX, self.read_string(), "decimal"))

    def read_bool(self) -> bool:
        return self.read_string() == "1"

    def serialize(self) -> str:
        return f"{int(self.op_code)}{SEPARATOR}{self.data}{END_MESSAGE}"

    @classmethod
    def deserialize(cls, raw: str) -> Message:
        """Parse a serialized message; a frame without separator is an error message."""
        head, sep, content = raw.partition(SEPARATOR)
        if not sep:
            return cls(OperationCode.ERROR, "Malformed message")
        code = int(_parse_prefix(_INT_PREFIX, head, "operation code"))
        if content.endswith(END_MESSAGE):
            content = content[:-1]
        return cls(code, content)

    def clear(self) -> None:
        self.data = ""

    def has_more_data(self) -> bool:
        return bool(self.data)


def send_message(sock: socket.socket, message: Message) -> None:
    """Send a whole message; raises OSError if the socket fails."""
    sock.sendall(message.serialize().encode(ENCODING))


def receive_message(sock: socket.socket) -> Message:
    """Receive data until an end-of-message marker arrives and parse it."""
    received = bytearray()
    marker = END_MESSAGE.encode(ENCODING)
    while marker not in received:
        try:
            chunk = sock.recv(BUFFER_SIZE - 1)
        except OSError as exc:
            raise ConnectionClosed("Connection closed or error") from exc
        if not chunk:
            raise ConnectionClosed("Connection closed or error")
        received += chunk
    return Message.deserialize(received.decode(ENCODING, errors="replace"))