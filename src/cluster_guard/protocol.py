"""
Minimal client for the length-prefixed key-value store wire protocol (RESP).

Requests are arrays of bulk strings:

    *<argc>\\r\\n  then, per argument,  $<len>\\r\\n<bytes>\\r\\n

Replies are decoded in a single recursive-descent pass over the raw byte
stream. Header lines are read up to CRLF; bulk payloads are read by their
declared length, so payloads may safely contain CR, LF or any other byte.

Only what the lock coordinator needs is exposed: ECHO, SET NX, GET and
EXPIRE. One request is outstanding at a time; the client is not safe for
concurrent use.
"""

import socket
from dataclasses import dataclass
from io import BytesIO
from typing import Any, BinaryIO, Optional, Sequence, Tuple, Union

import structlog

from .errors import ProtocolError, ReplyError, StoreConnectionError

logger = structlog.get_logger(__name__)

CRLF = b"\r\n"


@dataclass(frozen=True)
class SimpleString:
    text: str


@dataclass(frozen=True)
class Integer:
    value: int


@dataclass(frozen=True)
class Error:
    text: str


@dataclass(frozen=True)
class BulkString:
    """Length-prefixed byte string; ``data`` is None for the null bulk (``$-1``)."""

    data: Optional[bytes]

    @property
    def text(self) -> Optional[str]:
        if self.data is None:
            return None
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError("Reply is not valid UTF-8", repr(self.data)) from None


@dataclass(frozen=True)
class Array:
    """Ordered replies; ``items`` is None for the null array (``*-1``)."""

    items: Optional[Tuple["Reply", ...]]


Reply = Union[SimpleString, Integer, Error, BulkString, Array]


# ---------- encoding ----------

def _to_bytes(arg: Any) -> bytes:
    if isinstance(arg, bytes):
        return arg
    if isinstance(arg, bool):
        raise TypeError("Boolean command arguments are ambiguous")
    if isinstance(arg, (str, int)):
        return str(arg).encode("utf-8")
    raise TypeError(f"Unsupported command argument type: {type(arg).__name__}")


def encode_command(args: Sequence[Any]) -> bytes:
    """Encode one command as a RESP array of bulk strings."""
    if not args:
        raise ValueError("Cannot encode an empty command")

    parts = [b"*%d\r\n" % len(args)]
    for arg in args:
        data = _to_bytes(arg)
        parts.append(b"$%d\r\n" % len(data))
        parts.append(data)
        parts.append(CRLF)
    return b"".join(parts)


# ---------- decoding ----------

def _parse_int(raw: bytes, what: str) -> int:
    digits = raw[1:] if raw.startswith(b"-") else raw
    if not digits.isdigit():
        raise ProtocolError(f"Malformed {what}", repr(raw))
    return int(raw)


def _read_header(stream: BinaryIO) -> Tuple[bytes, bytes]:
    line = stream.readline()
    if not line:
        raise ProtocolError("Premature end of stream", "no reply header")
    if not line.endswith(CRLF) or len(line) < 3:
        raise ProtocolError("Malformed reply header", repr(line))
    return line[:1], line[1:-2]


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            raise ProtocolError(
                "Premature end of stream",
                f"expected {size} bytes, got {size - remaining}",
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_reply(stream: BinaryIO) -> Reply:
    """
    Read exactly one reply from a binary stream.

    Error replies are returned as ``Error`` values; ProtocolClient.execute
    turns them into ReplyError.
    """
    prefix, payload = _read_header(stream)

    if prefix == b"+":
        return SimpleString(payload.decode("utf-8", "replace"))

    if prefix == b"-":
        return Error(payload.decode("utf-8", "replace"))

    if prefix == b":":
        return Integer(_parse_int(payload, "integer reply"))

    if prefix == b"$":
        length = _parse_int(payload, "bulk length")
        if length < 0:
            return BulkString(None)
        data = _read_exact(stream, length + 2)
        if data[-2:] != CRLF:
            raise ProtocolError("Bulk string not terminated by CRLF", repr(data[-2:]))
        return BulkString(data[:-2])

    if prefix == b"*":
        count = _parse_int(payload, "array length")
        if count < 0:
            return Array(None)
        return Array(tuple(read_reply(stream) for _ in range(count)))

    raise ProtocolError("Unknown reply type", repr(prefix))


def decode_reply(data: bytes) -> Reply:
    """Decode a buffer holding exactly one complete reply."""
    stream = BytesIO(data)
    reply = read_reply(stream)
    if stream.read(1):
        raise ProtocolError("Trailing bytes after reply")
    return reply


def _as_text(reply: Reply, command: str) -> Optional[str]:
    if isinstance(reply, BulkString):
        return reply.text
    if isinstance(reply, SimpleString):
        return reply.text
    raise ProtocolError(f"Unexpected reply to {command}", repr(reply))


# ---------- client ----------

class ProtocolClient:
    """
    Blocking request/reply client over one persistent connection.

    Build it once and pass it to whatever needs the store; it holds no
    process-wide state.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._closed = False

    @classmethod
    def connect(cls, host: str = "localhost", port: int = 6379, timeout: Optional[float] = None) -> "ProtocolClient":
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise StoreConnectionError(f"Cannot connect to store at {host}:{port}", str(exc)) from exc

        logger.debug("Connected to store", host=host, port=port)
        return cls(sock)

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(self, *args: Any) -> Reply:
        """Send one command and block until its reply has been read."""
        if self._closed:
            raise StoreConnectionError("Store connection is closed")

        request = encode_command(args)
        try:
            self._sock.sendall(request)
            reply = read_reply(self._reader)
        except OSError as exc:
            raise StoreConnectionError("Store connection failed", str(exc)) from exc

        logger.debug("Store command executed", command=str(args[0]), reply=type(reply).__name__)

        if isinstance(reply, Error):
            raise ReplyError(reply.text)
        return reply

    # ---------- primitives ----------

    def echo(self, token: str) -> Optional[str]:
        return _as_text(self.execute("ECHO", token), "ECHO")

    def set_if_absent(self, key: str, value: str) -> bool:
        reply = self.execute("SET", key, value, "NX")
        if isinstance(reply, SimpleString) and reply.text == "OK":
            return True
        if isinstance(reply, BulkString) and reply.data is None:
            return False
        raise ProtocolError("Unexpected reply to SET NX", repr(reply))

    def get(self, key: str) -> Optional[str]:
        return _as_text(self.execute("GET", key), "GET")

    def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on ``key``; 0 deletes it now. Returns whether the key existed."""
        reply = self.execute("EXPIRE", key, int(seconds))
        if not isinstance(reply, Integer):
            raise ProtocolError("Unexpected reply to EXPIRE", repr(reply))
        return reply.value == 1

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._reader.close()
        finally:
            self._sock.close()

    def __enter__(self) -> "ProtocolClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
