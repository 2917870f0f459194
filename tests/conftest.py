"""
Pytest Configuration and Fixtures

Three kinds of server doubles are provided:

- ``stream_of``: an in-memory byte stream for decoding replies without sockets.
- ``scripted``: a loopback TCP peer that reads the exact request bytes it is
  told to expect and writes canned replies, then hangs up.
- ``fake_redis``: a small threaded RESP server with an in-memory keyspace.
"""

import io
import socket
import socketserver
import threading
import typing
from collections.abc import Callable, Iterator

import pytest

from respwire import connection, error

EXPECT = "expect"
REPLY = "reply"

Step = tuple[str, bytes]


# ============================================================================
# In-memory stream
# ============================================================================

class BytesStream:
    """Reply source backed by a bytes buffer, mirroring ``Connection`` reads."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def read_byte(self) -> bytes:
        data = self._buffer.read(1)
        if not data:
            raise error.EndOfStreamError("end of buffer")
        return data

    def read_line(self) -> bytes:
        data = self._buffer.readline()
        if not data.endswith(b"\r\n"):
            raise error.EndOfStreamError("end of buffer")
        return data[:-2]

    def read_exact(self, n: int) -> bytes:
        data = self._buffer.read(n + 2)
        if len(data) < n + 2:
            raise error.EndOfStreamError("end of buffer")
        if data[n:] != b"\r\n":
            raise error.ProtocolError("missing CRLF")
        return data[:n]

    def remaining(self) -> bytes:
        return self._buffer.read()


@pytest.fixture
def stream_of() -> Callable[[bytes], BytesStream]:
    return BytesStream


# ============================================================================
# Scripted loopback peer
# ============================================================================

def _recv_exact(conn: socket.socket, count: int) -> bytes:
    data = bytearray()
    while len(data) < count:
        chunk = conn.recv(count - len(data))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


class ScriptedPeer:
    """
    A single-connection TCP peer that plays a fixed script.

    ``(EXPECT, data)`` reads ``len(data)`` bytes and records them in
    ``received``; ``(REPLY, data)`` writes ``data``. The connection is closed
    once the script ends.
    """

    def __init__(self, script: list[Step]):
        self.script = script
        self.received: list[bytes] = []
        self._listener = socket.create_server(("127.0.0.1", 0))
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        conn, _ = self._listener.accept()
        with conn:
            for kind, data in self.script:
                if kind == EXPECT:
                    self.received.append(_recv_exact(conn, len(data)))
                else:
                    conn.sendall(data)

    @property
    def expected(self) -> list[bytes]:
        return [data for kind, data in self.script if kind == EXPECT]

    def join(self) -> None:
        self._thread.join(timeout=5)
        self._listener.close()


@pytest.fixture
def scripted() -> Iterator[Callable[..., tuple[ScriptedPeer, connection.Connection]]]:
    """
    Factory fixture returning a (peer, connection) pair.

    Usage:
        def test_something(scripted):
            peer, con = scripted(
                (EXPECT, b"*1\\r\\n$4\\r\\nPING\\r\\n"),
                (REPLY, b"+PONG\\r\\n"),
            )
    """
    created: list[tuple[ScriptedPeer, connection.Connection]] = []

    def factory(*script: Step) -> tuple[ScriptedPeer, connection.Connection]:
        peer = ScriptedPeer(list(script))
        con = connection.Connection.from_host_port("127.0.0.1", peer.port)
        created.append((peer, con))
        return peer, con

    yield factory

    for peer, con in created:
        if con.is_alive():
            con.disconnect()
        peer.join()


# ============================================================================
# Fake RESP server
# ============================================================================

def _bulk(value: bytes | None) -> bytes:
    if value is None:
        return b"$-1\r\n"
    return b"$%i\r\n%s\r\n" % (len(value), value)


def _array(items: list[bytes | None]) -> bytes:
    return b"*%i\r\n" % len(items) + b"".join(_bulk(item) for item in items)


def _integer(value: int) -> bytes:
    return b":%i\r\n" % value


_WRONGTYPE = b"-WRONGTYPE Operation against a key holding the wrong kind of value\r\n"


class FakeKeyspace:
    """In-memory keyspace answering a handful of commands."""

    def __init__(self):
        self.lock = threading.Lock()
        self.data: dict[bytes, typing.Any] = {}

    def execute(self, args: list[bytes]) -> tuple[bytes, bool]:
        name = args[0].upper().decode()
        handler = getattr(self, f"_cmd_{name.lower()}", None)
        if handler is None:
            return b"-ERR unknown command '%s'\r\n" % args[0], False
        with self.lock:
            return handler(args[1:])

    def _cmd_ping(self, args):
        return b"+PONG\r\n", False

    def _cmd_echo(self, args):
        return _bulk(args[0]), False

    def _cmd_quit(self, args):
        return b"+OK\r\n", True

    def _cmd_shutdown(self, args):
        return b"", True

    def _cmd_set(self, args):
        self.data[args[0]] = args[1]
        return b"+OK\r\n", False

    def _cmd_get(self, args):
        value = self.data.get(args[0])
        if isinstance(value, list):
            return _WRONGTYPE, False
        return _bulk(value), False

    def _cmd_mget(self, args):
        values = [self.data.get(key) for key in args]
        return _array([value if isinstance(value, bytes) else None for value in values]), False

    def _cmd_del(self, args):
        removed = sum(1 for key in args if self.data.pop(key, None) is not None)
        return _integer(removed), False

    def _cmd_exists(self, args):
        return _integer(int(args[0] in self.data)), False

    def _cmd_incr(self, args):
        try:
            value = int(self.data.get(args[0], b"0")) + 1
        except (TypeError, ValueError):
            return b"-ERR value is not an integer or out of range\r\n", False
        self.data[args[0]] = str(value).encode()
        return _integer(value), False

    def _push(self, args, *, left: bool):
        values = self.data.setdefault(args[0], [])
        if not isinstance(values, list):
            return _WRONGTYPE, False
        for value in args[1:]:
            if left:
                values.insert(0, value)
            else:
                values.append(value)
        return _integer(len(values)), False

    def _cmd_lpush(self, args):
        return self._push(args, left=True)

    def _cmd_rpush(self, args):
        return self._push(args, left=False)

    def _cmd_lrange(self, args):
        values = self.data.get(args[0], [])
        if not isinstance(values, list):
            return _WRONGTYPE, False
        length = len(values)
        start, stop = int(args[1]), int(args[2])
        if start < 0:
            start = max(start + length, 0)
        if stop < 0:
            stop += length
        return _array(values[start:stop + 1]), False

    def _cmd_sort(self, args):
        values = list(self.data.get(args[0], []))
        options = [arg.upper() for arg in args[1:]]
        alpha = b"ALPHA" in options
        reverse = b"DESC" in options
        try:
            values.sort(key=(lambda v: v) if alpha else float, reverse=reverse)
        except ValueError:
            return b"-ERR One or more scores can't be converted into double\r\n", False
        if b"LIMIT" in options:
            index = options.index(b"LIMIT")
            offset, count = int(args[index + 2]), int(args[index + 3])
            values = values[offset:offset + count]
        return _array(values), False


def _read_request(rfile) -> list[bytes] | None:
    line = rfile.readline()
    if not line:
        return None
    count = int(line[1:])
    args = []
    for _ in range(count):
        length = int(rfile.readline()[1:])
        args.append(rfile.read(length + 2)[:length])
    return args


class _RespHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        while True:
            args = _read_request(self.rfile)
            if args is None:
                return
            response, close = self.server.keyspace.execute(args)
            if response:
                self.wfile.write(response)
            if close:
                return


class FakeRedisServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _RespHandler)
        self.keyspace = FakeKeyspace()

    @property
    def port(self) -> int:
        return self.server_address[1]

    @property
    def url(self) -> str:
        return f"redis://127.0.0.1:{self.port}"


@pytest.fixture
def fake_redis() -> Iterator[FakeRedisServer]:
    """Start a fake RESP server in a background thread for the test."""
    server = FakeRedisServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server

    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


@pytest.fixture
def redis_connection(fake_redis: FakeRedisServer) -> Iterator[connection.ActionableConnection]:
    """An ActionableConnection to the fake RESP server."""
    con = connection.ActionableConnection.from_host_port("127.0.0.1", fake_redis.port)

    yield con

    if con.is_alive():
        con.disconnect()
