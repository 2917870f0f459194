"""Module containing connection implementations."""

import collections.abc
import contextlib
import dataclasses
import logging
import socket
import typing
import urllib.parse

from respwire import codec, command, error, protocol, reply, transform

if typing.TYPE_CHECKING:
    import typing_extensions

__all__: collections.abc.Sequence[str] = ("Connection", "ActionableConnection", "Pipeline")

_LOGGER = logging.getLogger(__name__)

_CRLF: typing.Final = b"\r\n"


def _parse_url(url: str) -> tuple[str, int]:
    parsed = urllib.parse.urlparse(url)
    if not parsed.hostname or not parsed.port or parsed.scheme != "redis":
        msg = "Only urls of scheme 'redis://host:port' are supported"
        raise ValueError(msg)

    return parsed.hostname, parsed.port


@dataclasses.dataclass(slots=True)
class Connection:
    """Low-level connection implementation.

    This connection owns exactly one TCP socket and the buffered streams on
    top of it. It can send commands and decode replies, but does not
    implement any higher-level commands.

    While ``pipelining`` is set, written commands accumulate in the output
    buffer; the caller must ``flush`` before reading their replies.

    A connection is not safe for concurrent use, and is never reopened
    implicitly: once closed, any further I/O raises ``StateError``.
    """

    host: str
    port: int
    buffer_size: int = 6000
    pipelining: bool = False
    _socket: socket.socket | None = dataclasses.field(default=None, repr=False)
    _reader: typing.BinaryIO | None = dataclasses.field(default=None, repr=False)
    _writer: typing.BinaryIO | None = dataclasses.field(default=None, repr=False)
    _closed: bool = dataclasses.field(default=False, repr=False)

    @classmethod
    def from_url(cls, url: str, /) -> "typing_extensions.Self":
        """Connect to the provided Redis url."""
        return cls.from_host_port(*_parse_url(url))

    @classmethod
    def from_host_port(cls, host: str, port: int, /) -> "typing_extensions.Self":
        """Connect to Redis at the provided host and port."""
        self = cls(host=host, port=port)
        self.connect()
        return self

    def __del__(self) -> None:
        if getattr(self, "_socket", None):
            self._close()

    def _close(self) -> None:
        assert self._socket is not None

        sock, reader, writer = self._socket, self._reader, self._writer
        self._socket = self._reader = self._writer = None
        self._closed = True

        for stream in (writer, reader):
            if stream is None:
                continue

            # Closing flushes pending output, which fails on a broken socket.
            with contextlib.suppress(OSError):
                stream.close()

        sock.close()

    def _fail(self, action: str, exc: OSError) -> error.ConnectionError:
        _LOGGER.warning("Closing connection to %s:%i after failed %s", self.host, self.port, action)
        self._close()

        if len(exc.args) == 1:
            error_code = "UNKNOWN"
            error_msg = exc.args[0]

        else:
            error_code, error_msg, *_ = exc.args or ("UNKNOWN", exc)

        msg = f"{action.capitalize()} '{self.host}:{self.port}' raised {error_code}: {error_msg}"
        return error.ConnectionError(msg)

    def _require_alive(self) -> None:
        if not self.is_alive():
            msg = "Cannot use a closed connection."
            raise error.StateError(msg)

    def _end_of_stream(self) -> error.EndOfStreamError:
        _LOGGER.debug("Connection to %s:%i closed by the server", self.host, self.port)
        self._close()

        msg = f"'{self.host}:{self.port}' closed the connection."
        return error.EndOfStreamError(msg)

    def is_alive(self) -> bool:
        """Check whether this connection has an active redis connection."""
        return self._socket is not None

    def connect(self) -> None:
        """Connect to Redis with the connection parameters provided at instantiation."""
        if self.is_alive():
            msg = "The connection is already open."
            raise error.StateError(msg)

        if self._closed:
            msg = "A closed connection cannot be reopened; create a new one."
            raise error.StateError(msg)

        try:
            sock = socket.create_connection((self.host, self.port))
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        except OSError as exc:
            msg = f"Failed to connect to '{self.host}:{self.port}'."
            raise error.ConnectionError(msg) from exc

        self._socket = sock
        self._reader = sock.makefile("rb", buffering=self.buffer_size)
        self._writer = sock.makefile("wb", buffering=self.buffer_size)

        _LOGGER.debug("Connected to %s:%i", self.host, self.port)

    def disconnect(self) -> None:
        """Close the connection with Redis."""
        if not self.is_alive():
            msg = "The connection is already closed."
            raise error.StateError(msg)

        self._close()
        _LOGGER.debug("Disconnected from %s:%i", self.host, self.port)

    @contextlib.contextmanager
    def pipelined(self) -> collections.abc.Iterator["typing_extensions.Self"]:
        """Hold back flushes of written commands for the duration of the block.

        The previous pipelining mode is restored on exit. Nothing is flushed
        automatically; call ``flush`` before reading the replies.
        """
        previous = self.pipelining
        self.pipelining = True
        try:
            yield self

        finally:
            self.pipelining = previous

    def write(self, data: bytes, /) -> None:
        """Append raw bytes to the output buffer without flushing."""
        self._require_alive()
        assert self._writer is not None

        try:
            self._writer.write(data)

        except OSError as exc:
            raise self._fail("writing to", exc) from exc

    def write_token(self, data: bytes, /) -> None:
        """Append bytes followed by CRLF to the output buffer without flushing."""
        self.write(data + _CRLF)

    def flush(self) -> None:
        """Force buffered output onto the socket."""
        self._require_alive()
        assert self._writer is not None

        try:
            self._writer.flush()

        except OSError as exc:
            raise self._fail("flushing to", exc) from exc

    def read_byte(self) -> bytes:
        """Read the single leading byte of a reply."""
        self._require_alive()
        assert self._reader is not None

        try:
            data = self._reader.read(1)

        except OSError as exc:
            raise self._fail("reading from", exc) from exc

        if not data:
            raise self._end_of_stream()

        return data

    def read_line(self) -> bytes:
        """Read bytes up to CRLF and strip the terminator."""
        self._require_alive()
        assert self._reader is not None

        try:
            data = self._reader.readline()

        except OSError as exc:
            raise self._fail("reading from", exc) from exc

        if not data.endswith(_CRLF):
            raise self._end_of_stream()

        return data[:-2]

    def read_exact(self, n: int, /) -> bytes:
        """Read exactly ``n`` bytes, then consume the trailing CRLF."""
        self._require_alive()
        assert self._reader is not None
        assert n >= 0

        try:
            data = self._reader.read(n + 2)

        except OSError as exc:
            raise self._fail("reading from", exc) from exc

        if len(data) < n + 2:
            raise self._end_of_stream()

        if data[n:] != _CRLF:
            msg = f"Bulk payload of {n} bytes is not terminated by CRLF."
            raise error.ProtocolError(msg)

        return data[:n]

    def write_command(self, command: protocol.CommandProto, /) -> None:
        """Write a command to the connected Redis instance.

        This requires this connection to be alive. Unless the connection is
        pipelining, the command is flushed immediately.

        ``read_response`` *must* be called once for every written command.
        """
        self._require_alive()

        name = next(iter(command), b"").decode("utf-8", errors="replace")
        _LOGGER.debug("Writing %s with %i tokens to %s:%i", name, len(command), self.host, self.port)
        self.write(codec.encode_command(command))

        if not self.pipelining:
            self.flush()

    def read_reply(self) -> reply.Reply:
        """Read one reply as-is, error replies included.

        This requires this connection to be alive. Protocol violations close
        the connection, as the position in the stream can no longer be trusted.
        """
        self._require_alive()

        try:
            return codec.decode_reply(self)

        except error.ProtocolError:
            if self.is_alive():
                _LOGGER.warning("Closing connection to %s:%i after protocol error", self.host, self.port)
                self._close()

            raise

    def read_response(self) -> reply.Reply:
        """Read the response to a previously executed command.

        Error replies are raised as ``ServerError``.
        """
        return transform.filter_error(self.read_reply())

    def send(self, command: protocol.CommandProto, /) -> reply.Reply:
        """Write a command and read its response."""
        self.write_command(command)
        return self.read_response()


@dataclasses.dataclass(slots=True)
class Pipeline:
    """Batch of commands written without intermediate flushes.

    Replies come back in the order the commands were added. ``execute``
    flushes once and reads exactly one reply per added command.
    """

    connection: protocol.ConnectionProto
    _pending: int = dataclasses.field(default=0, init=False)

    def add(self, command: protocol.CommandProto, /) -> "typing_extensions.Self":
        """Queue a command on the connection."""
        previous = self.connection.pipelining
        self.connection.pipelining = True
        try:
            self.connection.write_command(command)

        finally:
            self.connection.pipelining = previous

        self._pending += 1
        return self

    def execute(self) -> list[reply.Reply | error.ServerError]:
        """Flush the queued commands and read all of their replies.

        An error reply does not stop the remaining reads; it is returned as a
        ``ServerError`` in its position instead.
        """
        pending, self._pending = self._pending, 0

        _LOGGER.debug("Flushing pipeline of %i commands", pending)
        self.connection.flush()

        results: list[reply.Reply | error.ServerError] = []
        for _ in range(pending):
            try:
                results.append(self.connection.read_response())

            except error.ServerError as exc:
                results.append(exc)

        return results

    def __len__(self) -> int:
        return self._pending


def _require_keys(keys: collections.abc.Sequence[object]) -> None:
    if not keys:
        msg = "Need at least one key"
        raise ValueError(msg)


Key: typing.TypeAlias = str | bytes
Value: typing.TypeAlias = str | bytes | int | float


@dataclasses.dataclass(slots=True)
class ActionableConnection:
    """High-level connection implementation.

    This connection can make connections to Redis, and both send and receive
    commands. This connection implements higher-level commands to make it more
    convenient to run commonly-used commands; each one sends its command and
    narrows the reply to the type that command promises.
    """

    connection: protocol.ConnectionProto

    @classmethod
    def from_url(
        cls,
        url: str,
        /,
        *,
        connection_class: type[protocol.ConnectionProto] = Connection,
    ) -> "typing_extensions.Self":
        """Connect to the provided Redis url."""
        host, port = _parse_url(url)
        return cls.from_host_port(host, port, connection_class=connection_class)

    @classmethod
    def from_host_port(
        cls,
        host: str,
        port: int,
        /,
        *,
        connection_class: type[protocol.ConnectionProto] = Connection,
    ) -> "typing_extensions.Self":
        """Connect to Redis at the provided host and port."""
        connection = connection_class.from_host_port(host, port)
        return cls(connection)

    @property
    def pipelining(self) -> bool:
        return self.connection.pipelining

    @pipelining.setter
    def pipelining(self, value: bool) -> None:
        self.connection.pipelining = value

    def connect(self) -> None:
        """Connect to Redis with the connection parameters provided at instantiation."""
        self.connection.connect()

    def disconnect(self) -> None:
        """Close the connection with Redis."""
        self.connection.disconnect()

    def is_alive(self) -> bool:
        """Check whether this connection has an active redis connection."""
        return self.connection.is_alive()

    def flush(self) -> None:
        """Force buffered output onto the socket."""
        self.connection.flush()

    def read_byte(self) -> bytes:
        return self.connection.read_byte()

    def read_line(self) -> bytes:
        return self.connection.read_line()

    def read_exact(self, n: int, /) -> bytes:
        return self.connection.read_exact(n)

    def write_command(self, command: protocol.CommandProto, /) -> None:
        """Write a command to the connected Redis instance.

        ``read_response`` *must* be called once for every written command.
        """
        self.connection.write_command(command)

    def read_response(self) -> reply.Reply:
        """Read the response to a previously executed command."""
        return self.connection.read_response()

    def send(self, command: protocol.CommandProto, /) -> reply.Reply:
        """Write a command and read its response."""
        return self.connection.send(command)

    def pipeline(self) -> Pipeline:
        """Start a batch of commands that is flushed and read in one go."""
        return Pipeline(self.connection)

    def _execute(self, name: str, *args: Value) -> reply.Reply:
        return self.connection.send(command.Command(name, *args))

    # Connection

    def ping(self) -> bool:
        transform.expect_status("PONG", self._execute("PING"))
        return True

    def echo(self, message: Value) -> bytes:
        return transform.expect_string(self._execute("ECHO", message))

    def auth(self, password: str) -> None:
        transform.expect_ok(self._execute("AUTH", password))

    def select(self, index: int) -> None:
        transform.expect_ok(self._execute("SELECT", index))

    def quit(self) -> None:
        """Ask the server to close the connection, then close it locally."""
        transform.expect_ok(self._execute("QUIT"))
        self.connection.disconnect()

    # Strings

    def set(self, key: Key, value: Value) -> None:
        transform.expect_ok(self._execute("SET", key, value))

    def get(self, key: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("GET", key))

    def getset(self, key: Key, value: Value) -> bytes | None:
        return transform.expect_bulk(self._execute("GETSET", key, value))

    def mget(self, *keys: Key) -> list[bytes | None] | None:
        """Get the values of all given keys; missing keys are ``None``."""
        _require_keys(keys)
        return transform.expect_multi(self._execute("MGET", *keys))

    def setnx(self, key: Key, value: Value) -> bool:
        return transform.expect_bool(self._execute("SETNX", key, value))

    def mset(self, mapping: collections.abc.Mapping[Key, Value]) -> None:
        _require_keys(list(mapping))
        cmd = command.Command("MSET")
        for key, value in mapping.items():
            cmd.arg(key).arg(value)

        transform.expect_ok(self.connection.send(cmd))

    def msetnx(self, mapping: collections.abc.Mapping[Key, Value]) -> bool:
        _require_keys(list(mapping))
        cmd = command.Command("MSETNX")
        for key, value in mapping.items():
            cmd.arg(key).arg(value)

        return transform.expect_bool(self.connection.send(cmd))

    def incr(self, key: Key) -> int:
        return transform.expect_int(self._execute("INCR", key))

    def incrby(self, key: Key, amount: int) -> int:
        return transform.expect_int(self._execute("INCRBY", key, amount))

    def decr(self, key: Key) -> int:
        return transform.expect_int(self._execute("DECR", key))

    def decrby(self, key: Key, amount: int) -> int:
        return transform.expect_int(self._execute("DECRBY", key, amount))

    def append(self, key: Key, value: Value) -> int:
        return transform.expect_int(self._execute("APPEND", key, value))

    def strlen(self, key: Key) -> int:
        return transform.expect_int(self._execute("STRLEN", key))

    # Keys

    def exists(self, key: Key) -> bool:
        return transform.expect_bool(self._execute("EXISTS", key))

    def delete(self, *keys: Key) -> int:
        """Delete keys, returning how many of them existed."""
        _require_keys(keys)
        return transform.expect_int(self._execute("DEL", *keys))

    def value_type(self, key: Key) -> transform.ValueType:
        """Get the type of the value stored at a key (TYPE)."""
        return transform.expect_type(self._execute("TYPE", key))

    def keys(self, pattern: Key) -> list[bytes]:
        return transform.expect_list(self._execute("KEYS", pattern))

    def randomkey(self) -> bytes | None:
        return transform.expect_bulk(self._execute("RANDOMKEY"))

    def rename(self, src: Key, dst: Key) -> None:
        transform.expect_ok(self._execute("RENAME", src, dst))

    def renamenx(self, src: Key, dst: Key) -> bool:
        return transform.expect_bool(self._execute("RENAMENX", src, dst))

    def dbsize(self) -> int:
        return transform.expect_int(self._execute("DBSIZE"))

    def expire(self, key: Key, seconds: int) -> bool:
        return transform.expect_bool(self._execute("EXPIRE", key, seconds))

    def ttl(self, key: Key) -> int:
        return transform.expect_int(self._execute("TTL", key))

    def move(self, key: Key, index: int) -> bool:
        return transform.expect_bool(self._execute("MOVE", key, index))

    def flushdb(self) -> None:
        transform.expect_ok(self._execute("FLUSHDB"))

    def flushall(self) -> None:
        transform.expect_ok(self._execute("FLUSHALL"))

    # Lists

    def rpush(self, key: Key, *values: Value) -> int:
        """Append values to a list, returning its new length."""
        _require_keys(values)
        return transform.expect_int(self._execute("RPUSH", key, *values))

    def lpush(self, key: Key, *values: Value) -> int:
        """Prepend values to a list, returning its new length."""
        _require_keys(values)
        return transform.expect_int(self._execute("LPUSH", key, *values))

    def llen(self, key: Key) -> int:
        return transform.expect_int(self._execute("LLEN", key))

    def lrange(self, key: Key, start: int, stop: int) -> list[bytes]:
        return transform.expect_list(self._execute("LRANGE", key, start, stop))

    def ltrim(self, key: Key, start: int, stop: int) -> None:
        transform.expect_ok(self._execute("LTRIM", key, start, stop))

    def lindex(self, key: Key, index: int) -> bytes | None:
        return transform.expect_bulk(self._execute("LINDEX", key, index))

    def lset(self, key: Key, index: int, value: Value) -> None:
        transform.expect_ok(self._execute("LSET", key, index, value))

    def lrem(self, key: Key, count: int, value: Value) -> int:
        return transform.expect_int(self._execute("LREM", key, count, value))

    def lpop(self, key: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("LPOP", key))

    def rpop(self, key: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("RPOP", key))

    def rpoplpush(self, src: Key, dst: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("RPOPLPUSH", src, dst))

    def blpop(self, keys: collections.abc.Sequence[Key], timeout: int = 0) -> tuple[bytes, bytes] | None:
        """Pop from the first non-empty list, waiting server-side up to ``timeout`` seconds.

        Returns a ``(key, value)`` pair, or ``None`` when the wait ran out.
        A timeout of 0 waits indefinitely.
        """
        _require_keys(keys)
        return transform.expect_kv_pair(self._execute("BLPOP", *keys, timeout))

    def brpop(self, keys: collections.abc.Sequence[Key], timeout: int = 0) -> tuple[bytes, bytes] | None:
        _require_keys(keys)
        return transform.expect_kv_pair(self._execute("BRPOP", *keys, timeout))

    # Sets

    def sadd(self, key: Key, member: Value) -> bool:
        return transform.expect_bool(self._execute("SADD", key, member))

    def srem(self, key: Key, member: Value) -> bool:
        return transform.expect_bool(self._execute("SREM", key, member))

    def spop(self, key: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("SPOP", key))

    def smove(self, src: Key, dst: Key, member: Value) -> bool:
        return transform.expect_bool(self._execute("SMOVE", src, dst, member))

    def sismember(self, key: Key, member: Value) -> bool:
        return transform.expect_bool(self._execute("SISMEMBER", key, member))

    def scard(self, key: Key) -> int:
        return transform.expect_int(self._execute("SCARD", key))

    def smembers(self, key: Key) -> list[bytes]:
        return transform.expect_list(self._execute("SMEMBERS", key))

    def srandmember(self, key: Key) -> bytes | None:
        return transform.expect_bulk(self._execute("SRANDMEMBER", key))

    def sinter(self, *keys: Key) -> list[bytes]:
        _require_keys(keys)
        return transform.expect_list(self._execute("SINTER", *keys))

    def sinterstore(self, dst: Key, *keys: Key) -> int:
        _require_keys(keys)
        return transform.expect_int(self._execute("SINTERSTORE", dst, *keys))

    def sunion(self, *keys: Key) -> list[bytes]:
        _require_keys(keys)
        return transform.expect_list(self._execute("SUNION", *keys))

    def sunionstore(self, dst: Key, *keys: Key) -> int:
        _require_keys(keys)
        return transform.expect_int(self._execute("SUNIONSTORE", dst, *keys))

    def sdiff(self, *keys: Key) -> list[bytes]:
        _require_keys(keys)
        return transform.expect_list(self._execute("SDIFF", *keys))

    def sdiffstore(self, dst: Key, *keys: Key) -> int:
        _require_keys(keys)
        return transform.expect_int(self._execute("SDIFFSTORE", dst, *keys))

    # Sorted sets

    def zadd(self, key: Key, score: float, member: Value) -> bool:
        return transform.expect_bool(self._execute("ZADD", key, score, member))

    def zrem(self, key: Key, member: Value) -> bool:
        return transform.expect_bool(self._execute("ZREM", key, member))

    def zincrby(self, key: Key, increment: float, member: Value) -> float:
        return transform.expect_float(self._execute("ZINCRBY", key, increment, member))

    def zscore(self, key: Key, member: Value) -> float | None:
        return transform.expect_opt_float(self._execute("ZSCORE", key, member))

    def zrank(self, key: Key, member: Value) -> int | None:
        return transform.expect_rank(self._execute("ZRANK", key, member))

    def zrevrank(self, key: Key, member: Value) -> int | None:
        return transform.expect_rank(self._execute("ZREVRANK", key, member))

    def zrange(self, key: Key, start: int, stop: int) -> list[bytes]:
        return transform.expect_list(self._execute("ZRANGE", key, start, stop))

    def zrevrange(self, key: Key, start: int, stop: int) -> list[bytes]:
        return transform.expect_list(self._execute("ZREVRANGE", key, start, stop))

    def zrangebyscore(self, key: Key, min_score: Value, max_score: Value) -> list[bytes]:
        return transform.expect_list(self._execute("ZRANGEBYSCORE", key, min_score, max_score))

    def zcard(self, key: Key) -> int:
        return transform.expect_int(self._execute("ZCARD", key))

    # Sorting

    def sort(self, key: Key, options: command.SortOptions | None = None) -> list[bytes]:
        """Sort the elements of a list, set or sorted set.

        See also: https://redis.io/docs/latest/commands/sort/
        """
        cmd = command.Command("SORT", key)
        if options is not None:
            cmd.args(options.tokens())

        return transform.expect_list(self.connection.send(cmd))

    # Persistence

    def save(self) -> None:
        transform.expect_ok(self._execute("SAVE"))

    def bgsave(self) -> None:
        transform.expect_status("Background saving started", self._execute("BGSAVE"))

    def lastsave(self) -> int:
        """Unix time of the last successful save."""
        return transform.expect_large_int(self._execute("LASTSAVE"))

    def shutdown(self) -> None:
        """Stop the server.

        The server closes the connection instead of replying; that is the
        only successful outcome. Any reply other than an error is unexpected.
        """
        self.connection.write_command(command.Command("SHUTDOWN"))
        try:
            response = self.connection.read_response()

        except error.EndOfStreamError:
            return

        raise error.ProjectionMismatch("shutdown", response)
