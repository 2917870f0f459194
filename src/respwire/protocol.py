"""Module containing protocols that prescribe respwire implementations."""

import collections.abc
import typing

if typing.TYPE_CHECKING:
    import typing_extensions

    from respwire import reply

__all__: collections.abc.Sequence[str] = ("CommandProto", "ConnectionProto", "StreamProto")


class CommandProto(typing.Protocol):
    """Redis command protocol."""

    def arg(self, value: str | bytes | int | float) -> "CommandProto":
        """Add an argument to this command."""
        ...

    def __iter__(self) -> typing.Iterator[bytes]: ...

    def __len__(self) -> int: ...


class StreamProto(typing.Protocol):
    """Byte stream primitives the reply decoder reads through."""

    def read_byte(self) -> bytes:
        """Read the single leading byte of a reply."""
        ...

    def read_line(self) -> bytes:
        """Read up to CRLF, returning the line without its terminator."""
        ...

    def read_exact(self, n: int, /) -> bytes:
        """Read exactly ``n`` bytes, then consume the trailing CRLF."""
        ...


class ConnectionProto(StreamProto, typing.Protocol):
    """Redis connection protocol."""

    pipelining: bool

    @classmethod
    def from_host_port(cls, host: str, port: int, /) -> "typing_extensions.Self":
        """Connect to Redis at the provided host and port."""
        ...

    def connect(self) -> None:
        """Connect to Redis with the connection parameters provided at instantiation."""
        ...

    def disconnect(self) -> None:
        """Close the connection with Redis."""
        ...

    def is_alive(self) -> bool:
        """Check whether this connection has an active redis connection."""
        ...

    def flush(self) -> None:
        """Force buffered output onto the socket."""
        ...

    def write_command(self, command: "CommandProto", /) -> None:
        """Write a command to the connected Redis instance.

        This requires this connection to be alive. Unless the connection is
        pipelining, the command is flushed immediately.

        ``read_response`` *must* be called once for every written command.
        """
        ...

    def read_response(self) -> "reply.Reply":
        """Read the response to a previously executed command.

        Error replies are raised as ``ServerError``.
        """
        ...

    def send(self, command: "CommandProto", /) -> "reply.Reply":
        """Write a command and read its response."""
        ...
