"""Module containing the RESP wire codec.

Requests always use the unified request protocol::

    *<argument count>\\r\\n
    $<argument length>\\r\\n<argument bytes>\\r\\n   (once per argument)

Replies are decoded from any ``StreamProto``; bulk payloads are read by exact
byte count and never scanned for delimiters.
"""

import collections.abc
import enum

from respwire import error, protocol, reply

__all__: collections.abc.Sequence[str] = ("ByteResponse", "encode_command", "decode_reply")


_CRLF = b"\r\n"
_NIL = -1
# Largest bulk string or multi-bulk count the server itself accepts.
_MAX_LENGTH = 512 * 1024 * 1024
_MAX_INTEGER_DIGITS = len(str(2**64))


class ByteResponse(bytes, enum.Enum):
    STATUS = b"+"
    ERROR = b"-"
    INTEGER = b":"
    BULK = b"$"
    MULTI_BULK = b"*"


def encode_command(command: collections.abc.Iterable[bytes]) -> bytes:
    """Encode command tokens using the unified request protocol."""
    tokens = list(command)
    if not tokens:
        msg = "A command needs at least one token."
        raise ValueError(msg)

    parts = [b"*%i\r\n" % len(tokens)]
    for token in tokens:
        parts.append(b"$%i\r\n" % len(token))
        parts.append(token)
        parts.append(_CRLF)

    return b"".join(parts)


def _parse_length(line: bytes, kind: str) -> int:
    if line == b"-1":
        return _NIL

    if not line.isdigit():
        msg = f"Invalid {kind} {line!r}."
        raise error.ProtocolError(msg)

    length = int(line)
    if length > _MAX_LENGTH:
        msg = f"Invalid {kind} {length}, the limit is {_MAX_LENGTH}."
        raise error.ProtocolError(msg)

    return length


def _parse_integer(line: bytes) -> reply.Integer | reply.LargeInteger:
    digits = line[1:] if line.startswith(b"-") else line
    if not digits.isdigit():
        msg = f"Invalid integer reply {line!r}."
        raise error.ProtocolError(msg)

    if len(digits) > _MAX_INTEGER_DIGITS:
        msg = f"Integer reply {line!r} does not fit in 64 bits."
        raise error.ProtocolError(msg)

    value = int(line)
    if reply.INT64_MIN <= value <= reply.INT64_MAX:
        return reply.Integer(value)

    if 0 < value <= reply.UINT64_MAX:
        return reply.LargeInteger(value)

    msg = f"Integer reply {value} does not fit in 64 bits."
    raise error.ProtocolError(msg)


def _read_bulk(stream: protocol.StreamProto) -> bytes | None:
    # The leading '$' has already been consumed.
    length = _parse_length(stream.read_line(), "bulk length")
    if length == _NIL:
        return None

    return stream.read_exact(length)


def _read_multi_bulk(stream: protocol.StreamProto) -> tuple[bytes | None, ...] | None:
    # The leading '*' has already been consumed.
    count = _parse_length(stream.read_line(), "multi-bulk count")
    if count == _NIL:
        return None

    items: list[bytes | None] = []
    for _ in range(count):
        byte = stream.read_byte()
        if byte != ByteResponse.BULK:
            msg = f"Expected a bulk string inside multi-bulk reply, got {byte!r}."
            raise error.ProtocolError(msg)

        items.append(_read_bulk(stream))

    return tuple(items)


def decode_reply(stream: protocol.StreamProto) -> reply.Reply:
    """Read exactly one reply from the stream."""
    # First byte is a symbol that determines the reply type.
    byte = stream.read_byte()

    if byte == ByteResponse.STATUS:
        return reply.Status(stream.read_line().decode("utf-8", errors="replace"))

    if byte == ByteResponse.ERROR:
        return reply.Error(stream.read_line().decode("utf-8", errors="replace"))

    if byte == ByteResponse.INTEGER:
        return _parse_integer(stream.read_line())

    if byte == ByteResponse.BULK:
        return reply.Bulk(_read_bulk(stream))

    if byte == ByteResponse.MULTI_BULK:
        return reply.MultiBulk(_read_multi_bulk(stream))

    msg = f"{byte!r} is not a valid reply type"
    raise error.ProtocolError(msg)
