"""Module containing reply projections for high-level Redis commands.

Each projection accepts exactly the reply shapes its command can produce and
raises ``ProjectionMismatch`` for anything else.
"""

import collections.abc
import enum
import typing

from respwire import error, reply

__all__: collections.abc.Sequence[str] = (
    "ValueType",
    "filter_error",
    "expect_status",
    "expect_ok",
    "expect_bool",
    "expect_int",
    "expect_large_int",
    "expect_rank",
    "expect_bulk",
    "expect_string",
    "expect_list",
    "expect_multi",
    "expect_kv_pair",
    "expect_float",
    "expect_opt_float",
    "expect_type",
)


ReplyT = typing.TypeVar("ReplyT", bound=reply.Reply)


class ValueType(str, enum.Enum):
    """Type of the value stored at a key, as reported by TYPE."""

    NONE = "none"
    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"


def filter_error(response: ReplyT) -> ReplyT:
    """Raise error replies as ``ServerError``, pass anything else through."""
    if isinstance(response, reply.Error):
        raise error.ServerError.from_response(response.text)

    return response


def expect_status(expected: str, response: reply.Reply) -> None:
    match response:
        case reply.Status(text) if text == expected:
            return
        case _:
            raise error.ProjectionMismatch("expect_status", response)


def expect_ok(response: reply.Reply) -> None:
    """Expect the most common status reply, ``+OK``."""
    expect_status("OK", response)


def expect_bool(response: reply.Reply) -> bool:
    match response:
        case reply.Integer(0):
            return False
        case reply.Integer(1):
            return True
        case _:
            raise error.ProjectionMismatch("expect_bool", response)


def expect_int(response: reply.Reply) -> int:
    match response:
        case reply.Integer(value):
            return value
        case _:
            raise error.ProjectionMismatch("expect_int", response)


def expect_large_int(response: reply.Reply) -> int:
    match response:
        case reply.Integer(value) | reply.LargeInteger(value):
            return value
        case _:
            raise error.ProjectionMismatch("expect_large_int", response)


def expect_rank(response: reply.Reply) -> int | None:
    """Expect a position, or nil when the member does not exist."""
    match response:
        case reply.Integer(value):
            return value
        case reply.Bulk(None):
            return None
        case _:
            raise error.ProjectionMismatch("expect_rank", response)


def expect_bulk(response: reply.Reply) -> bytes | None:
    match response:
        case reply.Bulk(value):
            return value
        case _:
            raise error.ProjectionMismatch("expect_bulk", response)


def expect_string(response: reply.Reply) -> bytes:
    match response:
        case reply.Bulk(bytes() as value):
            return value
        case _:
            raise error.ProjectionMismatch("expect_string", response)


def expect_list(response: reply.Reply) -> list[bytes]:
    """Expect an array reply without any nil in it."""
    match response:
        case reply.MultiBulk(tuple() as items) if None not in items:
            return typing.cast(list[bytes], list(items))
        case _:
            raise error.ProjectionMismatch("expect_list", response)


def expect_multi(response: reply.Reply) -> list[bytes | None] | None:
    """Expect an array reply, keeping nil elements and a nil array as-is."""
    match response:
        case reply.MultiBulk(None):
            return None
        case reply.MultiBulk(items):
            return list(items)
        case _:
            raise error.ProjectionMismatch("expect_multi", response)


def expect_kv_pair(response: reply.Reply) -> tuple[bytes, bytes] | None:
    match response:
        case reply.MultiBulk((bytes() as key, bytes() as value)):
            return key, value
        case reply.MultiBulk(None):
            return None
        case _:
            raise error.ProjectionMismatch("expect_kv_pair", response)


def _parse_float(value: bytes) -> float:
    try:
        return float(value)
    except ValueError:
        msg = f"{value!r} is not a floating point number"
        raise error.FormatError(msg) from None


def expect_float(response: reply.Reply) -> float:
    match response:
        case reply.Bulk(bytes() as value):
            return _parse_float(value)
        case _:
            raise error.ProjectionMismatch("expect_float", response)


def expect_opt_float(response: reply.Reply) -> float | None:
    match response:
        case reply.Bulk(bytes() as value):
            return _parse_float(value)
        case reply.Bulk(None):
            return None
        case _:
            raise error.ProjectionMismatch("expect_opt_float", response)


def expect_type(response: reply.Reply) -> ValueType:
    match response:
        case reply.Status(text):
            try:
                return ValueType(text)
            except ValueError:
                raise error.ProjectionMismatch("expect_type", response) from None
        case _:
            raise error.ProjectionMismatch("expect_type", response)
