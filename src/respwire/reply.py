"""Module containing the typed reply model.

Every reply read from the server is decoded into exactly one of the classes
below. Absence is a value of its own: ``Bulk(None)`` is a nil bulk string,
``MultiBulk(None)`` is a nil array, and ``MultiBulk(())`` is an empty one.
"""

import collections.abc
import dataclasses
import typing

__all__: collections.abc.Sequence[str] = (
    "Status",
    "Integer",
    "LargeInteger",
    "Bulk",
    "MultiBulk",
    "Error",
    "Reply",
    "INT64_MIN",
    "INT64_MAX",
    "UINT64_MAX",
    "describe",
)


INT64_MIN: typing.Final = -(2**63)
INT64_MAX: typing.Final = 2**63 - 1
UINT64_MAX: typing.Final = 2**64 - 1


@dataclasses.dataclass(frozen=True, slots=True)
class Status:
    """Single-line simple string reply, e.g. ``+OK``."""

    text: str


@dataclasses.dataclass(frozen=True, slots=True)
class Integer:
    """Numeric reply within the signed 64-bit range."""

    value: int


@dataclasses.dataclass(frozen=True, slots=True)
class LargeInteger:
    """Numeric reply above the signed 64-bit range, up to the unsigned 64-bit maximum."""

    value: int


@dataclasses.dataclass(frozen=True, slots=True)
class Bulk:
    """Binary-safe string reply; ``None`` for nil."""

    value: bytes | None


@dataclasses.dataclass(frozen=True, slots=True)
class MultiBulk:
    """Array reply of bulk strings; ``None`` for a nil array."""

    items: tuple[bytes | None, ...] | None


@dataclasses.dataclass(frozen=True, slots=True)
class Error:
    """Server-reported error reply, e.g. ``-ERR unknown command``."""

    text: str


Reply: typing.TypeAlias = Status | Integer | LargeInteger | Bulk | MultiBulk | Error


def _describe_bulk(value: bytes | None) -> str:
    if value is None:
        return "nil"

    return repr(value)


def describe(reply: Reply) -> str:
    """Render a reply for use in error messages."""
    if isinstance(reply, Status):
        return f"Status({reply.text!r})"

    if isinstance(reply, Integer):
        return f"Integer({reply.value})"

    if isinstance(reply, LargeInteger):
        return f"LargeInteger({reply.value})"

    if isinstance(reply, Error):
        return f"Error({reply.text!r})"

    if isinstance(reply, Bulk):
        return f"Bulk({_describe_bulk(reply.value)})"

    if reply.items is None:
        return "MultiBulk(nil)"

    return f"MultiBulk({'; '.join(map(_describe_bulk, reply.items))})"
