"""A synchronous client for the Redis serialization protocol."""

import collections.abc

from respwire.client import Redis
from respwire.command import Command, SortOptions, SortOrder
from respwire.connection import ActionableConnection, Connection, Pipeline
from respwire.error import (
    ConnectionError,
    EndOfStreamError,
    FormatError,
    ProjectionMismatch,
    ProtocolError,
    RedisError,
    ServerError,
    StateError,
)
from respwire.transform import ValueType

__all__: collections.abc.Sequence[str] = (
    "ActionableConnection",
    "Command",
    "Connection",
    "ConnectionError",
    "EndOfStreamError",
    "FormatError",
    "Pipeline",
    "ProjectionMismatch",
    "ProtocolError",
    "Redis",
    "RedisError",
    "ServerError",
    "SortOptions",
    "SortOrder",
    "StateError",
    "ValueType",
)
