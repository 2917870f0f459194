import collections.abc
import dataclasses

from respwire import reply as reply_

__all__: collections.abc.Sequence[str] = (
    "RedisError",
    "ConnectionError",
    "EndOfStreamError",
    "StateError",
    "ProtocolError",
    "FormatError",
    "ServerError",
    "ProjectionMismatch",
)


class RedisError(Exception):
    ...


class ConnectionError(RedisError):  # noqa: A001
    ...


class EndOfStreamError(ConnectionError):
    """The server closed the connection while a reply was expected."""


class StateError(RedisError):
    ...


class ProtocolError(RedisError):
    ...


class FormatError(RedisError):
    ...


@dataclasses.dataclass
class ServerError(RedisError):
    message: str

    def __str__(self) -> str:
        return self.message

    @property
    def code(self) -> str:
        """The leading word of the message, e.g. ``ERR`` or ``WRONGTYPE``."""
        return self.message.split(" ", 1)[0]

    @classmethod
    def from_response(cls, response: str) -> "ServerError":
        return cls(response)


@dataclasses.dataclass
class ProjectionMismatch(RedisError):
    projection: str
    reply: reply_.Reply

    def __str__(self) -> str:
        return f"{self.projection}: unexpected {reply_.describe(self.reply)}"
