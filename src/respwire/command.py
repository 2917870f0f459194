"""Module containing command implementation."""

import collections.abc
import dataclasses
import enum
import typing

from respwire import protocol

if typing.TYPE_CHECKING:
    import typing_extensions

    from respwire import reply

__all__: collections.abc.Sequence[str] = ("Command", "SortOptions", "SortOrder")


Argument: typing.TypeAlias = str | bytes | int | float


@dataclasses.dataclass(slots=True)
class Command:
    """A Redis command.

    This class handles encoding of arguments before they're accepted by a
    ``Connection``. Every argument is kept as an opaque byte string; spaces,
    carriage returns and newlines need no escaping because the wire framing
    is length-prefixed.
    """

    arguments: list[bytes]

    def __init__(self, name: str | bytes, *args: Argument) -> None:
        self.arguments = []
        self.arg(name)
        for arg in args:
            self.arg(arg)

    def arg(self, value: Argument) -> "typing_extensions.Self":
        """Add an argument to this command."""
        if isinstance(value, bool):
            msg = "Boolean arguments are ambiguous, pass 1/0 or a string instead."
            raise TypeError(msg)

        if isinstance(value, bytes):
            pass
        elif isinstance(value, str):
            value = value.encode()
        elif isinstance(value, int | float):
            value = str(value).encode()
        else:
            msg = f"Unsupported argument type: {type(value).__name__}"
            raise TypeError(msg)

        self.arguments.append(value)
        return self

    def args(self, values: collections.abc.Iterable[Argument]) -> "typing_extensions.Self":
        """Add every argument in ``values`` to this command, in order."""
        for value in values:
            self.arg(value)

        return self

    @property
    def name(self) -> str:
        return self.arguments[0].decode("utf-8", errors="replace").upper()

    def execute(self, con: protocol.ConnectionProto) -> "reply.Reply":
        """Execute this command on a given connection."""
        return con.send(self)

    def __str__(self) -> str:
        return " ".join(arg.decode("utf-8", errors="replace") for arg in self.arguments)

    def __len__(self) -> int:
        return len(self.arguments)

    def __iter__(self) -> collections.abc.Iterator[bytes]:
        return iter(self.arguments)


class SortOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclasses.dataclass(frozen=True, slots=True)
class SortOptions:
    """Options for the SORT command.

    These compile into trailing command tokens in a fixed order:
    ``BY pattern``, ``LIMIT offset count``, ``GET pattern``, ``DESC``,
    ``ALPHA``. Ascending order and numeric sorting are the server defaults
    and emit nothing.
    """

    by: str | None = None
    limit: tuple[int, int] | None = None
    get: str | None = None
    order: SortOrder = SortOrder.ASC
    alpha: bool = False

    def tokens(self) -> list[Argument]:
        """Build the trailing SORT tokens for these options."""
        tokens: list[Argument] = []

        if self.by is not None:
            tokens += ["BY", self.by]

        if self.limit is not None:
            offset, count = self.limit
            tokens += ["LIMIT", offset, count]

        if self.get is not None:
            tokens += ["GET", self.get]

        if self.order is SortOrder.DESC:
            tokens.append("DESC")

        if self.alpha:
            tokens.append("ALPHA")

        return tokens
