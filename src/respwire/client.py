"""Module containing Redis client implementation."""

import collections.abc
import dataclasses
import logging
import types
import typing
import urllib.parse

from respwire import connection, protocol

if typing.TYPE_CHECKING:
    import typing_extensions

__all__: collections.abc.Sequence[str] = ("Redis",)

_LOGGER = logging.getLogger(__name__)


ConnectionT = typing.TypeVar("ConnectionT", bound=protocol.ConnectionProto)


@dataclasses.dataclass(slots=True)
class Redis:
    """Redis client implementation.

    The client only remembers where the server lives and which connections it
    handed out. Each connection is independent and must be used by one caller
    at a time.
    """

    host: str
    port: int

    _connections: list[protocol.ConnectionProto] = dataclasses.field(
        default_factory=list,
        init=False,
    )

    @classmethod
    def from_url(cls, url: str) -> "Redis":
        """Create a Redis client from a Redis url.

        This performs URL validation, but does *not* make any connections.

        Connections should be created by the user with ``get_connection``.
        """
        parsed = urllib.parse.urlparse(url)
        if not parsed.hostname or not parsed.port or parsed.scheme != "redis":
            msg = "Only urls of scheme 'redis://host:port' are supported"
            raise ValueError(msg)

        return cls(parsed.hostname, parsed.port)

    def get_connection(
        self,
        connection_class: type[ConnectionT] = connection.ActionableConnection,  # type: ignore[assignment]
    ) -> ConnectionT:
        """Make a new connection to this client's Redis instance.

        By default, this makes a new ActionableConnection. You can provide a
        different (custom) connection class through the ``connection_class``
        argument.
        """
        con = connection_class.from_host_port(self.host, self.port)
        self._connections.append(con)
        return con

    def disconnect(self) -> None:
        """Disconnect all live connections registered to this Redis client."""
        connections, self._connections = self._connections, []

        live = [con for con in connections if con.is_alive()]
        _LOGGER.debug("Closing %i of %i connections", len(live), len(connections))

        for con in live:
            con.disconnect()

    def __enter__(self) -> "typing_extensions.Self":
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_value: BaseException | None,
        _exc_tb: types.TracebackType | None,
    ) -> None:
        self.disconnect()
