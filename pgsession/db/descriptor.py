"""Connection descriptors: how to reach a target database."""

import copy
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
from urllib.parse import parse_qs, unquote, urlparse


class SslMode(str, Enum):
    DISABLE = "disable"
    TRY = "try"
    REQUIRE = "require"

    @property
    def enabled(self) -> bool:
        return self is not SslMode.DISABLE

    @property
    def libpq_mode(self) -> str:
        """The equivalent libpq ``sslmode`` value."""
        return {"disable": "disable", "try": "prefer", "require": "require"}[self.value]

    @classmethod
    def parse(cls, value: Union[str, "SslMode", None]) -> "SslMode":
        if value is None:
            return cls.DISABLE
        if isinstance(value, SslMode):
            return value
        aliases = {"prefer": "try", "allow": "try", "verify-ca": "require", "verify-full": "require"}
        value = value.lower()
        return cls(aliases.get(value, value))


@dataclass(frozen=True)
class UnixSocket:
    """Path to a local server socket, e.g. ``/var/run/postgresql/.s.PGSQL.5432``."""

    path: str

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path) or "/"


def socket_file_path(path: str, port: int) -> str:
    """Socket file for ``path``, which may name the socket or its directory."""
    if os.path.basename(path.rstrip("/")).startswith(".s.PGSQL."):
        return path
    return os.path.join(path, f".s.PGSQL.{port}")


@dataclass
class ConnectionDescriptor:
    """Credentials and address of a target database.

    ``host`` is either a network address or a :class:`UnixSocket`.
    ``table_name`` only provides context for logs and errors.
    """

    user: str
    password: str = field(default="", repr=False)
    host: Union[str, UnixSocket] = "localhost"
    port: int = 5432
    dbname: str = "postgres"
    ssl_mode: SslMode = SslMode.DISABLE
    table_name: Optional[str] = None
    backend: str = field(default="pgsql", init=False)

    def __post_init__(self):
        self.ssl_mode = SslMode.parse(self.ssl_mode)
        if isinstance(self.host, str) and self.host.startswith("/"):
            self.host = UnixSocket(socket_file_path(self.host, self.port))
        if not self.host:
            raise ValueError("ConnectionDescriptor requires a host or socket path")
        if not self.user:
            raise ValueError("ConnectionDescriptor requires a user")

    @property
    def is_unix_socket(self) -> bool:
        return isinstance(self.host, UnixSocket)

    def clone(self) -> "ConnectionDescriptor":
        """Return an independent copy sharing no mutable state."""
        return copy.deepcopy(self)

    @classmethod
    def from_url(cls, url: str, table_name: Optional[str] = None) -> "ConnectionDescriptor":
        """Build a descriptor from a ``postgresql://`` URL.

        A socket directory may be given as ``?host=/run/postgresql``; the
        socket file name is then derived from the port, the way libpq does.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("postgresql", "postgres", "pgsql"):
            raise ValueError("DATABASE_URL must start with postgresql://")

        query = parse_qs(parsed.query)
        port = parsed.port or 5432
        host: Union[str, UnixSocket] = unquote(parsed.hostname or "") or "localhost"
        if "host" in query and query["host"][0].startswith("/"):
            host = UnixSocket(socket_file_path(query["host"][0], port))

        return cls(
            user=unquote(parsed.username or "") or os.getenv("USER", "postgres"),
            password=unquote(parsed.password or ""),
            host=host,
            port=port,
            dbname=parsed.path.lstrip("/") or "postgres",
            ssl_mode=SslMode.parse(query.get("sslmode", [None])[0]),
            table_name=table_name,
        )

    def __str__(self) -> str:
        where = self.host.path if isinstance(self.host, UnixSocket) else f"{self.host}:{self.port}"
        return f"{self.backend}://{self.user}@{where}/{self.dbname}"
