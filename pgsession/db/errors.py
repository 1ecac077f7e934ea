"""Error taxonomy for the connection and session layer.

Server errors arrive as ``psycopg2`` exceptions; this module sorts them into
the few kinds the layer reacts to differently.
"""

from enum import Enum
from typing import Any, Optional

import psycopg2
import psycopg2.errors

# too_many_connections, configuration_limit_exceeded
RESOURCE_EXHAUSTED_CODES = {"53300", "53400"}

# libpq reports startup refusals without a SQLSTATE, so match the message too.
RESOURCE_EXHAUSTED_MESSAGES = (
    "too many clients",
    "too many connections",
    "remaining connection slots are reserved",
)


class ErrorKind(str, Enum):
    RESOURCE_EXHAUSTED = "resource_exhausted"
    UNDEFINED_FEATURE = "undefined_feature"
    EXECUTION = "execution"
    WARNING = "warning"


class DatabaseConnectionError(Exception):
    """Raised when a connection could not be established."""

    def __init__(self, descriptor: Any, attempts: int, message: Optional[str] = None):
        self.descriptor = descriptor
        self.attempts = attempts
        super().__init__(
            message
            or f"Failed to connect to {descriptor} after {attempts} attempt(s)"
        )


class ConnectionExhaustedError(DatabaseConnectionError):
    """Every connection attempt was refused for lack of server resources."""

    pass


class TransactionStateError(RuntimeError):
    """A transaction was requested on a session that already has one open."""

    pass


def is_resource_exhausted(exc: BaseException) -> bool:
    if isinstance(
        exc,
        (psycopg2.errors.TooManyConnections, psycopg2.errors.ConfigurationLimitExceeded),
    ):
        return True
    if not isinstance(exc, psycopg2.Error):
        return False
    if getattr(exc, "pgcode", None) in RESOURCE_EXHAUSTED_CODES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in RESOURCE_EXHAUSTED_MESSAGES)


def is_undefined_feature(exc: BaseException) -> bool:
    """True for syntax errors and undefined objects (SQLSTATE class 42)."""
    if isinstance(exc, (psycopg2.errors.UndefinedFunction, psycopg2.errors.SyntaxError)):
        return True
    pgcode = getattr(exc, "pgcode", None)
    return isinstance(exc, psycopg2.Error) and bool(pgcode) and pgcode.startswith("42")


def classify_exception(exc: BaseException) -> ErrorKind:
    """Return the kind of a server-side condition for logging and dispatch."""
    if isinstance(exc, (Warning, psycopg2.Warning)):
        return ErrorKind.WARNING
    if is_resource_exhausted(exc):
        return ErrorKind.RESOURCE_EXHAUSTED
    if is_undefined_feature(exc):
        return ErrorKind.UNDEFINED_FEATURE
    return ErrorKind.EXECUTION


def server_message(exc: BaseException) -> str:
    """Primary server message of a psycopg2 error, falling back to ``str``."""
    diag = getattr(exc, "diag", None)
    primary = getattr(diag, "message_primary", None) if diag is not None else None
    return primary or str(exc).strip()
