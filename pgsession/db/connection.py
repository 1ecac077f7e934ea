"""PostgreSQL session management for pgsession.

Opens and closes psycopg2 connections with client certificate lookup,
bounded retry while the server is out of connection slots, and session
settings applied on every new connection.
"""

import time
from typing import Any, Callable, Optional

import psycopg2
import psycopg2.extensions
import structlog
from psycopg2.extensions import connection as PgConnection
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from pgsession.config import ConnectionConfig, get_settings
from pgsession.db import gucs
from pgsession.db.descriptor import ConnectionDescriptor, UnixSocket
from pgsession.db.errors import (
    ConnectionExhaustedError,
    DatabaseConnectionError,
    is_resource_exhausted,
    server_message,
)
from pgsession.db.ssl import resolve_ssl_material

logger = structlog.get_logger(__name__)


def drain_notices(handle: PgConnection, **context: Any) -> int:
    """Log and discard the server notices collected on ``handle``.

    Returns:
        Number of notices drained.
    """
    notices = list(handle.notices)
    for notice in notices:
        logger.warning("server_notice", message=notice.strip(), **context)
    del handle.notices[:]
    return len(notices)


class ConnectionManager:
    """Owner of a single PostgreSQL session.

    The handle is None until open() succeeds and again after close().
    Sessions run in autocommit mode; transactions are explicit.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        config: Optional[ConnectionConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the manager.

        Args:
            descriptor: Where and as whom to connect.
            config: Retry policy, SSL paths and session settings. If None, uses settings.
            sleep: Blocking sleep used between connection attempts.
        """
        self.descriptor = descriptor
        self.config = config or get_settings().connection_config()
        self.handle: Optional[PgConnection] = None
        self.in_transaction = False
        self._sleep = sleep
        self._attempts = 0

    @property
    def is_open(self) -> bool:
        return self.handle is not None

    def log_context(self) -> dict[str, Any]:
        return {"target": str(self.descriptor), "table_name": self.descriptor.table_name}

    def connect_kwargs(self, username: Optional[str] = None) -> dict[str, Any]:
        """Keyword arguments for psycopg2.connect()."""
        descriptor = self.descriptor
        host = descriptor.host
        kwargs: dict[str, Any] = {
            "host": host.directory if isinstance(host, UnixSocket) else host,
            "port": descriptor.port,
            "dbname": descriptor.dbname,
            "user": username or descriptor.user,
            "sslmode": descriptor.ssl_mode.libpq_mode,
        }
        if descriptor.password:
            kwargs["password"] = descriptor.password

        if descriptor.ssl_mode.enabled:
            material = resolve_ssl_material(self.config.ssl_cert_file, self.config.ssl_key_file)
            if material is not None:
                kwargs.update(material.as_connect_kwargs())

        return kwargs

    def _connect_once(self, kwargs: dict[str, Any]) -> PgConnection:
        self._attempts += 1
        try:
            handle = psycopg2.connect(**kwargs)
        except psycopg2.Error as exc:
            if is_resource_exhausted(exc):
                logger.error(
                    "connection_refused_resource_exhausted",
                    attempt=self._attempts,
                    max_attempts=self.config.retry.max_attempts,
                    error=server_message(exc),
                    **self.log_context(),
                )
            raise

        handle.autocommit = True
        drain_notices(handle, **self.log_context())
        return handle

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        logger.info(
            "connection_retry_scheduled",
            attempt=retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            **self.log_context(),
        )

    def open(self, username: Optional[str] = None) -> PgConnection:
        """Connect to the target and apply the session settings.

        Args:
            username: Connect as this user instead of the descriptor's.

        Returns:
            The open psycopg2 connection, also kept as ``self.handle``.

        Raises:
            RuntimeError: If the manager already holds an open handle.
            ConnectionExhaustedError: If the server kept refusing for lack of resources.
            DatabaseConnectionError: On any other connection failure.
        """
        if self.handle is not None:
            raise RuntimeError("Connection already open. Call close() first.")

        policy = self.config.retry
        kwargs = self.connect_kwargs(username)
        self._attempts = 0

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.delay_seconds),
            retry=retry_if_exception(is_resource_exhausted),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
        )

        try:
            handle = retrying(self._connect_once, kwargs)
        except RetryError as exc:
            attempts = exc.last_attempt.attempt_number
            logger.error("connection_attempts_exhausted", attempts=attempts, **self.log_context())
            raise ConnectionExhaustedError(self.descriptor, attempts) from exc.last_attempt.exception()
        except psycopg2.Error as exc:
            logger.error(
                "connection_failed",
                attempts=self._attempts,
                error=server_message(exc),
                **self.log_context(),
            )
            raise DatabaseConnectionError(
                self.descriptor,
                self._attempts,
                f"Failed to connect to {self.descriptor}: {server_message(exc)}",
            ) from exc

        self.handle = handle
        try:
            session_gucs = gucs.sanitize(self.config.session_gucs, self.config.application_name)
            gucs.apply(session_gucs, self, gucs.GucScope.SESSION)
        except BaseException:
            self.close()
            raise

        logger.info("connection_opened", attempts=self._attempts, **self.log_context())
        return handle

    def close(self) -> None:
        """Close the session.

        Raises:
            RuntimeError: If the connection is not open.
        """
        if self.handle is None:
            raise RuntimeError("Connection not open. Call open() first.")

        handle, self.handle = self.handle, None
        self.in_transaction = False
        handle.close()
        logger.debug("connection_closed", **self.log_context())

    def cursor(self) -> psycopg2.extensions.cursor:
        """Return a new cursor on the open session.

        Raises:
            RuntimeError: If the connection is not open.
        """
        if self.handle is None:
            raise RuntimeError("Connection not open. Call open() first.")
        return self.handle.cursor()

    def clone(self) -> "ConnectionManager":
        """A closed manager for the same target, e.g. one per worker."""
        return ConnectionManager(self.descriptor.clone(), config=self.config, sleep=self._sleep)

    def __enter__(self) -> "ConnectionManager":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.handle is not None:
            self.close()
