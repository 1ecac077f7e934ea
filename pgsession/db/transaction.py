"""Transaction scopes over pgsession connections.

A :class:`Transaction` guard issues BEGIN when entered and COMMIT or
ROLLBACK when left. While it is open, server notices are logged as warnings
and server errors are logged before they propagate unchanged.
"""

import contextlib
from enum import Enum
from typing import Callable, Generator, Optional, TypeVar

import psycopg2
import structlog

from pgsession.config import ConnectionConfig, get_settings
from pgsession.db.connection import ConnectionManager, drain_notices
from pgsession.db.descriptor import ConnectionDescriptor
from pgsession.db.errors import TransactionStateError, server_message

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TransactionState(str, Enum):
    IDLE = "idle"
    BEGUN = "begun"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """One BEGIN ... COMMIT block on an open session."""

    def __init__(self, session: ConnectionManager):
        self.session = session
        self.state = TransactionState.IDLE

    def _execute(self, statement: str) -> Optional[str]:
        logger.debug("sql", statement=statement)
        with self.session.cursor() as cursor:
            cursor.execute(statement)
            return cursor.statusmessage

    def _drain(self) -> None:
        if self.session.handle is not None:
            drain_notices(self.session.handle, **self.session.log_context())

    def __enter__(self) -> ConnectionManager:
        if self.state is not TransactionState.IDLE:
            raise TransactionStateError("Transaction objects cannot be reused")
        if self.session.in_transaction:
            raise TransactionStateError(
                f"A transaction is already open on {self.session.descriptor}"
            )

        self._execute("BEGIN")
        self.session.in_transaction = True
        self.state = TransactionState.BEGUN
        return self.session

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self._drain()
            if exc_type is None:
                self._commit()
            else:
                if isinstance(exc, psycopg2.Error):
                    logger.error(
                        "transaction_error",
                        error=server_message(exc),
                        sqlstate=getattr(exc, "pgcode", None),
                        **self.session.log_context(),
                    )
                self._rollback()
        finally:
            self.session.in_transaction = False
        return False

    def _commit(self) -> None:
        try:
            status = self._execute("COMMIT")
        except psycopg2.Error as exc:
            # a failed COMMIT ends the transaction server side
            self.state = TransactionState.ROLLED_BACK
            logger.error(
                "transaction_commit_failed",
                error=server_message(exc),
                sqlstate=getattr(exc, "pgcode", None),
                **self.session.log_context(),
            )
            raise

        # COMMIT of an aborted transaction succeeds but reports ROLLBACK
        if status == "ROLLBACK":
            self.state = TransactionState.ROLLED_BACK
            logger.warning("transaction_commit_rolled_back", **self.session.log_context())
            return
        self.state = TransactionState.COMMITTED

    def _rollback(self) -> None:
        if self.session.handle is None:
            self.state = TransactionState.ROLLED_BACK
            return
        try:
            self._execute("ROLLBACK")
        except psycopg2.Error as exc:
            logger.error(
                "transaction_rollback_failed",
                error=server_message(exc),
                **self.session.log_context(),
            )
        self.state = TransactionState.ROLLED_BACK


class TransactionRunner:
    """Runs units of work inside transactions.

    Example:
        runner = TransactionRunner(config)
        with runner.connection(descriptor) as session:
            TimedExecutor(session, stats).execute("truncate target")
    """

    def __init__(self, config: Optional[ConnectionConfig] = None):
        """Initialize the runner.

        Args:
            config: Used for the connections this runner opens. If None, uses settings.
        """
        self.config = config or get_settings().connection_config()

    def transaction(self, session: ConnectionManager) -> Transaction:
        """Transaction guard on a session the caller owns."""
        return Transaction(session)

    @contextlib.contextmanager
    def connection(
        self,
        descriptor: ConnectionDescriptor,
        username: Optional[str] = None,
    ) -> Generator[ConnectionManager, None, None]:
        """Open a fresh connection and run the block in a transaction on it.

        The connection is closed on every exit path.

        Yields:
            The open ConnectionManager.
        """
        session = ConnectionManager(descriptor, config=self.config)
        session.open(username)
        try:
            with self.transaction(session):
                yield session
        finally:
            if session.is_open:
                session.close()

    def run_in_existing_session(
        self, session: ConnectionManager, body: Callable[[ConnectionManager], T]
    ) -> T:
        with self.transaction(session):
            return body(session)

    def run_with_new_connection(
        self,
        descriptor: ConnectionDescriptor,
        body: Callable[[ConnectionManager], T],
        username: Optional[str] = None,
    ) -> T:
        with self.connection(descriptor, username) as session:
            return body(session)
