"""Database module for pgsession.

Provides connection management, transactions, timed execution and
server introspection on top of psycopg2.
"""

from pgsession.db.connection import ConnectionManager, drain_notices
from pgsession.db.descriptor import ConnectionDescriptor, SslMode, UnixSocket
from pgsession.db.errors import (
    ConnectionExhaustedError,
    DatabaseConnectionError,
    ErrorKind,
    TransactionStateError,
    classify_exception,
)
from pgsession.db.executor import TimedExecutor, connect_and_execute_timed
from pgsession.db.gucs import GucEntry, GucScope, apply, sanitize
from pgsession.db.introspection import (
    RESERVED_KEYWORDS,
    SchemaIntrospector,
    list_reserved_keywords,
)
from pgsession.db.ssl import SslMaterial, resolve_ssl_material
from pgsession.db.transaction import Transaction, TransactionRunner, TransactionState

__all__ = [
    "ConnectionManager",
    "drain_notices",
    "ConnectionDescriptor",
    "SslMode",
    "UnixSocket",
    "ConnectionExhaustedError",
    "DatabaseConnectionError",
    "ErrorKind",
    "TransactionStateError",
    "classify_exception",
    "TimedExecutor",
    "connect_and_execute_timed",
    "GucEntry",
    "GucScope",
    "apply",
    "sanitize",
    "RESERVED_KEYWORDS",
    "SchemaIntrospector",
    "list_reserved_keywords",
    "SslMaterial",
    "resolve_ssl_material",
    "Transaction",
    "TransactionRunner",
    "TransactionState",
]
